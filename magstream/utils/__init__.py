"""Shared utilities and infrastructure.

This module contains common utilities used throughout the application.
"""

from __future__ import annotations

from magstream.utils.exceptions import (
    ConfigurationError,
    DescriptorError,
    MagstreamError,
    NoMediaFileError,
    SwarmError,
)
from magstream.utils.logging_config import setup_logging

__all__ = [
    "ConfigurationError",
    "DescriptorError",
    "MagstreamError",
    "NoMediaFileError",
    "SwarmError",
    "setup_logging",
]
