"""Core value handling: descriptors, media selection, byte ranges."""

from __future__ import annotations

from magstream.core.byte_range import parse_range
from magstream.core.magnet import MagnetInfo, parse_magnet, validate_descriptor
from magstream.core.media import content_type_for, select_target

__all__ = [
    "MagnetInfo",
    "content_type_for",
    "parse_magnet",
    "parse_range",
    "select_target",
    "validate_descriptor",
]
