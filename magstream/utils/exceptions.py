"""Exception hierarchy for magstream.

Provides the error taxonomy shared by the swarm adapter, the range
stream server, the player launcher and the lifecycle controller.
"""

from __future__ import annotations

from typing import Any


class MagstreamError(Exception):
    """Base exception for all magstream errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize magstream error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(MagstreamError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class DescriptorError(ValidationError):
    """Swarm join descriptor is not a recognized URI."""


class RangeNotSatisfiableError(ValidationError):
    """Range header is malformed or outside the target file."""


class NoMediaFileError(MagstreamError):
    """Swarm has no member with a recognized video extension."""


class SwarmError(MagstreamError):
    """Swarm-level errors (tracker, network, storage)."""


class SwarmUnavailableError(SwarmError):
    """Swarm counters cannot be read right now."""


class SwarmReadError(SwarmError):
    """Reading a piece of the target file failed."""


class MetadataTimeoutError(SwarmError):
    """Torrent metadata did not arrive in time."""


class PlayerError(MagstreamError):
    """External player could not be started."""
