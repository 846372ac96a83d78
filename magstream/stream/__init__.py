"""HTTP range streaming and progress reporting."""

from __future__ import annotations

from magstream.stream.progress import ProgressReporter, compute_progress
from magstream.stream.server import RangeStreamServer

__all__ = ["ProgressReporter", "RangeStreamServer", "compute_progress"]
