"""First-occurrence logging for high-frequency stream errors.

Seeking makes players abort reads constantly. Each error category moves
through a two-state machine: the first event in ``QUIET`` is logged at the
category's level and moves it to ``REPORTED``; later events are counted and
only logged at DEBUG.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Stream error categories."""

    CLIENT_ABORT = "client_abort"
    READ_FAILURE = "read_failure"
    STALL = "stall"


class ReportState(str, Enum):
    """Per-category reporting state."""

    QUIET = "quiet"
    REPORTED = "reported"


_FIRST_LEVEL = {
    ErrorCategory.CLIENT_ABORT: logging.INFO,
    ErrorCategory.READ_FAILURE: logging.WARNING,
    ErrorCategory.STALL: logging.WARNING,
}

_FIRST_MESSAGE = {
    ErrorCategory.CLIENT_ABORT: "Stream hiccup (normal for seeking): %s",
    ErrorCategory.READ_FAILURE: "Stream read failed: %s",
    ErrorCategory.STALL: "Stream stalled waiting for pieces: %s",
}


@dataclass
class _CategoryTracker:
    state: ReportState = ReportState.QUIET
    occurrences: int = 0


class ErrorLogPolicy:
    """Log each error category once, then count silently."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._trackers = {category: _CategoryTracker() for category in ErrorCategory}

    def record(self, category: ErrorCategory, error: BaseException | str) -> bool:
        """Record an occurrence; return True when it was logged visibly."""
        tracker = self._trackers[category]
        tracker.occurrences += 1
        if tracker.state is ReportState.QUIET:
            tracker.state = ReportState.REPORTED
            self._logger.log(_FIRST_LEVEL[category], _FIRST_MESSAGE[category], error)
            return True
        self._logger.debug(
            "Suppressed %s #%d: %s", category.value, tracker.occurrences, error
        )
        return False

    def state(self, category: ErrorCategory) -> ReportState:
        return self._trackers[category].state

    def occurrences(self, category: ErrorCategory) -> int:
        return self._trackers[category].occurrences
