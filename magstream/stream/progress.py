"""Periodic download progress reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from magstream.models import SwarmStats
from magstream.swarm.base import SwarmHandle
from magstream.utils.exceptions import SwarmUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressLine:
    percent: float
    rate_kbps: float
    peers: int

    def __str__(self) -> str:
        return f"{self.percent:.1f}% | {self.rate_kbps:.1f} KB/s | {self.peers} peers"


def compute_progress(
    stats: SwarmStats, previous_downloaded: int, interval: float
) -> ProgressLine:
    """Turn a counter sample into percentage and instantaneous rate."""
    percent = stats.downloaded / stats.length * 100 if stats.length else 100.0
    rate = (stats.downloaded - previous_downloaded) / interval / 1024
    return ProgressLine(percent=percent, rate_kbps=rate, peers=stats.peers)


class ProgressReporter:
    """Samples swarm counters and logs one progress line per tick.

    The reporter only observes; its timer task is owned and cancelled by
    the lifecycle controller.
    """

    def __init__(self, swarm: SwarmHandle, interval: float = 5.0) -> None:
        self.swarm = swarm
        self.interval = interval
        self._last_downloaded = 0

    def tick(self) -> ProgressLine | None:
        try:
            stats = self.swarm.stats()
        except SwarmUnavailableError as e:
            logger.debug("Skipping progress sample: %s", e)
            return None
        line = compute_progress(stats, self._last_downloaded, self.interval)
        self._last_downloaded = stats.downloaded
        logger.info("%s", line)
        return line
