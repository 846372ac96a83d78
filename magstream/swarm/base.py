"""Swarm handle interface consumed by the stream server and lifecycle.

A swarm handle joins one torrent, lists its member files, reads byte
ranges of the selected target on demand and reports completion and fatal
errors through registered callbacks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

from magstream.models import SwarmMember, SwarmStats, TargetFile
from magstream.utils.exceptions import SwarmError

logger = logging.getLogger(__name__)

DoneCallback = Callable[[], None]
ErrorCallback = Callable[[SwarmError], None]


class SwarmHandle(ABC):
    """Abstract swarm collaborator."""

    def __init__(self) -> None:
        self._done_callbacks: list[DoneCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._target: TargetFile | None = None
        self.finished = False

    # Event registration

    def on_done(self, callback: DoneCallback) -> None:
        self._done_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def _emit_done(self) -> None:
        if self.finished:
            return
        self.finished = True
        for callback in list(self._done_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Swarm completion callback failed")

    def _emit_error(self, error: SwarmError) -> None:
        for callback in list(self._error_callbacks):
            try:
                callback(error)
            except Exception:
                logger.exception("Swarm error callback failed")

    # Target selection

    @property
    def target(self) -> TargetFile:
        if self._target is None:
            msg = "No target file selected"
            raise SwarmError(msg)
        return self._target

    def select(self, target: TargetFile) -> None:
        """Restrict downloading to ``target``."""
        self._target = target

    # Collaborator operations

    @property
    @abstractmethod
    def name(self) -> str:
        """Torrent display name."""

    @abstractmethod
    async def join(self, descriptor: str) -> None:
        """Add the torrent and wait until its file list is known."""

    @abstractmethod
    def members(self) -> list[SwarmMember]:
        """Files of the joined torrent, in torrent order."""

    @abstractmethod
    def stats(self) -> SwarmStats:
        """Current counters; raises `SwarmUnavailableError` if unreadable."""

    @abstractmethod
    def prioritize(self, start: int, end: int) -> None:
        """Fetch bytes ``[start, end]`` of the target ahead of everything else."""

    @abstractmethod
    def read(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        """Yield bytes ``[start, end]`` of the target, waiting for missing pieces."""

    @abstractmethod
    async def destroy(self) -> None:
        """Release peer connections and the underlying session."""
