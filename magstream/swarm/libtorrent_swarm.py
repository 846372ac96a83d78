"""libtorrent-backed swarm handle.

One libtorrent session holds the single streamed torrent. A polling task
pumps libtorrent alerts into the event loop, where they resolve futures
for piece arrival and piece reads, and fire completion and error
callbacks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any, AsyncIterator

import libtorrent as lt

from magstream.models import SwarmConfig, SwarmMember, SwarmStats, TargetFile
from magstream.swarm.base import SwarmHandle
from magstream.swarm.pieces import iter_piece_slices, piece_span
from magstream.utils.exceptions import (
    MetadataTimeoutError,
    SwarmError,
    SwarmReadError,
    SwarmUnavailableError,
)

logger = logging.getLogger(__name__)

# Pieces ahead of a read position that receive deadlines
READAHEAD_PIECES = 16


class LibtorrentSwarm(SwarmHandle):
    """Swarm handle backed by a libtorrent session."""

    def __init__(self, config: SwarmConfig, save_path: Path) -> None:
        super().__init__()
        self.config = config
        self.save_path = Path(save_path)
        self._session: Any = None
        self._handle: Any = None
        self._info: Any = None
        self._pump_task: asyncio.Task[None] | None = None
        self._metadata_ready = asyncio.Event()
        self._piece_waiters: dict[int, list[asyncio.Future[None]]] = {}
        self._read_waiters: dict[int, list[asyncio.Future[bytes]]] = {}

    def _create_session(self) -> Any:
        alert_mask = (
            lt.alert.category_t.error_notification
            | lt.alert.category_t.status_notification
            | lt.alert.category_t.storage_notification
            | lt.alert.category_t.piece_progress_notification
        )
        settings = {
            "listen_interfaces": self.config.listen_interfaces,
            "enable_dht": self.config.enable_dht,
            "enable_outgoing_utp": self.config.enable_utp,
            "enable_incoming_utp": self.config.enable_utp,
            "alert_mask": int(alert_mask),
        }
        return lt.session(settings)

    @property
    def name(self) -> str:
        if self._info is not None:
            return self._info.name()
        if self._handle is not None:
            return self._handle.status().name
        return ""

    async def join(self, descriptor: str) -> None:
        """Add the magnet and wait until metadata has been received."""
        self._session = self._create_session()

        try:
            params = lt.parse_magnet_uri(descriptor)
            params.save_path = str(self.save_path)
            params.storage_mode = lt.storage_mode_t.storage_mode_sparse
            params.flags |= lt.torrent_flags.sequential_download
            # The bindings return a copy of the tracker list, so assign a new one
            trackers = list(params.trackers)
            params.trackers = trackers + [
                t for t in self.config.trackers if t not in trackers
            ]
            self._handle = self._session.add_torrent(params)
        except RuntimeError as e:
            msg = f"libtorrent rejected the magnet URI: {e}"
            raise SwarmError(msg) from e
        self._pump_task = asyncio.create_task(self._pump_alerts(), name="swarm-alerts")

        if self._handle.status().has_metadata:
            self._metadata_ready.set()
        try:
            await asyncio.wait_for(
                self._metadata_ready.wait(), self.config.metadata_timeout
            )
        except asyncio.TimeoutError as e:
            msg = f"No metadata received after {self.config.metadata_timeout:.0f}s"
            raise MetadataTimeoutError(msg) from e
        self._info = self._handle.torrent_file()

    def members(self) -> list[SwarmMember]:
        files = self._info.files()
        return [
            SwarmMember(
                index=i,
                name=files.file_path(i),
                length=files.file_size(i),
                offset=files.file_offset(i),
            )
            for i in range(files.num_files())
        ]

    def select(self, target: TargetFile) -> None:
        super().select(target)
        priorities = [0] * self._info.num_files()
        priorities[target.index] = 4
        self._handle.prioritize_files(priorities)

    def stats(self) -> SwarmStats:
        if self._handle is None:
            msg = "Swarm not joined"
            raise SwarmUnavailableError(msg)
        try:
            status = self._handle.status()
        except RuntimeError as e:
            msg = f"Torrent status unavailable: {e}"
            raise SwarmUnavailableError(msg) from e
        return SwarmStats(
            downloaded=status.total_wanted_done,
            length=status.total_wanted,
            peers=status.num_peers,
        )

    def prioritize(self, start: int, end: int) -> None:
        target = self.target
        first, last = piece_span(target.offset, start, end, self._info.piece_length())
        last = min(last, first + READAHEAD_PIECES - 1)
        base = self.config.piece_deadline_ms
        self._handle.clear_piece_deadlines()
        for i, piece in enumerate(range(first, last + 1)):
            if not self._handle.have_piece(piece):
                self._handle.set_piece_deadline(piece, base + i * base // 2)

    async def read(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        target = self.target
        piece_length = self._info.piece_length()
        for piece_slice in iter_piece_slices(target.offset, start, end, piece_length):
            await self._wait_for_piece(piece_slice.piece)
            data = await self._read_piece(piece_slice.piece)
            segment = memoryview(data)[piece_slice.begin : piece_slice.end]
            for pos in range(0, len(segment), chunk_size):
                yield bytes(segment[pos : pos + chunk_size])

    async def _wait_for_piece(self, piece: int) -> None:
        if self._handle.have_piece(piece):
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._piece_waiters.setdefault(piece, []).append(future)
        await future

    async def _read_piece(self, piece: int) -> bytes:
        future: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()
        waiters = self._read_waiters.setdefault(piece, [])
        waiters.append(future)
        if len(waiters) == 1:
            self._handle.read_piece(piece)
        return await future

    async def _pump_alerts(self) -> None:
        while True:
            for alert in self._session.pop_alerts():
                try:
                    self._dispatch(alert)
                except Exception:
                    logger.exception("Failed to handle alert %s", type(alert).__name__)
            await asyncio.sleep(self.config.alert_poll_interval)

    def _dispatch(self, alert: Any) -> None:
        if isinstance(alert, lt.metadata_received_alert):
            self._metadata_ready.set()
        elif isinstance(alert, lt.piece_finished_alert):
            self._resolve(self._piece_waiters.pop(alert.piece_index, []), None)
        elif isinstance(alert, lt.read_piece_alert):
            waiters = self._read_waiters.pop(alert.piece, [])
            if alert.error.value() != 0:
                error = SwarmReadError(
                    f"Reading piece {alert.piece} failed: {alert.error.message()}"
                )
                self._fail(waiters, error)
            else:
                self._resolve(waiters, bytes(alert.buffer))
        elif isinstance(alert, lt.torrent_finished_alert):
            logger.debug("Torrent finished: %s", alert.message())
            self._emit_done()
        elif isinstance(alert, (lt.torrent_error_alert, lt.file_error_alert)):
            error = SwarmError(alert.message())
            for waiters in self._read_waiters.values():
                self._fail(waiters, SwarmReadError(alert.message()))
            self._read_waiters.clear()
            self._emit_error(error)
        elif isinstance(alert, lt.tracker_error_alert):
            logger.debug("Tracker error: %s", alert.message())

    @staticmethod
    def _resolve(waiters: list[asyncio.Future[Any]], value: Any) -> None:
        for future in waiters:
            if not future.done():
                future.set_result(value)

    @staticmethod
    def _fail(waiters: list[asyncio.Future[Any]], error: Exception) -> None:
        for future in waiters:
            if not future.done():
                future.set_exception(error)

    async def destroy(self) -> None:
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None

        for waiters in (*self._piece_waiters.values(), *self._read_waiters.values()):
            for future in waiters:
                future.cancel()
        self._piece_waiters.clear()
        self._read_waiters.clear()

        if self._session is not None:
            if self._handle is not None and self._handle.is_valid():
                self._session.remove_torrent(self._handle)
            self._session.pause()
        self._handle = None
        self._session = None
