"""Pytest configuration and shared fixtures for magstream tests."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator

import pytest

from magstream.models import Config, SwarmMember, SwarmStats
from magstream.swarm.base import SwarmHandle
from magstream.utils.exceptions import SwarmReadError, SwarmUnavailableError


def pytest_configure(config):
    """Register project markers when the ini file isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("cli", "marks tests as CLI tests"),
        ("stream", "marks tests as HTTP streaming tests"),
        ("session", "marks tests as session lifecycle tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


def pattern_bytes(length: int) -> bytes:
    """Deterministic content where every offset is checkable."""
    return (bytes(range(251)) * (length // 251 + 1))[:length]


class MemorySwarm(SwarmHandle):
    """In-memory swarm serving a single target from a bytes buffer.

    ``available`` gates reads: while it is cleared, ``read`` blocks as if
    pieces were still missing. ``fail_reads`` makes every read raise
    `SwarmReadError` after the first chunk. With ``hold_after`` set, a read
    stops after that many chunks until ``released`` is set, leaving the
    response open mid-body.
    """

    def __init__(
        self,
        data: bytes = b"",
        members: list[SwarmMember] | None = None,
        name: str = "memory-torrent",
        peers: int = 3,
    ) -> None:
        super().__init__()
        self.data = data
        self._members = members if members is not None else [
            SwarmMember(index=0, name="movie.mp4", length=len(data)),
        ]
        self._name = name
        self.peers = peers
        self.downloaded = 0
        self.available = asyncio.Event()
        self.available.set()
        self.fail_reads = False
        self.hold_after: int | None = None
        self.released = asyncio.Event()
        self.stats_error = False
        self.joined_with: str | None = None
        self.join_error: Exception | None = None
        self.prioritized: list[tuple[int, int]] = []
        self.destroy_calls = 0
        self.open_reads = 0

    @property
    def name(self) -> str:
        return self._name

    async def join(self, descriptor: str) -> None:
        if self.join_error is not None:
            raise self.join_error
        self.joined_with = descriptor

    def members(self) -> list[SwarmMember]:
        return list(self._members)

    def stats(self) -> SwarmStats:
        if self.stats_error:
            msg = "counters unavailable"
            raise SwarmUnavailableError(msg)
        return SwarmStats(
            downloaded=self.downloaded, length=len(self.data), peers=self.peers
        )

    def prioritize(self, start: int, end: int) -> None:
        self.prioritized.append((start, end))

    async def read(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        self.open_reads += 1
        try:
            pos = start
            sent = 0
            while pos <= end:
                if self.hold_after is not None and sent >= self.hold_after:
                    await self.released.wait()
                await self.available.wait()
                if self.fail_reads and pos > start:
                    msg = f"piece at offset {pos} unreadable"
                    raise SwarmReadError(msg)
                stop = min(pos + chunk_size, end + 1)
                yield self.data[pos:stop]
                sent += 1
                pos = stop
                # Let other requests interleave
                await asyncio.sleep(0)
        finally:
            self.open_reads -= 1

    async def destroy(self) -> None:
        self.destroy_calls += 1

    # Test helpers

    def finish(self) -> None:
        self.downloaded = len(self.data)
        self._emit_done()

    def fail(self, error: Exception) -> None:
        self._emit_error(error)


@pytest.fixture
def pattern():
    return pattern_bytes


@pytest.fixture
def memory_swarm_factory():
    return MemorySwarm


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    (path / "partial.bin").write_bytes(b"\0" * 128)
    return path


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config bound to a free port with a temporary scratch directory."""
    cfg = Config()
    cfg.stream.port = 0
    cfg.stream.download_dir = str(tmp_path / "downloads")
    cfg.stream.progress_interval = 0.05
    cfg.stream.stall_timeout = 2.0
    cfg.stream.shutdown_grace_period = 0.0
    cfg.player.enabled = False
    return cfg


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep user config files and MAGSTREAM_* variables out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("MAGSTREAM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_magstream_logging():
    yield
    logger = logging.getLogger("magstream")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
