"""Data models for magstream.

Configuration sections are pydantic models validated on load; runtime
value types (target file, byte range, swarm counters) are plain
dataclasses shared by the swarm adapter and the stream server.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_TRACKERS = [
    "udp://tracker.opentrackr.org:1337/announce",
    "udp://tracker.openbittorrent.com:80/announce",
    "udp://exodus.desync.com:6969/announce",
    "http://tracker.opentrackr.org:1337/announce",
    "https://tracker.btorrent.xyz:443/announce",
    "https://tracker.openwebtorrent.com",
]


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LifecycleState(str, Enum):
    """Session lifecycle states."""

    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class StreamConfig(BaseModel):
    """HTTP streaming configuration."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8888, ge=0, le=65535, description="HTTP port")
    download_dir: str = Field(
        default="downloads", description="Scratch directory for download data"
    )
    progress_interval: float = Field(
        default=5.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between progress lines",
    )
    stall_timeout: float = Field(
        default=120.0,
        ge=0.0,
        description="Seconds without new data before a read is abandoned (0 = wait forever)",
    )
    chunk_size: int = Field(
        default=64 * 1024,
        ge=1024,
        le=16 * 1024 * 1024,
        description="Maximum bytes written to the client per chunk",
    )
    exit_on_complete: bool = Field(
        default=True,
        description="End the session when the download completes and no player is watched",
    )
    shutdown_grace_period: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Seconds allowed for asynchronous swarm teardown",
    )


class SwarmConfig(BaseModel):
    """Swarm (libtorrent session) configuration."""

    listen_interfaces: str = Field(
        default="0.0.0.0:6881", description="libtorrent listen interfaces"
    )
    enable_dht: bool = Field(default=True, description="Enable DHT")
    enable_utp: bool = Field(default=False, description="Enable uTP transport")
    trackers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TRACKERS),
        description="Trackers appended to every magnet",
    )
    metadata_timeout: float = Field(
        default=300.0,
        ge=1.0,
        description="Seconds to wait for torrent metadata",
    )
    alert_poll_interval: float = Field(
        default=0.1,
        gt=0.0,
        le=5.0,
        description="Seconds between libtorrent alert polls",
    )
    piece_deadline_ms: int = Field(
        default=1000,
        ge=0,
        description="Base deadline for prioritized pieces in milliseconds",
    )


class PlayerConfig(BaseModel):
    """External player configuration."""

    enabled: bool = Field(default=True, description="Launch a player or browser")
    command: str | None = Field(
        default=None, description="Player executable (name or path)"
    )
    extra_args: list[str] = Field(
        default_factory=list, description="Additional player arguments"
    )
    terminate_timeout: float = Field(
        default=3.0,
        ge=0.0,
        description="Seconds to wait for the player after terminate before killing it",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    log_format: str = Field(
        default="%(asctime)s %(levelname)s %(name)s: %(message)s",
        description="Log format string for file output",
    )


class Config(BaseModel):
    """Main configuration model."""

    stream: StreamConfig = Field(
        default_factory=StreamConfig,
        description="Streaming configuration",
    )
    swarm: SwarmConfig = Field(
        default_factory=SwarmConfig,
        description="Swarm configuration",
    )
    player: PlayerConfig = Field(
        default_factory=PlayerConfig,
        description="Player configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )

    @property
    def download_path(self) -> Path:
        """Absolute scratch directory path."""
        return Path(self.stream.download_dir).resolve()


@dataclass(frozen=True)
class SwarmMember:
    """One file inside the joined torrent."""

    index: int
    name: str
    length: int
    offset: int = 0


@dataclass(frozen=True)
class TargetFile:
    """The video member selected for streaming."""

    index: int
    name: str
    length: int
    offset: int = 0

    @classmethod
    def from_member(cls, member: SwarmMember) -> TargetFile:
        return cls(
            index=member.index,
            name=member.name,
            length=member.length,
            offset=member.offset,
        )


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte interval ``[start, end]`` over the target file."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total: int) -> str:
        return f"bytes {self.start}-{self.end}/{total}"


@dataclass(frozen=True)
class SwarmStats:
    """Snapshot of swarm counters."""

    downloaded: int
    length: int
    peers: int
