"""External player launching.

Starts VLC or mpv in the foreground once the stream is ready, or falls
back to the default browser when no player binary can be found. Only a
foreground player is watched for exit; a browser tab is fire-and-forget.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import sys
import webbrowser
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Callable

from magstream.models import PlayerConfig
from magstream.utils.exceptions import PlayerError

logger = logging.getLogger(__name__)

PLAYER_CANDIDATES = ("vlc", "mpv")

WINDOWS_VLC_PATHS = (
    r"C:\Program Files\VideoLAN\VLC\vlc.exe",
    r"C:\Program Files (x86)\VideoLAN\VLC\vlc.exe",
)

VLC_ARGS = (
    "--no-video-title-show",
    "--network-caching=1000",
    "--vout=any",
    "--play-and-exit",
)

MPV_ARGS = ("--force-window=immediate",)


@dataclass(frozen=True)
class BrowserLaunched:
    """Terminal event for the browser fallback."""

    url: str
    opened: bool


class PlayerProcess:
    """A running foreground player."""

    def __init__(self, process: asyncio.subprocess.Process, executable: str) -> None:
        self.process = process
        self.executable = executable

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        return await self.process.wait()

    async def terminate(self, timeout: float = 3.0) -> None:
        """Terminate the player, killing it if it ignores the request."""
        if not self.running:
            return
        with contextlib.suppress(ProcessLookupError):
            self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Player %d did not exit, killing it", self.pid)
            with contextlib.suppress(ProcessLookupError):
                self.process.kill()
            await self.process.wait()


def player_args(executable: str, url: str, extra_args: list[str] | None = None) -> list[str]:
    """Command-line arguments for ``executable`` playing ``url``."""
    # Windows paths split on both separators
    stem = PureWindowsPath(executable).stem.lower()
    extra = list(extra_args or [])
    if stem == "vlc":
        return [url, *VLC_ARGS, *extra, "vlc://quit"]
    if stem == "mpv":
        return [*MPV_ARGS, *extra, url]
    return [*extra, url]


class PlayerLauncher:
    """Locates and starts a media player for a stream URL."""

    def __init__(
        self,
        config: PlayerConfig,
        which: Callable[[str], str | None] = shutil.which,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.config = config
        self._which = which
        self._open_browser = open_browser

    def locate(self) -> str | None:
        """Return the player executable, or None when none is installed."""
        if self.config.command:
            found = self._which(self.config.command)
            if found:
                return found
            if Path(self.config.command).is_file():
                return self.config.command
            logger.warning("Configured player %r not found", self.config.command)
            return None

        for name in PLAYER_CANDIDATES:
            found = self._which(name)
            if found:
                return found
        if sys.platform == "win32":
            for path in WINDOWS_VLC_PATHS:
                if Path(path).is_file():
                    return path
        return None

    async def spawn(self, executable: str, url: str) -> PlayerProcess:
        args = player_args(executable, url, self.config.extra_args)
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            msg = f"Failed to start player {executable}: {e}"
            raise PlayerError(msg) from e
        return PlayerProcess(process, executable)

    async def open_in_browser(self, url: str) -> BrowserLaunched:
        loop = asyncio.get_running_loop()
        try:
            opened = bool(await loop.run_in_executor(None, self._open_browser, url))
        except webbrowser.Error as e:
            logger.warning("Could not open a browser: %s", e)
            opened = False
        return BrowserLaunched(url=url, opened=opened)

    async def launch(self, url: str) -> PlayerProcess | BrowserLaunched:
        """Start a foreground player, or fall back to the browser."""
        executable = self.locate()
        if executable is not None:
            try:
                player = await self.spawn(executable, url)
            except PlayerError as e:
                logger.warning("%s; falling back to browser", e)
            else:
                logger.info("Player launched: %s (pid %d)", Path(executable).name, player.pid)
                return player

        result = await self.open_in_browser(url)
        if result.opened:
            logger.info("Browser launched: %s", url)
        else:
            logger.warning("No player or browser available, open %s manually", url)
        return result
