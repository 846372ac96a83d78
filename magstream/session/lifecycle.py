"""Session lifecycle and shutdown sequencing.

The controller owns every resource acquired during a session and is the
only component allowed to release them. Shutdown can be requested from
several places at once (swarm error, player exit, signal, completion);
the RUNNING -> SHUTTING_DOWN transition admits exactly one of them and
the others are ignored.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from magstream.models import LifecycleState
from magstream.player.launcher import BrowserLaunched, PlayerProcess
from magstream.utils.logging_config import log_milestone
from magstream.utils.tasks import TaskSupervisor

if TYPE_CHECKING:  # pragma: no cover
    from magstream.stream.server import RangeStreamServer
    from magstream.swarm.base import SwarmHandle
    from magstream.utils.exceptions import SwarmError

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM")


@dataclass
class SessionResources:
    """Everything a session acquires; filled in as startup progresses."""

    scratch_dir: Path
    tasks: TaskSupervisor = field(default_factory=TaskSupervisor)
    server: RangeStreamServer | None = None
    swarm: SwarmHandle | None = None
    player: PlayerProcess | None = None


def normalize_exit_code(code: int) -> int:
    """Map a subprocess return code to a process exit status."""
    if code < 0:
        # Killed by signal N
        return 128 - code
    return code


class LifecycleController:
    """RUNNING -> SHUTTING_DOWN -> TERMINATED state machine."""

    def __init__(
        self,
        resources: SessionResources,
        *,
        grace_period: float = 0.5,
        exit_on_complete: bool = True,
        player_terminate_timeout: float = 3.0,
    ) -> None:
        self.resources = resources
        self.grace_period = grace_period
        self.exit_on_complete = exit_on_complete
        self.player_terminate_timeout = player_terminate_timeout

        self._state = LifecycleState.RUNNING
        self._exit_code: int | None = None
        self._reason: str | None = None
        self._terminated = asyncio.Event()
        self._shutdown_task: asyncio.Task[None] | None = None
        self._download_complete = False
        self._player_unwatched = False
        self._installed_signals: list[signal.Signals] = []

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def reason(self) -> str | None:
        return self._reason

    def request_shutdown(self, exit_code: int, reason: str) -> bool:
        """Start the shutdown sequence unless one is already under way.

        Returns:
            True if this call started the shutdown, False if it was ignored

        """
        if self._state is not LifecycleState.RUNNING:
            logger.debug("Ignoring shutdown trigger (%s): already %s", reason, self._state.value)
            return False
        self._state = LifecycleState.SHUTTING_DOWN
        self._exit_code = exit_code
        self._reason = reason
        log_milestone(logger, "Shutting down (%s)...", reason)
        self._shutdown_task = asyncio.get_running_loop().create_task(
            self._shutdown(), name="shutdown"
        )
        return True

    async def wait(self) -> int:
        """Wait for TERMINATED and return the exit status."""
        await self._terminated.wait()
        return self._exit_code if self._exit_code is not None else 0

    # Triggers

    def on_swarm_error(self, error: SwarmError) -> None:
        logger.error("Client error: %s", error)
        self.request_shutdown(1, "swarm error")

    def on_interrupt(self, signame: str = "SIGINT") -> None:
        logger.warning("%s received", signame)
        self.request_shutdown(0, signame)

    def on_player_exit(self, code: int) -> None:
        logger.info("Player exited (code=%d)", code)
        self.request_shutdown(normalize_exit_code(code), "player exited")

    def on_download_complete(self) -> None:
        log_milestone(logger, "Download complete!")
        self._download_complete = True
        self._maybe_finish()

    def attach_player(self, result: PlayerProcess | BrowserLaunched | None) -> None:
        """Register the launcher's outcome.

        A foreground player gets an exit watcher; anything else leaves the
        session to end on interrupt or download completion.
        """
        if isinstance(result, PlayerProcess):
            self.resources.player = result
            self.resources.tasks.create_task(
                self._watch_player(result), name="player-watch"
            )
            return
        self._player_unwatched = True
        self._maybe_finish()

    def _maybe_finish(self) -> None:
        if self._download_complete and self._player_unwatched and self.exit_on_complete:
            self.request_shutdown(0, "download complete")

    async def _watch_player(self, player: PlayerProcess) -> None:
        code = await player.wait()
        self.on_player_exit(code)

    # Signals

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self.on_interrupt, name)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig,
                    lambda _signum, _frame, n=name: loop.call_soon_threadsafe(
                        self.on_interrupt, n
                    ),
                )
            self._installed_signals.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, signal.SIG_DFL)
        self._installed_signals.clear()

    # Shutdown sequence

    async def _shutdown(self) -> None:
        steps: list[tuple[str, Callable[[], Awaitable[Any]]]] = [
            ("cancel timers", self._cancel_timers),
            ("stop player", self._stop_player),
            ("close HTTP server", self._close_server),
            ("destroy swarm", self._destroy_swarm),
            ("clean scratch directory", self._clean_scratch),
        ]
        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.warning("Shutdown step '%s' failed: %s", name, e)
        self._state = LifecycleState.TERMINATED
        logger.debug("Session terminated with exit code %s", self._exit_code)
        self._terminated.set()

    async def _cancel_timers(self) -> None:
        tasks = self.resources.tasks
        cancelled = tasks.cancel_all()
        await tasks.wait_all_cancelled(timeout=2.0)
        logger.debug("Cancelled %d background task(s)", cancelled)

    async def _stop_player(self) -> None:
        player = self.resources.player
        if player is not None and player.running:
            await player.terminate(self.player_terminate_timeout)
            logger.info("Player stopped")

    async def _close_server(self) -> None:
        server = self.resources.server
        if server is not None:
            await server.close()
            logger.info("HTTP server stopped")

    async def _destroy_swarm(self) -> None:
        swarm = self.resources.swarm
        if swarm is None:
            return
        try:
            await swarm.destroy()
            logger.info("Torrent client destroyed")
        finally:
            await asyncio.sleep(self.grace_period)

    async def _clean_scratch(self) -> None:
        path = self.resources.scratch_dir
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, shutil.rmtree, path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning("Cleanup error: %s", e)
            return
        log_milestone(logger, "Cleaned %s", path)
