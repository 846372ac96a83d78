"""Session bootstrap: join, select, serve, launch, wait.

Startup runs as a supervised task so an interrupt during a slow join
cancels it like any other background work. Ordering is fixed: the target
file is identified before the socket is bound, and the socket is bound
before the player is launched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from magstream.core.magnet import parse_magnet, validate_descriptor
from magstream.core.media import select_target
from magstream.models import Config
from magstream.player.launcher import PlayerLauncher
from magstream.session.lifecycle import LifecycleController, SessionResources
from magstream.stream.progress import ProgressReporter
from magstream.stream.server import RangeStreamServer
from magstream.swarm.base import SwarmHandle
from magstream.utils.exceptions import DescriptorError, NoMediaFileError, SwarmError
from magstream.utils.logging_config import log_exception, log_milestone

logger = logging.getLogger(__name__)

SwarmFactory = Callable[[Config, Path], SwarmHandle]


def default_swarm_factory(config: Config, save_path: Path) -> SwarmHandle:
    from magstream.swarm.libtorrent_swarm import LibtorrentSwarm

    return LibtorrentSwarm(config.swarm, save_path)


class StreamSession:
    """One streaming session for one descriptor."""

    def __init__(
        self,
        descriptor: str,
        config: Config,
        swarm_factory: SwarmFactory = default_swarm_factory,
        launcher: PlayerLauncher | None = None,
    ) -> None:
        self.descriptor = validate_descriptor(descriptor)
        self.config = config
        self.swarm_factory = swarm_factory
        self.launcher = launcher or PlayerLauncher(config.player)
        self.lifecycle: LifecycleController | None = None

    async def run(self) -> int:
        """Run until a shutdown trigger fires; return the exit status."""
        scratch_dir = self.config.download_path
        scratch_dir.mkdir(parents=True, exist_ok=True)

        resources = SessionResources(scratch_dir=scratch_dir)
        lifecycle = LifecycleController(
            resources,
            grace_period=self.config.stream.shutdown_grace_period,
            exit_on_complete=self.config.stream.exit_on_complete,
            player_terminate_timeout=self.config.player.terminate_timeout,
        )
        self.lifecycle = lifecycle

        lifecycle.install_signal_handlers()
        try:
            resources.tasks.create_task(
                self._startup(lifecycle, resources), name="startup"
            )
            return await lifecycle.wait()
        finally:
            lifecycle.remove_signal_handlers()

    async def _startup(
        self, lifecycle: LifecycleController, resources: SessionResources
    ) -> None:
        try:
            await self._start(lifecycle, resources)
        except Exception as e:
            log_exception(logger, e, "Startup failed")
            lifecycle.request_shutdown(1, "startup error")

    def _log_descriptor(self) -> None:
        try:
            magnet = parse_magnet(self.descriptor)
        except DescriptorError as e:
            logger.debug("Magnet details unavailable: %s", e)
            return
        logger.debug(
            "Magnet %s (%s), %d tracker(s)",
            magnet.info_hash_hex,
            magnet.display_name or "no name",
            len(magnet.trackers),
        )

    async def _start(
        self, lifecycle: LifecycleController, resources: SessionResources
    ) -> None:
        self._log_descriptor()
        log_milestone(logger, "Connecting to peers...")
        swarm = self.swarm_factory(self.config, resources.scratch_dir)
        resources.swarm = swarm
        swarm.on_error(lifecycle.on_swarm_error)
        swarm.on_done(lifecycle.on_download_complete)

        try:
            await swarm.join(self.descriptor)
        except SwarmError as e:
            logger.error("Could not join swarm: %s", e)
            lifecycle.request_shutdown(1, "swarm error")
            return
        log_milestone(logger, "Torrent: %s", swarm.name)

        try:
            target = select_target(swarm.members())
        except NoMediaFileError as e:
            logger.error("%s", e.message)
            lifecycle.request_shutdown(1, "no video file")
            return
        swarm.select(target)
        log_milestone(logger, "Video: %s (%.1f MB)", target.name, target.length / 1e6)

        server = RangeStreamServer(swarm, target, self.config.stream)
        resources.server = server
        try:
            url = await server.start()
        except OSError as e:
            logger.error(
                "Cannot listen on %s:%d: %s",
                self.config.stream.host,
                self.config.stream.port,
                e,
            )
            lifecycle.request_shutdown(1, "listen error")
            return
        log_milestone(logger, "Streaming ready: %s", url)

        interval = self.config.stream.progress_interval
        reporter = ProgressReporter(swarm, interval)
        resources.tasks.create_periodic(reporter.tick, interval, name="progress")

        if not self.config.player.enabled:
            logger.info("Player disabled, open %s in a player", url)
            lifecycle.attach_player(None)
            return
        lifecycle.attach_player(await self.launcher.launch(url))
