"""magstream command: stream a magnet's video to a local player."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from magstream import __version__
from magstream.config.config import init_config
from magstream.core.magnet import validate_descriptor
from magstream.session.runner import StreamSession
from magstream.utils.exceptions import ConfigurationError, DescriptorError

logger = logging.getLogger(__name__)

USAGE_HINT = 'Usage: magstream "magnet:?xt=urn:btih:..."'


def _overrides(
    port: int | None,
    host: str | None,
    download_dir: str | None,
    player: str | None,
    no_player: bool,
    log_file: str | None,
) -> dict[str, Any]:
    return {
        "stream.port": port,
        "stream.host": host,
        "stream.download_dir": download_dir,
        "player.command": player,
        "player.enabled": False if no_player else None,
        "observability.log_file": log_file,
    }


@click.command()
@click.argument("descriptor", required=False)
@click.option("--port", "-p", type=int, help="HTTP port (default: 8888, 0 picks a free port)")
@click.option("--host", type=str, help="Bind address (default: 127.0.0.1)")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--download-dir",
    "-d",
    type=click.Path(file_okay=False),
    help="Scratch directory, deleted on exit",
)
@click.option("--player", type=str, help="Player executable (default: vlc, then mpv)")
@click.option("--no-player", is_flag=True, help="Do not launch a player or browser")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also log to this file")
@click.option("--print-config", is_flag=True, help="Print the effective configuration and exit")
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v: debug, -vv: with paths)")
@click.version_option(__version__, prog_name="magstream")
def cli(
    descriptor: str | None,
    port: int | None,
    host: str | None,
    config_file: str | None,
    download_dir: str | None,
    player: str | None,
    no_player: bool,
    log_file: str | None,
    print_config: bool,
    verbose: int,
) -> None:
    """Stream the video inside a magnet link over local HTTP.

    The first video file in the torrent is served at http://HOST:PORT with
    byte-range support and opened in VLC (or the browser). The download
    directory is removed when the session ends.
    """
    console = Console(stderr=True)

    try:
        manager = init_config(config_file)
        config = manager.apply_overrides(
            _overrides(port, host, download_dir, player, no_player, log_file)
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(1)

    if print_config:
        click.echo(manager.export())
        return

    if not descriptor:
        console.print(escape(USAGE_HINT))
        sys.exit(1)
    try:
        validate_descriptor(descriptor)
    except DescriptorError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        console.print(escape(USAGE_HINT))
        sys.exit(1)

    manager.setup_logging(verbose)
    session = StreamSession(descriptor, config)
    try:
        code = asyncio.run(session.run())
    except KeyboardInterrupt:
        # Raised only where no signal handler could be installed
        code = 0
    logger.debug("Exiting with status %d", code)
    sys.exit(code)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
