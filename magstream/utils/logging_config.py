"""Logging configuration for magstream.

Console output goes through a Rich handler so progress and milestone
lines stay readable; an optional rotating file handler keeps a plain
copy of everything.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import TYPE_CHECKING, Any

from magstream.utils.exceptions import MagstreamError
from magstream.utils.rich_logging import FileFormatter, create_rich_handler

if TYPE_CHECKING:  # pragma: no cover
    from magstream.models import ObservabilityConfig

ROOT_LOGGER = "magstream"


def setup_logging(config: ObservabilityConfig, verbosity: int = 0) -> None:
    """Set up logging for the ``magstream`` logger tree.

    Args:
        config: Observability section of the loaded configuration
        verbosity: Number of ``-v`` flags; any value forces DEBUG

    """
    level = "DEBUG" if verbosity > 0 else config.log_level.value

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "()": FileFormatter,
                "format": config.log_format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {},
        "loggers": {
            ROOT_LOGGER: {
                "level": level,
                "handlers": [],
                "propagate": False,
            },
            # aiohttp logs every aborted request at ERROR; seeking makes that noise
            "aiohttp.server": {"level": "CRITICAL"},
        },
    }

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "simple",
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
        }
        logging_config["loggers"][ROOT_LOGGER]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    console_handler = create_rich_handler(level=level, show_path=verbosity > 1)
    logging.getLogger(ROOT_LOGGER).addHandler(console_handler)


def log_exception(logger: logging.Logger, exc: Exception, context: str = "") -> None:
    """Log an exception with context."""
    if isinstance(exc, MagstreamError):
        logger.error(
            "%s: %s",
            context,
            exc.message,
            extra={"details": exc.details},
        )
    else:
        logger.exception("%s: %s", context, exc)


def log_milestone(logger: logging.Logger, message: str, *args: Any) -> None:
    """Log a user-facing milestone line."""
    logger.info(message, *args, extra={"milestone": True})
