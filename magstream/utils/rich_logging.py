"""Rich logging integration for magstream.

Provides a Rich console handler for status lines and a plain formatter
for log files.
"""

from __future__ import annotations

import copy
import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

_MARKUP_PATTERN = re.compile(r"\[/?[^\]]+\]")


class StatusRichHandler(RichHandler):
    """RichHandler that highlights progress and milestone lines.

    Progress lines (``"12.5% | 340.2 KB/s | 8 peers"``) get the percentage
    in bold cyan, milestone records flagged with ``extra={"milestone": True}``
    are rendered green.
    """

    PROGRESS_PATTERN = re.compile(r"^(\d+(?:\.\d+)?%)")

    def __init__(self, *args: Any, console: Console | None = None, **kwargs: Any):
        """Initialize the handler with a stdout console and markup enabled."""
        if console is None:
            console = Console(file=sys.stdout, markup=True, color_system="auto")
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record, decorating status lines with Rich markup."""
        try:
            # Other handlers must still see the undecorated record
            record = copy.copy(record)
            message = record.getMessage()
            # Escape brackets from peers, paths and URLs before adding markup
            message = message.replace("[", r"\[")
            if getattr(record, "milestone", False):
                message = f"[green]{message}[/green]"
            else:
                message = self.PROGRESS_PATTERN.sub(
                    r"[bold cyan]\1[/bold cyan]", message, count=1
                )
            record.msg = message
            record.args = ()
            super().emit(record)
        except Exception:
            self.handleError(record)


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup from text for file logging."""
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> logging.Handler:
    """Create the console handler used for status output."""
    return StatusRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
    )
