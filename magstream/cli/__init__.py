"""Command-line interface for magstream."""

from magstream.cli.main import cli, main

__all__ = ["cli", "main"]
