"""logsync command-line interface (Typer)."""

from logsync.cli.app import app

__all__ = ["app"]
