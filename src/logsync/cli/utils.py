"""
CLI utility helpers: output formatting and container management.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from logsync.container import SyncContainer
from logsync.core.errors import SyncError, categorize_error
from logsync.sync.report import CycleReport

console = Console()
err_console = Console(stderr=True)


# ── Container helper ─────────────────────────────────────────────────────


def make_container() -> SyncContainer:
    """Build a container from the environment (``.env`` included)."""
    return SyncContainer()


def fail(error: Exception) -> None:
    """Print *error* to stderr and exit with status 1."""
    message = error.message if isinstance(error, SyncError) else str(error)
    err_console.print(f"[bold red]Error[/bold red] ({categorize_error(error).value}): {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict / object with ``to_dict`` to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_dict(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a mapping as JSON or as key/value lines."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in payload.items():
        console.print(f"  [cyan]{k}[/cyan]: {'-' if v is None else v}")


def output_report(report: CycleReport, *, as_json: bool = False) -> None:
    """Render a cycle report."""
    if as_json:
        console.print_json(json.dumps(report.to_dict(), default=str))
        return

    style = {"completed": "green", "noop": "dim", "backfill_complete": "green", "skipped": "yellow"}
    status = report.status.value
    console.print(f"[bold]{report.cadence}[/bold] [{style.get(status, 'white')}]{status}[/]")
    table = Table(show_header=False, pad_edge=False, box=None)
    table.add_column("field", style="cyan")
    table.add_column("value")
    for key, value in report.to_dict().items():
        if key in ("cadence", "status"):
            continue
        if key == "cursor" and isinstance(value, dict):
            value = f"{value['ts']} / {value['id']}"
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


def output_checks(checks: list[tuple[str, bool, str]]) -> None:
    """Render ``(name, ok, detail)`` rows as a status table."""
    table = Table(title="Connection check", pad_edge=False)
    table.add_column("collaborator")
    table.add_column("status")
    table.add_column("detail", overflow="fold")
    for name, ok, detail in checks:
        table.add_row(name, "[green]ok[/green]" if ok else "[red]failed[/red]", detail)
    console.print(table)
