"""
CLI: ``logsync state``: inspect and adjust cursor state.
"""

from __future__ import annotations

import typer

from logsync.cli.utils import console, fail, output_dict
from logsync.core.errors import InvalidConfigError, SyncError

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_state(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show the forward cursor, oldest marker and stop boundary."""
    from logsync.cli.utils import make_container

    with make_container() as container:
        try:
            snapshot = container.cursor_store.snapshot()
        except SyncError as e:
            fail(e)
    output_dict(snapshot, as_json=json_out, title="State")


@app.command("set-stop")
def set_stop(
    timestamp: str = typer.Argument(..., help="ISO-8601 timestamp backfill stops at"),
) -> None:
    """Persist the backfill stop boundary."""
    from logsync.cli.utils import make_container

    with make_container() as container:
        try:
            container.cursor_store.set_stop_boundary(timestamp)
        except ValueError:
            fail(InvalidConfigError("backfill_stop_at", timestamp, message=f"Not an ISO-8601 timestamp: {timestamp}"))
        except SyncError as e:
            fail(e)
    console.print(f"backfill_stop_at set to [bold]{timestamp}[/bold]")


@app.command("clear-oldest")
def clear_oldest() -> None:
    """Delete the oldest-seen marker (ends any backfill in progress)."""
    from logsync.cli.utils import make_container

    with make_container() as container:
        try:
            container.cursor_store.clear_oldest()
        except SyncError as e:
            fail(e)
    console.print("oldest marker cleared")
