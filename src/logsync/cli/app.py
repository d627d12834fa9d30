"""
Root Typer application for the logsync CLI.

Cycle commands (``run``, ``tick``, ``serve``, ``check``) live here;
maintenance sub-commands are registered from their own modules.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError
from typer import Typer

from logsync.cli.utils import err_console, fail, output_checks, output_report
from logsync.core.errors import SyncError

app = Typer(
    name="logsync",
    help="logsync: incremental AI Gateway log sync into BigQuery.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version / logging callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from logsync import __version__

        typer.echo(f"logsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="debug|info|warn|error"),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Log format"),
) -> None:
    """logsync CLI: run sync cycles and manage their state."""
    from logsync.core.logging import configure_logging
    from logsync.core.settings import get_settings

    try:
        settings = get_settings(reload=True)
        configure_logging(
            level=log_level or settings.log_level,
            json_format=settings.log_json if json_logs is None else json_logs,
        )
    except (ValidationError, ValueError) as e:
        err_console.print(f"[bold red]Invalid configuration[/bold red]: {e}")
        raise typer.Exit(code=2) from e


# ── Cycle commands ───────────────────────────────────────────────────────


@app.command()
def run(
    cadence: str = typer.Argument(..., help="forward or backfill"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one forward or backfill cycle now."""
    from logsync.cli.utils import make_container
    from logsync.sync.dispatch import Cadence, dispatch

    if cadence not in {c.value for c in Cadence}:
        err_console.print(f"[bold red]Error[/bold red]: unknown cadence {cadence!r} (forward|backfill)")
        raise typer.Exit(code=2)

    with make_container() as container:
        try:
            report = dispatch(cadence, container)
        except SyncError as e:
            fail(e)
    output_report(report, as_json=json_out)


@app.command()
def tick(
    trigger: str = typer.Argument(..., help="Cron expression or cadence name of the firing schedule"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Handle one scheduler tick (for external cron)."""
    from logsync.cli.utils import make_container
    from logsync.sync.dispatch import dispatch

    with make_container() as container:
        try:
            report = dispatch(trigger, container)
        except SyncError as e:
            fail(e)
    output_report(report, as_json=json_out)


@app.command()
def serve() -> None:
    """Run both cadences on their cron schedules until interrupted."""
    from logsync.cli.utils import make_container
    from logsync.sync.dispatch import serve as _serve

    with make_container() as container:
        _serve(container)


@app.command()
def check() -> None:
    """Check the state store, the log source and the BigQuery table."""
    from logsync.cli.utils import make_container
    from logsync.source.client import FetchQuery, FilterOp, Order
    from logsync.core.timestamps import EPOCH

    checks: list[tuple[str, bool, str]] = []
    with make_container() as container:
        try:
            snapshot = container.cursor_store.snapshot()
            checks.append(("state store", True, f"forward={snapshot['forward'] or '-'}"))
        except SyncError as e:
            checks.append(("state store", False, e.message))

        try:
            query = FetchQuery(op=FilterOp.GT, timestamp=EPOCH, order=Order.DESC, max_pages=1)
            records = container.source.fetch_page(query, 1)
            latest = records[0].created_at if records else "-"
            checks.append(("log source", True, f"{len(records)} records, latest {latest}"))
        except SyncError as e:
            checks.append(("log source", False, e.message))

        try:
            exists = container.sink.table_exists()
            checks.append(("bigquery table", exists, container.sink.table if exists else "missing or unreadable"))
        except SyncError as e:
            checks.append(("bigquery table", False, e.message))

    output_checks(checks)
    if not all(ok for _, ok, _ in checks):
        raise typer.Exit(code=1)


# ── Sub-command registration ─────────────────────────────────────────────

from logsync.cli.dedup import app as dedup_app  # noqa: E402
from logsync.cli.state import app as state_app  # noqa: E402

app.add_typer(state_app, name="state", help="Cursor state inspection and maintenance.")
app.add_typer(dedup_app, name="dedup", help="Dedup marker maintenance.")
