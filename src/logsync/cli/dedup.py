"""
CLI: ``logsync dedup``: dedup marker maintenance.
"""

from __future__ import annotations

import typer

from logsync.cli.utils import console, err_console, fail, output_dict
from logsync.core.errors import SyncError

app = typer.Typer(no_args_is_help=True)


@app.command("stats")
def stats(
    sample: int = typer.Option(10, "--sample", "-n", min=0, help="Sample ids to show"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Count live dedup markers."""
    from logsync.cli.utils import make_container

    with make_container() as container:
        try:
            result = container.dedup.stats(sample=sample)
        except SyncError as e:
            fail(e)
    output_dict(result, as_json=json_out, title="Dedup markers")


@app.command("clear")
def clear(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete every dedup marker. Later cycles may re-send records."""
    from logsync.cli.utils import make_container

    if not force and not typer.confirm("Delete all dedup markers?"):
        err_console.print("Aborted.")
        raise typer.Exit(code=1)

    with make_container() as container:
        try:
            deleted = container.dedup.clear()
        except SyncError as e:
            fail(e)
    console.print(f"Deleted {deleted} dedup markers")
