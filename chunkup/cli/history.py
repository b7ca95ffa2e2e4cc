"""History commands for chunkup."""

from __future__ import annotations

from datetime import datetime

import click

from chunkup.cli.common import Context, global_options, handle_errors
from chunkup.core.output import (
    OutputFormat,
    format_duration,
    format_file_size,
    print_output,
    print_success,
)
from chunkup.models.task import HistoryEntry


@click.group()
def history() -> None:
    """Show or clear the upload history."""
    pass


def _entry_row(entry: HistoryEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "filename": entry.filename,
        "size": format_file_size(entry.size),
        "status": entry.status,
        "finished": datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d %H:%M:%S"),
        "duration": format_duration(entry.duration),
        "detail": entry.error or entry.file_path or "",
    }


@history.command("list")
@click.option("--limit", "-n", type=int, default=None, help="Show at most N entries")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice(["completed", "failed"]),
    default=None,
    help="Only show entries with this outcome",
)
@global_options
@handle_errors
def history_list(ctx: Context, limit: int | None, status_filter: str | None) -> None:
    """List recent uploads, newest first.

    Example:
        chunkup history list
        chunkup history list --status failed -n 10
    """
    entries = ctx.get_history_store().entries()
    if status_filter:
        entries = [e for e in entries if e.status == status_filter]
    if limit is not None:
        entries = entries[:limit]

    if ctx.output_format == OutputFormat.JSON and not ctx.quiet:
        print_output([e.to_dict() for e in entries], format=OutputFormat.JSON)
        return

    print_output(
        [_entry_row(e) for e in entries],
        format=ctx.output_format,
        columns=["id", "filename", "size", "status", "finished", "duration", "detail"],
        quiet=ctx.quiet,
        id_field="id",
    )


@history.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@global_options
@handle_errors
def history_clear(ctx: Context, yes: bool) -> None:
    """Remove all history entries.

    Example:
        chunkup history clear --yes
    """
    if not yes:
        click.confirm("Clear the upload history?", abort=True)

    removed = ctx.get_history_store().clear()
    if not ctx.quiet:
        print_success(f"Removed {removed} history entries")
