"""Terminal output for chunkup.

Every command renders through ``print_output`` so that ``-o json``, table
output and ``-q`` behave the same everywhere. Status lines go to stderr
except successes, which belong to the command's regular output.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


class OutputFormat(Enum):
    """Output format options."""

    JSON = "json"
    TABLE = "table"

    @classmethod
    def from_string(cls, value: str) -> OutputFormat:
        return cls(value.lower())


# =============================================================================
# Value Formatting
# =============================================================================


def format_file_size(size: int | float) -> str:
    """Format a byte count with a binary unit, e.g. ``1.5 MB``."""
    value = float(max(size, 0))
    for unit in SIZE_UNITS[:-1]:
        if value < 1024:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{round(value, 2):g} {SIZE_UNITS[-1]}"


def format_duration(seconds: float) -> str:
    """Format a duration as ``42s``, ``3m 5s`` or ``2h 10m``."""
    minutes, secs = divmod(int(max(0, seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _label(key: str, labels: Mapping[str, str] | None) -> str:
    if labels and key in labels:
        return labels[key]
    return key.replace("_", " ").title()


def _cell(value: Any, *, markup: bool = False) -> str:
    """Render one value for a table or key/value listing."""
    if value is None or value == "":
        return "[dim]-[/dim]" if markup else ""
    if isinstance(value, bool):
        if markup:
            return "[green]yes[/green]" if value else "[red]no[/red]"
        return "yes" if value else "no"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


# =============================================================================
# Tables
# =============================================================================


def print_table(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    *,
    title: str | None = None,
    column_labels: Mapping[str, str] | None = None,
) -> None:
    """Print rows as a table with one column per key in ``columns``."""
    if not rows:
        console.print("[dim]Nothing to show[/dim]")
        return

    table = Table(title=title, box=box.SIMPLE_HEAD, header_style="bold")
    for column in columns:
        table.add_column(_label(column, column_labels), overflow="fold")
    for row in rows:
        table.add_row(*(_cell(row.get(column)) for column in columns))

    console.print(table)


def print_key_value(
    data: Mapping[str, Any],
    *,
    title: str | None = None,
    key_labels: Mapping[str, str] | None = None,
) -> None:
    """Print a mapping as aligned ``label  value`` lines."""
    if title:
        console.print(f"[bold]{title}[/bold]")

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="cyan", no_wrap=True)
    grid.add_column()
    for key, value in data.items():
        grid.add_row(f"  {_label(key, key_labels)}", _cell(value, markup=True))

    console.print(grid)


def print_json(data: Any, *, indent: int = 2) -> None:
    """Write data to stdout as JSON, bypassing Rich markup."""
    print(json.dumps(data, indent=indent, default=str))


def print_output(
    data: Any,
    *,
    format: OutputFormat = OutputFormat.TABLE,
    columns: Sequence[str] | None = None,
    column_labels: Mapping[str, str] | None = None,
    title: str | None = None,
    quiet: bool = False,
    id_field: str = "id",
) -> None:
    """Print a record or a list of records in the requested format.

    Args:
        data: A dict, a list of dicts, or a scalar.
        format: Output format.
        columns: Columns for table output; a dict without columns is shown
            as key/value lines.
        column_labels: Display labels for columns.
        title: Optional title.
        quiet: Print only ``id_field`` of each record, one per line.
        id_field: Field printed in quiet mode.
    """
    if quiet:
        records = data if isinstance(data, list) else [data]
        for record in records:
            if isinstance(record, Mapping):
                print(record.get(id_field) or "")
            else:
                print(record)
        return

    if format == OutputFormat.JSON or not isinstance(data, (list, Mapping)):
        print_json(data)
    elif isinstance(data, Mapping) and not columns:
        print_key_value(data, title=title, key_labels=column_labels)
    else:
        rows = data if isinstance(data, list) else [data]
        if not columns:
            columns = list(rows[0].keys()) if rows else []
        print_table(rows, columns, title=title, column_labels=column_labels)


# =============================================================================
# Status Messages
# =============================================================================


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]Info:[/blue] {message}")


# =============================================================================
# Progress
# =============================================================================


def create_progress() -> Progress:
    """Progress display with one byte-based bar per file.

    Tasks must carry a ``status`` field, shown after the transfer speed.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        DownloadColumn(binary_units=True),
        TransferSpeedColumn(),
        TextColumn("{task.fields[status]}"),
        console=console,
        expand=False,
    )
