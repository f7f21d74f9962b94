"""Output formatting utilities for agent-friendly CLI output."""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any

from rich.console import Console
from rich.table import Table

from nightbot_sr.models.queue import Queue

console = Console(stderr=True)

QUEUE_COLUMNS = ["position", "title", "duration", "user", "id"]


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


def print_output(
    data: list[dict[str, Any]] | dict[str, Any],
    fmt: OutputFormat = OutputFormat.TABLE,
    columns: list[str] | None = None,
    title: str | None = None,
) -> None:
    """Print data in the requested format.

    Args:
        data: The data to display (list of dicts or single dict).
        fmt: Output format (table, json, csv).
        columns: Which columns to show in table/csv mode. None = all.
        title: Optional title for table output.
    """
    if fmt == OutputFormat.JSON:
        print_json(data)
    elif fmt == OutputFormat.CSV:
        print_csv(data, columns)
    else:
        print_table(data, columns, title)


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout."""
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def print_table(
    data: list[dict[str, Any]] | dict[str, Any],
    columns: list[str] | None = None,
    title: str | None = None,
) -> None:
    """Print data as a Rich table."""
    if isinstance(data, dict):
        data = [data]

    if not data:
        console.print("[dim]No results.[/dim]")
        return

    # Auto-detect columns from first row if not specified
    if columns is None:
        columns = list(data[0].keys())

    table = Table(title=title, show_lines=False)
    for col in columns:
        table.add_column(col, overflow="fold")

    for row in data:
        table.add_row(*[str(row.get(col, "")) for col in columns])

    console.print(table)


def print_csv(
    data: list[dict[str, Any]] | dict[str, Any],
    columns: list[str] | None = None,
) -> None:
    """Print data as CSV to stdout."""
    import csv

    if isinstance(data, dict):
        data = [data]

    if not data:
        return

    if columns is None:
        columns = list(data[0].keys())

    writer = csv.DictWriter(sys.stdout, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in data:
        writer.writerow({k: row.get(k, "") for k in columns})


def render_queue_table(queue: Queue, title: str = "Song Requests") -> Table:
    """Build the queue table: the playing song is marked and bold, the rest numbered."""
    status = ""
    if queue.requests_enabled is not None:
        status = " (requests on)" if queue.requests_enabled else " (requests off)"

    table = Table(title=f"{title}{status}", show_lines=False)
    table.add_column("#", justify="center")
    table.add_column("Title", overflow="fold")
    table.add_column("User", justify="center")
    table.add_column("ID", style="dim")

    for entry in queue.entries:
        label = f"{entry.title} ({entry.duration_label})"
        if entry.is_current:
            table.add_row("▶", label, entry.submitted_by, entry.id, style="bold")
        else:
            table.add_row(str(entry.position), label, entry.submitted_by, entry.id)
    return table


def print_queue(queue: Queue, fmt: OutputFormat = OutputFormat.TABLE) -> None:
    """Print a queue snapshot in the requested format."""
    if fmt == OutputFormat.TABLE:
        if not queue.entries:
            console.print("[dim]The queue is empty.[/dim]")
            return
        console.print(render_queue_table(queue))
    elif fmt == OutputFormat.JSON:
        print_json({"requestsEnabled": queue.requests_enabled, "queue": queue.to_rows()})
    else:
        print_csv(queue.to_rows(), QUEUE_COLUMNS)
