"""Output formatting utilities for CLI."""

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from mongoshift.migrations.models import ChangeRecord, LockRecord, MigrationReport

console = Console()
error_console = Console(stderr=True)


def format_timestamp(ts: datetime | None) -> str:
    """Format a timestamp for display."""
    if ts is None:
        return "-"
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def format_status(status: str) -> Text:
    """Format status with color."""
    colors = {
        "applied": "green",
        "reapplied": "cyan",
        "skipped": "dim",
        "failed": "red",
        "completed": "green",
        "disabled": "yellow",
        "lock_not_acquired": "yellow",
        "aborted": "red",
    }
    color = colors.get(status.lower(), "white")
    return Text(status, style=color)


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, default=str, indent=2))


def print_error(message: str) -> None:
    """Print an error message."""
    error_console.print(f"[red]Error:[/red] {message}")


def print_report(report: MigrationReport) -> None:
    """Print a run report as a table of change outcomes."""
    console.print()
    console.print(Text.assemble("Run status: ", format_status(report.status.value)))

    if not report.outcomes:
        console.print("[dim]No change units were executed.[/dim]")
        return

    table = Table(title="Change Units", show_header=True)
    table.add_column("Change Id", style="cyan")
    table.add_column("Author", style="white")
    table.add_column("Outcome")
    table.add_column("Time (ms)", style="dim")
    table.add_column("Error", style="red")

    for outcome in report.outcomes:
        table.add_row(
            outcome.change_id,
            outcome.author,
            format_status(outcome.status.value),
            str(outcome.execution_time_ms),
            outcome.error or "",
        )

    console.print(table)


def print_ledger(records: list[ChangeRecord], holder: LockRecord | None) -> None:
    """Print applied changes and the current lock holder."""
    console.print()
    console.print("[bold]Migration Status[/bold]")
    console.print(f"  Applied:  [green]{len(records)}[/green]")
    if holder:
        console.print(
            f"  Lock:     [yellow]held by {holder.owner} since "
            f"{format_timestamp(holder.acquired_at)}[/yellow]"
        )
    else:
        console.print("  Lock:     [green]free[/green]")
    console.print()

    if not records:
        return

    table = Table(title="Applied Changes", show_header=True)
    table.add_column("Change Id", style="cyan")
    table.add_column("Author", style="white")
    table.add_column("Applied At", style="green")
    table.add_column("Changelog", style="dim")

    for record in records:
        table.add_row(
            record.change_id,
            record.author,
            format_timestamp(record.applied_at),
            str(record.metadata.get("changelog", "")),
        )

    console.print(table)
