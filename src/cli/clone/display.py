"""Display functions for clone commands."""

from typing import Dict, List, Optional, Tuple

from rich import box
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cli.core.context import Context
from envclone.anonymization import BatchResult
from envclone.logging_utils import format_bytes, format_duration
from envclone.models import CloneLog, CloneResult, DeletionResult, LogLevel

LEVEL_STYLES = {
    LogLevel.INFO: ("•", "white"),
    LogLevel.SUCCESS: ("✓", "green"),
    LogLevel.WARNING: ("!", "yellow"),
    LogLevel.ERROR: ("✗", "bold red"),
}


def print_log_entry(ctx: Context, entry: CloneLog):
    """Live progress line for one log entry."""
    marker, style = LEVEL_STYLES[entry.level]
    line = Text()
    line.append(entry.timestamp.strftime('%H:%M:%S'), style="dim")
    line.append(f" {marker} ", style=style)
    line.append(f"[{entry.phase}] ", style="cyan")
    line.append(entry.message, style=style if entry.level is not LogLevel.INFO else None)
    ctx.console.print(line)


def display_clone_result(ctx: Context, result: CloneResult):
    grid = Table(show_header=False, box=None, padding=(0, 2))
    grid.add_column("Field", style="cyan bold")
    grid.add_column("Value")

    status = Text("SUCCESS", style="bold green") if result.success else Text("FAILED", style="bold red")
    grid.add_row("Status", status)
    grid.add_row("Operation", result.operation_id)
    grid.add_row("Source", result.source_environment)
    grid.add_row("Target", result.target_environment)
    grid.add_row("Duration", format_duration(result.duration))

    stats = result.statistics
    grid.add_row("Tables", f"{stats.tables_processed:,}")
    grid.add_row("Records", f"{stats.records_processed:,} ({stats.records_anonymized:,} anonymized)")
    if stats.bytes_total:
        grid.add_row("Dump size", format_bytes(stats.bytes_total))
    if stats.functions_cloned or stats.triggers_cloned:
        grid.add_row("Functions / Triggers", f"{stats.functions_cloned} / {stats.triggers_cloned}")
    if result.backup_id:
        grid.add_row("Backup", result.backup_id)

    if result.warnings:
        grid.add_row("Warnings", "\n".join(result.warnings), style="yellow")
    if result.errors:
        grid.add_row("Errors", "\n".join(result.errors), style="red")

    ctx.console.print(Panel(grid, title="Clone Summary", border_style="green" if result.success else "red"))


def display_deletion_result(ctx: Context, environment: str, result: DeletionResult):
    table = Table(title=f"Deleted from {environment}", box=box.SIMPLE)
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name in result.tables_cleared:
        table.add_row(name, f"{result.rows_deleted.get(name, 0):,}")
    table.add_row("Total", f"{result.total_rows_deleted:,}", style="bold")
    ctx.console.print(table)

    if result.backup_id:
        ctx.console.print(f"Backup: {result.backup_id}", style="dim")
    for error in result.errors:
        ctx.console.print(f"✗ {error}", style="red")


def display_counts(ctx: Context, source: str, target: str,
                   counts: Dict[str, Tuple[Optional[int], Optional[int]]]) -> int:
    """Show row counts side by side; returns the number of mismatching tables."""
    table = Table(box=box.SIMPLE)
    table.add_column("Table", style="cyan")
    table.add_column(source, justify="right")
    table.add_column(target, justify="right")
    table.add_column("")

    mismatches = 0
    for name, (source_count, target_count) in counts.items():
        match = source_count == target_count
        if not match:
            mismatches += 1
        table.add_row(
            name,
            '-' if source_count is None else f"{source_count:,}",
            '-' if target_count is None else f"{target_count:,}",
            Text("✓", style="green") if match else Text("✗", style="red"),
        )
    ctx.console.print(table)
    return mismatches


def display_preview(ctx: Context, table_name: str, original: List[dict], batch: BatchResult):
    """Before/after values of every anonymized field."""
    report = batch.report
    ctx.console.print(
        f"[bold]{table_name}[/]: {report.anonymized_records}/{report.total_records} rows changed, "
        f"fields: {', '.join(sorted(report.anonymized_fields)) or 'none'}"
    )

    table = Table(box=box.SIMPLE)
    table.add_column("#", style="dim")
    table.add_column("Column", style="cyan")
    table.add_column("Original")
    table.add_column("Anonymized", style="green")

    for i, (before, after) in enumerate(zip(original, batch.anonymized_data), 1):
        for column in sorted(report.anonymized_fields):
            if before.get(column) != after.get(column):
                table.add_row(str(i), column, str(before.get(column)), str(after.get(column)))
    ctx.console.print(table)

    for error in report.errors:
        ctx.console.print(f"! {error}", style="yellow")


def display_tool_versions(ctx: Context, versions: Dict[str, str]):
    for tool, version in versions.items():
        ctx.console.print(f"✓ {tool}: {version}", style="green")
