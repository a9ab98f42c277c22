"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {"PENDING": "yellow", "COMPLETED": "green", "FAILED": "red"}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _status(value: str) -> str:
    style = STATUS_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]], total: int | None = None) -> Table:
    """Create a formatted table for a job list"""
    title = "Jobs" if total is None else f"Jobs ({len(jobs)} of {total})"
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center")
    table.add_column("Locked By", justify="left", style="dim")
    table.add_column("Created", justify="left")
    table.add_column("Last Error", justify="left", style="red")

    for job in jobs:
        table.add_row(
            str(job.get("id", ""))[:8],
            job.get("job_type", ""),
            _status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            job.get("locked_by") or "—",
            str(job.get("created_at", ""))[:19],
            (job.get("last_error") or "—")[:60],
        )

    return table


def display_job(job: dict[str, Any]):
    """Show a single job in a panel"""
    lines = [
        f"[bold]ID:[/bold] [cyan]{job.get('id')}[/cyan]",
        f"[bold]Type:[/bold] {job.get('job_type')}",
        f"[bold]Status:[/bold] {_status(job.get('status', ''))}",
        f"[bold]Attempts:[/bold] {job.get('attempts')}/{job.get('max_attempts')}",
        f"[bold]Run after:[/bold] {job.get('run_after')}",
        f"[bold]Locked:[/bold] {job.get('locked_by') or '—'} {job.get('locked_at') or ''}",
        f"[bold]Created:[/bold] {job.get('created_at')}",
    ]
    if job.get("last_error"):
        lines.append(f"[bold]Last error:[/bold] [red]{job['last_error']}[/red]")

    lines.append("\n[bold]Payload:[/bold]")
    lines.append(json.dumps(job.get("payload") or {}, indent=2))
    if job.get("result") is not None:
        lines.append("\n[bold]Result:[/bold]")
        lines.append(json.dumps(job["result"], indent=2))

    console.print(Panel("\n".join(lines), title="Job", border_style="cyan"))


def display_job_stats(stats: dict[str, Any]):
    """Show queue statistics"""
    table = Table(title="Queue Overview", box=box.SIMPLE_HEAVY)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total jobs", str(stats.get("total_jobs", 0)))
    table.add_row("Queue depth", str(stats.get("queue_depth", 0)))
    table.add_row("Locked", str(stats.get("locked_jobs", 0)))
    table.add_row("Failed (last hour)", str(stats.get("failed_last_hour", 0)))
    for status, count in sorted((stats.get("by_status") or {}).items()):
        table.add_row(f"Status {_status(status)}", str(count))
    for job_type, count in sorted((stats.get("by_type") or {}).items()):
        table.add_row(f"Type [magenta]{job_type}[/magenta]", str(count))

    console.print(table)
