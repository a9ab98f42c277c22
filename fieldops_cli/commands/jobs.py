"""Jobs Commands - Inspect and retry background jobs"""

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.base import FieldOpsError
from ..client.endpoints import FieldOpsClient
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    display_job,
    display_job_stats,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="jobs", help="Background job inspection and retry")


@app.command("list")
def list_jobs(
    status: str | None = typer.Option(
        None, "--status", "-s", help="Filter by status (PENDING, COMPLETED, FAILED)"
    ),
    job_type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs, newest first"""
    base_url = config.get("api.base_url")

    try:
        with FieldOpsClient(base_url) as client:
            data = client.list_jobs(
                status=status.upper() if status else None,
                job_type=job_type,
                limit=limit,
                offset=offset,
            )
    except FieldOpsError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("jobs", [])
    if not jobs:
        console.print(
            Panel(
                "📭 [yellow]No jobs found![/yellow]\n\n"
                f"• Status: {status or 'any'}\n"
                f"• Type: {job_type or 'any'}",
                title="Empty Results",
                border_style="yellow",
            )
        )
        return

    console.print(create_jobs_table(jobs, total=data.get("total")))


@app.command("get")
def get_job(job_id: str = typer.Argument(..., help="Job ID")):
    """🔍 Show a single job"""
    base_url = config.get("api.base_url")

    try:
        with FieldOpsClient(base_url) as client:
            job = client.get_job(job_id)
    except FieldOpsError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    display_job(job)


@app.command("stats")
def job_stats():
    """📊 Show queue statistics"""
    base_url = config.get("api.base_url")

    try:
        with FieldOpsClient(base_url) as client:
            stats = client.get_job_stats()
    except FieldOpsError as e:
        print_error(f"Failed to get job stats: {e}")
        raise typer.Exit(1) from None

    display_job_stats(stats)


@app.command("retry")
def retry_job(job_id: str = typer.Argument(..., help="ID of a FAILED job")):
    """🔁 Retry a failed job (attempts reset, runs on the next poll)"""
    base_url = config.get("api.base_url")

    try:
        with FieldOpsClient(base_url) as client:
            job = client.retry_job(job_id)
    except FieldOpsError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Job {job.get('id', job_id)} queued for retry")
    print_info(f"Status: {job.get('status')}, attempts: {job.get('attempts')}")
