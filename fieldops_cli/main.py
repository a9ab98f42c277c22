"""FieldOps CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .commands import config, jobs, webhooks, worker
from .client.base import FieldOpsError
from .client.endpoints import FieldOpsClient
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="fieldops",
    help="🛠 FieldOps - job queue and webhook operations CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(worker.app, name="worker")
app.add_typer(jobs.app, name="jobs")
app.add_typer(webhooks.app, name="webhooks")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API, database and queue status"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with FieldOpsClient(base_url) as client:
            health = client.health_check()
    except FieldOpsError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the FieldOps API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]fieldops config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    database = health.get("database") or {}
    queue = health.get("queue") or {}
    db_line = (
        f"[green]connected[/green] ({database.get('response_time_ms')} ms)"
        if database.get("connected")
        else f"[red]unavailable[/red] {database.get('error') or ''}"
    )

    console.print(
        Panel(
            f"🚀 [green]Connected Successfully![/green]\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Database: {db_line}\n"
            f"• Pending jobs: [cyan]{queue.get('pending_jobs', 0)}[/cyan] "
            f"(locked: {queue.get('locked_jobs', 0)})\n"
            f"• Failed jobs: [red]{queue.get('failed_jobs', 0)}[/red]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green" if health.get("ok") else "yellow",
        )
    )
    if not health.get("ok"):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
