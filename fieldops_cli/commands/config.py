"""Configuration Commands - CLI settings management"""

import typer
from rich.console import Console
from rich.panel import Panel

from ..utils.config_manager import config
from ..utils.formatting import print_error, print_info, print_success

console = Console()
app = typer.Typer(name="config", help="CLI configuration management")


@app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., 'api.base_url')"),
    value: str = typer.Argument(..., help="Configuration value"),
):
    """⚙️ Set a configuration value"""
    if key == "api.base_url" and not value.startswith(("http://", "https://")):
        print_error("API base URL must start with http:// or https://")
        raise typer.Exit(1)

    if key.endswith(".timeout") and not value.isdigit():
        print_error("Timeout values must be numeric (seconds)")
        raise typer.Exit(1)

    config.set(key, int(value) if key.endswith(".timeout") else value)
    print_success(f"Set {key} = {value}")

    if key == "api.base_url":
        print_info("Test connection with: fieldops status")


@app.command("get")
def get_config(key: str = typer.Argument(..., help="Configuration key")):
    """📋 Get a configuration value"""
    value = config.get(key)
    if value is None:
        console.print(f"[yellow]Key '{key}' not found[/yellow]")
        raise typer.Exit(1)
    console.print(f"[cyan]{key}[/cyan] = [yellow]{value}[/yellow]")


@app.command("show")
def show_all_config():
    """📊 Show all configuration settings"""
    console.print(
        Panel(
            "[bold cyan]FieldOps CLI Configuration[/bold cyan]\n\n"
            f"[dim]Stored in {config.config_file}[/dim]",
            title="Configuration",
            border_style="blue",
        )
    )
    config.show_all()


@app.command("dev-mode")
def setup_dev_mode(
    user_id: str = typer.Argument(..., help="User ID for dev authentication"),
    org_id: str = typer.Argument(..., help="Organization ID for dev authentication"),
    roles: str = typer.Option("ADMIN", "--roles", help="Comma-separated roles"),
):
    """🔧 Configure dev mode authentication headers"""
    config.set(
        "api.headers",
        {"X-User-ID": user_id, "X-Org-ID": org_id, "X-Roles": roles},
    )

    print_success("Dev mode configured:")
    console.print(f"  User ID: [cyan]{user_id}[/cyan]")
    console.print(f"  Org ID: [cyan]{org_id}[/cyan]")
    console.print(f"  Roles: [cyan]{roles}[/cyan]")
    console.print("\n💡 [dim]Make sure your server is running with AUTH_MODE=dev.[/dim]")
