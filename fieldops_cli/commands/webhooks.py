"""Webhook Commands - Sign test payloads and re-trigger stored events"""

from pathlib import Path

import typer
from rich.console import Console

from fieldops.config.settings import settings
from fieldops.v1.webhooks.service import SIGNED_SOURCES
from fieldops.v1.webhooks.signatures import compute_signature

from ..client.base import FieldOpsError
from ..client.endpoints import FieldOpsClient
from ..utils.config_manager import config
from ..utils.formatting import print_error, print_success

console = Console()
app = typer.Typer(name="webhooks", help="Webhook testing and recovery commands")


@app.command("sign")
def sign_payload(
    payload_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="File holding the exact request body"
    ),
    source: str = typer.Option(
        ..., "--source", "-s", help=f"Signed source ({', '.join(SIGNED_SOURCES)})"
    ),
    secret: str | None = typer.Option(
        None, "--secret", help="Shared secret (default: the server setting for the source)"
    ),
):
    """✍️ Print the signature header for a payload file"""
    signed = SIGNED_SOURCES.get(source)
    if signed is None:
        print_error(f"Unknown signed source: {source}")
        raise typer.Exit(1)

    secret = secret or signed.secret(settings)
    if not secret:
        print_error(f"No secret given and {signed.secret_setting.upper()} is not set")
        raise typer.Exit(1)

    signature = compute_signature(
        secret, payload_file.read_bytes(), encoding=signed.scheme.encoding
    )
    console.print(f"{signed.scheme.header}: {signature}", highlight=False)


@app.command("enqueue")
def enqueue_event(event_id: str = typer.Argument(..., help="Webhook event ID")):
    """📨 Enqueue the processing job for a stored event"""
    base_url = config.get("api.base_url")

    try:
        with FieldOpsClient(base_url) as client:
            result = client.enqueue_webhook_event(event_id)
    except FieldOpsError as e:
        print_error(f"Failed to enqueue webhook event: {e}")
        raise typer.Exit(1) from None

    if result.get("deduplicated"):
        print_success(f"Processing job already pending: {result.get('job_id')}")
    else:
        print_success(f"Processing job enqueued: {result.get('job_id')}")
