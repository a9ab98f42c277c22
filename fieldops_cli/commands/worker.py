"""Worker Commands - Run the job queue poll loop"""

import asyncio
import signal

import typer

from fieldops.config.logging import bind_worker_context, setup_logging
from fieldops.config.settings import settings
from fieldops.infra.database import Database
from fieldops.v1.infra.jobs.worker import JobWorker

from ..utils.formatting import print_info, print_success

app = typer.Typer(name="worker", help="Job worker process commands")


def _load_handlers() -> None:
    import fieldops.v1.infra.jobs.registry_init  # noqa: F401


@app.command("start")
def start_worker(
    worker_id: str | None = typer.Option(
        None, "--worker-id", help="Worker identity (default: hostname + random id)"
    ),
):
    """🏃 Run the poll loop until SIGINT/SIGTERM"""
    setup_logging()
    _load_handlers()
    asyncio.run(_run_worker(worker_id))


@app.command("run-once")
def run_once(
    worker_id: str | None = typer.Option(None, "--worker-id", help="Worker identity"),
):
    """1️⃣ Run a single fetch-claim-dispatch cycle and exit"""
    setup_logging()
    _load_handlers()
    processed = asyncio.run(_poll_once(worker_id))
    print_success(f"Processed {processed} job(s)")


async def _run_worker(worker_id: str | None) -> None:
    database = Database(settings)
    worker = JobWorker(settings, database.SessionLocal, worker_id=worker_id)
    bind_worker_context(worker.worker_id)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    print_info(f"Worker {worker.worker_id} polling every {worker.poll_interval}s")
    try:
        await worker.run(stop_event)
    finally:
        await database.close()
    print_info("Worker shut down")


async def _poll_once(worker_id: str | None) -> int:
    database = Database(settings)
    worker = JobWorker(settings, database.SessionLocal, worker_id=worker_id)
    try:
        return await worker.poll_once()
    finally:
        await database.close()
