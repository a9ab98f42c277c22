"""
Polling job worker backed by the job_queue table.

Each worker processes one job at a time. Throughput comes from running more
worker processes; they coordinate only through conditional updates on the
job rows, never through in-memory locks.
"""

import asyncio
import socket
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings
from fieldops.v1.core.exceptions import UnknownJobTypeError
from fieldops.v1.core.registries import JobRegistry, job_registry
from fieldops.v1.infra.jobs.models import Job, JobStatus

logger = get_logger(__name__)


def default_worker_id() -> str:
    """Identity unique per process: hostname plus a random id."""
    return f"{socket.gethostname()}-{uuid.uuid4()}"


class WorkerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class JobWorker:
    """
    Timer-driven fetch, claim and dispatch loop.

    - ``start()`` moves STOPPED -> RUNNING and schedules an immediate poll
    - every poll fetches up to ``batch_size`` eligible jobs oldest first and
      processes them sequentially
    - the next poll is scheduled ``poll_interval`` after the previous one
      finished, whether or not it found work
    - ``stop()`` cancels the pending timer; a poll already in flight runs to
      completion
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        registry: JobRegistry | None = None,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.registry = registry if registry is not None else job_registry
        self.worker_id = worker_id or settings.worker_id or default_worker_id()
        self.poll_interval = settings.worker_poll_interval_ms / 1000
        self.batch_size = settings.worker_batch_size
        self.state = WorkerState.STOPPED
        self._timer: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self.state is WorkerState.RUNNING

    def start(self) -> None:
        """Start polling. Must be called from inside a running event loop."""
        if self.running:
            logger.info("Worker is already running", worker_id=self.worker_id)
            return

        self.state = WorkerState.RUNNING
        logger.info(
            "Worker started",
            worker_id=self.worker_id,
            poll_interval_ms=self.settings.worker_poll_interval_ms,
            batch_size=self.batch_size,
        )
        self._schedule_poll(0)

    def stop(self) -> None:
        """Stop scheduling polls. In-flight job processing is not interrupted."""
        self.state = WorkerState.STOPPED
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.info("Worker stopped", worker_id=self.worker_id)

    async def drain(self) -> None:
        """Wait for the poll currently in flight, if any."""
        task = self._poll_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set, then let the current poll finish."""
        self.start()
        try:
            await stop_event.wait()
        finally:
            self.stop()
            await self.drain()

    def _schedule_poll(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._launch_poll)

    def _launch_poll(self) -> None:
        self._timer = None
        if not self.running:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        try:
            await self.poll_once()
        except Exception:
            logger.exception("Error during polling", worker_id=self.worker_id)

        if self.running:
            self._schedule_poll(self.poll_interval)

    async def fetch_eligible_jobs(self) -> list[Job]:
        """Fetch PENDING, unlocked jobs whose run_after has passed, oldest first."""
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(
                    and_(
                        Job.status == JobStatus.PENDING.value,
                        Job.locked_at.is_(None),
                        Job.run_after <= now,
                    )
                )
                .order_by(Job.created_at)
                .limit(self.batch_size)
            )
            return list(result.scalars().all())

    async def poll_once(self) -> int:
        """Run one fetch-claim-dispatch cycle and return the number of jobs processed."""
        jobs = await self.fetch_eligible_jobs()
        if not jobs:
            return 0

        logger.info("Found pending jobs", worker_id=self.worker_id, job_count=len(jobs))

        processed = 0
        for job in jobs:
            if await self.process_job(job):
                processed += 1
        return processed

    async def claim_job(self, job_id: UUID) -> bool:
        """Try to take exclusive ownership of a job; False if another worker won."""
        return await self._claim(job_id) is not None

    async def _claim(self, job_id: UUID) -> Job | None:
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(
                    and_(
                        Job.id == job_id,
                        Job.locked_at.is_(None),
                        Job.status == JobStatus.PENDING.value,
                    )
                )
                .values(locked_at=now, locked_by=self.worker_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

            if result.rowcount != 1:
                return None

            # Re-read so attempts reflects any outcome recorded since the fetch
            return await session.get(Job, job_id, populate_existing=True)

    async def process_job(self, job: Job) -> bool:
        """
        Claim and run a single job, recording its outcome.

        Returns False when the claim was lost to another worker. Handler
        failures are recorded on the job row and never propagate.
        """
        claimed = await self._claim(job.id)
        if claimed is None:
            logger.info(
                "Failed to lock job, skipping",
                worker_id=self.worker_id,
                job_id=str(job.id),
            )
            return False

        job_logger = logger.bind(
            worker_id=self.worker_id,
            job_id=str(claimed.id),
            job_type=claimed.job_type,
            attempt=claimed.attempts + 1,
        )
        job_logger.info("Processing job started")

        try:
            result = await self._dispatch(claimed)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            job_logger.warning("Job processing failed", error=error, exc_info=True)
            try:
                await self._record_failure(claimed, error)
            except Exception:
                job_logger.exception("Failed to record job failure")
            return True

        try:
            await self._mark_completed(claimed, result)
        except Exception:
            job_logger.exception("Failed to record job completion")
            return True

        job_logger.info("Job completed successfully")
        return True

    async def _dispatch(self, job: Job) -> dict[str, Any] | None:
        """Route the job to its registered handler."""
        try:
            handler = self.registry.get(job.job_type)
        except KeyError:
            raise UnknownJobTypeError(job.job_type) from None

        async with self.session_factory() as session:
            return await handler.handle(session, dict(job.payload or {}))

    async def _mark_completed(
        self, job: Job, result: dict[str, Any] | None
    ) -> None:
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            outcome = await session.execute(
                update(Job)
                .where(and_(Job.id == job.id, Job.locked_by == self.worker_id))
                .values(
                    status=JobStatus.COMPLETED.value,
                    last_error=None,
                    result=result,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if outcome.rowcount == 0:
            logger.warning(
                "Job lock lost before completion was recorded",
                worker_id=self.worker_id,
                job_id=str(job.id),
            )

    async def _record_failure(self, job: Job, error: str) -> None:
        """Count the failed attempt; unlock for retry or fail terminally."""
        attempts = job.attempts + 1
        exhausted = job.attempts_exhausted(attempts)
        now = datetime.now(UTC)

        values: dict[str, Any] = {
            "attempts": attempts,
            "last_error": error,
            "locked_at": None,
            "locked_by": None,
            "updated_at": now,
        }
        if exhausted:
            values["status"] = JobStatus.FAILED.value

        async with self.session_factory() as session:
            await session.execute(
                update(Job)
                .where(and_(Job.id == job.id, Job.locked_by == self.worker_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if exhausted:
            logger.error(
                "Job marked as FAILED",
                worker_id=self.worker_id,
                job_id=str(job.id),
                attempts=attempts,
                max_attempts=job.max_attempts,
            )
        else:
            logger.info(
                "Job will be retried",
                worker_id=self.worker_id,
                job_id=str(job.id),
                attempts=attempts,
                max_attempts=job.max_attempts,
            )
