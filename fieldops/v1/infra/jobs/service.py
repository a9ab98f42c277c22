"""
Job service for enqueueing and managing background jobs.
"""

import hashlib
import json
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.settings import Settings, settings as default_settings
from fieldops.v1.core.exceptions import ConflictError, InvalidStatusError, NotFoundError
from fieldops.v1.infra.jobs.models import Job, JobStatus
from fieldops.v1.infra.jobs.schemas import JobEnqueueResponse, JobStatsResponse

logger = logging.getLogger(__name__)


class JobService:
    """Service for managing background jobs."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def enqueue_job(
        self,
        session: AsyncSession,
        job_type: str,
        payload: dict[str, Any],
        *,
        run_after: datetime | None = None,
        max_attempts: int | None = None,
        dedupe_key: str | None = None,
    ) -> JobEnqueueResponse:
        """
        Enqueue a new job, reusing an identical pending job if one exists.

        Args:
            session: Database session
            job_type: Handler tag
            payload: Handler parameters
            run_after: Earliest time the job may run (default: now)
            max_attempts: Attempt budget (default: JOB_MAX_ATTEMPTS)
            dedupe_key: Deduplication key (default: hash of type and payload)

        Returns:
            Job enqueue response with job_id and deduplication info
        """
        dedupe_key = dedupe_key or self.generate_dedupe_key(job_type, payload)

        existing_job = await self._find_pending_job(session, dedupe_key)
        if existing_job:
            logger.info(
                "Job deduplicated",
                extra={
                    "job_id": str(existing_job.id),
                    "dedupe_key": dedupe_key,
                    "job_type": job_type,
                },
            )
            return JobEnqueueResponse(
                job_id=existing_job.id,
                status=existing_job.status,
                deduplicated=True,
            )

        job_id = uuid.uuid4()
        max_attempts = max_attempts or self.settings.job_max_attempts

        try:
            session.add(
                Job(
                    id=job_id,
                    job_type=job_type,
                    payload=payload,
                    status=JobStatus.PENDING.value,
                    attempts=0,
                    max_attempts=max_attempts,
                    run_after=run_after or datetime.now(UTC),
                    dedupe_key=dedupe_key,
                )
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            # Race condition - another process enqueued the same job
            existing_job = await self._find_pending_job(session, dedupe_key)
            if existing_job:
                return JobEnqueueResponse(
                    job_id=existing_job.id,
                    status=existing_job.status,
                    deduplicated=True,
                )
            raise

        logger.info(
            "Job enqueued",
            extra={
                "job_id": str(job_id),
                "job_type": job_type,
                "max_attempts": max_attempts,
                "dedupe_key": dedupe_key,
            },
        )

        return JobEnqueueResponse(job_id=job_id, status=JobStatus.PENDING.value)

    async def _find_pending_job(
        self, session: AsyncSession, dedupe_key: str
    ) -> Job | None:
        """Find a pending job with the same dedupe key."""
        result = await session.execute(
            select(Job)
            .where(
                and_(
                    Job.dedupe_key == dedupe_key,
                    Job.status == JobStatus.PENDING.value,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_job(self, session: AsyncSession, job_id: UUID) -> Job:
        """Get job by ID or raise NotFoundError."""
        job = await session.get(Job, job_id)
        if job is None:
            raise NotFoundError("Job not found", details={"job_id": str(job_id)})
        return job

    async def list_jobs(
        self,
        session: AsyncSession,
        *,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs newest first, returning the page and the total count."""
        base_query = select(Job)

        if status:
            base_query = base_query.where(Job.status == status.value)

        if job_type:
            base_query = base_query.where(Job.job_type == job_type)

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await session.execute(count_query)).scalar() or 0

        jobs_result = await session.execute(
            base_query.order_by(Job.created_at.desc()).offset(offset).limit(limit)
        )
        return list(jobs_result.scalars().all()), total

    async def get_job_stats(self, session: AsyncSession) -> JobStatsResponse:
        """Get job statistics."""
        total_jobs = (await session.execute(select(func.count(Job.id)))).scalar() or 0

        # Jobs by status
        status_result = await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        by_status = {row[0]: row[1] for row in status_result.all()}

        # Jobs by type
        type_result = await session.execute(
            select(Job.job_type, func.count(Job.id)).group_by(Job.job_type)
        )
        by_type = {row[0]: row[1] for row in type_result.all()}

        locked_result = await session.execute(
            select(func.count(Job.id)).where(
                and_(
                    Job.status == JobStatus.PENDING.value,
                    Job.locked_at.is_not(None),
                )
            )
        )
        locked_jobs = locked_result.scalar() or 0

        # Failed jobs in last hour
        one_hour_ago = datetime.now(UTC) - timedelta(hours=1)
        failed_recent_result = await session.execute(
            select(func.count(Job.id)).where(
                and_(
                    Job.status == JobStatus.FAILED.value,
                    Job.updated_at >= one_hour_ago,
                )
            )
        )
        failed_last_hour = failed_recent_result.scalar() or 0

        return JobStatsResponse(
            total_jobs=total_jobs,
            by_status=by_status,
            by_type=by_type,
            queue_depth=by_status.get(JobStatus.PENDING.value, 0),
            locked_jobs=locked_jobs,
            failed_last_hour=failed_last_hour,
        )

    async def retry_job(self, session: AsyncSession, job_id: UUID) -> Job:
        """
        Resurrect a FAILED job.

        Resets the attempt counter, clears the claim marker and last error
        and makes the job immediately eligible again.
        """
        job = await self.get_job(session, job_id)
        if not job.can_retry():
            raise InvalidStatusError(
                "Only failed jobs can be retried",
                details={"job_id": str(job_id), "status": job.status},
            )

        dedupe_key = job.dedupe_key
        now = datetime.now(UTC)
        query = (
            update(Job)
            .where(and_(Job.id == job_id, Job.status == JobStatus.FAILED.value))
            .values(
                status=JobStatus.PENDING.value,
                attempts=0,
                locked_at=None,
                locked_by=None,
                last_error=None,
                run_after=now,
                updated_at=now,
            )
        )

        try:
            result = await session.execute(query)
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise ConflictError(
                "An identical job is already pending",
                details={"job_id": str(job_id), "dedupe_key": dedupe_key},
            ) from None

        if result.rowcount == 0:
            raise InvalidStatusError(
                "Only failed jobs can be retried", details={"job_id": str(job_id)}
            )

        await session.refresh(job)
        logger.info("Job retried", extra={"job_id": str(job_id)})
        return job

    async def cleanup_old_jobs(self, session: AsyncSession, dry_run: bool = False) -> int:
        """Clean up old completed and failed jobs based on retention policy."""
        retention_days = self.settings.job_cleanup_after_days
        cutoff_datetime = datetime.now(UTC) - timedelta(days=retention_days)
        terminal = and_(
            Job.status.in_([JobStatus.COMPLETED.value, JobStatus.FAILED.value]),
            Job.updated_at < cutoff_datetime,
        )

        if dry_run:
            count_result = await session.execute(
                select(func.count(Job.id)).where(terminal)
            )
            return count_result.scalar() or 0

        result = await session.execute(
            delete(Job)
            .where(terminal)
            .execution_options(synchronize_session=False)
        )
        deleted_count = result.rowcount
        await session.commit()

        if deleted_count > 0:
            logger.info(
                "Cleaned up old jobs",
                extra={
                    "deleted_count": deleted_count,
                    "retention_days": retention_days,
                },
            )

        return deleted_count

    def generate_dedupe_key(self, job_type: str, payload: dict[str, Any]) -> str:
        """Generate a deterministic deduplication key for a job."""
        key_data = f"{job_type}:{json.dumps(payload, sort_keys=True, default=str)}"
        return hashlib.sha256(key_data.encode()).hexdigest()[:32]


async def enqueue_job(
    session: AsyncSession,
    job_type: str,
    payload: dict[str, Any],
    **options: Any,
) -> JobEnqueueResponse:
    """Enqueue deferred work from any route using the process settings."""
    return await JobService(default_settings).enqueue_job(
        session, job_type, payload, **options
    )
