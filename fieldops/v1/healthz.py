from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import and_, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings, SettingsDep
from fieldops.infra.database import get_session
from fieldops.v1.core.exceptions import create_success_response
from fieldops.v1.infra.jobs.models import Job, JobStatus

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue depth."""

    pending_jobs: int = 0
    locked_jobs: int = 0
    failed_jobs: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database and job queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)

    queue_health = None
    if db_health.connected:
        queue_health = await _check_queue_health(session)

    health_data = {
        "ok": db_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", error=str(e))
        return DatabaseHealth(connected=False, error=str(e))

    response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
    return DatabaseHealth(connected=True, response_time_ms=round(response_time_ms, 2))


async def _check_queue_health(session: AsyncSession) -> QueueHealth:
    by_status = dict(
        (
            await session.execute(
                select(Job.status, func.count(Job.id)).group_by(Job.status)
            )
        ).all()
    )

    locked_jobs = (
        await session.execute(
            select(func.count(Job.id)).where(
                and_(
                    Job.status == JobStatus.PENDING.value,
                    Job.locked_at.is_not(None),
                )
            )
        )
    ).scalar() or 0

    return QueueHealth(
        pending_jobs=by_status.get(JobStatus.PENDING.value, 0),
        locked_jobs=locked_jobs,
        failed_jobs=by_status.get(JobStatus.FAILED.value, 0),
    )
