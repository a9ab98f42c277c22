"""
Administrative job and webhook-event endpoints.

Restricted to ADMIN and OFFICE roles. Retry is the only way to move a job
out of FAILED from outside the worker.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings, SettingsDep
from fieldops.infra.database import get_session
from fieldops.v1.core.exceptions import create_success_response
from fieldops.v1.core.security import AdminDep, Principal
from fieldops.v1.infra.jobs.models import JobStatus
from fieldops.v1.infra.jobs.schemas import (
    JobCreate,
    JobListResponse,
    JobResponse,
    WebhookEventResponse,
)
from fieldops.v1.infra.jobs.service import JobService
from fieldops.v1.webhooks.service import WebhookService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/jobs", response_model=dict)
async def enqueue_job(
    job_request: JobCreate,
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue a new background job."""
    job_service = JobService(settings)
    result = await job_service.enqueue_job(
        session,
        job_request.job_type,
        job_request.payload,
        run_after=job_request.run_after,
        max_attempts=job_request.max_attempts,
        dedupe_key=job_request.dedupe_key,
    )

    logger.info(
        "Job enqueued via API",
        job_id=str(result.job_id),
        job_type=job_request.job_type,
        user_id=principal.user_id,
        deduplicated=result.deduplicated,
    )

    return create_success_response(data=result.model_dump(mode="json"))


@router.get("/jobs", response_model=dict)
async def list_jobs(
    status: JobStatus | None = Query(default=None, description="Filter by status"),
    job_type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """List jobs, newest first, with filtering and pagination."""
    job_service = JobService(settings)
    jobs, total = await job_service.list_jobs(
        session, status=status, job_type=job_type, limit=limit, offset=offset
    )

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/jobs/stats/overview", response_model=dict)
async def get_job_stats(
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get queue statistics."""
    stats = await JobService(settings).get_job_stats(session)
    return create_success_response(data=stats.model_dump())


@router.get("/jobs/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await JobService(settings).get_job(session, job_id)
    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/jobs/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: UUID,
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Retry a failed job: attempts reset and immediately eligible again."""
    job = await JobService(settings).retry_job(session, job_id)

    logger.info("Job retried via API", job_id=str(job_id), user_id=principal.user_id)

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json"),
        message="Job queued for retry",
    )


@router.get("/webhook-events/{event_id}", response_model=dict)
async def get_webhook_event(
    event_id: UUID,
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a stored webhook event."""
    event = await WebhookService(settings).get_event(session, event_id)
    return create_success_response(
        data=WebhookEventResponse.model_validate(event).model_dump(mode="json")
    )


@router.post("/webhook-events/{event_id}/enqueue", response_model=dict)
async def enqueue_webhook_event(
    event_id: UUID,
    principal: Principal = AdminDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue the processing job for an event whose original enqueue was lost."""
    result = await WebhookService(settings).requeue(session, event_id)

    logger.info(
        "Webhook event enqueued via API",
        webhook_event_id=str(event_id),
        job_id=str(result.job_id),
        user_id=principal.user_id,
    )

    return create_success_response(data=result.model_dump(mode="json"))
