"""
Job system Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    job_type: str = Field(..., min_length=1, description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    run_after: datetime | None = Field(
        default=None, description="Earliest time to run job"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=100, description="Attempt budget"
    )
    dedupe_key: str | None = Field(default=None, description="Deduplication key")


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    run_after: datetime

    # Worker coordination
    locked_at: datetime | None = None
    locked_by: str | None = None

    # Results
    result: dict[str, Any] | None = None
    last_error: str | None = None

    # Metadata
    dedupe_key: str | None = None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending, locked or not
    locked_jobs: int
    failed_last_hour: int


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: str
    deduplicated: bool = Field(
        default=False, description="Whether an existing pending job was reused"
    )


class WebhookEventResponse(BaseModel):
    """Schema for stored webhook events."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source: str
    event_type: str
    payload: dict[str, Any]
    status: str
    idempotency_key: str
    realm_id: str | None = None
    processed_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
