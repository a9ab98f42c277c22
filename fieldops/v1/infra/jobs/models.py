"""
Job queue models for background processing.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.infra.database import Base


class JobStatus(str, Enum):
    """Job status enumeration.

    PENDING also covers the processing state: a claimed job stays PENDING
    with ``locked_at``/``locked_by`` set until its outcome is recorded.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def utcnow() -> datetime:
    return datetime.now(UTC)


class Job(Base):
    """
    Durable unit of deferred work.

    A job is eligible for claiming iff it is PENDING, unlocked and its
    ``run_after`` has passed. Ownership is granted by a conditional update
    on ``locked_at`` (see ``JobWorker.claim_job``).
    """

    __tablename__ = "job_queue"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Tag selecting the job handler"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Handler-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: PENDING|COMPLETED|FAILED",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of failed attempts"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempt budget"
    )
    run_after: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="Job is not eligible before this time",
    )

    # Worker coordination
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="When job was claimed"
    )
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker ID that claimed the job"
    )

    # Results and errors
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Handler result data"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Deduplication
    dedupe_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Deduplication key for pending jobs"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED')",
            name="job_queue_status_check",
        ),
        CheckConstraint("max_attempts >= 1", name="job_queue_max_attempts_check"),
        Index("ix_job_queue_eligible", "status", "locked_at", "run_after"),
        Index("ix_job_queue_type_status", "job_type", "status"),
        Index("ix_job_queue_created_at", "created_at"),
        # At most one pending job per dedupe key
        Index(
            "ix_job_queue_dedupe_key_pending",
            "dedupe_key",
            unique=True,
            postgresql_where=text("dedupe_key IS NOT NULL AND status = 'PENDING'"),
            sqlite_where=text("dedupe_key IS NOT NULL AND status = 'PENDING'"),
        ),
    )

    def is_locked(self) -> bool:
        return self.locked_at is not None

    def is_terminal(self) -> bool:
        """Check if job reached COMPLETED or FAILED."""
        return self.status in (JobStatus.COMPLETED.value, JobStatus.FAILED.value)

    def can_retry(self) -> bool:
        """Check if an operator may resurrect the job."""
        return self.status == JobStatus.FAILED.value

    def attempts_exhausted(self, attempts: int | None = None) -> bool:
        """Check whether ``attempts`` (default: current) used up the budget."""
        used = self.attempts if attempts is None else attempts
        return used >= self.max_attempts
