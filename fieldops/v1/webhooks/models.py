"""
Inbound webhook event records.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.infra.database import Base
from fieldops.v1.infra.jobs.models import utcnow


class WebhookEventStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class WebhookEvent(Base):
    """
    One row per distinct inbound event.

    Deduplicated by ``idempotency_key`` before insert; the unique constraint
    backs the check when two deliveries race.
    """

    __tablename__ = "webhook_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    source: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Lower-cased provider tag"
    )
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=WebhookEventStatus.PENDING.value
    )
    idempotency_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    realm_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Accounting company the event belongs to"
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
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
            "status IN ('PENDING', 'PROCESSING', 'PROCESSED', 'FAILED')",
            name="webhook_events_status_check",
        ),
        Index("ix_webhook_events_source_status", "source", "status"),
    )
