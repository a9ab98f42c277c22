"""
QuickBooks Online connection and local/remote id correlation tables.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.infra.database import Base
from fieldops.v1.infra.jobs.models import utcnow


class QboConnection(Base):
    """OAuth credentials for one connected QuickBooks company (realm)."""

    __tablename__ = "qbo_connections"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    realm_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
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


class QboEntityMap(Base):
    """
    Correlates a local row with its QuickBooks entity.

    One mapping per remote entity and one per local row, for each entity
    type, so repeated syncs update instead of creating duplicates.
    """

    __tablename__ = "qbo_entity_map"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    entity_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="QuickBooks entity name (Customer, Job)"
    )
    local_table: Mapped[str] = mapped_column(Text, nullable=False)
    local_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    remote_id: Mapped[str] = mapped_column(Text, nullable=False)
    remote_sync_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "remote_id", name="uq_qbo_entity_map_type_remote"
        ),
        UniqueConstraint("entity_type", "local_id", name="uq_qbo_entity_map_type_local"),
        Index("ix_qbo_entity_map_local", "local_table", "local_id"),
    )
