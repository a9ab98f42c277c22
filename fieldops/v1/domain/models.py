"""
Business-domain tables touched by job handlers.

These tables belong to the field-service domain; the work-processing core
only appends or updates rows within its handler contracts. Columns the
handlers never read are omitted.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.infra.database import Base
from fieldops.v1.infra.jobs.models import utcnow


class Employee(Base):
    """Technician or office employee."""

    __tablename__ = "employees"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    labor_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True, comment="Hourly cost override"
    )


class CompanySettings(Base):
    """Single-row company configuration."""

    __tablename__ = "settings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    default_labor_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    labor_cost_type_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("cost_types.id"), nullable=True
    )
    labor_cost_code_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("cost_codes.id"), nullable=True
    )


class CostType(Base):
    __tablename__ = "cost_types"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class CostCode(Base):
    __tablename__ = "cost_codes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    cost_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("cost_types.id"), nullable=False
    )


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    customer_no: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_street: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_zip: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_street: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_zip: Mapped[str | None] = mapped_column(Text, nullable=True)
    qbo_customer_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    qbo_last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_no: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    customer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("customers.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    job_street: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_zip: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    qbo_job_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    qbo_last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id"), nullable=True
    )
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )


class TimeEntry(Base):
    """Clock-in/clock-out record for a technician on a work order."""

    __tablename__ = "work_order_time_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    work_order_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("work_orders.id"), nullable=False
    )
    tech_user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("employees.id"), nullable=False
    )
    clock_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class JobCostEntry(Base):
    """Cost-ledger row. ``idempotency_key`` makes handler posting repeatable."""

    __tablename__ = "job_cost_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id"), nullable=True
    )
    work_order_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("work_orders.id"), nullable=True
    )
    cost_type_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("cost_types.id"), nullable=False
    )
    cost_code_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("cost_codes.id"), nullable=False
    )
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    qty: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class NumberSequence(Base):
    """Per-kind document numbering (customer, project, ...)."""

    __tablename__ = "number_sequences"
    __table_args__ = (UniqueConstraint("kind", name="uq_number_sequences_kind"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    prefix: Mapped[str] = mapped_column(Text, nullable=False)
    next_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
