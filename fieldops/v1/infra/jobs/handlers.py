"""
Job handlers for background processing.

Every handler implements the JobHandler protocol and must be safe to run
again with the same payload: side effects carry their own idempotency key
and are checked before insert.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings
from fieldops.v1.core.exceptions import JobHandlerError
from fieldops.v1.domain.models import (
    CompanySettings,
    CostCode,
    CostType,
    Employee,
    JobCostEntry,
    TimeEntry,
    WorkOrder,
)
from fieldops.v1.infra.jobs.service import JobService
from fieldops.v1.webhooks.models import WebhookEvent, WebhookEventStatus

logger = get_logger(__name__)

CENTS = Decimal("0.01")
HOURS_PRECISION = Decimal("0.0001")
TIME_ENTRY_SOURCE = "TIME_ENTRY"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def worked_hours(clock_in_at: datetime, clock_out_at: datetime, break_minutes: int) -> Decimal:
    """Hours between clock-in and clock-out, less the break."""
    elapsed = _as_utc(clock_out_at) - _as_utc(clock_in_at)
    minutes = Decimal(str(elapsed.total_seconds())) / 60 - Decimal(break_minutes or 0)
    return minutes / 60


def labor_amount(hours: Decimal, rate: Decimal) -> Decimal:
    return (hours * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


class TimeEntryCostPostHandler:
    """
    Post the labor cost of a completed time entry to the job-cost ledger.

    Payload expected:
    {
        "time_entry_id": "uuid-string"
    }

    Exactly one ``job_cost_entries`` row exists per time entry, keyed by
    ``time_entry:<id>``; a repeat run returns ``{"status": "skipped"}``.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        time_entry_id_str = payload.get("time_entry_id")
        if not time_entry_id_str:
            raise JobHandlerError("Missing time_entry_id in payload")
        try:
            time_entry_id = UUID(str(time_entry_id_str))
        except ValueError:
            raise JobHandlerError(f"Invalid time_entry_id format: {time_entry_id_str}") from None

        time_entry = await session.get(TimeEntry, time_entry_id)
        if time_entry is None:
            raise JobHandlerError(f"Time entry not found: {time_entry_id}")
        if time_entry.clock_out_at is None:
            raise JobHandlerError(f"Time entry {time_entry_id} is not clocked out yet")

        hours = worked_hours(
            time_entry.clock_in_at, time_entry.clock_out_at, time_entry.break_minutes
        )
        if hours <= 0:
            raise JobHandlerError(f"Invalid hours calculated: {hours}")

        employee = await session.get(Employee, time_entry.tech_user_id)
        if employee is None:
            raise JobHandlerError(f"Employee not found: {time_entry.tech_user_id}")

        company = (
            await session.execute(select(CompanySettings).limit(1))
        ).scalar_one_or_none()
        if company is None:
            raise JobHandlerError("Company settings not found")

        rate = employee.labor_rate if employee.labor_rate is not None else company.default_labor_rate
        if rate is None or rate <= 0:
            raise JobHandlerError(f"Invalid labor rate: {rate}")
        rate = Decimal(rate)

        cost_type_id, cost_code_id = await self._resolve_cost_classification(
            session, company
        )

        idempotency_key = f"time_entry:{time_entry_id}"
        existing = await session.execute(
            select(JobCostEntry.id).where(JobCostEntry.idempotency_key == idempotency_key)
        )
        if existing.first() is not None:
            logger.info(
                "Labor cost already posted",
                time_entry_id=str(time_entry_id),
                idempotency_key=idempotency_key,
            )
            return {"status": "skipped", "reason": "already_posted"}

        work_order = await session.get(WorkOrder, time_entry.work_order_id)
        if work_order is None:
            raise JobHandlerError(f"Work order not found: {time_entry.work_order_id}")

        amount = labor_amount(hours, rate)
        txn_date = _as_utc(time_entry.clock_out_at).date()

        entry_id = uuid4()
        work_order_id = work_order.id
        session.add(
            JobCostEntry(
                id=entry_id,
                project_id=work_order.project_id,
                work_order_id=work_order_id,
                cost_type_id=cost_type_id,
                cost_code_id=cost_code_id,
                txn_date=txn_date,
                qty=hours.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP),
                unit_cost=rate,
                amount=amount,
                description=f"Labor: {employee.display_name} on {txn_date.isoformat()}",
                source_type=TIME_ENTRY_SOURCE,
                source_id=time_entry_id,
                idempotency_key=idempotency_key,
            )
        )
        await session.flush()
        await session.execute(
            update(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .values(total_cost=WorkOrder.total_cost + amount)
            .execution_options(synchronize_session=False)
        )

        try:
            await session.commit()
        except IntegrityError:
            # Another delivery of this job posted first
            await session.rollback()
            return {"status": "skipped", "reason": "already_posted"}

        logger.info(
            "Labor cost posted",
            time_entry_id=str(time_entry_id),
            work_order_id=str(work_order_id),
            hours=str(hours),
            amount=str(amount),
        )
        return {
            "status": "completed",
            "job_cost_entry_id": str(entry_id),
            "amount": str(amount),
        }

    async def _resolve_cost_classification(
        self, session: AsyncSession, company: CompanySettings
    ) -> tuple[UUID, UUID]:
        """Configured labor cost type/code, else the first cost type named like "labor"."""
        cost_type_id = company.labor_cost_type_id
        cost_code_id = company.labor_cost_code_id

        if not cost_type_id or not cost_code_id:
            cost_type_id = (
                await session.execute(
                    select(CostType.id)
                    .where(func.lower(CostType.name).like("%labor%"))
                    .limit(1)
                )
            ).scalar_one_or_none()
            cost_code_id = None
            if cost_type_id is not None:
                cost_code_id = (
                    await session.execute(
                        select(CostCode.id)
                        .where(CostCode.cost_type_id == cost_type_id)
                        .limit(1)
                    )
                ).scalar_one_or_none()

        if not cost_type_id or not cost_code_id:
            raise JobHandlerError("Labor cost type or cost code not configured in settings")
        return cost_type_id, cost_code_id


class WebhookAcknowledgeHandler:
    """
    Mark a stored webhook event as processed.

    Used for sources whose events only need recording (project-management,
    report and clock events). Payload: ``{"webhook_event_id": "<uuid>"}``.
    """

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        event_id_str = payload.get("webhook_event_id")
        if not event_id_str:
            raise JobHandlerError("Missing webhook_event_id in job payload")
        event_id = UUID(str(event_id_str))

        now = datetime.now(UTC)
        result = await session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .values(
                status=WebhookEventStatus.PROCESSED.value,
                processed_at=now,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        if result.rowcount == 0:
            raise JobHandlerError(f"Webhook event not found: {event_id}")

        logger.info("Webhook event acknowledged", webhook_event_id=str(event_id))
        return {"status": "completed", "webhook_event_id": str(event_id)}


class MaintenanceCleanupHandler:
    """
    Job handler for maintenance tasks like cleaning up old jobs.

    Payload expected:
    {
        "tasks": ["cleanup_jobs"],  # optional, defaults to all
        "dry_run": false  # optional
    }
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        tasks = payload.get("tasks", ["cleanup_jobs"])
        dry_run = bool(payload.get("dry_run", False))
        results: dict[str, Any] = {}

        logger.info("Starting maintenance tasks", tasks=tasks, dry_run=dry_run)

        if "cleanup_jobs" in tasks:
            job_service = JobService(self.settings)
            count = await job_service.cleanup_old_jobs(session, dry_run=dry_run)
            results["cleanup_jobs"] = {
                "status": "dry_run" if dry_run else "completed",
                "job_count": count,
            }
            logger.info("Job cleanup task completed", **results["cleanup_jobs"])

        return {
            "status": "completed",
            "tasks_processed": tasks,
            "dry_run": dry_run,
            "results": results,
        }
