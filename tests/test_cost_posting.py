from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from fieldops.v1.core.exceptions import JobHandlerError
from fieldops.v1.domain.models import (
    CompanySettings,
    CostCode,
    CostType,
    Employee,
    JobCostEntry,
    WorkOrder,
)
from fieldops.v1.infra.jobs.handlers import (
    TimeEntryCostPostHandler,
    labor_amount,
    worked_hours,
)


@pytest.fixture
def handler(test_settings) -> TimeEntryCostPostHandler:
    return TimeEntryCostPostHandler(test_settings)


async def _entries(session_factory) -> list[JobCostEntry]:
    async with session_factory() as session:
        return list((await session.execute(select(JobCostEntry))).scalars().all())


async def _work_order_total(session_factory, work_order_id) -> Decimal:
    async with session_factory() as session:
        work_order = await session.get(WorkOrder, work_order_id)
        return Decimal(work_order.total_cost)


def test_worked_hours_subtracts_break():
    clock_in = datetime(2025, 3, 10, 8, 0, tzinfo=UTC)

    assert worked_hours(clock_in, clock_in + timedelta(hours=8), 30) == Decimal("7.5")


def test_worked_hours_accepts_naive_datetimes():
    clock_in = datetime(2025, 3, 10, 8, 0)

    assert worked_hours(clock_in, clock_in + timedelta(minutes=90), 0) == Decimal("1.5")


def test_labor_amount_rounds_half_up_to_cents():
    assert labor_amount(Decimal("1.3333"), Decimal("33.00")) == Decimal("44.00")
    assert labor_amount(Decimal("0.125"), Decimal("1.00")) == Decimal("0.13")


async def test_posts_labor_cost_once(
    handler, make_time_entry, labor_setup, session_factory
):
    time_entry_id = await make_time_entry(hours=2.5)

    async with session_factory() as session:
        result = await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert result["status"] == "completed"
    assert result["amount"] == "100.00"

    entries = await _entries(session_factory)
    assert len(entries) == 1
    entry = entries[0]
    assert str(entry.id) == result["job_cost_entry_id"]
    assert entry.idempotency_key == f"time_entry:{time_entry_id}"
    assert entry.source_type == "TIME_ENTRY"
    assert entry.source_id == time_entry_id
    assert entry.work_order_id == labor_setup["work_order_id"]
    assert entry.cost_type_id == labor_setup["labor_type_id"]
    assert entry.cost_code_id == labor_setup["labor_code_id"]
    assert Decimal(entry.qty) == Decimal("2.5")
    assert Decimal(entry.unit_cost) == Decimal("40.00")
    assert Decimal(entry.amount) == Decimal("100.00")
    assert entry.txn_date == date(2025, 3, 10)
    assert entry.description == "Labor: Dana Tech on 2025-03-10"

    assert await _work_order_total(session_factory, labor_setup["work_order_id"]) == Decimal("100.00")

    # Running the same job again changes nothing
    async with session_factory() as session:
        again = await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert again == {"status": "skipped", "reason": "already_posted"}
    assert len(await _entries(session_factory)) == 1
    assert await _work_order_total(session_factory, labor_setup["work_order_id"]) == Decimal("100.00")


async def test_break_reduces_posted_hours(handler, make_time_entry, session_factory):
    time_entry_id = await make_time_entry(hours=3, break_minutes=30)

    async with session_factory() as session:
        result = await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert result["amount"] == "100.00"


async def test_default_rate_used_without_employee_rate(
    handler, make_time_entry, labor_setup, session_factory, db_session
):
    await db_session.execute(
        update(Employee)
        .where(Employee.id == labor_setup["employee_id"])
        .values(labor_rate=None)
    )
    await db_session.commit()
    time_entry_id = await make_time_entry(hours=2)

    async with session_factory() as session:
        result = await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert result["amount"] == "60.00"


async def test_labor_cost_type_found_by_name(
    handler, make_time_entry, labor_setup, session_factory, db_session
):
    await db_session.execute(
        update(CompanySettings).values(labor_cost_type_id=None, labor_cost_code_id=None)
    )
    await db_session.commit()
    time_entry_id = await make_time_entry(hours=1)

    async with session_factory() as session:
        result = await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert result["status"] == "completed"
    entries = await _entries(session_factory)
    assert entries[0].cost_type_id == labor_setup["labor_type_id"]
    assert entries[0].cost_code_id == labor_setup["labor_code_id"]


async def test_missing_cost_classification_fails(
    handler, make_time_entry, session_factory, db_session
):
    await db_session.execute(
        update(CompanySettings).values(labor_cost_type_id=None, labor_cost_code_id=None)
    )
    await db_session.execute(update(CostType).values(name="Equipment"))
    await db_session.commit()
    time_entry_id = await make_time_entry(hours=1)

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="Labor cost type or cost code"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})

    assert await _entries(session_factory) == []


async def test_not_clocked_out_fails(handler, make_time_entry, session_factory):
    time_entry_id = await make_time_entry(clocked_out=False)

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="not clocked out"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})


async def test_zero_hours_fails(handler, make_time_entry, session_factory):
    time_entry_id = await make_time_entry(hours=0.5, break_minutes=30)

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="Invalid hours"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})


async def test_missing_rate_fails(
    handler, make_time_entry, labor_setup, session_factory, db_session
):
    await db_session.execute(
        update(Employee)
        .where(Employee.id == labor_setup["employee_id"])
        .values(labor_rate=None)
    )
    await db_session.execute(update(CompanySettings).values(default_labor_rate=None))
    await db_session.commit()
    time_entry_id = await make_time_entry(hours=1)

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="Invalid labor rate"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})


async def test_missing_company_settings_fails(
    handler, make_time_entry, session_factory, db_session
):
    time_entry_id = await make_time_entry(hours=1)
    company = (await db_session.execute(select(CompanySettings))).scalar_one()
    await db_session.delete(company)
    await db_session.commit()

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="Company settings not found"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({}, "Missing time_entry_id"),
        ({"time_entry_id": "not-a-uuid"}, "Invalid time_entry_id"),
        ({"time_entry_id": str(uuid4())}, "Time entry not found"),
    ],
)
async def test_bad_payload_fails(handler, session_factory, payload, message):
    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match=message):
            await handler.handle(session, payload)


async def test_cost_code_must_belong_to_labor_type(
    handler, make_time_entry, labor_setup, session_factory, db_session
):
    materials_id = (
        await db_session.execute(select(CostType.id).where(CostType.name == "Materials"))
    ).scalar_one()
    await db_session.execute(
        update(CompanySettings).values(labor_cost_type_id=None, labor_cost_code_id=None)
    )
    # The only code now belongs to another cost type
    await db_session.execute(
        update(CostCode)
        .where(CostCode.id == labor_setup["labor_code_id"])
        .values(cost_type_id=materials_id)
    )
    await db_session.commit()
    time_entry_id = await make_time_entry(hours=1)

    async with session_factory() as session:
        with pytest.raises(JobHandlerError, match="Labor cost type or cost code"):
            await handler.handle(session, {"time_entry_id": str(time_entry_id)})
