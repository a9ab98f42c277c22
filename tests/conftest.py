from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fieldops.config.settings import Settings, get_settings
from fieldops.infra.database import Base, get_session
from fieldops.main import create_app

# Import models to ensure they're registered
from fieldops.v1.domain import models as domain_models
from fieldops.v1.infra.jobs import models as job_models  # noqa: F401
from fieldops.v1.integrations.quickbooks import models as qbo_models  # noqa: F401
from fieldops.v1.webhooks import models as webhook_models  # noqa: F401

APP_REPORT_SECRET = "app-report-test-secret"
QBO_VERIFIER = "qbo-test-verifier"
PM_APP_SECRET = "pm-app-test-secret"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fieldops.db'}",
        debug=False,
        worker_poll_interval_ms=10,
        worker_batch_size=10,
        job_max_attempts=3,
        app_report_webhook_secret=APP_REPORT_SECRET,
        qbo_webhook_verifier=QBO_VERIFIER,
        pm_app_webhook_secret=PM_APP_SECRET,
    )


@pytest.fixture
async def test_engine(test_settings):
    """Create a file-backed SQLite engine with the full schema."""
    engine = create_async_engine(test_settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(session_factory, test_settings) -> FastAPI:
    """Create a test FastAPI application bound to the test database."""
    app = create_app()

    async def get_test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def labor_setup(db_session: AsyncSession):
    """A technician, a work order and labor cost classification."""
    labor = domain_models.CostType(name="Labor")
    materials = domain_models.CostType(name="Materials")
    db_session.add_all([labor, materials])
    await db_session.flush()

    labor_code = domain_models.CostCode(code="L-100", cost_type_id=labor.id)
    db_session.add(labor_code)

    employee = domain_models.Employee(display_name="Dana Tech", labor_rate=Decimal("40.00"))
    work_order = domain_models.WorkOrder(total_cost=Decimal("0"))
    db_session.add_all([employee, work_order])
    await db_session.flush()

    company = domain_models.CompanySettings(
        default_labor_rate=Decimal("30.00"),
        labor_cost_type_id=labor.id,
        labor_cost_code_id=labor_code.id,
    )
    db_session.add(company)
    await db_session.commit()

    return {
        "labor_type_id": labor.id,
        "labor_code_id": labor_code.id,
        "employee_id": employee.id,
        "work_order_id": work_order.id,
        "company_id": company.id,
    }


@pytest.fixture
def make_time_entry(db_session: AsyncSession, labor_setup):
    """Factory for time entries on the fixture work order."""

    async def _make(hours: float = 2.5, break_minutes: int = 0, clocked_out: bool = True):
        clock_in = datetime(2025, 3, 10, 14, 0, tzinfo=UTC)
        entry = domain_models.TimeEntry(
            work_order_id=labor_setup["work_order_id"],
            tech_user_id=labor_setup["employee_id"],
            clock_in_at=clock_in,
            clock_out_at=clock_in + timedelta(hours=hours) if clocked_out else None,
            break_minutes=break_minutes,
        )
        db_session.add(entry)
        await db_session.commit()
        return entry.id

    return _make
