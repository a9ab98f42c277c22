from unittest.mock import AsyncMock, patch

from httpx import AsyncClient
from sqlalchemy.exc import OperationalError


async def test_healthz_reports_database_and_queue(async_client: AsyncClient, test_settings):
    await async_client.post("/v1/admin/jobs", json={"job_type": "echo", "payload": {}})

    response = await async_client.get("/v1/healthz")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers

    body = response.json()
    assert body["ok"] is True
    data = body["data"]
    assert data["ok"] is True
    assert data["version"] == test_settings.version
    assert data["environment"] == test_settings.environment
    assert data["database"]["connected"] is True
    assert data["database"]["response_time_ms"] >= 0
    assert data["queue"] == {"pending_jobs": 1, "locked_jobs": 0, "failed_jobs": 0}


async def test_healthz_database_down(async_client: AsyncClient):
    failure = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with patch(
        "sqlalchemy.ext.asyncio.AsyncSession.execute", new=AsyncMock(side_effect=failure)
    ):
        response = await async_client.get("/v1/healthz")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["ok"] is False
    assert data["database"]["connected"] is False
    assert data["queue"] is None
