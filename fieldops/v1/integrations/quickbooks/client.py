"""
Minimal QuickBooks Online Accounting API client.

Only the calls the sync handlers need: read one entity and create one
entity. Tokens are read from ``qbo_connections``; obtaining and refreshing
them happens in the OAuth flow, outside this client.
"""

from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import QboEnvironment, Settings
from fieldops.v1.integrations.quickbooks.models import QboConnection

logger = get_logger(__name__)

API_BASE_URLS = {
    QboEnvironment.SANDBOX: "https://sandbox-quickbooks.api.intuit.com",
    QboEnvironment.PRODUCTION: "https://quickbooks.api.intuit.com",
}


class QuickBooksAPIError(Exception):
    """A QuickBooks call failed or could not be authorized."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class QuickBooksClient:
    """
    Per-session API client.

    The session is only used to look up the realm's access token, so the
    client can be built inside a job handler and discarded afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        session: AsyncSession,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.session = session
        self.transport = transport

    @property
    def base_url(self) -> str:
        return API_BASE_URLS[self.settings.qbo_env]

    async def get_access_token(self, realm_id: str) -> str:
        result = await self.session.execute(
            select(QboConnection).where(QboConnection.realm_id == realm_id)
        )
        connection = result.scalar_one_or_none()
        if connection is None:
            raise QuickBooksAPIError(f"QuickBooks connection not found for realm {realm_id}")

        expires_at = connection.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at <= datetime.now(UTC):
            raise QuickBooksAPIError(
                f"QuickBooks access token expired for realm {realm_id}"
            )
        return connection.access_token

    async def fetch_entity(
        self, realm_id: str, entity: str, entity_id: str
    ) -> dict[str, Any]:
        """GET /v3/company/{realm}/{entity}/{id}."""
        path = f"/v3/company/{realm_id}/{entity.lower()}/{entity_id}"
        return await self._request("GET", realm_id, path)

    async def create_entity(
        self, realm_id: str, entity: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """POST /v3/company/{realm}/{entity}."""
        path = f"/v3/company/{realm_id}/{entity.lower()}"
        return await self._request("POST", realm_id, path, json=payload)

    async def _request(
        self,
        method: str,
        realm_id: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self.get_access_token(realm_id)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.settings.qbo_request_timeout_s,
            transport=self.transport,
        ) as client:
            response = await client.request(
                method,
                path,
                params={"minorversion": self.settings.qbo_api_minor_version},
                headers=headers,
                json=json,
            )

        if response.is_error:
            logger.warning(
                "QuickBooks API call failed",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise QuickBooksAPIError(
                f"QuickBooks API error: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        return response.json()
