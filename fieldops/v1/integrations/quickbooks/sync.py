"""
Two-way QuickBooks customer/project sync job handlers.

QuickBooks models a project as a sub-customer (``Job: true`` with a
``ParentRef``). Locally, customers map to ``customers`` and sub-customers to
``projects``; the Entity Map correlates both directions.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings
from fieldops.v1.core.exceptions import JobHandlerError
from fieldops.v1.domain.models import Customer, Project
from fieldops.v1.domain.numbering import allocate_number
from fieldops.v1.integrations.quickbooks.client import QuickBooksClient
from fieldops.v1.integrations.quickbooks.entity_map import (
    find_by_remote_id,
    upsert_mapping,
)
from fieldops.v1.webhooks.models import WebhookEvent, WebhookEventStatus

logger = get_logger(__name__)

CUSTOMER_ENTITY = "Customer"
JOB_ENTITY = "Job"

ClientFactory = Callable[[AsyncSession], QuickBooksClient]


def require_payload_value(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not value:
        raise JobHandlerError(f"Missing {key} in job payload")
    return str(value)


def _address_fields(address: dict[str, Any] | None) -> tuple[str | None, ...]:
    address = address or {}
    return (
        address.get("Line1"),
        address.get("City"),
        address.get("CountrySubDivisionCode"),
        address.get("PostalCode"),
    )


def _remote_address(
    street: str | None, city: str | None, state: str | None, zip_code: str | None
) -> dict[str, str] | None:
    address = {
        "Line1": street,
        "City": city,
        "CountrySubDivisionCode": state,
        "PostalCode": zip_code,
    }
    address = {key: value for key, value in address.items() if value}
    return address or None


def _display_name(remote: dict[str, Any], fallback: str) -> str:
    return (
        remote.get("DisplayName")
        or remote.get("CompanyName")
        or remote.get("FullyQualifiedName")
        or f"{fallback} {remote['Id']}"
    )


def _customer_from_response(response: dict[str, Any]) -> dict[str, Any] | None:
    return response.get("Customer") or response.get("customer")


def is_sub_customer(remote: dict[str, Any]) -> bool:
    parent = remote.get("ParentRef") or {}
    return bool(remote.get("Job") or parent.get("value"))


class QboSync:
    """Upserts and pushes against one session and one API client."""

    def __init__(self, session: AsyncSession, client: QuickBooksClient):
        self.session = session
        self.client = client

    # Remote -> local

    async def upsert_customer(self, remote: dict[str, Any], synced_at: datetime) -> UUID:
        """Insert or update the local customer for a remote Customer."""
        remote_id = str(remote["Id"])
        given = [remote.get("GivenName"), remote.get("FamilyName")]
        contact_name = " ".join(part for part in given if part) or None
        bill_street, bill_city, bill_state, bill_zip = _address_fields(remote.get("BillAddr"))
        ship_street, ship_city, ship_state, ship_zip = _address_fields(remote.get("ShipAddr"))

        customer = await self._mapped_row(
            Customer, Customer.qbo_customer_ref, CUSTOMER_ENTITY, remote_id
        )
        if customer is None:
            customer = Customer(
                customer_no=await allocate_number(self.session, "customer"),
            )
            self.session.add(customer)

        customer.name = _display_name(remote, "Customer")
        customer.contact_name = contact_name
        customer.email = (remote.get("PrimaryEmailAddr") or {}).get("Address")
        customer.phone = (remote.get("PrimaryPhone") or {}).get("FreeFormNumber")
        customer.billing_street = bill_street
        customer.billing_city = bill_city
        customer.billing_state = bill_state
        customer.billing_zip = bill_zip
        customer.service_street = ship_street
        customer.service_city = ship_city
        customer.service_state = ship_state
        customer.service_zip = ship_zip
        customer.qbo_customer_ref = remote_id
        customer.qbo_last_synced_at = synced_at
        await self.session.flush()

        await upsert_mapping(
            self.session,
            entity_type=CUSTOMER_ENTITY,
            local_table=Customer.__tablename__,
            local_id=customer.id,
            remote_id=remote_id,
            sync_token=remote.get("SyncToken"),
            synced_at=synced_at,
        )
        return customer.id

    async def upsert_project(
        self, remote: dict[str, Any], customer_id: UUID, synced_at: datetime
    ) -> UUID:
        """Insert or update the local project for a remote sub-customer."""
        remote_id = str(remote["Id"])
        street, city, state, zip_code = _address_fields(
            remote.get("ShipAddr") or remote.get("BillAddr")
        )

        project = await self._mapped_row(
            Project, Project.qbo_job_ref, JOB_ENTITY, remote_id
        )
        if project is None:
            project = Project(
                project_no=await allocate_number(self.session, "project"),
            )
            self.session.add(project)

        project.name = _display_name(remote, "Project")
        project.customer_id = customer_id
        project.job_street = street
        project.job_city = city
        project.job_state = state
        project.job_zip = zip_code
        project.qbo_job_ref = remote_id
        project.qbo_last_synced_at = synced_at
        await self.session.flush()

        await upsert_mapping(
            self.session,
            entity_type=JOB_ENTITY,
            local_table=Project.__tablename__,
            local_id=project.id,
            remote_id=remote_id,
            sync_token=remote.get("SyncToken"),
            synced_at=synced_at,
        )
        return project.id

    async def ensure_parent_customer(
        self, realm_id: str, parent_id: str, synced_at: datetime
    ) -> UUID:
        customer = await self._mapped_row(
            Customer, Customer.qbo_customer_ref, CUSTOMER_ENTITY, parent_id
        )
        if customer is not None:
            return customer.id

        response = await self.client.fetch_entity(realm_id, CUSTOMER_ENTITY, parent_id)
        remote = _customer_from_response(response)
        if remote is None:
            raise JobHandlerError(f"QuickBooks parent customer {parent_id} not found")
        return await self.upsert_customer(remote, synced_at)

    async def sync_remote_customer(
        self, realm_id: str, remote_id: str, synced_at: datetime
    ) -> None:
        response = await self.client.fetch_entity(realm_id, CUSTOMER_ENTITY, remote_id)
        remote = _customer_from_response(response)
        if remote is None:
            logger.info("QuickBooks customer not returned", remote_id=remote_id)
            return

        if not is_sub_customer(remote):
            await self.upsert_customer(remote, synced_at)
            return

        parent_id = (remote.get("ParentRef") or {}).get("value")
        if not parent_id:
            logger.info("QuickBooks job has no parent, skipping", remote_id=remote_id)
            return
        customer_id = await self.ensure_parent_customer(realm_id, parent_id, synced_at)
        await self.upsert_project(remote, customer_id, synced_at)

    async def _mapped_row(self, model, ref_column, entity_type: str, remote_id: str):
        """Local row for a remote id: Entity Map first, then the row's own ref column."""
        mapping = await find_by_remote_id(self.session, entity_type, remote_id)
        if mapping is not None:
            row = await self.session.get(model, mapping.local_id)
            if row is not None:
                return row
        result = await self.session.execute(
            select(model).where(ref_column == remote_id).limit(1)
        )
        return result.scalar_one_or_none()

    # Local -> remote

    async def push_customer(self, realm_id: str, customer: Customer) -> str:
        payload: dict[str, Any] = {
            "DisplayName": customer.name,
            "CompanyName": customer.name,
        }
        if customer.email:
            payload["PrimaryEmailAddr"] = {"Address": customer.email}
        if customer.phone:
            payload["PrimaryPhone"] = {"FreeFormNumber": customer.phone}
        bill_addr = _remote_address(
            customer.billing_street,
            customer.billing_city,
            customer.billing_state,
            customer.billing_zip,
        )
        if bill_addr:
            payload["BillAddr"] = bill_addr
        ship_addr = _remote_address(
            customer.service_street,
            customer.service_city,
            customer.service_state,
            customer.service_zip,
        )
        if ship_addr:
            payload["ShipAddr"] = ship_addr

        response = await self.client.create_entity(realm_id, CUSTOMER_ENTITY, payload)
        remote = _customer_from_response(response) or {}
        if not remote.get("Id"):
            raise JobHandlerError("QuickBooks customer response missing Id")

        remote_id = str(remote["Id"])
        synced_at = datetime.now(UTC)
        customer.qbo_customer_ref = remote_id
        customer.qbo_last_synced_at = synced_at
        await upsert_mapping(
            self.session,
            entity_type=CUSTOMER_ENTITY,
            local_table=Customer.__tablename__,
            local_id=customer.id,
            remote_id=remote_id,
            sync_token=remote.get("SyncToken"),
            synced_at=synced_at,
        )
        return remote_id

    async def ensure_customer_remote(self, realm_id: str, customer_id: UUID) -> str:
        customer = await self.session.get(Customer, customer_id)
        if customer is None:
            raise JobHandlerError(f"Customer not found: {customer_id}")
        if customer.qbo_customer_ref:
            return customer.qbo_customer_ref

        # Persist the parent link before the project create can fail
        remote_id = await self.push_customer(realm_id, customer)
        await self.session.commit()
        return remote_id

    async def push_project(self, realm_id: str, project: Project) -> str:
        parent_id = await self.ensure_customer_remote(realm_id, project.customer_id)

        payload: dict[str, Any] = {
            "DisplayName": project.name,
            "Job": True,
            "ParentRef": {"value": parent_id},
        }
        job_addr = _remote_address(
            project.job_street, project.job_city, project.job_state, project.job_zip
        )
        if job_addr:
            payload["ShipAddr"] = job_addr

        response = await self.client.create_entity(realm_id, CUSTOMER_ENTITY, payload)
        remote = _customer_from_response(response) or {}
        if not remote.get("Id"):
            raise JobHandlerError("QuickBooks job response missing Id")

        remote_id = str(remote["Id"])
        synced_at = datetime.now(UTC)
        project.qbo_job_ref = remote_id
        project.qbo_last_synced_at = synced_at
        await upsert_mapping(
            self.session,
            entity_type=JOB_ENTITY,
            local_table=Project.__tablename__,
            local_id=project.id,
            remote_id=remote_id,
            sync_token=remote.get("SyncToken"),
            synced_at=synced_at,
        )
        return remote_id


class _QboHandler:
    def __init__(self, settings: Settings, client_factory: ClientFactory | None = None):
        self.settings = settings
        self.client_factory = client_factory or (
            lambda session: QuickBooksClient(settings, session)
        )

    def sync_for(self, session: AsyncSession) -> QboSync:
        return QboSync(session, self.client_factory(session))


class QboWebhookEventHandler(_QboHandler):
    """
    Process a stored QuickBooks change notification.

    Payload: ``{"webhook_event_id": "<uuid>"}``. The event moves to
    PROCESSING, then PROCESSED, or FAILED with the error message before the
    exception is re-raised so the job retry policy applies.
    """

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        event_id = UUID(require_payload_value(payload, "webhook_event_id"))

        event = await session.get(WebhookEvent, event_id)
        if event is None:
            raise JobHandlerError(f"QuickBooks webhook event not found: {event_id}")
        event_payload = dict(event.payload or {})
        event_realm_id = event.realm_id

        await _set_event_status(session, event_id, WebhookEventStatus.PROCESSING)

        synced = 0
        try:
            sync = self.sync_for(session)
            synced_at = datetime.now(UTC)
            for notification in event_payload.get("eventNotifications") or []:
                realm_id = notification.get("realmId") or event_realm_id
                data_change = notification.get("dataChangeEvent") or {}
                for entity in data_change.get("entities") or []:
                    name, remote_id = entity.get("name"), entity.get("id")
                    if not name or not remote_id or name != CUSTOMER_ENTITY:
                        continue
                    await sync.sync_remote_customer(realm_id, str(remote_id), synced_at)
                    synced += 1
            await session.commit()
        except Exception as e:
            await session.rollback()
            await _set_event_status(
                session,
                event_id,
                WebhookEventStatus.FAILED,
                error_message=str(e) or e.__class__.__name__,
            )
            raise

        await _set_event_status(session, event_id, WebhookEventStatus.PROCESSED)
        logger.info(
            "QuickBooks webhook event processed",
            webhook_event_id=str(event_id),
            entities_synced=synced,
        )
        return {"status": "completed", "entities_synced": synced}


class QboPushCustomerHandler(_QboHandler):
    """Create a local customer in QuickBooks. Payload: ``realm_id``, ``customer_id``."""

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        realm_id = require_payload_value(payload, "realm_id")
        customer_id = UUID(require_payload_value(payload, "customer_id"))

        customer = await session.get(Customer, customer_id)
        if customer is None:
            raise JobHandlerError(f"Customer not found for QuickBooks push: {customer_id}")
        if customer.qbo_customer_ref:
            return {"status": "skipped", "remote_id": customer.qbo_customer_ref}

        remote_id = await self.sync_for(session).push_customer(realm_id, customer)
        await session.commit()

        logger.info(
            "Customer pushed to QuickBooks",
            customer_id=str(customer_id),
            remote_id=remote_id,
        )
        return {"status": "completed", "remote_id": remote_id}


class QboPushProjectHandler(_QboHandler):
    """Create a local project in QuickBooks as a sub-customer of its customer."""

    async def handle(
        self, session: AsyncSession, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        realm_id = require_payload_value(payload, "realm_id")
        project_id = UUID(require_payload_value(payload, "project_id"))

        project = await session.get(Project, project_id)
        if project is None:
            raise JobHandlerError(f"Project not found for QuickBooks push: {project_id}")
        if project.qbo_job_ref:
            return {"status": "skipped", "remote_id": project.qbo_job_ref}

        remote_id = await self.sync_for(session).push_project(realm_id, project)
        await session.commit()

        logger.info(
            "Project pushed to QuickBooks",
            project_id=str(project_id),
            remote_id=remote_id,
        )
        return {"status": "completed", "remote_id": remote_id}


async def _set_event_status(
    session: AsyncSession,
    event_id: UUID,
    status: WebhookEventStatus,
    error_message: str | None = None,
) -> None:
    now = datetime.now(UTC)
    values: dict[str, Any] = {
        "status": status.value,
        "error_message": error_message,
        "updated_at": now,
    }
    if status is WebhookEventStatus.PROCESSED:
        values["processed_at"] = now

    await session.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == event_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
