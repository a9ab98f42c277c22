"""
Webhook ingestion: idempotency keys, deduplication, persistence and hand-off
to the job queue.
"""

import hashlib
import json
import random
import string
import time
from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config.logging import get_logger
from fieldops.config.settings import Settings
from fieldops.v1.core.exceptions import FieldOpsException, NotFoundError, ValidationError
from fieldops.v1.infra.jobs.service import JobService
from fieldops.v1.webhooks.models import WebhookEvent, WebhookEventStatus
from fieldops.v1.webhooks.signatures import SignatureScheme

logger = get_logger(__name__)

CLOCK_EVENT_JOB_TYPE = "process_webhook_clock_event"


@dataclass(frozen=True)
class SignedSource:
    """A provider whose deliveries must carry an HMAC signature."""

    name: str
    event_type: str
    job_type: str
    scheme: SignatureScheme
    secret_setting: str
    synthesize_event_ids: bool = False

    def secret(self, settings: Settings) -> str:
        return getattr(settings, self.secret_setting)


SIGNED_SOURCES: dict[str, SignedSource] = {
    "app-report": SignedSource(
        name="app-report",
        event_type="app_report_event",
        job_type="process_app_report_webhook",
        scheme=SignatureScheme(header="X-Signature", encoding="hex"),
        secret_setting="app_report_webhook_secret",
        synthesize_event_ids=True,
    ),
    "quickbooks": SignedSource(
        name="quickbooks",
        event_type="data_change",
        job_type="process_qbo_webhook_event",
        scheme=SignatureScheme(header="intuit-signature", encoding="base64"),
        secret_setting="qbo_webhook_verifier",
    ),
    "pm-app": SignedSource(
        name="pm-app",
        event_type="pm_app_event",
        job_type="process_pm_app_webhook",
        scheme=SignatureScheme(header="X-Signature", encoding="hex", prefix="sha256="),
        secret_setting="pm_app_webhook_secret",
    ),
}


@dataclass
class IngestResult:
    webhook_event_id: UUID | None
    idempotency_key: str
    duplicate: bool
    job_id: UUID | None = None


def parse_json_object(raw_body: bytes) -> dict[str, Any]:
    """Parse a request body that must be a JSON object."""
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def payload_hash(payload: dict[str, Any]) -> str:
    """SHA-256 over the compact JSON serialization, keys in received order."""
    serialized = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode()).hexdigest()


def extract_realm_id(payload: dict[str, Any]) -> str | None:
    """Realm of the first QuickBooks change notification, if any."""
    notifications = payload.get("eventNotifications")
    if isinstance(notifications, list) and notifications:
        first = notifications[0]
        if isinstance(first, dict) and first.get("realmId"):
            return str(first["realmId"])
    return None


def _random_suffix(length: int = 13) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choices(alphabet, k=length))


class WebhookService:
    """Service for persisting inbound webhook events."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.job_service = JobService(settings)

    def is_clock_source(self, source: str) -> bool:
        allowed = {name.lower() for name in self.settings.clock_webhook_sources}
        return source.lower() in allowed

    def clock_event_key(self, source: str, payload: dict[str, Any]) -> str:
        """
        Idempotency key for unauthenticated clock events.

        Priority: ``id``, ``event_id``, ``eventId``, then a content hash.
        """
        for field in ("id", "event_id", "eventId"):
            value = payload.get(field)
            if isinstance(value, str) and value:
                return f"{source}:{value}"
        return f"{source}:hash:{payload_hash(payload)}"

    def signed_event_id(
        self, source: SignedSource, payload: dict[str, Any], raw_body: bytes
    ) -> str:
        """Event id from the payload, else synthesized per source."""
        event_id = payload.get("event_id")
        if isinstance(event_id, str) and event_id:
            return event_id
        if source.synthesize_event_ids:
            return f"{source.name}:{int(time.time() * 1000)}:{_random_suffix()}"
        return f"hash:{hashlib.sha256(raw_body).hexdigest()}"

    def require_secret(self, source: SignedSource) -> str:
        secret = source.secret(self.settings)
        if not secret:
            raise FieldOpsException(
                f"Webhook secret for {source.name} is not configured",
                error_code="WEBHOOK_NOT_CONFIGURED",
            )
        return secret

    async def find_by_key(
        self, session: AsyncSession, idempotency_key: str
    ) -> WebhookEvent | None:
        result = await session.execute(
            select(WebhookEvent)
            .where(WebhookEvent.idempotency_key == idempotency_key)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_event(self, session: AsyncSession, event_id: UUID) -> WebhookEvent:
        event = await session.get(WebhookEvent, event_id)
        if event is None:
            raise NotFoundError(
                "Webhook event not found", details={"webhook_event_id": str(event_id)}
            )
        return event

    async def ingest(
        self,
        session: AsyncSession,
        *,
        source: str,
        event_type: str,
        payload: dict[str, Any],
        idempotency_key: str,
        job_type: str,
        job_payload: dict[str, Any] | None = None,
        realm_id: str | None = None,
    ) -> IngestResult:
        """
        Persist a new event and enqueue its processing job.

        At most one event row and one job exist per idempotency key. The
        event is committed before the job is enqueued; an enqueue failure is
        logged and leaves the event for a manual re-trigger.
        """
        existing = await self.find_by_key(session, idempotency_key)
        if existing:
            logger.info(
                "Duplicate webhook event",
                source=source,
                idempotency_key=idempotency_key,
                webhook_event_id=str(existing.id),
            )
            return IngestResult(
                webhook_event_id=existing.id,
                idempotency_key=idempotency_key,
                duplicate=True,
            )

        event_id = uuid4()
        source = source.lower()
        session.add(
            WebhookEvent(
                id=event_id,
                source=source,
                event_type=event_type,
                payload=payload,
                status=WebhookEventStatus.PENDING.value,
                idempotency_key=idempotency_key,
                realm_id=realm_id,
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            await session.rollback()
            logger.info(
                "Duplicate webhook event detected on insert",
                source=source,
                idempotency_key=idempotency_key,
            )
            return IngestResult(
                webhook_event_id=None,
                idempotency_key=idempotency_key,
                duplicate=True,
            )

        job_id = await self._enqueue_for_event(
            session, event_id, job_type, job_payload or {}
        )

        logger.info(
            "Webhook event received",
            source=source,
            event_type=event_type,
            webhook_event_id=str(event_id),
            job_id=str(job_id) if job_id else None,
        )
        return IngestResult(
            webhook_event_id=event_id,
            idempotency_key=idempotency_key,
            duplicate=False,
            job_id=job_id,
        )

    async def _enqueue_for_event(
        self,
        session: AsyncSession,
        event_id: UUID,
        job_type: str,
        extra_payload: dict[str, Any],
    ) -> UUID | None:
        try:
            enqueued = await self.job_service.enqueue_job(
                session,
                job_type,
                {"webhook_event_id": str(event_id), **extra_payload},
            )
        except Exception:
            await session.rollback()
            logger.exception(
                "Failed to enqueue webhook processing job",
                webhook_event_id=str(event_id),
                job_type=job_type,
            )
            return None
        return enqueued.job_id

    def job_type_for(self, event: WebhookEvent) -> str:
        signed = SIGNED_SOURCES.get(event.source)
        if signed:
            return signed.job_type
        if self.is_clock_source(event.source):
            return CLOCK_EVENT_JOB_TYPE
        raise ValidationError(
            f"No processing job for webhook source: {event.source}",
            details={"webhook_event_id": str(event.id)},
        )

    async def requeue(self, session: AsyncSession, event_id: UUID):
        """Enqueue the processing job for an existing event (operator action)."""
        event = await self.get_event(session, event_id)
        job_type = self.job_type_for(event)
        enqueued = await self.job_service.enqueue_job(
            session, job_type, {"webhook_event_id": str(event_id)}
        )
        logger.info(
            "Webhook event re-enqueued",
            webhook_event_id=str(event_id),
            job_id=str(enqueued.job_id),
            deduplicated=enqueued.deduplicated,
        )
        return enqueued
