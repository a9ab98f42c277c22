"""
Inbound webhook endpoints.

Clock providers post unauthenticated events to ``/webhooks/{source}/event``;
accounting, report and project-management providers sign every delivery
with an HMAC over the raw body.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import ClientDisconnect

from fieldops.config.settings import Settings, SettingsDep
from fieldops.infra.database import get_session
from fieldops.v1.core.exceptions import (
    RawBodyUnavailableError,
    ValidationError,
    create_success_response,
)
from fieldops.v1.webhooks.service import (
    CLOCK_EVENT_JOB_TYPE,
    SIGNED_SOURCES,
    WebhookService,
    extract_realm_id,
    parse_json_object,
)
from fieldops.v1.webhooks.signatures import verify_signature

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def read_raw_body(request: Request) -> bytes:
    """The unparsed request body; signature checks fail closed without it."""
    try:
        return await request.body()
    except (ClientDisconnect, RuntimeError):
        raise RawBodyUnavailableError() from None


@router.post("/app-report")
async def receive_app_report_webhook(
    request: Request,
    raw_body: bytes = Depends(read_raw_body),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> JSONResponse:
    """Receive a signed report event (``X-Signature``, hex)."""
    return await _receive_signed("app-report", request, raw_body, session, settings)


@router.post("/quickbooks")
async def receive_quickbooks_webhook(
    request: Request,
    raw_body: bytes = Depends(read_raw_body),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> JSONResponse:
    """Receive a signed QuickBooks change notification (``intuit-signature``, base64)."""
    return await _receive_signed("quickbooks", request, raw_body, session, settings)


@router.post("/pm-app")
async def receive_pm_app_webhook(
    request: Request,
    raw_body: bytes = Depends(read_raw_body),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> JSONResponse:
    """Receive a signed project-management event (``X-Signature``, hex)."""
    return await _receive_signed("pm-app", request, raw_body, session, settings)


@router.post("/{source}/event")
async def receive_clock_event(
    source: str,
    raw_body: bytes = Depends(read_raw_body),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> JSONResponse:
    """
    Receive an unauthenticated event from an allow-listed clock provider.

    Returns 202 for a new event and 200 for a duplicate delivery.
    """
    service = WebhookService(settings)
    if not service.is_clock_source(source):
        raise ValidationError("Invalid source parameter", details={"source": source})

    payload = parse_json_object(raw_body)
    source = source.lower()
    idempotency_key = service.clock_event_key(source, payload)
    event_type = payload.get("event_type")

    result = await service.ingest(
        session,
        source=source,
        event_type=event_type if isinstance(event_type, str) and event_type else "unknown",
        payload=payload,
        idempotency_key=idempotency_key,
        job_type=CLOCK_EVENT_JOB_TYPE,
    )

    if result.duplicate:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=create_success_response(
                data={
                    "status": "duplicate",
                    "message": "Webhook event already processed",
                    "idempotency_key": idempotency_key,
                }
            ),
        )

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=create_success_response(
            data={
                "message": "Webhook event received",
                "webhook_event_id": str(result.webhook_event_id),
                "idempotency_key": idempotency_key,
            }
        ),
    )


async def _receive_signed(
    name: str,
    request: Request,
    raw_body: bytes,
    session: AsyncSession,
    settings: Settings,
) -> JSONResponse:
    source = SIGNED_SOURCES[name]
    service = WebhookService(settings)

    verify_signature(
        raw_body,
        request.headers.get(source.scheme.header),
        service.require_secret(source),
        source.scheme,
    )

    payload = parse_json_object(raw_body)
    event_id = service.signed_event_id(source, payload, raw_body)
    idempotency_key = f"{source.name}:{event_id}"

    result = await service.ingest(
        session,
        source=source.name,
        event_type=source.event_type,
        payload=payload,
        idempotency_key=idempotency_key,
        job_type=source.job_type,
        job_payload={"event_id": event_id},
        realm_id=extract_realm_id(payload),
    )

    if result.duplicate:
        data = {"status": "duplicate", "message": "Event already received"}
    else:
        data = {
            "status": "received",
            "message": "Webhook received and queued for processing",
            "webhook_event_id": str(result.webhook_event_id),
            "event_id": event_id,
        }
    return JSONResponse(status_code=status.HTTP_200_OK, content=create_success_response(data=data))
