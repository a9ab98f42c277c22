import hashlib
import json
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from starlette.requests import ClientDisconnect, Request

from fieldops.v1.infra.jobs.models import Job
from fieldops.v1.webhooks.models import WebhookEvent, WebhookEventStatus
from fieldops.v1.webhooks.service import CLOCK_EVENT_JOB_TYPE, payload_hash
from fieldops.v1.webhooks.signatures import compute_signature


async def _rows(session_factory, model):
    async with session_factory() as session:
        return list((await session.execute(select(model))).scalars().all())


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


class TestClockEvents:
    """Unauthenticated events from allow-listed time-clock providers."""

    async def test_clock_in_accepted_then_duplicate(
        self, async_client: AsyncClient, session_factory
    ):
        payload = {"event_type": "clock_in", "employee_id": "E1"}
        expected_key = f"manual:hash:{payload_hash(payload)}"

        response = await async_client.post("/v1/webhooks/manual/event", content=_body(payload))

        assert response.status_code == 202
        data = response.json()
        assert data["ok"] is True
        assert data["data"]["message"] == "Webhook event received"
        assert data["data"]["idempotency_key"] == expected_key

        duplicate = await async_client.post("/v1/webhooks/manual/event", content=_body(payload))

        assert duplicate.status_code == 200
        assert duplicate.json()["data"]["status"] == "duplicate"
        assert duplicate.json()["data"]["idempotency_key"] == expected_key

        events = await _rows(session_factory, WebhookEvent)
        assert len(events) == 1
        assert events[0].source == "manual"
        assert events[0].event_type == "clock_in"
        assert events[0].status == WebhookEventStatus.PENDING.value

        jobs = await _rows(session_factory, Job)
        assert len(jobs) == 1
        assert jobs[0].job_type == CLOCK_EVENT_JOB_TYPE
        assert jobs[0].payload == {"webhook_event_id": str(events[0].id)}

    async def test_payload_id_is_preferred_for_key(self, async_client: AsyncClient):
        payload = {"id": "evt-9", "event_id": "ignored", "event_type": "clock_out"}

        response = await async_client.post("/v1/webhooks/Clockify/event", content=_body(payload))

        assert response.status_code == 202
        assert response.json()["data"]["idempotency_key"] == "clockify:evt-9"

    async def test_missing_event_type_defaults_to_unknown(
        self, async_client: AsyncClient, session_factory
    ):
        response = await async_client.post(
            "/v1/webhooks/busybusy/event", content=_body({"eventId": "b-1"})
        )

        assert response.status_code == 202
        events = await _rows(session_factory, WebhookEvent)
        assert events[0].event_type == "unknown"
        assert events[0].idempotency_key == "busybusy:b-1"

    async def test_unknown_source_rejected(self, async_client: AsyncClient, session_factory):
        response = await async_client.post(
            "/v1/webhooks/evil/event", content=_body({"event_type": "clock_in"})
        )

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert response.json()["error"]["message"] == "Invalid source parameter"
        assert await _rows(session_factory, WebhookEvent) == []

    @pytest.mark.parametrize("body", [b"[1, 2, 3]", b"not json", b'"text"'])
    async def test_non_object_body_rejected(
        self, async_client: AsyncClient, session_factory, body
    ):
        response = await async_client.post("/v1/webhooks/manual/event", content=body)

        assert response.status_code == 400
        assert await _rows(session_factory, WebhookEvent) == []

    async def test_enqueue_failure_still_accepts_event(
        self, async_client: AsyncClient, session_factory
    ):
        with patch(
            "fieldops.v1.infra.jobs.service.JobService.enqueue_job",
            new=AsyncMock(side_effect=RuntimeError("queue down")),
        ):
            response = await async_client.post(
                "/v1/webhooks/manual/event", content=_body({"id": "lost-job"})
            )

        assert response.status_code == 202
        assert len(await _rows(session_factory, WebhookEvent)) == 1
        assert await _rows(session_factory, Job) == []


class TestSignedWebhooks:
    """HMAC-signed provider deliveries."""

    async def test_app_report_valid_signature(
        self, async_client: AsyncClient, session_factory, test_settings
    ):
        body = _body({"event_id": "rpt-1", "report": "daily"})
        signature = compute_signature(test_settings.app_report_webhook_secret, body)

        response = await async_client.post(
            "/v1/webhooks/app-report", content=body, headers={"X-Signature": signature}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "received"
        assert data["event_id"] == "rpt-1"

        events = await _rows(session_factory, WebhookEvent)
        assert len(events) == 1
        assert events[0].idempotency_key == "app-report:rpt-1"
        assert events[0].event_type == "app_report_event"

        jobs = await _rows(session_factory, Job)
        assert jobs[0].job_type == "process_app_report_webhook"
        assert jobs[0].payload == {
            "webhook_event_id": str(events[0].id),
            "event_id": "rpt-1",
        }

    async def test_app_report_synthesizes_event_id(self, async_client: AsyncClient, test_settings):
        body = _body({"report": "weekly"})
        signature = compute_signature(test_settings.app_report_webhook_secret, body)

        response = await async_client.post(
            "/v1/webhooks/app-report", content=body, headers={"X-Signature": signature}
        )

        assert response.status_code == 200
        assert response.json()["data"]["event_id"].startswith("app-report:")

    @pytest.mark.parametrize(
        "header_value",
        [
            compute_signature("wrong-secret", b'{"event_id": "x"}'),
            "zz" * 32,
            "deadbeef",
            "",
        ],
    )
    async def test_bad_signature_rejected_without_side_effects(
        self, async_client: AsyncClient, session_factory, header_value
    ):
        response = await async_client.post(
            "/v1/webhooks/app-report",
            content=b'{"event_id": "x"}',
            headers={"X-Signature": header_value},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert await _rows(session_factory, WebhookEvent) == []
        assert await _rows(session_factory, Job) == []

    async def test_missing_signature_rejected(self, async_client: AsyncClient):
        response = await async_client.post("/v1/webhooks/app-report", content=b"{}")

        assert response.status_code == 401

    async def test_altered_body_rejected(
        self, async_client: AsyncClient, session_factory, test_settings
    ):
        signature = compute_signature(
            test_settings.app_report_webhook_secret, b'{"event_id": "a"}'
        )

        response = await async_client.post(
            "/v1/webhooks/app-report",
            content=b'{"event_id": "b"}',
            headers={"X-Signature": signature},
        )

        assert response.status_code == 401
        assert await _rows(session_factory, WebhookEvent) == []

    async def test_duplicate_signed_delivery(
        self, async_client: AsyncClient, session_factory, test_settings
    ):
        body = _body({"event_id": "pm-7"})
        signature = compute_signature(test_settings.pm_app_webhook_secret, body)
        headers = {"X-Signature": "sha256=" + signature}

        first = await async_client.post("/v1/webhooks/pm-app", content=body, headers=headers)
        second = await async_client.post("/v1/webhooks/pm-app", content=body, headers=headers)

        assert first.json()["data"]["status"] == "received"
        assert second.status_code == 200
        assert second.json()["data"] == {
            "status": "duplicate",
            "message": "Event already received",
        }
        assert len(await _rows(session_factory, WebhookEvent)) == 1
        assert len(await _rows(session_factory, Job)) == 1

    async def test_quickbooks_base64_signature_and_realm(
        self, async_client: AsyncClient, session_factory, test_settings
    ):
        payload = {
            "eventNotifications": [
                {
                    "realmId": "9130",
                    "dataChangeEvent": {
                        "entities": [{"name": "Customer", "id": "58", "operation": "Update"}]
                    },
                }
            ]
        }
        body = _body(payload)
        signature = compute_signature(
            test_settings.qbo_webhook_verifier, body, encoding="base64"
        )

        response = await async_client.post(
            "/v1/webhooks/quickbooks", content=body, headers={"intuit-signature": signature}
        )

        assert response.status_code == 200
        expected_event_id = f"hash:{hashlib.sha256(body).hexdigest()}"
        assert response.json()["data"]["event_id"] == expected_event_id

        events = await _rows(session_factory, WebhookEvent)
        assert events[0].realm_id == "9130"
        assert events[0].idempotency_key == f"quickbooks:{expected_event_id}"

        jobs = await _rows(session_factory, Job)
        assert jobs[0].job_type == "process_qbo_webhook_event"

    async def test_hex_signature_not_accepted_for_quickbooks(
        self, async_client: AsyncClient, test_settings
    ):
        body = b'{"eventNotifications": []}'
        signature = compute_signature(test_settings.qbo_webhook_verifier, body, encoding="hex")

        response = await async_client.post(
            "/v1/webhooks/quickbooks", content=body, headers={"intuit-signature": signature}
        )

        assert response.status_code == 401

    async def test_unconfigured_secret_fails_closed(
        self, async_client: AsyncClient, test_settings, session_factory
    ):
        test_settings.pm_app_webhook_secret = ""
        body = _body({"event_id": "pm-1"})

        response = await async_client.post(
            "/v1/webhooks/pm-app",
            content=body,
            headers={"X-Signature": compute_signature("anything", body)},
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "WEBHOOK_NOT_CONFIGURED"
        assert await _rows(session_factory, WebhookEvent) == []

    @pytest.mark.parametrize(
        "failure", [ClientDisconnect(), RuntimeError("Stream consumed")]
    )
    async def test_unreadable_body_fails_closed(
        self, async_client: AsyncClient, session_factory, test_settings, failure
    ):
        body = _body({"event_id": "rpt-2"})
        signature = compute_signature(test_settings.app_report_webhook_secret, body)

        with patch.object(Request, "body", new=AsyncMock(side_effect=failure)):
            response = await async_client.post(
                "/v1/webhooks/app-report", content=body, headers={"X-Signature": signature}
            )

        assert response.status_code == 500
        assert response.json()["ok"] is False
        assert response.json()["error"]["message"] == (
            "Raw body unavailable for signature verification"
        )
        assert await _rows(session_factory, WebhookEvent) == []
        assert await _rows(session_factory, Job) == []
