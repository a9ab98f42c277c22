"""API Endpoint Wrappers - Typed calls against the admin API"""

from typing import Any

from .base import APIClient
from ..utils.config_manager import config


class FieldOpsClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        self.api = APIClient(
            base_url=base_url or api_config.get("base_url", "http://localhost:8000"),
            timeout=api_config.get("timeout", 30),
            headers=headers or api_config.get("headers", {}),
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs
    def list_jobs(
        self,
        status: str | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if job_type:
            params["job_type"] = job_type
        return self.api.get("/admin/jobs", params=params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/admin/jobs/{job_id}")

    def get_job_stats(self) -> dict[str, Any]:
        return self.api.get("/admin/jobs/stats/overview")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/admin/jobs/{job_id}/retry")

    def enqueue_job(self, job_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self.api.post("/admin/jobs", json={"job_type": job_type, "payload": payload})

    # Webhook events
    def get_webhook_event(self, event_id: str) -> dict[str, Any]:
        return self.api.get(f"/admin/webhook-events/{event_id}")

    def enqueue_webhook_event(self, event_id: str) -> dict[str, Any]:
        return self.api.post(f"/admin/webhook-events/{event_id}/enqueue")
