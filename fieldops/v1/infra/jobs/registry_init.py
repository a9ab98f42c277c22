"""
Job registry initialization.

Registers all job handlers with the global job registry.
"""

from fieldops.config.logging import get_logger
from fieldops.config.settings import settings
from fieldops.v1.core.registries import job_registry
from fieldops.v1.infra.jobs.handlers import (
    MaintenanceCleanupHandler,
    TimeEntryCostPostHandler,
    WebhookAcknowledgeHandler,
)
from fieldops.v1.integrations.quickbooks.sync import (
    QboPushCustomerHandler,
    QboPushProjectHandler,
    QboWebhookEventHandler,
)
from fieldops.v1.webhooks.service import CLOCK_EVENT_JOB_TYPE

logger = get_logger(__name__)


def register_job_handlers() -> None:
    """Register all job handlers with the job registry."""

    # Cost posting
    job_registry.register("time_entry_cost_post", TimeEntryCostPostHandler(settings))

    # QuickBooks sync
    job_registry.register("process_qbo_webhook_event", QboWebhookEventHandler(settings))
    job_registry.register("qbo_push_customer", QboPushCustomerHandler(settings))
    job_registry.register("qbo_push_project", QboPushProjectHandler(settings))

    # Webhook events that only need acknowledging
    acknowledge = WebhookAcknowledgeHandler()
    job_registry.register("process_pm_app_webhook", acknowledge)
    job_registry.register("process_app_report_webhook", acknowledge)
    job_registry.register(CLOCK_EVENT_JOB_TYPE, acknowledge)

    # Maintenance
    job_registry.register("maintenance_cleanup", MaintenanceCleanupHandler(settings))

    logger.info("Job handlers registered", registered_handlers=job_registry.list())


# Auto-register handlers when module is imported
register_job_handlers()
