"""Celery worker entrypoint.

Run the worker with embedded beat (single-node deployments):
    celery -A apps.worker.main:celery_app worker -B --loglevel=info

Or run beat separately:
    celery -A apps.worker.main:celery_app beat --loglevel=info

Task definitions are in the rendezvous.tasks package - no autodiscovery.

Logging Convention:
- All task log entries include request_id, task_name, task_id when available
- Tasks accept `request_id: str | None = None` for correlation
"""

from celery.signals import worker_process_init

from rendezvous.celery import celery_app
from rendezvous.config import get_settings
from rendezvous.logging import configure_logging, get_logger

# Each import registers the task with celery_app
from rendezvous.tasks import (  # noqa: F401
    sweep_expired_connection_requests_task,
    sweep_stale_liveness_pings_task,
    sweep_stale_sessions_task,
)


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when a worker process starts."""
    configure_logging(json_format=get_settings().json_logs)
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queue="default")


__all__ = ["celery_app"]
