"""Celery application configuration.

Central configuration for Celery used by the worker, the beat scheduler and
(optionally) the API for ad-hoc enqueues.

Usage:
    from rendezvous.celery import celery_app

    celery_app.send_task("sweep_stale_sessions")

Beat schedule:
    Every SWEEP_INTERVAL_SECONDS the three cleanup sweeps run on the default queue.
"""

from celery import Celery

from rendezvous.config import get_settings

settings = get_settings()

celery_app = Celery("rendezvous")

celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_default_queue = "default"

# Sweeps are idempotent; a missed tick is caught up by the next one.
celery_app.conf.beat_schedule = {
    "sweep-stale-sessions": {
        "task": "sweep_stale_sessions",
        "schedule": float(settings.sweep_interval_seconds),
    },
    "sweep-expired-connection-requests": {
        "task": "sweep_expired_connection_requests",
        "schedule": float(settings.sweep_interval_seconds),
    },
    "sweep-stale-liveness-pings": {
        "task": "sweep_stale_liveness_pings",
        "schedule": float(settings.sweep_interval_seconds),
    },
}

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def get_celery_app() -> Celery:
    return celery_app
