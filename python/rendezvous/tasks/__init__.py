"""Celery tasks for the rendezvous coordinator.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.
"""

from rendezvous.tasks.sweep import (
    sweep_expired_connection_requests_task,
    sweep_stale_liveness_pings_task,
    sweep_stale_sessions_task,
)

__all__ = [
    "sweep_stale_sessions_task",
    "sweep_expired_connection_requests_task",
    "sweep_stale_liveness_pings_task",
]
