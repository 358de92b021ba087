"""Periodic cleanup tasks.

Scheduled by Celery beat (see rendezvous.celery). Each task:
- Opens its own database session
- Sets task logging context
- Logs a sweep_complete summary
- Never raises into the worker: failures are logged and the transaction rolled back
"""

from collections.abc import Callable

from sqlalchemy.orm import Session

from rendezvous.celery import celery_app
from rendezvous.db.session import get_session_factory
from rendezvous.logging import clear_task_context, configure_task_logging, get_logger
from rendezvous.services.liveness import sweep_stale_pings
from rendezvous.services.sessions import sweep_stale_sessions
from rendezvous.services.signaling import sweep_expired_requests

logger = get_logger(__name__)


def _run_sweep(
    task_name: str,
    task_id: str | None,
    request_id: str | None,
    sweep: Callable[[Session], dict[str, int]],
) -> dict[str, int]:
    configure_task_logging(request_id, task_name=task_name, task_id=task_id)
    db = get_session_factory()()
    try:
        counts = sweep(db)
        logger.info("sweep_complete", **counts)
        return counts
    except Exception as e:
        logger.error("sweep_error", error=str(e))
        db.rollback()
        return {}
    finally:
        db.close()
        clear_task_context()


def _sessions(db: Session) -> dict[str, int]:
    deactivated, deleted = sweep_stale_sessions(db)
    return {"deactivated": deactivated, "deleted": deleted}


def _connection_requests(db: Session) -> dict[str, int]:
    expired, purged = sweep_expired_requests(db)
    return {"expired": expired, "purged": purged}


def _liveness_pings(db: Session) -> dict[str, int]:
    return {"deleted": sweep_stale_pings(db)}


@celery_app.task(bind=True, max_retries=0, name="sweep_stale_sessions")
def sweep_stale_sessions_task(self, request_id: str | None = None) -> dict:
    """Mark stale sessions inactive, delete sessions past retention."""
    return _run_sweep("sweep_stale_sessions", self.request.id, request_id, _sessions)


@celery_app.task(bind=True, max_retries=0, name="sweep_expired_connection_requests")
def sweep_expired_connection_requests_task(self, request_id: str | None = None) -> dict:
    """Delete expired 'sent' requests and settled requests past retention."""
    return _run_sweep(
        "sweep_expired_connection_requests", self.request.id, request_id, _connection_requests
    )


@celery_app.task(bind=True, max_retries=0, name="sweep_stale_liveness_pings")
def sweep_stale_liveness_pings_task(self, request_id: str | None = None) -> dict:
    """Delete liveness pings past retention."""
    return _run_sweep("sweep_stale_liveness_pings", self.request.id, request_id, _liveness_pings)
