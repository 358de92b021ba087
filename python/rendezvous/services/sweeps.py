"""Periodic cleanup entrypoints.

Each sweep is safe to run concurrently with live traffic: read paths already
treat stale rows as gone, so a sweep only bounds storage.
"""

from datetime import UTC, datetime

from sqlalchemy.orm import Session

from rendezvous.logging import get_logger
from rendezvous.schemas.signaling import SweepResultOut
from rendezvous.services.liveness import sweep_stale_pings
from rendezvous.services.sessions import sweep_stale_sessions
from rendezvous.services.signaling import sweep_expired_requests

logger = get_logger(__name__)


def run_all_sweeps(db: Session, now: datetime | None = None) -> SweepResultOut:
    """Run every sweep once against the same clock reading."""
    now = now or datetime.now(UTC)

    deactivated, deleted = sweep_stale_sessions(db, now)
    expired, purged = sweep_expired_requests(db, now)
    pings_deleted = sweep_stale_pings(db, now)

    result = SweepResultOut(
        sessions_deactivated=deactivated,
        sessions_deleted=deleted,
        connection_requests_expired=expired,
        connection_requests_purged=purged,
        liveness_pings_deleted=pings_deleted,
    )
    logger.info("sweep_complete", **result.model_dump())
    return result
