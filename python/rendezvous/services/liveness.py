"""Liveness prober service layer.

A liveness ping is a short-lived round trip used to verify that a specific
session can still take part in a new handshake right now, independent of how
recent its last heartbeat was.

Only the newest probe per (pinger, target) pair matters: sending a ping
deletes any earlier ones for the same pair. Late or duplicate responses are
harmless no-ops.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from rendezvous.auth.permissions import require_owned_session
from rendezvous.config import get_settings
from rendezvous.db.models import ClientSession, LivenessPing, LivenessPingStatus
from rendezvous.db.session import transaction
from rendezvous.errors import ApiErrorCode, UnauthorizedError
from rendezvous.logging import get_logger, handle_prefix
from rendezvous.schemas.liveness import LivenessPingOut, LivenessPingStatusOut

logger = get_logger(__name__)


def send_liveness_ping(
    db: Session, account_id: UUID, from_session_handle: str, to_session_handle: str
) -> LivenessPingOut:
    """Probe a target session, superseding earlier probes from the same pinger.

    The target need not exist; a ping to an unknown handle simply never gets a
    response and the caller times out.

    Raises:
        UnauthorizedError: Caller does not own the pinger session.
    """
    now = datetime.now(UTC)
    with transaction(db):
        require_owned_session(
            db, from_session_handle, account_id, missing_code=ApiErrorCode.E_UNAUTHORIZED
        )
        target_account_id = db.scalar(
            select(ClientSession.account_id).where(ClientSession.handle == to_session_handle)
        )

        db.execute(
            delete(LivenessPing)
            .where(
                LivenessPing.pinger_session_handle == from_session_handle,
                LivenessPing.target_session_handle == to_session_handle,
            )
            .execution_options(synchronize_session="fetch")
        )
        ping = LivenessPing(
            pinger_session_handle=from_session_handle,
            target_session_handle=to_session_handle,
            pinger_account_id=account_id,
            target_account_id=target_account_id,
            status=LivenessPingStatus.sent.value,
            created_at=now,
        )
        db.add(ping)
        db.flush()

    logger.info(
        "liveness_ping_sent",
        liveness_ping_id=str(ping.id),
        target_handle_prefix=handle_prefix(to_session_handle),
    )
    return LivenessPingOut.model_validate(ping)


def respond_liveness_ping(db: Session, account_id: UUID, ping_id: UUID) -> None:
    """Answer a ping addressed to one of the caller's sessions.

    A missing ping (superseded, dismissed or swept) is a silent no-op.

    Raises:
        UnauthorizedError: The ping targets a session the caller does not own.
    """
    now = datetime.now(UTC)
    with transaction(db):
        ping = db.scalar(select(LivenessPing).where(LivenessPing.id == ping_id))
        if ping is None:
            return
        if ping.target_account_id != account_id:
            raise UnauthorizedError(
                ApiErrorCode.E_UNAUTHORIZED, "Ping is not addressed to the caller"
            )
        db.execute(
            update(LivenessPing)
            .where(
                LivenessPing.id == ping_id,
                LivenessPing.status == LivenessPingStatus.sent.value,
            )
            .values(status=LivenessPingStatus.responded.value, responded_at=now)
            .execution_options(synchronize_session="fetch")
        )


def poll_liveness_ping(db: Session, ping_id: UUID) -> LivenessPingStatusOut:
    """Read-only status check. status is None once the ping no longer exists."""
    status = db.scalar(select(LivenessPing.status).where(LivenessPing.id == ping_id))
    return LivenessPingStatusOut(id=ping_id, status=status)


def list_incoming_pings(db: Session, account_id: UUID, session_handle: str) -> list[LivenessPingOut]:
    """Unanswered pings addressed to one of the caller's sessions.

    Raises:
        UnauthorizedError: Session is unknown or owned by someone else.
    """
    require_owned_session(db, session_handle, account_id, missing_code=ApiErrorCode.E_UNAUTHORIZED)
    pings = db.scalars(
        select(LivenessPing)
        .where(
            LivenessPing.target_session_handle == session_handle,
            LivenessPing.status == LivenessPingStatus.sent.value,
        )
        .order_by(LivenessPing.created_at.asc(), LivenessPing.id.asc())
    )
    return [LivenessPingOut.model_validate(p) for p in pings]


def dismiss_liveness_ping(db: Session, account_id: UUID, ping_id: UUID) -> None:
    """Consume a ping once the pinger has read its result. Idempotent.

    Raises:
        UnauthorizedError: Caller is not the pinger.
    """
    with transaction(db):
        ping = db.scalar(select(LivenessPing).where(LivenessPing.id == ping_id))
        if ping is None:
            return
        if ping.pinger_account_id != account_id:
            raise UnauthorizedError(ApiErrorCode.E_UNAUTHORIZED, "Only the pinger may dismiss")
        db.delete(ping)


def sweep_stale_pings(db: Session, now: datetime | None = None) -> int:
    """Delete pings older than the retention window, answered or not."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=get_settings().liveness_ping_retention_seconds)
    with transaction(db):
        deleted = db.execute(
            delete(LivenessPing)
            .where(LivenessPing.created_at <= cutoff)
            .execution_options(synchronize_session="fetch")
        ).rowcount
    return deleted
