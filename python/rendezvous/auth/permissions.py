"""Authorization predicates and ownership guards.

These helpers are the single source of truth for "who may touch what":
- Session ownership (single-writer per session row)
- Session liveness (active AND heartbeat inside the staleness window)
- Connection request participation
- Canonical ordering of an unordered account pair

Liveness is always evaluated in SQL against a cutoff timestamp so that every
read path agrees on it regardless of the database's datetime handling.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from rendezvous.config import get_settings
from rendezvous.db.models import ClientSession, ConnectionRequest
from rendezvous.errors import ApiErrorCode, NotFoundError, UnauthorizedError


def canonical_pair(a: UUID, b: UUID) -> tuple[UUID, UUID]:
    """Order two account ids so the lower one comes first."""
    return (a, b) if a < b else (b, a)


def staleness_cutoff(now: datetime) -> datetime:
    """Heartbeats at or before this instant no longer count as live."""
    return now - timedelta(seconds=get_settings().session_staleness_seconds)


def live_session_clause(cutoff: datetime) -> ColumnElement[bool]:
    """SQL predicate: the session is active and heartbeated after cutoff."""
    return and_(
        ClientSession.is_active.is_(True),
        ClientSession.last_heartbeat_at > cutoff,
    )


def require_owned_session(
    db: Session,
    handle: str,
    account_id: UUID,
    missing_code: ApiErrorCode = ApiErrorCode.E_SESSION_NOT_FOUND,
) -> ClientSession:
    """Load a session and check that account_id owns it.

    Args:
        missing_code: Error code when the handle is unknown. Operations that must
            not reveal whether a foreign handle exists pass E_UNAUTHORIZED here.

    Raises:
        NotFoundError: Session does not exist (unless missing_code is E_UNAUTHORIZED).
        UnauthorizedError: Session is owned by another account.
    """
    session = db.scalar(select(ClientSession).where(ClientSession.handle == handle))
    if session is None:
        if missing_code == ApiErrorCode.E_UNAUTHORIZED:
            raise UnauthorizedError(missing_code, "Session not owned by caller")
        raise NotFoundError(missing_code, "Session not found")
    if session.account_id != account_id:
        raise UnauthorizedError(ApiErrorCode.E_UNAUTHORIZED, "Session not owned by caller")
    return session


def require_owned_live_session(
    db: Session, handle: str, account_id: UUID, now: datetime
) -> ClientSession:
    """Like require_owned_session, but a stale or inactive session counts as gone.

    Raises:
        NotFoundError(E_SESSION_NOT_FOUND): Session missing or not live.
        UnauthorizedError: Session is owned by another account.
    """
    row = db.execute(
        select(ClientSession, live_session_clause(staleness_cutoff(now)).label("is_live")).where(
            ClientSession.handle == handle
        )
    ).first()
    if row is None:
        raise NotFoundError(ApiErrorCode.E_SESSION_NOT_FOUND, "Session not found")
    session, is_live = row
    if session.account_id != account_id:
        raise UnauthorizedError(ApiErrorCode.E_UNAUTHORIZED, "Session not owned by caller")
    if not is_live:
        raise NotFoundError(ApiErrorCode.E_SESSION_NOT_FOUND, "Session is no longer live")
    return session


def find_live_session(db: Session, handle: str, now: datetime) -> ClientSession | None:
    """Return the session if it exists and is live, else None."""
    return db.scalar(
        select(ClientSession).where(
            ClientSession.handle == handle,
            live_session_clause(staleness_cutoff(now)),
        )
    )


def is_connection_participant(request: ConnectionRequest, account_id: UUID) -> bool:
    """True iff account_id owns either end of the connection request."""
    return account_id in (request.from_account_id, request.to_account_id)
