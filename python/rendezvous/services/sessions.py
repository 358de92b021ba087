"""Session registry service layer.

A session is one live client attachment (device/tab) of an account. Rows are
refreshed by heartbeats from the owning client; a row whose heartbeat is older
than the staleness window is treated as dead by every read path here, even
before sweep_stale_sessions marks or deletes it.

Routes may not contain domain logic or raw DB access - they must call these functions.
"""

from collections import defaultdict
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from rendezvous.auth.permissions import (
    live_session_clause,
    require_owned_session,
    staleness_cutoff,
)
from rendezvous.config import get_settings
from rendezvous.db.models import Account, ClientSession
from rendezvous.db.session import transaction
from rendezvous.errors import ApiErrorCode, UnauthorizedError
from rendezvous.logging import get_logger, handle_prefix
from rendezvous.schemas.sessions import (
    AccountPresenceOut,
    HeartbeatOut,
    RegisterSessionOut,
    SessionOut,
)
from rendezvous.services.accounts import generate_token, require_account_by_username

logger = get_logger(__name__)

SESSION_HANDLE_LENGTH = 32


def register_session(db: Session, account_id: UUID) -> RegisterSessionOut:
    """Register a new live session for the account.

    The handle is a fresh random token; the space is large enough that no
    collision handling is attempted beyond the unique constraint.
    """
    settings = get_settings()
    now = datetime.now(UTC)
    handle = generate_token(SESSION_HANDLE_LENGTH)

    with transaction(db):
        db.add(
            ClientSession(
                handle=handle,
                account_id=account_id,
                is_active=True,
                last_heartbeat_at=now,
                created_at=now,
                updated_at=now,
            )
        )

    logger.info("session_registered", handle_prefix=handle_prefix(handle))
    return RegisterSessionOut(
        handle=handle,
        heartbeat_interval_seconds=settings.heartbeat_interval_seconds,
        staleness_seconds=settings.session_staleness_seconds,
        created_at=now,
    )


def heartbeat(db: Session, account_id: UUID, handle: str) -> HeartbeatOut:
    """Refresh a session's heartbeat and mark it active.

    Raises:
        NotFoundError(E_SESSION_NOT_FOUND): No such session.
        UnauthorizedError: Session belongs to another account. Nothing is written.
    """
    now = datetime.now(UTC)
    with transaction(db):
        require_owned_session(db, handle, account_id)
        # Owner is re-checked in the WHERE so the write can't land on a foreign row.
        result = db.execute(
            update(ClientSession)
            .where(ClientSession.handle == handle, ClientSession.account_id == account_id)
            .values(last_heartbeat_at=now, is_active=True, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise UnauthorizedError(ApiErrorCode.E_UNAUTHORIZED, "Session not owned by caller")

    return HeartbeatOut(handle=handle, last_heartbeat_at=now)


def deactivate_session(db: Session, account_id: UUID, handle: str) -> None:
    """Detach a session. Idempotent: an unknown handle is a no-op.

    Raises:
        UnauthorizedError: Session belongs to another account.
    """
    with transaction(db):
        session = db.scalar(select(ClientSession).where(ClientSession.handle == handle))
        if session is None:
            return
        if session.account_id != account_id:
            raise UnauthorizedError(ApiErrorCode.E_UNAUTHORIZED, "Session not owned by caller")
        db.delete(session)

    logger.info("session_deactivated", handle_prefix=handle_prefix(handle))


def _live_sessions_for(db: Session, account_id: UUID, now: datetime) -> list[ClientSession]:
    return list(
        db.scalars(
            select(ClientSession)
            .where(
                ClientSession.account_id == account_id,
                live_session_clause(staleness_cutoff(now)),
            )
            .order_by(ClientSession.created_at.asc(), ClientSession.handle.asc())
        )
    )


def list_live_sessions(db: Session, account_id: UUID) -> list[SessionOut]:
    """List the caller's own live sessions, oldest first."""
    sessions = _live_sessions_for(db, account_id, datetime.now(UTC))
    return [SessionOut.model_validate(s) for s in sessions]


def list_live_sessions_for_username(
    db: Session, requester_id: UUID, username: str
) -> list[SessionOut]:
    """List another account's live sessions (presence discovery).

    Any authenticated requester may browse presence; friendship is only
    required to signal.

    Raises:
        NotFoundError(E_ACCOUNT_NOT_FOUND): Unknown username.
    """
    account = require_account_by_username(db, username)
    sessions = _live_sessions_for(db, account.id, datetime.now(UTC))
    return [SessionOut.model_validate(s) for s in sessions]


def list_active_accounts(db: Session, requester_id: UUID) -> list[AccountPresenceOut]:
    """List every other account that currently has at least one live session."""
    cutoff = staleness_cutoff(datetime.now(UTC))
    rows = db.execute(
        select(ClientSession, Account.username)
        .join(Account, Account.id == ClientSession.account_id)
        .where(ClientSession.account_id != requester_id, live_session_clause(cutoff))
        .order_by(Account.username.asc(), ClientSession.created_at.asc())
    ).all()

    by_account: dict[UUID, list[ClientSession]] = defaultdict(list)
    usernames: dict[UUID, str] = {}
    for session, username in rows:
        by_account[session.account_id].append(session)
        usernames[session.account_id] = username

    return [
        AccountPresenceOut(
            account_id=account_id,
            username=usernames[account_id],
            sessions=[SessionOut.model_validate(s) for s in sessions],
        )
        for account_id, sessions in by_account.items()
    ]


def sweep_stale_sessions(db: Session, now: datetime | None = None) -> tuple[int, int]:
    """Mark stale sessions inactive and delete rows past the retention bound.

    Returns:
        (deactivated_count, deleted_count)
    """
    settings = get_settings()
    now = now or datetime.now(UTC)
    retention_cutoff = now - timedelta(seconds=settings.session_retention_seconds)

    with transaction(db):
        deactivated = db.execute(
            update(ClientSession)
            .where(
                ClientSession.is_active.is_(True),
                ClientSession.last_heartbeat_at <= staleness_cutoff(now),
            )
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        deleted = db.execute(
            delete(ClientSession)
            .where(ClientSession.last_heartbeat_at <= retention_cutoff)
            .execution_options(synchronize_session="fetch")
        ).rowcount

    return deactivated, deleted
