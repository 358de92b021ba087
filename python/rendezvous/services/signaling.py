"""Connection request coordinator: the signaling state machine.

A connection request relays one handshake payload (offer) from an initiating
session to a target session and one counter-payload (answer) back:

    sent --reply--> replied --complete--> completed
      \\--complete---------------------> completed
      \\--expiry (sweep)--> deleted

Every mutation runs its precondition checks and its write inside a single
transaction, and the status transitions are conditional UPDATEs keyed on the
expected current status, so a stale client view loses deterministically with
E_INVALID_STATE instead of racing.

A request still 'sent' after the expiry window is treated as gone by every
read and write path, even before sweep_expired_requests deletes it.
"""

import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from rendezvous.auth.permissions import (
    find_live_session,
    is_connection_participant,
    require_owned_live_session,
    require_owned_session,
)
from rendezvous.config import get_settings
from rendezvous.db.models import Account, ConnectionRequest, ConnectionRequestStatus
from rendezvous.db.session import transaction
from rendezvous.errors import (
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from rendezvous.logging import get_logger, handle_prefix
from rendezvous.schemas.signaling import ConnectionRequestOut
from rendezvous.services.friends import are_friends

logger = get_logger(__name__)

SENT = ConnectionRequestStatus.sent.value
REPLIED = ConnectionRequestStatus.replied.value
COMPLETED = ConnectionRequestStatus.completed.value
OUTSTANDING = (SENT, REPLIED)


def _expiry_cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=get_settings().connection_request_expiry_seconds)


def _not_expired_clause(now: datetime) -> ColumnElement[bool]:
    """SQL predicate excluding 'sent' requests older than the expiry window."""
    return or_(
        ConnectionRequest.status != SENT,
        ConnectionRequest.created_at > _expiry_cutoff(now),
    )


def validate_handshake_payload(payload: Any, field: str) -> None:
    """Reject empty or oversized handshake payloads.

    Raises:
        InvalidRequestError(E_INVALID_ARGUMENT): Payload is null or empty.
        InvalidRequestError(E_PAYLOAD_TOO_LARGE): Serialized payload exceeds the cap.
    """
    if payload is None or payload == "" or payload == {}:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_ARGUMENT, f"{field} must not be empty")
    size = len(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    limit = get_settings().max_handshake_payload_bytes
    if size > limit:
        raise InvalidRequestError(
            ApiErrorCode.E_PAYLOAD_TOO_LARGE, f"{field} exceeds {limit} bytes"
        )


def _load_request(db: Session, request_id: UUID, now: datetime) -> ConnectionRequest:
    request = db.scalar(
        select(ConnectionRequest).where(
            ConnectionRequest.id == request_id,
            _not_expired_clause(now),
        )
    )
    if request is None:
        raise NotFoundError(
            ApiErrorCode.E_CONNECTION_REQUEST_NOT_FOUND, "Connection request not found"
        )
    return request


def open_connection_request(
    db: Session,
    account_id: UUID,
    from_session_handle: str,
    to_session_handle: str,
    offer: Any,
) -> ConnectionRequestOut:
    """Open a connection request from one of the caller's sessions to a peer session.

    Preconditions, checked in order:
    1. Caller owns a live from-session (E_SESSION_NOT_FOUND / E_UNAUTHORIZED)
    2. The to-session exists and is live (E_TARGET_UNAVAILABLE)
    3. The owning accounts are friends (E_NOT_FRIENDS)
    4. No outstanding request exists for this ordered session pair (E_DUPLICATE_REQUEST)

    Same-handle and payload checks run after (1), so a foreign or unknown
    from-session never gets a payload error.

    A request in the opposite direction is not a duplicate; see should_initiate
    in the client for the tie-break.
    """
    now = datetime.now(UTC)
    try:
        with transaction(db):
            require_owned_live_session(db, from_session_handle, account_id, now)
            if from_session_handle == to_session_handle:
                raise InvalidRequestError(
                    ApiErrorCode.E_INVALID_ARGUMENT,
                    "Cannot open a connection request to the same session",
                )
            validate_handshake_payload(offer, "offer")

            target = find_live_session(db, to_session_handle, now)
            if target is None:
                raise ConflictError(
                    ApiErrorCode.E_TARGET_UNAVAILABLE, "Target session is not live"
                )

            if not are_friends(db, account_id, target.account_id):
                raise ForbiddenError(
                    ApiErrorCode.E_NOT_FRIENDS, "Connection requests are limited to friends"
                )

            # A dead 'sent' request for this pair must not block a fresh attempt.
            db.execute(
                delete(ConnectionRequest)
                .where(
                    ConnectionRequest.from_session_handle == from_session_handle,
                    ConnectionRequest.to_session_handle == to_session_handle,
                    ConnectionRequest.status == SENT,
                    ConnectionRequest.created_at <= _expiry_cutoff(now),
                )
                .execution_options(synchronize_session="fetch")
            )

            existing = db.scalar(
                select(ConnectionRequest.id).where(
                    ConnectionRequest.from_session_handle == from_session_handle,
                    ConnectionRequest.to_session_handle == to_session_handle,
                    ConnectionRequest.status.in_(OUTSTANDING),
                )
            )
            if existing is not None:
                raise ConflictError(
                    ApiErrorCode.E_DUPLICATE_REQUEST,
                    "A connection request between these sessions is already in progress",
                )

            from_username = db.scalar(select(Account.username).where(Account.id == account_id))
            request = ConnectionRequest(
                from_session_handle=from_session_handle,
                to_session_handle=to_session_handle,
                from_account_id=account_id,
                to_account_id=target.account_id,
                from_username=from_username,
                offer=offer,
                answer=None,
                status=SENT,
                created_at=now,
                updated_at=now,
            )
            db.add(request)
            db.flush()
    except IntegrityError:
        raise ConflictError(
            ApiErrorCode.E_DUPLICATE_REQUEST,
            "A connection request between these sessions is already in progress",
        ) from None

    logger.info(
        "connection_request_opened",
        connection_request_id=str(request.id),
        from_handle_prefix=handle_prefix(from_session_handle),
        to_handle_prefix=handle_prefix(to_session_handle),
    )
    return ConnectionRequestOut.model_validate(request)


def reply_connection_request(
    db: Session, account_id: UUID, request_id: UUID, answer: Any
) -> ConnectionRequestOut:
    """Store the counter-payload and move sent -> replied.

    Raises:
        NotFoundError(E_CONNECTION_REQUEST_NOT_FOUND): Missing or expired.
        UnauthorizedError: Caller does not own the target session.
        ConflictError(E_INVALID_STATE): Request is not 'sent' (e.g. already answered).
    """
    validate_handshake_payload(answer, "answer")
    now = datetime.now(UTC)

    with transaction(db):
        request = _load_request(db, request_id, now)
        if request.to_account_id != account_id:
            raise UnauthorizedError(
                ApiErrorCode.E_UNAUTHORIZED, "Only the target session may reply"
            )
        if request.status != SENT:
            raise ConflictError(
                ApiErrorCode.E_INVALID_STATE, f"Cannot reply to a request that is {request.status}"
            )

        result = db.execute(
            update(ConnectionRequest)
            .where(ConnectionRequest.id == request_id, ConnectionRequest.status == SENT)
            .values(answer=answer, status=REPLIED, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise ConflictError(ApiErrorCode.E_INVALID_STATE, "Connection request already answered")

    db.refresh(request)
    logger.info("connection_request_replied", connection_request_id=str(request_id))
    return ConnectionRequestOut.model_validate(request)


def complete_connection_request(
    db: Session, account_id: UUID, request_id: UUID
) -> ConnectionRequestOut:
    """Mark a request completed. Either participant may call it; repeat calls are no-ops.

    Raises:
        NotFoundError(E_CONNECTION_REQUEST_NOT_FOUND): Missing or expired.
        UnauthorizedError: Caller is not a participant.
    """
    now = datetime.now(UTC)
    with transaction(db):
        request = _load_request(db, request_id, now)
        if not is_connection_participant(request, account_id):
            raise UnauthorizedError(
                ApiErrorCode.E_UNAUTHORIZED, "Not a participant in this connection request"
            )
        if request.status != COMPLETED:
            db.execute(
                update(ConnectionRequest)
                .where(
                    ConnectionRequest.id == request_id,
                    ConnectionRequest.status.in_(OUTSTANDING),
                )
                .values(status=COMPLETED, updated_at=now)
                .execution_options(synchronize_session="fetch")
            )

    db.refresh(request)
    logger.info("connection_request_completed", connection_request_id=str(request_id))
    return ConnectionRequestOut.model_validate(request)


def get_connection_request(
    db: Session, account_id: UUID, request_id: UUID
) -> ConnectionRequestOut:
    """Read a request's current state. Only the two participants may read it.

    Raises:
        NotFoundError(E_CONNECTION_REQUEST_NOT_FOUND): Missing or expired.
        UnauthorizedError: Caller is not a participant.
    """
    request = _load_request(db, request_id, datetime.now(UTC))
    if not is_connection_participant(request, account_id):
        raise UnauthorizedError(
            ApiErrorCode.E_UNAUTHORIZED, "Not a participant in this connection request"
        )
    return ConnectionRequestOut.model_validate(request)


def list_incoming(db: Session, account_id: UUID, session_handle: str) -> list[ConnectionRequestOut]:
    """Unanswered requests addressed to one of the caller's sessions, oldest first.

    Raises:
        UnauthorizedError: Session is unknown or owned by someone else.
    """
    require_owned_session(db, session_handle, account_id, missing_code=ApiErrorCode.E_UNAUTHORIZED)
    now = datetime.now(UTC)
    requests = db.scalars(
        select(ConnectionRequest)
        .where(
            ConnectionRequest.to_session_handle == session_handle,
            ConnectionRequest.status == SENT,
            ConnectionRequest.created_at > _expiry_cutoff(now),
        )
        .order_by(ConnectionRequest.created_at.asc(), ConnectionRequest.id.asc())
    )
    return [ConnectionRequestOut.model_validate(r) for r in requests]


def list_outgoing(db: Session, account_id: UUID, session_handle: str) -> list[ConnectionRequestOut]:
    """Outstanding requests opened by one of the caller's sessions, oldest first.

    Raises:
        UnauthorizedError: Session is unknown or owned by someone else.
    """
    require_owned_session(db, session_handle, account_id, missing_code=ApiErrorCode.E_UNAUTHORIZED)
    now = datetime.now(UTC)
    requests = db.scalars(
        select(ConnectionRequest)
        .where(
            ConnectionRequest.from_session_handle == session_handle,
            ConnectionRequest.status.in_(OUTSTANDING),
            _not_expired_clause(now),
        )
        .order_by(ConnectionRequest.created_at.asc(), ConnectionRequest.id.asc())
    )
    return [ConnectionRequestOut.model_validate(r) for r in requests]


def sweep_expired_requests(db: Session, now: datetime | None = None) -> tuple[int, int]:
    """Delete expired 'sent' requests and settled requests past retention.

    Expiry is a hard cutoff: the initiator must open a fresh request with a new offer.

    Returns:
        (expired_count, purged_count)
    """
    settings = get_settings()
    now = now or datetime.now(UTC)
    retention_cutoff = now - timedelta(seconds=settings.connection_request_retention_seconds)

    with transaction(db):
        expired = db.execute(
            delete(ConnectionRequest)
            .where(
                ConnectionRequest.status == SENT,
                ConnectionRequest.created_at <= _expiry_cutoff(now),
            )
            .execution_options(synchronize_session="fetch")
        ).rowcount
        purged = db.execute(
            delete(ConnectionRequest)
            .where(
                and_(
                    ConnectionRequest.status.in_((REPLIED, COMPLETED)),
                    ConnectionRequest.updated_at <= retention_cutoff,
                )
            )
            .execution_options(synchronize_session="fetch")
        ).rowcount

    return expired, purged
