"""Friend graph service layer.

Friendship is symmetric and stored once per unordered pair in canonical order
(lower account id first). Friend requests are directed, but carry the same
canonical pair so that "at most one pending request per pair, in either
direction" is enforced by a partial unique index rather than by the caller.

are_friends() is the sole authorization gate for signaling.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from rendezvous.auth.permissions import canonical_pair, live_session_clause, staleness_cutoff
from rendezvous.db.models import (
    Account,
    ClientSession,
    FriendRequest,
    FriendRequestStatus,
    Friendship,
)
from rendezvous.db.session import transaction
from rendezvous.errors import (
    ApiErrorCode,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from rendezvous.logging import get_logger
from rendezvous.schemas.friends import FriendOut, FriendRequestOut
from rendezvous.services.accounts import require_account_by_username

logger = get_logger(__name__)

FromAccount = aliased(Account)
ToAccount = aliased(Account)


def are_friends(db: Session, a: UUID, b: UUID) -> bool:
    """Canonical-order existence check; symmetric in a and b."""
    if a == b:
        return False
    low, high = canonical_pair(a, b)
    return _friendship_exists(db, low, high)


def _friendship_exists(db: Session, low: UUID, high: UUID) -> bool:
    return (
        db.scalar(
            select(Friendship.created_at).where(
                Friendship.account_low_id == low,
                Friendship.account_high_id == high,
            )
        )
        is not None
    )


def _pending_request_exists(db: Session, low: UUID, high: UUID) -> bool:
    return (
        db.scalar(
            select(FriendRequest.id).where(
                FriendRequest.account_low_id == low,
                FriendRequest.account_high_id == high,
                FriendRequest.status == FriendRequestStatus.pending.value,
            )
        )
        is not None
    )


def _request_query():
    return (
        select(FriendRequest, FromAccount.username, ToAccount.username)
        .join(FromAccount, FromAccount.id == FriendRequest.from_account_id)
        .join(ToAccount, ToAccount.id == FriendRequest.to_account_id)
    )


def _to_out(request: FriendRequest, from_username: str, to_username: str) -> FriendRequestOut:
    return FriendRequestOut(
        id=request.id,
        from_account_id=request.from_account_id,
        from_username=from_username,
        to_account_id=request.to_account_id,
        to_username=to_username,
        status=request.status,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


def send_friend_request(db: Session, from_account_id: UUID, to_username: str) -> FriendRequestOut:
    """Send a friend request to another account by username.

    Raises:
        NotFoundError(E_ACCOUNT_NOT_FOUND): Unknown username.
        InvalidRequestError(E_INVALID_ARGUMENT): Request to self.
        ConflictError(E_ALREADY_FRIENDS): The pair is already friends.
        ConflictError(E_REQUEST_EXISTS): A pending request exists in either direction.
    """
    to_account = require_account_by_username(db, to_username)
    if to_account.id == from_account_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_ARGUMENT, "Cannot send a friend request to yourself"
        )
    from_account = db.get(Account, from_account_id)
    if from_account is None:
        raise NotFoundError(ApiErrorCode.E_ACCOUNT_NOT_FOUND, "Account not found")

    low, high = canonical_pair(from_account_id, to_account.id)
    now = datetime.now(UTC)

    try:
        with transaction(db):
            if _friendship_exists(db, low, high):
                raise ConflictError(ApiErrorCode.E_ALREADY_FRIENDS, "Already friends")
            if _pending_request_exists(db, low, high):
                raise ConflictError(
                    ApiErrorCode.E_REQUEST_EXISTS, "A friend request is already pending"
                )

            request = FriendRequest(
                from_account_id=from_account_id,
                to_account_id=to_account.id,
                account_low_id=low,
                account_high_id=high,
                status=FriendRequestStatus.pending.value,
                created_at=now,
                updated_at=now,
            )
            db.add(request)
            db.flush()
    except IntegrityError:
        # Lost a race against a concurrent request for the same pair
        raise ConflictError(
            ApiErrorCode.E_REQUEST_EXISTS, "A friend request is already pending"
        ) from None

    logger.info("friend_request_sent", friend_request_id=str(request.id))
    return _to_out(request, from_account.username, to_account.username)


def respond_friend_request(
    db: Session, account_id: UUID, request_id: UUID, decision: str
) -> FriendRequestOut:
    """Accept or reject a pending friend request addressed to account_id.

    Acceptance flips the status and inserts the friendship edge in one
    transaction; the status flip is a conditional UPDATE so two concurrent
    responses cannot both succeed.

    Raises:
        InvalidRequestError: decision is not 'accepted' or 'rejected'.
        NotFoundError(E_FRIEND_REQUEST_NOT_FOUND): No such request.
        UnauthorizedError: Caller is not the recipient.
        ConflictError(E_INVALID_STATE): Request is no longer pending.
    """
    if decision not in (FriendRequestStatus.accepted.value, FriendRequestStatus.rejected.value):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_ARGUMENT, "Decision must be 'accepted' or 'rejected'"
        )

    now = datetime.now(UTC)
    with transaction(db):
        row = db.execute(_request_query().where(FriendRequest.id == request_id)).first()
        if row is None:
            raise NotFoundError(
                ApiErrorCode.E_FRIEND_REQUEST_NOT_FOUND, "Friend request not found"
            )
        request, from_username, to_username = row

        if request.to_account_id != account_id:
            raise UnauthorizedError(
                ApiErrorCode.E_UNAUTHORIZED, "Only the recipient may respond to this request"
            )

        result = db.execute(
            update(FriendRequest)
            .where(
                FriendRequest.id == request_id,
                FriendRequest.status == FriendRequestStatus.pending.value,
            )
            .values(status=decision, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise ConflictError(ApiErrorCode.E_INVALID_STATE, "Friend request is not pending")

        if decision == FriendRequestStatus.accepted.value:
            db.add(
                Friendship(
                    account_low_id=request.account_low_id,
                    account_high_id=request.account_high_id,
                    created_at=now,
                )
            )

    db.refresh(request)
    logger.info(
        "friend_request_responded", friend_request_id=str(request_id), decision=decision
    )
    return _to_out(request, from_username, to_username)


def list_incoming_requests(db: Session, account_id: UUID) -> list[FriendRequestOut]:
    """Pending requests addressed to the account, newest first."""
    rows = db.execute(
        _request_query()
        .where(
            FriendRequest.to_account_id == account_id,
            FriendRequest.status == FriendRequestStatus.pending.value,
        )
        .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    ).all()
    return [_to_out(*row) for row in rows]


def list_outgoing_requests(db: Session, account_id: UUID) -> list[FriendRequestOut]:
    """Pending requests sent by the account, newest first."""
    rows = db.execute(
        _request_query()
        .where(
            FriendRequest.from_account_id == account_id,
            FriendRequest.status == FriendRequestStatus.pending.value,
        )
        .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    ).all()
    return [_to_out(*row) for row in rows]


def pending_request_count(db: Session, account_id: UUID) -> int:
    return db.scalar(
        select(func.count())
        .select_from(FriendRequest)
        .where(
            FriendRequest.to_account_id == account_id,
            FriendRequest.status == FriendRequestStatus.pending.value,
        )
    ) or 0


def list_friends(db: Session, account_id: UUID) -> list[FriendOut]:
    """List the account's friends with a presence summary, sorted by username."""
    edges = db.scalars(
        select(Friendship).where(
            or_(
                Friendship.account_low_id == account_id,
                Friendship.account_high_id == account_id,
            )
        )
    ).all()
    if not edges:
        return []

    friends_since: dict[UUID, datetime] = {}
    for edge in edges:
        other = edge.account_high_id if edge.account_low_id == account_id else edge.account_low_id
        friends_since[other] = edge.created_at

    friend_ids = list(friends_since)
    cutoff = staleness_cutoff(datetime.now(UTC))

    accounts = db.scalars(select(Account).where(Account.id.in_(friend_ids))).all()
    live_counts = dict(
        db.execute(
            select(ClientSession.account_id, func.count())
            .where(ClientSession.account_id.in_(friend_ids), live_session_clause(cutoff))
            .group_by(ClientSession.account_id)
        ).all()
    )
    last_seen = dict(
        db.execute(
            select(ClientSession.account_id, func.max(ClientSession.last_heartbeat_at))
            .where(ClientSession.account_id.in_(friend_ids))
            .group_by(ClientSession.account_id)
        ).all()
    )

    friends = [
        FriendOut(
            account_id=account.id,
            username=account.username,
            is_online=live_counts.get(account.id, 0) > 0,
            live_session_count=live_counts.get(account.id, 0),
            last_seen=last_seen.get(account.id),
            friends_since=friends_since[account.id],
        )
        for account in accounts
    ]
    friends.sort(key=lambda f: f.username)
    return friends


def unfriend(db: Session, account_id: UUID, other_username: str) -> None:
    """Remove the friendship with another account. Idempotent.

    Raises:
        NotFoundError(E_ACCOUNT_NOT_FOUND): Unknown username.
    """
    other = require_account_by_username(db, other_username)
    if other.id == account_id:
        return
    low, high = canonical_pair(account_id, other.id)

    with transaction(db):
        result = db.execute(
            delete(Friendship)
            .where(Friendship.account_low_id == low, Friendship.account_high_id == high)
            .execution_options(synchronize_session="fetch")
        )

    if result.rowcount:
        logger.info("friendship_removed")
