"""Friend graph routes.

Routes are transport-only. Static /friend-requests/* reads are registered
before the /friend-requests/{request_id} routes.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from rendezvous.api.deps import enforce_signal_rate_limit, get_db
from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.schemas.friends import (
    PendingRequestCountOut,
    RespondFriendRequestRequest,
    SendFriendRequestRequest,
)
from rendezvous.services import friends as friends_service

router = APIRouter()


# =============================================================================
# Friend requests
# =============================================================================


@router.post(
    "/friend-requests",
    status_code=201,
    dependencies=[Depends(enforce_signal_rate_limit)],
)
def send_friend_request(
    body: SendFriendRequestRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Send a friend request to an account by username."""
    result = friends_service.send_friend_request(db, viewer.account_id, body.to_username)
    return success_response(result.model_dump(mode="json"))


@router.get("/friend-requests/incoming")
def list_incoming_friend_requests(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = friends_service.list_incoming_requests(db, viewer.account_id)
    return success_response([r.model_dump(mode="json") for r in result])


@router.get("/friend-requests/outgoing")
def list_outgoing_friend_requests(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = friends_service.list_outgoing_requests(db, viewer.account_id)
    return success_response([r.model_dump(mode="json") for r in result])


@router.get("/friend-requests/count")
def pending_friend_request_count(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Number of pending requests addressed to the viewer."""
    count = friends_service.pending_request_count(db, viewer.account_id)
    return success_response(PendingRequestCountOut(count=count).model_dump(mode="json"))


@router.post("/friend-requests/{request_id}/respond")
def respond_friend_request(
    request_id: UUID,
    body: RespondFriendRequestRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Accept or reject a pending request. Recipient only."""
    result = friends_service.respond_friend_request(
        db, viewer.account_id, request_id, body.decision
    )
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Friendships
# =============================================================================


@router.get("/friends")
def list_friends(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the viewer's friends with online status."""
    result = friends_service.list_friends(db, viewer.account_id)
    return success_response([f.model_dump(mode="json") for f in result])


@router.delete("/friends/{username}", status_code=204)
def unfriend(
    username: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Remove a friendship. Idempotent."""
    friends_service.unfriend(db, viewer.account_id, username)
    return Response(status_code=204)
