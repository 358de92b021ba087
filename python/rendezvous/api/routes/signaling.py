"""Connection request (signaling) routes.

Routes are transport-only:
- Extract the viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError

Clients poll these reads; there is no server push.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rendezvous.api.deps import enforce_signal_rate_limit, get_db
from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.schemas.signaling import (
    OpenConnectionRequestRequest,
    ReplyConnectionRequestRequest,
)
from rendezvous.services import signaling as signaling_service

router = APIRouter()


@router.post(
    "/connection-requests",
    status_code=201,
    dependencies=[Depends(enforce_signal_rate_limit)],
)
def open_connection_request(
    body: OpenConnectionRequestRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Open a connection request carrying the offer to a friend's live session."""
    result = signaling_service.open_connection_request(
        db,
        viewer.account_id,
        body.from_session_handle,
        body.to_session_handle,
        body.offer,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/sessions/{handle}/connection-requests/incoming")
def list_incoming_connection_requests(
    handle: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Unanswered requests addressed to one of the viewer's sessions."""
    result = signaling_service.list_incoming(db, viewer.account_id, handle)
    return success_response([r.model_dump(mode="json") for r in result])


@router.get("/sessions/{handle}/connection-requests/outgoing")
def list_outgoing_connection_requests(
    handle: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = signaling_service.list_outgoing(db, viewer.account_id, handle)
    return success_response([r.model_dump(mode="json") for r in result])


@router.get("/connection-requests/{request_id}")
def check_connection_request_status(
    request_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Read a request's status (and answer, once replied). Participants only."""
    result = signaling_service.get_connection_request(db, viewer.account_id, request_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/connection-requests/{request_id}/reply")
def reply_connection_request(
    request_id: UUID,
    body: ReplyConnectionRequestRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Attach the answer to a 'sent' request. Target session owner only."""
    result = signaling_service.reply_connection_request(
        db, viewer.account_id, request_id, body.answer
    )
    return success_response(result.model_dump(mode="json"))


@router.post("/connection-requests/{request_id}/complete")
def complete_connection_request(
    request_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Mark the direct channel open. Either participant; idempotent."""
    result = signaling_service.complete_connection_request(db, viewer.account_id, request_id)
    return success_response(result.model_dump(mode="json"))
