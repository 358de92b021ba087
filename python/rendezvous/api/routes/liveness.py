"""Liveness prober routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from rendezvous.api.deps import enforce_signal_rate_limit, get_db
from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.schemas.liveness import SendLivenessPingRequest
from rendezvous.services import liveness as liveness_service

router = APIRouter()


@router.post(
    "/liveness-pings",
    status_code=201,
    dependencies=[Depends(enforce_signal_rate_limit)],
)
def send_liveness_ping(
    body: SendLivenessPingRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Probe a session. Supersedes earlier probes from the same pinger to the same target."""
    result = liveness_service.send_liveness_ping(
        db, viewer.account_id, body.from_session_handle, body.to_session_handle
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/sessions/{handle}/liveness-pings/incoming")
def list_incoming_pings(
    handle: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = liveness_service.list_incoming_pings(db, viewer.account_id, handle)
    return success_response([p.model_dump(mode="json") for p in result])


@router.post("/liveness-pings/{ping_id}/respond", status_code=204)
def respond_liveness_ping(
    ping_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Answer a ping. Silent no-op if the ping is gone."""
    liveness_service.respond_liveness_ping(db, viewer.account_id, ping_id)
    return Response(status_code=204)


@router.get("/liveness-pings/{ping_id}")
def poll_liveness_ping(
    ping_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Current ping status, or null status once the ping no longer exists."""
    result = liveness_service.poll_liveness_ping(db, ping_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/liveness-pings/{ping_id}", status_code=204)
def dismiss_liveness_ping(
    ping_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Consume a ping after reading its result. Pinger only; idempotent."""
    liveness_service.dismiss_liveness_ping(db, viewer.account_id, ping_id)
    return Response(status_code=204)
