"""Session registry routes.

Routes are transport-only:
- Extract the viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from rendezvous.api.deps import get_db
from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.services import sessions as sessions_service

router = APIRouter()


@router.post("/sessions", status_code=201)
def register_session(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Register a new live session for the viewer and return its handle."""
    result = sessions_service.register_session(db, viewer.account_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/sessions")
def list_live_sessions(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the viewer's own live sessions."""
    result = sessions_service.list_live_sessions(db, viewer.account_id)
    return success_response([s.model_dump(mode="json") for s in result])


@router.post("/sessions/{handle}/heartbeat")
def heartbeat(
    handle: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Refresh a session's heartbeat. Owner only."""
    result = sessions_service.heartbeat(db, viewer.account_id, handle)
    return success_response(result.model_dump(mode="json"))


@router.delete("/sessions/{handle}", status_code=204)
def deactivate_session(
    handle: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Detach a session. Idempotent; owner only."""
    sessions_service.deactivate_session(db, viewer.account_id, handle)
    return Response(status_code=204)
