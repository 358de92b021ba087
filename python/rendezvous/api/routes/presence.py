"""Presence discovery routes.

Browsing presence requires authentication only; signaling is friend-gated.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rendezvous.api.deps import get_db
from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.services import sessions as sessions_service

router = APIRouter()


@router.get("/presence")
def list_active_accounts(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List other accounts that have at least one live session."""
    result = sessions_service.list_active_accounts(db, viewer.account_id)
    return success_response([a.model_dump(mode="json") for a in result])


@router.get("/accounts/{username}/sessions")
def list_other_live_sessions(
    username: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List another account's live sessions."""
    result = sessions_service.list_live_sessions_for_username(db, viewer.account_id, username)
    return success_response([s.model_dump(mode="json") for s in result])
