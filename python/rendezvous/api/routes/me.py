"""Current account endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.responses import success_response
from rendezvous.schemas.accounts import MeOut

router = APIRouter()


@router.get("/me")
async def get_me(viewer: Annotated[Viewer, Depends(get_viewer)]) -> dict:
    """Return the account the bearer credential resolved to."""
    me = MeOut(account_id=viewer.account_id, username=viewer.username)
    return success_response(me.model_dump(mode="json"))
