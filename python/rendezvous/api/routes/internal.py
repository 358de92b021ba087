"""Internal-only operator routes.

Guarded by the X-Rendezvous-Internal header in AuthMiddleware; no viewer.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rendezvous.api.deps import get_db
from rendezvous.responses import success_response
from rendezvous.services.sweeps import run_all_sweeps

router = APIRouter()


@router.post("/internal/sweeps")
def run_sweeps(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Run every cleanup sweep once, synchronously.

    For deployments that do not run Celery beat.
    """
    result = run_all_sweeps(db)
    return success_response(result.model_dump(mode="json"))
