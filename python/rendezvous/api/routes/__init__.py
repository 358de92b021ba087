"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from rendezvous.api.routes.friends import router as friends_router
from rendezvous.api.routes.health import router as health_router
from rendezvous.api.routes.internal import router as internal_router
from rendezvous.api.routes.liveness import router as liveness_router
from rendezvous.api.routes.me import router as me_router
from rendezvous.api.routes.presence import router as presence_router
from rendezvous.api.routes.sessions import router as sessions_router
from rendezvous.api.routes.signaling import router as signaling_router


def create_api_router() -> APIRouter:
    """Create and configure the API router with all routes registered."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["account"])
    api_router.include_router(sessions_router, tags=["sessions"])
    api_router.include_router(presence_router, tags=["presence"])
    api_router.include_router(friends_router, tags=["friends"])
    api_router.include_router(signaling_router, tags=["signaling"])
    api_router.include_router(liveness_router, tags=["liveness"])
    api_router.include_router(internal_router, tags=["internal"])
    return api_router


__all__ = ["create_api_router"]
