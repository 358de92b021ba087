"""Health check endpoint for load balancers and the worker's smoke checks."""

from fastapi import APIRouter

from rendezvous.responses import success_response
from rendezvous.services.rate_limit import get_rate_limiter

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Process liveness. Never touches the database.

    Reports whether signaling writes are being rate limited; without Redis the
    limiter fails open and the coordinator still serves traffic.
    """
    limiter = "redis" if get_rate_limiter().redis_available else "disabled"
    return success_response({"status": "ok", "rate_limiter": limiter})
