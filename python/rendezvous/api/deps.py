"""FastAPI dependencies for route handlers.

Common dependencies like database sessions and per-account rate limiting.
"""

from typing import Annotated

from fastapi import Depends

from rendezvous.auth.middleware import Viewer, get_viewer
from rendezvous.db.session import get_db, get_session_factory
from rendezvous.services.rate_limit import RateLimiter, get_rate_limiter

__all__ = ["get_db", "get_session_factory", "get_limiter", "enforce_signal_rate_limit"]


def get_limiter() -> RateLimiter:
    """Get the process-wide rate limiter configured at startup."""
    return get_rate_limiter()


def enforce_signal_rate_limit(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    limiter: Annotated[RateLimiter, Depends(get_limiter)],
) -> None:
    """Count one signaling write against the viewer's per-minute budget.

    Raises:
        RateLimitedError: Budget exhausted.
    """
    limiter.check_rpm_limit(viewer.account_id)
