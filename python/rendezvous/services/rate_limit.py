"""Rate limiting service using Redis.

Caps signaling writes per account (friend requests, connection request opens,
liveness pings) with a sliding one-minute window.

Redis keys:
- rate:rpm:{account_id} - Sorted set of request timestamps inside the window

Fail modes:
- Redis unavailable or erroring: fail open (the request is allowed and a warning logged)
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from rendezvous.errors import RateLimitedError
from rendezvous.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RPM_LIMIT = 60
RPM_WINDOW_SECONDS = 60


class RateLimiter:
    """Per-account requests-per-minute limiter backed by Redis.

    Thread-safe for use in FastAPI endpoints.
    """

    def __init__(self, redis_client=None, rpm_limit: int = DEFAULT_RPM_LIMIT):
        """Initialize rate limiter.

        Args:
            redis_client: Redis client instance (sync). If None, limits are not enforced.
            rpm_limit: Maximum signaling writes per minute per account.
        """
        self._redis = redis_client
        self._rpm_limit = rpm_limit

    @property
    def rpm_limit(self) -> int:
        return self._rpm_limit

    @property
    def redis_available(self) -> bool:
        """Check if Redis is available."""
        if self._redis is None:
            return False
        try:
            self._redis.ping()
            return True
        except Exception:
            return False

    def check_rpm_limit(self, account_id: UUID, action: str = "signal") -> None:
        """Record one request and reject it if the window is over the limit.

        Fails open if Redis unavailable.

        Raises:
            RateLimitedError: If the per-minute limit is exceeded.
        """
        if not self.redis_available:
            logger.warning("rate_limit_redis_unavailable", check="rpm", action=action)
            return

        try:
            key = f"rate:rpm:{account_id}"
            now = datetime.now(UTC)
            window_start_ts = (now - timedelta(seconds=RPM_WINDOW_SECONDS)).timestamp()
            now_ts = now.timestamp()

            pipe = self._redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start_ts)
            pipe.zadd(key, {f"{now_ts}:{uuid4().hex}": now_ts})
            pipe.zcount(key, window_start_ts, now_ts)
            pipe.expire(key, RPM_WINDOW_SECONDS * 2)
            results = pipe.execute()
            count = results[2]
        except Exception as e:
            logger.warning("rate_limit_check_failed", check="rpm", error=str(e))
            return

        if count > self._rpm_limit:
            logger.warning("rate_limit_blocked", limit_type="rpm", action=action)
            raise RateLimitedError(
                f"Rate limit exceeded: {self._rpm_limit} requests per minute"
            )


# Global rate limiter instance (initialized by app startup)
_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance.

    Returns a no-op limiter if not initialized (for testing without Redis).
    """
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(redis_client=None)
    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter | None) -> None:
    """Set the global rate limiter instance.

    Called by app startup to configure Redis. Passing None resets to the no-op limiter.
    """
    global _rate_limiter
    _rate_limiter = limiter
