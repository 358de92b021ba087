"""Tests for the per-account signaling rate limiter.

Redis is replaced with a small in-memory stand-in that implements the sorted
set commands the limiter pipelines.
"""

from uuid import uuid4

import pytest

from rendezvous.errors import RateLimitedError
from rendezvous.services.rate_limit import RateLimiter, get_rate_limiter, set_rate_limiter
from tests.factories import create_test_session


class FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def zremrangebyscore(self, key, low, high):
        self._ops.append(("zremrangebyscore", key, low, high))
        return self

    def zadd(self, key, mapping):
        self._ops.append(("zadd", key, mapping))
        return self

    def zcount(self, key, low, high):
        self._ops.append(("zcount", key, low, high))
        return self

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))
        return self

    def execute(self):
        results = []
        for op, key, *args in self._ops:
            members = self._redis.sets.setdefault(key, {})
            if op == "zremrangebyscore":
                low, high = args
                doomed = [m for m, s in members.items() if low <= s <= high]
                for member in doomed:
                    del members[member]
                results.append(len(doomed))
            elif op == "zadd":
                members.update(args[0])
                results.append(len(args[0]))
            elif op == "zcount":
                low, high = args
                results.append(sum(1 for s in members.values() if low <= s <= high))
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self, healthy: bool = True):
        self.sets: dict[str, dict[str, float]] = {}
        self.healthy = healthy

    def ping(self):
        if not self.healthy:
            raise ConnectionError("redis down")
        return True

    def pipeline(self):
        return FakePipeline(self)


class TestRateLimiter:
    def test_allows_up_to_limit_then_blocks(self):
        limiter = RateLimiter(redis_client=FakeRedis(), rpm_limit=3)
        account_id = uuid4()

        for _ in range(3):
            limiter.check_rpm_limit(account_id)

        with pytest.raises(RateLimitedError):
            limiter.check_rpm_limit(account_id)

    def test_limits_are_per_account(self):
        limiter = RateLimiter(redis_client=FakeRedis(), rpm_limit=1)

        limiter.check_rpm_limit(uuid4())
        limiter.check_rpm_limit(uuid4())

    def test_fails_open_without_redis(self):
        limiter = RateLimiter(redis_client=None, rpm_limit=1)
        account_id = uuid4()

        for _ in range(5):
            limiter.check_rpm_limit(account_id)

        assert limiter.redis_available is False

    def test_fails_open_when_redis_unhealthy(self):
        limiter = RateLimiter(redis_client=FakeRedis(healthy=False), rpm_limit=1)
        account_id = uuid4()

        limiter.check_rpm_limit(account_id)
        limiter.check_rpm_limit(account_id)

    def test_global_limiter_defaults_to_noop(self):
        set_rate_limiter(None)

        assert get_rate_limiter().redis_available is False


class TestRateLimitedRoutes:
    def test_signaling_writes_return_429_when_exhausted(self, client, db_session, alice, bob):
        set_rate_limiter(RateLimiter(redis_client=FakeRedis(), rpm_limit=2))
        s1 = create_test_session(db_session, alice.account_id)
        body = {"from_session_handle": s1, "to_session_handle": "somewhere"}

        statuses = [
            client.post("/liveness-pings", json=body, headers=alice.headers).status_code
            for _ in range(3)
        ]

        assert statuses == [201, 201, 429]
        blocked = client.post("/liveness-pings", json=body, headers=alice.headers)
        assert blocked.json()["error"]["code"] == "E_RATE_LIMITED"

    def test_reads_are_not_limited(self, client, alice):
        set_rate_limiter(RateLimiter(redis_client=FakeRedis(), rpm_limit=1))

        statuses = {client.get("/friends", headers=alice.headers).status_code for _ in range(5)}

        assert statuses == {200}
