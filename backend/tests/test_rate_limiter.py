"""
Tests for request throttling (route groups, caller buckets, sliding window)
"""

import pytest
from starlette.requests import Request

from wallet_engine.utils.rate_limiter import RateLimitMiddleware, SlidingWindowLimiter, caller_identity


class SortedSetStore:
    """Just enough of a Redis client for the sliding window (pipelines of zset commands)"""

    def __init__(self):
        self.sets = {}

    def pipeline(self):
        return _Pipeline(self)

    def zremrangebyscore(self, key, low, high):
        entries = self.sets.get(key, {})
        for member in [m for m, score in entries.items() if low <= score <= high]:
            del entries[member]

    def zcard(self, key):
        return len(self.sets.get(key, {}))

    def zrange(self, key, start, stop, withscores=False):
        ordered = sorted(self.sets.get(key, {}).items(), key=lambda item: item[1])
        return ordered[start:stop + 1]

    def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)

    def expire(self, key, seconds):
        return True


class _Pipeline:
    def __init__(self, store):
        self.store = store
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
        return queue

    def execute(self):
        return [getattr(self.store, name)(*args, **kwargs) for name, args, kwargs in self.calls]


def _request(headers=None, client=("10.0.0.1", 5000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/wallet",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize("method,path,group", [
    ("POST", "/api/v1/auctions/abc/bids", "bids"),
    ("GET", "/api/v1/auctions/abc/bids", "api"),
    ("POST", "/api/v1/wallet/deposits", "money"),
    ("POST", "/api/v1/wallet/withdrawals", "money"),
    ("POST", "/api/v1/products/abc/buy-now", "money"),
    ("POST", "/api/v1/orders/abc/cancel", "money"),
    ("GET", "/api/v1/wallet", "api"),
    ("POST", "/admin/v1/auctions/abc/close", "admin"),
    ("GET", "/health", None),
    ("GET", "/metrics", None),
])
def test_route_groups(method, path, group):
    middleware = RateLimitMiddleware(app=None, redis_client=SortedSetStore())
    assert middleware.group_for(method, path) == group


def test_sliding_window_blocks_after_limit_and_recovers():
    limiter = SlidingWindowLimiter(SortedSetStore(), limit=2, window_seconds=60)

    first = limiter.hit("bids", "token:a", now=1000.0)
    second = limiter.hit("bids", "token:a", now=1001.0)
    third = limiter.hit("bids", "token:a", now=1002.0)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    assert third.reset_at == 1060

    # Other callers have their own bucket
    assert limiter.hit("bids", "token:b", now=1002.0).allowed is True
    # The oldest hit leaves the window
    assert limiter.hit("bids", "token:a", now=1061.0).allowed is True


def test_caller_identity_prefers_bearer_token():
    with_token = caller_identity(_request({"Authorization": "Bearer abc.def.ghi"}))
    assert with_token.startswith("token:")
    assert with_token == caller_identity(_request({"Authorization": "Bearer abc.def.ghi"}, client=("10.9.9.9", 1)))
    assert "abc.def.ghi" not in with_token

    assert caller_identity(_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})) == "ip:203.0.113.7"
    assert caller_identity(_request({"X-Real-IP": "198.51.100.2"})) == "ip:198.51.100.2"
    assert caller_identity(_request()) == "ip:10.0.0.1"
