"""
Request throttling backed by Redis sorted sets (sliding one-minute window)

Groups, most specific first:
- bids:  POST /api/v1/auctions/{id}/bids
- money: POST deposits, withdrawals, buy-now, order cancellation
- admin: /admin/v1/*
- api:   everything else under /api/v1/*

Authenticated callers are bucketed per bearer token, anonymous ones per client IP.
"""

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import redis
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wallet_engine.infrastructure.logging_config import trace_id_context
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.utils.metrics import record_rate_limit_exceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int


class SlidingWindowLimiter:
    """
    One sorted set per (group, caller): members are request timestamps.

    Key format: "ratelimit:{group}:{caller}"
    """

    def __init__(self, redis_client, limit: int, window_seconds: int = WINDOW_SECONDS):
        self.redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds

    def hit(self, group: str, caller: str, now: Optional[float] = None) -> RateLimitDecision:
        key = f"ratelimit:{group}:{caller}"
        now = time.time() if now is None else now

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(key, 0, now - self.window_seconds)
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        _, in_window, oldest = pipe.execute()

        if in_window >= self.limit:
            reset_at = int(oldest[0][1]) + self.window_seconds if oldest else int(now) + self.window_seconds
            return RateLimitDecision(False, self.limit, 0, reset_at)

        pipe = self.redis.pipeline()
        pipe.zadd(key, {f"{now:.6f}": now})
        pipe.expire(key, self.window_seconds + 10)
        pipe.execute()

        return RateLimitDecision(True, self.limit, max(0, self.limit - in_window - 1), int(now) + self.window_seconds)


def caller_identity(request: Request) -> str:
    """Bucket key for the caller: hashed bearer token, else the client IP"""
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token:" + hashlib.sha256(token.strip().encode()).hexdigest()[:32]

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return "ip:" + forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return "ip:" + real_ip.strip()
    return "ip:" + (request.client.host if request.client else "unknown")


def build_route_groups(api_prefix: str, admin_prefix: str) -> List[Tuple[str, Optional[str], re.Pattern]]:
    """(group, method or None for any, path pattern), matched in order"""
    api = re.escape(api_prefix)
    return [
        ("bids", "POST", re.compile(rf"^{api}/auctions/[^/]+/bids$")),
        ("money", "POST", re.compile(
            rf"^{api}/(wallet/deposits|wallet/withdrawals|products/[^/]+/buy-now|orders/[^/]+/cancel)$"
        )),
        ("admin", None, re.compile(rf"^{re.escape(admin_prefix)}/")),
        ("api", None, re.compile(rf"^{api}/")),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Throttle /api/v1 and /admin/v1 per caller and route group.

    Fails open: if Redis is unreachable the request is served and a warning logged.
    """

    def __init__(self, app, redis_client):
        super().__init__(app)
        settings = get_settings()
        self.groups = build_route_groups(settings.API_V1_PREFIX, settings.ADMIN_V1_PREFIX)
        self.limiters = {
            "bids": SlidingWindowLimiter(redis_client, settings.RL_BIDS_PER_MIN),
            "money": SlidingWindowLimiter(redis_client, settings.RL_MONEY_PER_MIN),
            "admin": SlidingWindowLimiter(redis_client, settings.RL_ADMIN_PER_MIN),
            "api": SlidingWindowLimiter(redis_client, settings.RL_API_PER_MIN),
        }

    def group_for(self, method: str, path: str) -> Optional[str]:
        for group, group_method, pattern in self.groups:
            if group_method is not None and group_method != method:
                continue
            if pattern.match(path):
                return group
        return None

    async def dispatch(self, request: Request, call_next):
        group = self.group_for(request.method, request.url.path)
        if group is None:
            return await call_next(request)

        caller = caller_identity(request)
        try:
            decision = self.limiters[group].hit(group, caller)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(decision.reset_at),
        }

        if not decision.allowed:
            record_rate_limit_exceeded(group=group)
            logger.warning(
                "Rate limit exceeded",
                extra={"endpoint_group": group, "path": request.url.path, "method": request.method},
            )
            # Middleware runs outside the exception handlers: build the error body here
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": {
                        "code": "RATE_LIMITED",
                        "message": f"Rate limit exceeded. Maximum {decision.limit} requests per minute.",
                        "details": {"endpoint_group": group, "reset_at": decision.reset_at},
                        "trace_id": trace_id_context.get(),
                    }
                },
                headers={**headers, "Retry-After": str(max(1, decision.reset_at - int(time.time())))},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
