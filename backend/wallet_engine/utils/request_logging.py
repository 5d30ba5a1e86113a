"""
Access log and HTTP metrics, one structured line per request
"""

import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from wallet_engine.infrastructure.logging_config import trace_id_context
from wallet_engine.utils.metrics import record_http_request

logger = logging.getLogger(__name__)


def _route_template(request: Request) -> str:
    """'/api/v1/auctions/{product_id}/bids' rather than the concrete path"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, route, status and duration with the trace id.

    Mutating calls also carry their Idempotency-Key so a retried deposit or bid
    can be matched to its first attempt. The caller (actor_id, actor_role) is
    set on request.state by the auth dependencies.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        error = None
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            error = str(e)
            raise
        finally:
            duration = time.perf_counter() - started
            route = _route_template(request)

            log_data = {
                "trace_id": trace_id_context.get() or getattr(request.state, "trace_id", None),
                "method": request.method,
                "path": request.url.path,
                "route": route,
                "status_code": status_code,
                "duration_ms": round(duration * 1000, 2),
            }
            idempotency_key = request.headers.get("Idempotency-Key")
            if idempotency_key:
                log_data["idempotency_key"] = idempotency_key[:128]
            for attr in ("actor_id", "actor_role"):
                value = getattr(request.state, attr, None)
                if value:
                    log_data[attr] = str(value)

            if error:
                log_data["error"] = error
                logger.error("Request failed", extra=log_data)
            elif status_code >= 500:
                logger.error("Request failed", extra=log_data)
            elif status_code >= 400:
                logger.warning("Request rejected", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            record_http_request(
                path=route,
                method=request.method,
                status_code=status_code,
                duration_seconds=duration,
            )

        return response
