"""
Trace ids: one per request, carried in logs, error bodies and the X-Trace-ID header
"""

import re
import uuid
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from wallet_engine.infrastructure.logging_config import trace_id_context

INBOUND_HEADERS = ("X-Trace-ID", "X-Request-Id", "X-Correlation-Id")

# Inbound ids end up in log lines: printable token characters only
_SAFE_TRACE_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def inbound_trace_id(request: Request) -> Optional[str]:
    """First well-formed caller-supplied id, if any"""
    for header in INBOUND_HEADERS:
        value = request.headers.get(header)
        if value and _SAFE_TRACE_ID.match(value):
            return value
    return None


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Adopt the caller's trace id (or mint one) for the duration of the request"""

    async def dispatch(self, request: Request, call_next):
        trace_id = inbound_trace_id(request) or generate_trace_id()
        request.state.trace_id = trace_id
        token = trace_id_context.set(trace_id)
        try:
            response = await call_next(request)
        finally:
            trace_id_context.reset(token)

        response.headers["X-Trace-ID"] = trace_id
        return response


def get_trace_id(request: Request) -> Optional[str]:
    """Trace id of the current request (set by TraceIDMiddleware)"""
    return getattr(request.state, "trace_id", None)
