"""
Security headers middleware
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wallet_engine.infrastructure.settings import get_settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to all responses.

    Wallet and admin responses carry balances: they are also marked
    `Cache-Control: no-store` so no intermediary keeps a copy.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        settings = get_settings()

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"

        path = request.url.path
        if path.startswith(settings.API_V1_PREFIX) or path.startswith(settings.ADMIN_V1_PREFIX):
            response.headers["Cache-Control"] = "no-store"

        # HSTS - only if explicitly enabled (not in local dev by default)
        if settings.ENABLE_HSTS:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
