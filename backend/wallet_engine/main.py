"""
FastAPI application entry point
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from wallet_engine.infrastructure.settings import DEFAULT_JWT_SECRET, get_settings
from wallet_engine.infrastructure.logging_config import setup_logging
from wallet_engine.api.exceptions import (
    http_exception_handler,
    validation_exception_handler,
    wallet_engine_exception_handler,
    general_exception_handler,
)
from wallet_engine.api.public.health import router as health_router
from wallet_engine.api.public.metrics import router as metrics_router
from wallet_engine.api.v1 import router as api_v1_router
from wallet_engine.api.admin import router as admin_router
from wallet_engine.services.errors import WalletEngineError
from wallet_engine.utils.trace_id import TraceIDMiddleware
from wallet_engine.utils.request_logging import RequestLoggingMiddleware
from wallet_engine.utils.security_headers import SecurityHeadersMiddleware
from wallet_engine.utils.rate_limiter import RateLimitMiddleware
from wallet_engine.infrastructure.redis_client import get_redis

settings = get_settings()

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Interactive docs stay off in production unless DEV_MODE is set
expose_docs = settings.DEV_MODE or not settings.is_production

app = FastAPI(
    title="Marketplace Wallet Engine",
    description="Wallet ledger and auction escrow API for the marketplace",
    version="1.0.0",
    docs_url="/docs" if expose_docs else None,
    redoc_url="/redoc" if expose_docs else None,
    openapi_url="/openapi.json" if expose_docs else None,
)

if settings.is_sqlite and settings.is_production:
    logger.warning(
        "DATABASE_URL points at SQLite in production: wallet locks degrade to a database-wide write lock"
    )
if settings.is_production and settings.JWT_SECRET == DEFAULT_JWT_SECRET:
    logger.critical("JWT_SECRET is the built-in default; set a real secret before serving traffic")

if settings.CORS_ENABLED:
    cors_origins = settings.cors_allow_origins_list
    cors_methods = settings.cors_allow_methods_list or ["*"]
    cors_headers = settings.cors_allow_headers_list or ["*"]

    if not cors_origins:
        logger.warning(
            "CORS_ENABLED=True but CORS_ALLOW_ORIGINS is empty or not set. "
            "Set CORS_ALLOW_ORIGINS (comma-separated, e.g., 'http://localhost:3000')."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=cors_methods,
        allow_headers=cors_headers,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        expose_headers=["X-Trace-ID", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

# Order matters - the last added middleware is outermost
if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware, redis_client=get_redis())
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TraceIDMiddleware)

app.add_exception_handler(WalletEngineError, wallet_engine_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(api_v1_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Marketplace Wallet Engine",
        "version": "1.0.0",
        "status": "running",
    }
