"""
Global exception handlers

Every error body has the shape {"error": {"code", "message", "details"?, "trace_id"}}.
"""

import logging
from decimal import Decimal
from typing import Any, Dict
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from wallet_engine.services.errors import BusyError, SettlementPartialFailureError, WalletEngineError
from wallet_engine.utils.trace_id import get_trace_id

logger = logging.getLogger(__name__)


def to_http_exception(exc: WalletEngineError) -> HTTPException:
    """Map a domain error to an HTTPException carrying the standard error body"""
    headers = None
    if isinstance(exc, BusyError):
        headers = {"Retry-After": str(exc.retry_after)}
    return HTTPException(
        status_code=exc.http_status,
        detail={"error": exc.to_error()},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    trace_id = get_trace_id(request)

    # If detail is already a dict with "error" key, use it directly (preserving custom codes)
    if isinstance(exc.detail, dict) and isinstance(exc.detail.get("error"), dict):
        error_response: Dict[str, Any] = {"error": dict(exc.detail["error"])}
        error_response["error"].setdefault("trace_id", trace_id)
    else:
        error_response = {
            "error": {
                "code": f"HTTP_{exc.status_code}",
                "message": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                "trace_id": trace_id,
            }
        }

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None),
    )


async def wallet_engine_exception_handler(request: Request, exc: WalletEngineError) -> JSONResponse:
    """Handle domain errors that escaped a route (admin actions, dependencies)"""
    trace_id = get_trace_id(request)
    if isinstance(exc, SettlementPartialFailureError):
        logger.critical(
            "Settlement failure surfaced to client",
            extra={"incident_reference": exc.incident_reference, "trace_id": trace_id},
        )

    error = exc.to_error()
    error["trace_id"] = trace_id
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, BusyError) else None
    return JSONResponse(status_code=exc.http_status, content={"error": error}, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions"""
    trace_id = get_trace_id(request)

    def convert_non_serializable(obj):
        """Recursively convert non-JSON-serializable objects to strings"""
        if isinstance(obj, (Decimal, Exception)):
            return str(obj)
        elif isinstance(obj, dict):
            return {key: convert_non_serializable(value) for key, value in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_non_serializable(item) for item in obj]
        elif isinstance(obj, type):
            return str(obj)
        return obj

    error_response: Dict[str, Any] = {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": convert_non_serializable(exc.errors()),
            "trace_id": trace_id,
        }
    }

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions (details are logged, never returned)"""
    trace_id = get_trace_id(request)
    logger.exception("Unhandled exception", exc_info=exc, extra={"trace_id": trace_id})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
                "trace_id": trace_id,
            }
        },
    )
