"""
Admin API routes - INTERNAL ONLY
"""

from fastapi import APIRouter
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.api.admin.reports import router as reports_router
from wallet_engine.api.admin.operations import router as operations_router

settings = get_settings()
router = APIRouter(prefix=settings.ADMIN_V1_PREFIX, tags=["admin-v1"])

# Register admin routers
router.include_router(reports_router)
router.include_router(operations_router)
