"""
API v1 routes - User-facing API
"""

from fastapi import APIRouter
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.api.v1.wallet import router as wallet_router
from wallet_engine.api.v1.auctions import router as auctions_router
from wallet_engine.api.v1.orders import router as orders_router

settings = get_settings()
router = APIRouter(prefix=settings.API_V1_PREFIX, tags=["api-v1"])

# Register sub-routers
router.include_router(wallet_router)
router.include_router(auctions_router)
router.include_router(orders_router)
