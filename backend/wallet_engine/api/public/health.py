"""
Liveness and readiness probes
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wallet_engine.core.orders.models import Order
from wallet_engine.infrastructure.database import get_db
from wallet_engine.infrastructure.redis_client import ping_redis
from wallet_engine.services.bidding_engine import find_expired_auctions

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Liveness: the process is serving requests"""
    return {"status": "ok"}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness: the ledger database answers and Redis (rate limiting, sweep
    queue) is reachable -> 200, otherwise 503.

    Also reports the auction close backlog and the number of frozen orders.
    Neither affects readiness; they are for operators.
    """
    checks = {
        "status": "ok",
        "database": "unknown",
        "redis": "unknown",
    }

    try:
        checks["frozen_orders"] = db.query(func.count(Order.id)).filter(Order.is_frozen.is_(True)).scalar()
        checks["auctions_awaiting_close"] = len(find_expired_auctions(db, limit=1000))
        checks["database"] = "connected"
    except SQLAlchemyError as e:
        db.rollback()
        checks["database"] = f"error: {e.__class__.__name__}"
        checks["status"] = "not_ready"

    if ping_redis():
        checks["redis"] = "connected"
    else:
        checks["redis"] = "disconnected"
        checks["status"] = "not_ready"

    return JSONResponse(status_code=200 if checks["status"] == "ok" else 503, content=checks)
