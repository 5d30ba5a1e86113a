"""
Admin lifecycle endpoints - auction close, fulfilment transitions, frozen orders
"""

import logging
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from wallet_engine.api.exceptions import to_http_exception
from wallet_engine.auth.dependencies import require_admin_role
from wallet_engine.auth.principal import Principal
from wallet_engine.infrastructure.database import get_db
from wallet_engine.schemas.orders import FrozenOrderItem, FrozenOrderListResponse, OrderResponse, OrderStatusUpdateRequest
from wallet_engine.schemas.reports import AuctionCloseResponse
from wallet_engine.services import bidding_engine, reporting, settlement
from wallet_engine.services.errors import WalletEngineError
from wallet_engine.services.wallet_api import order_payload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-operations"])


@router.post(
    "/auctions/{product_id}/close",
    response_model=AuctionCloseResponse,
    summary="Close an ended auction",
    description="Settle the winning bid, or mark the product unsold when there were no bids. Requires ADMIN role.",
)
def close_auction(
    product_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> AuctionCloseResponse:
    logger.info(
        f"Manual auction close: product_id={product_id}, actor={principal.sub}",
        extra={"product_id": str(product_id)},
    )
    try:
        order = bidding_engine.close_and_settle_auction(db=db, product_id=product_id)
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)

    return AuctionCloseResponse(
        product_id=str(product_id),
        sold=order is not None,
        order_id=str(order.id) if order else None,
        order_status=order.status.value if order else None,
    )


@router.post(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Apply an order status transition",
    description="PENDING->CONFIRMED->SHIPPED->DELIVERED; CANCELLED/REFUNDED go through cancellation.",
)
def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> OrderResponse:
    try:
        order = settlement.update_order_status(db=db, order_id=order_id, new_status=request.status)
        db.commit()
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception:
        db.rollback()
        raise
    return OrderResponse(**order_payload(order))


@router.get(
    "/orders/frozen",
    response_model=FrozenOrderListResponse,
    summary="Orders awaiting manual reconciliation",
)
def list_frozen_orders(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> FrozenOrderListResponse:
    items = [
        FrozenOrderItem(
            **order_payload(order),
            frozen_reason=order.frozen_reason,
            incident_reference=order.incident_reference,
        )
        for order in reporting.list_frozen_orders(db)
    ]
    return FrozenOrderListResponse(items=items)
