"""
Order API endpoints - buy now, order lookup, cancellation
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from wallet_engine.api.exceptions import to_http_exception
from wallet_engine.auth.dependencies import get_current_user_id
from wallet_engine.infrastructure.database import get_db
from wallet_engine.schemas.orders import BuyNowResponse, CancelOrderRequest, CancelOrderResponse, OrderResponse
from wallet_engine.services import wallet_api
from wallet_engine.services.errors import WalletEngineError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


@router.post(
    "/products/{product_id}/buy-now",
    response_model=BuyNowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy a product now",
    description="Create and settle a direct purchase at the listed price.",
)
def buy_now(
    product_id: UUID,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> BuyNowResponse:
    logger.info(
        f"Buy-now request: product_id={product_id}, user_id={user_id}",
        extra={"product_id": str(product_id), "user_id": str(user_id)},
    )
    try:
        result = wallet_api.buy_now(
            db=db,
            user_id=user_id,
            product_id=product_id,
            idempotency_key=idempotency_key,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return BuyNowResponse(**result)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get an order (buyer or seller)",
)
def get_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> OrderResponse:
    try:
        return OrderResponse(**wallet_api.get_order(db=db, user_id=user_id, order_id=order_id))
    except WalletEngineError as e:
        raise to_http_exception(e)


@router.post(
    "/orders/{order_id}/cancel",
    response_model=CancelOrderResponse,
    summary="Cancel an order",
    description="Unsettled orders release their hold (CANCELLED); settled orders are refunded (REFUNDED).",
)
def cancel_order(
    order_id: UUID,
    request: Optional[CancelOrderRequest] = None,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> CancelOrderResponse:
    try:
        result = wallet_api.cancel_order(
            db=db,
            user_id=user_id,
            order_id=order_id,
            reason=request.reason if request else None,
            idempotency_key=idempotency_key,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return CancelOrderResponse(**result)
