"""
Order API request/response schemas
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from wallet_engine.core.orders.models import OrderStatus
from wallet_engine.schemas.wallet import WalletBalanceResponse


class OrderResponse(BaseModel):
    """Order response schema"""
    id: str
    buyer_id: str
    seller_id: str
    product_id: str
    kind: str = Field(..., description="DIRECT or AUCTION")
    status: str = Field(..., description="PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED, REFUNDED")
    settlement_mode: str = Field(..., description="IMMEDIATE (seller paid on confirmation) or ESCROW (on delivery)")
    total_amount: str
    platform_fee: Optional[str] = None
    seller_payout: Optional[str] = None
    currency: str
    is_frozen: bool
    settled_at: Optional[str] = None
    created_at: Optional[str] = None


class BuyNowResponse(BaseModel):
    """Settled direct purchase and the buyer's balance"""
    order: OrderResponse
    wallet: WalletBalanceResponse


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CancelOrderResponse(BaseModel):
    order: OrderResponse


class OrderStatusUpdateRequest(BaseModel):
    """Fulfilment transition (unknown statuses are rejected)"""
    status: OrderStatus

    class Config:
        json_schema_extra = {"example": {"status": "SHIPPED"}}


class FrozenOrderItem(OrderResponse):
    frozen_reason: Optional[str] = None
    incident_reference: Optional[str] = None


class FrozenOrderListResponse(BaseModel):
    items: List[FrozenOrderItem]
