"""
Order model - Direct purchases and auction wins
"""

from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, ForeignKey, Enum as SQLEnum, Text, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class OrderStatus(str, enum.Enum):
    """Order status enum (closed set)"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class SettlementMode(str, enum.Enum):
    """When the seller is paid"""
    IMMEDIATE = "IMMEDIATE"  # On confirmation
    ESCROW = "ESCROW"  # On delivery; the buyer's hold stays ACTIVE until then


class OrderKind(str, enum.Enum):
    """How the order was created"""
    DIRECT = "DIRECT"  # Buy now
    AUCTION = "AUCTION"  # Auction win


# Allowed fulfilment transitions
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


class Order(BaseModel):
    """
    Order model

    Order status drives hold resolution and ledger entries:
    - PENDING -> CONFIRMED: settlement (PURCHASE / SELLER_PAYOUT / PLATFORM_FEE);
      ESCROW orders only confirm the hold and settle on SHIPPED -> DELIVERED
    - PENDING -> CANCELLED: active hold released, no money moved
    - CONFIRMED -> REFUNDED: settlement reversed with REFUND entries
    - ESCROW orders cancelled before shipment: hold released, no money moved

    is_frozen marks an order whose settlement failed its invariant check; it is
    excluded from every automatic action until reconciled manually.
    """

    __tablename__ = "orders"

    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_orders_buyer_id"), nullable=False, index=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_orders_seller_id"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", name="fk_orders_product_id"), nullable=False, index=True)
    kind = Column(SQLEnum(OrderKind, name="order_kind", create_constraint=True), nullable=False)
    total_amount = Column(BigInteger, nullable=False)  # Minor units
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(OrderStatus, name="order_status", create_constraint=True), nullable=False, default=OrderStatus.PENDING, index=True)
    settlement_mode = Column(SQLEnum(SettlementMode, name="settlement_mode", create_constraint=True), nullable=False, default=SettlementMode.IMMEDIATE)

    hold_id = Column(Uuid(as_uuid=True), ForeignKey("holds.id", name="fk_orders_hold_id"), nullable=True)
    winning_bid_id = Column(Uuid(as_uuid=True), ForeignKey("bids.id", name="fk_orders_winning_bid_id"), nullable=True, unique=True)
    platform_fee_amount = Column(BigInteger, nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    is_frozen = Column(Boolean, nullable=False, default=False, index=True)
    frozen_reason = Column(Text, nullable=True)
    incident_reference = Column(String(64), nullable=True)

    # Relationships
    hold = relationship("Hold", foreign_keys=[hold_id], lazy="select")

    __table_args__ = (
        CheckConstraint('total_amount > 0', name='check_orders_total_positive'),
        Index('ix_orders_product_status', 'product_id', 'status'),
    )
