"""
Auction models - Product (auction-relevant view) and Bid
"""

from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, ForeignKey, Enum as SQLEnum, Uuid, Index, CheckConstraint, text
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class ProductStatus(str, enum.Enum):
    """Product listing status enum"""
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    EXPIRED = "EXPIRED"  # Auction ended without bids (unsold)
    INACTIVE = "INACTIVE"


class AuctionState(str, enum.Enum):
    """Auction state machine: NO_BIDS -> HAS_BIDS -> CLOSED"""
    NO_BIDS = "NO_BIDS"
    HAS_BIDS = "HAS_BIDS"
    CLOSED = "CLOSED"


class Product(BaseModel):
    """
    Product model - the fields of a marketplace listing the wallet engine needs

    Catalog CRUD (titles, images, categories) is owned by the marketplace; this
    table carries ownership, pricing and auction state. All money columns are
    integer minor units.

    `version` serializes bids on the same product (optimistic counter, bumped
    by every bid and by auction close).
    """

    __tablename__ = "products"

    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_products_owner_id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(ProductStatus, name="product_status", create_constraint=True), nullable=False, default=ProductStatus.ACTIVE, index=True)

    # Buy-now price (direct purchase)
    price = Column(BigInteger, nullable=True)

    # Auction fields
    is_auction = Column(Boolean, nullable=False, default=False, index=True)
    minimum_bid = Column(BigInteger, nullable=True)
    min_increment = Column(BigInteger, nullable=True)
    current_bid = Column(BigInteger, nullable=True)
    auction_end_date = Column(DateTime(timezone=True), nullable=True, index=True)
    auction_state = Column(SQLEnum(AuctionState, name="auction_state", create_constraint=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    bids = relationship("Bid", back_populates="product", lazy="select", order_by="Bid.amount.desc()")

    __table_args__ = (
        CheckConstraint('price IS NULL OR price > 0', name='check_products_price_positive'),
        CheckConstraint('minimum_bid IS NULL OR minimum_bid > 0', name='check_products_minimum_bid_positive'),
        Index('ix_products_auction_sweep', 'is_auction', 'status', 'auction_end_date'),
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }


class Bid(BaseModel):
    """
    Bid model - owned by the bidding engine

    Invariant: at most one is_winning=True bid per product, and that bid has
    exactly one ACTIVE hold (hold_id) of the same amount.
    """

    __tablename__ = "bids"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", name="fk_bids_product_id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_bids_user_id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    is_winning = Column(Boolean, nullable=False, default=False)
    hold_id = Column(Uuid(as_uuid=True), ForeignKey("holds.id", name="fk_bids_hold_id"), nullable=True, unique=True)

    # Relationships
    product = relationship("Product", back_populates="bids")
    hold = relationship("Hold", foreign_keys=[hold_id], lazy="select")

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_bids_amount_positive'),
        Index(
            'uq_bids_one_winning_per_product',
            'product_id',
            unique=True,
            postgresql_where=text('is_winning'),
            sqlite_where=text('is_winning = 1'),
        ),
        Index('ix_bids_product_amount', 'product_id', 'amount'),
    )
