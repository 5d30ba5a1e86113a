"""
Hold model - Escrow reservations against a wallet's available balance

A Hold removes funds from available_balance without debiting balance.
The actual lock bookkeeping is the hold row itself (SUM of ACTIVE holds is the
wallet's locked_balance); the paired AUCTION_HOLD / ESCROW_HOLD ledger entry
records the reservation in the audit trail.
"""
from sqlalchemy import Column, BigInteger, ForeignKey, DateTime, Enum as SQLEnum, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class HoldReason(str, enum.Enum):
    """Hold reason enum"""
    BID = "BID"  # Funds reserved for the current winning bid on an auction
    ORDER_ESCROW = "ORDER_ESCROW"  # Funds reserved for an order being paid


class HoldStatus(str, enum.Enum):
    """Hold status enum"""
    ACTIVE = "ACTIVE"  # Counted in locked_balance
    RELEASED = "RELEASED"  # Returned to available_balance (outbid, cancelled)
    FORFEITED = "FORFEITED"  # Converted into a COMPLETED PURCHASE debit


class Hold(BaseModel):
    """
    Hold model - ACTIVE -> RELEASED | FORFEITED (terminal)

    reference_id points at the bid (reason=BID) or order (reason=ORDER_ESCROW)
    that triggered the reservation.
    """

    __tablename__ = "holds"

    wallet_id = Column(Uuid(as_uuid=True), ForeignKey("wallets.id", name="fk_holds_wallet_id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # Minor units, always positive
    reason = Column(SQLEnum(HoldReason, name="hold_reason", create_constraint=True), nullable=False, index=True)
    reference_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    status = Column(SQLEnum(HoldStatus, name="hold_status", create_constraint=True), nullable=False, default=HoldStatus.ACTIVE, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Ledger entries created for this hold (hold memo, release memo, purchase)
    hold_transaction_id = Column(Uuid(as_uuid=True), nullable=True)
    resolution_transaction_id = Column(Uuid(as_uuid=True), nullable=True)

    # Relationships
    wallet = relationship("Wallet", back_populates="holds")

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_holds_amount_positive'),
        Index('ix_holds_wallet_status', 'wallet_id', 'status'),
        Index('ix_holds_reference', 'reason', 'reference_id'),
    )
