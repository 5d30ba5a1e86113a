"""
Ledger models - WalletTransaction and TransactionStatusEvent (IMMUTABLE)
"""

from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Enum as SQLEnum, JSON, Text, Uuid, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class TransactionType(str, enum.Enum):
    """Wallet transaction type enum (closed set)"""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"
    AUCTION_HOLD = "AUCTION_HOLD"
    AUCTION_RELEASE = "AUCTION_RELEASE"
    SELLER_PAYOUT = "SELLER_PAYOUT"
    PLATFORM_FEE = "PLATFORM_FEE"
    ESCROW_HOLD = "ESCROW_HOLD"
    ESCROW_RELEASE = "ESCROW_RELEASE"


class TransactionStatus(str, enum.Enum):
    """Wallet transaction status enum"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Types whose COMPLETED amounts make up Wallet.balance.
# Hold/release types are memo entries: they track reservations, never balance.
BALANCE_AFFECTING_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.WITHDRAWAL,
    TransactionType.PURCHASE,
    TransactionType.REFUND,
    TransactionType.SELLER_PAYOUT,
    TransactionType.PLATFORM_FEE,
})

HOLD_TYPES = frozenset({TransactionType.AUCTION_HOLD, TransactionType.ESCROW_HOLD})
RELEASE_TYPES = frozenset({TransactionType.AUCTION_RELEASE, TransactionType.ESCROW_RELEASE})

TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})


class WalletTransaction(BaseModel):
    """
    WalletTransaction model - IMMUTABLE (WRITE-ONCE)

    Every wallet-affecting action appends one row. Amounts are signed integers
    in currency minor units (credit > 0, debit < 0).

    IMMUTABILITY RULES (application-level):
    - ❌ NEVER UPDATE a WalletTransaction (status included)
    - ❌ NEVER DELETE a WalletTransaction
    - ✅ PENDING -> COMPLETED/FAILED/CANCELLED is recorded as a TransactionStatusEvent
    - ✅ Corrections are new transactions (REFUND)

    `sequence` is gap-free per wallet and gives the authoritative newest-first
    order. The (wallet_id, sequence) unique constraint rejects a concurrent
    append computed from a stale view of the log.
    """

    __tablename__ = "wallet_transactions"

    wallet_id = Column(Uuid(as_uuid=True), ForeignKey("wallets.id", name="fk_wallet_transactions_wallet_id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    type = Column(SQLEnum(TransactionType, name="wallet_transaction_type", create_constraint=True), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # Signed minor units
    currency = Column(String(3), nullable=False)
    # Initial status. Effective status = status_event.to_status if present, else this.
    status = Column(SQLEnum(TransactionStatus, name="wallet_transaction_status", native_enum=False, create_constraint=True, length=20), nullable=False, index=True)
    description = Column(String(500), nullable=False, default="")
    reference = Column(String(255), nullable=True, index=True)  # Correlation id (order id, bid id, payment ref)
    hold_id = Column(Uuid(as_uuid=True), ForeignKey("holds.id", name="fk_wallet_transactions_hold_id"), nullable=True, index=True)
    transaction_metadata = Column(JSON, nullable=True)

    # Relationships
    wallet = relationship("Wallet", back_populates="transactions")
    status_event = relationship("TransactionStatusEvent", back_populates="transaction", uselist=False, lazy="joined")

    __table_args__ = (
        UniqueConstraint('wallet_id', 'sequence', name='uq_wallet_transactions_wallet_sequence'),
        CheckConstraint('amount <> 0', name='check_wallet_transactions_amount_nonzero'),
        Index('ix_wallet_transactions_wallet_type', 'wallet_id', 'type'),
    )

    @property
    def effective_status(self) -> TransactionStatus:
        """Current status: the single status-change event wins over the initial status"""
        if self.status_event is not None:
            return self.status_event.to_status
        return self.status


class TransactionStatusEvent(BaseModel):
    """
    TransactionStatusEvent model - IMMUTABLE (WRITE-ONCE)

    Records the one permitted transition of a WalletTransaction out of PENDING.
    Unique per transaction: a transaction leaves PENDING at most once.
    """

    __tablename__ = "wallet_transaction_status_events"

    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("wallet_transactions.id", name="fk_status_events_transaction_id"), nullable=False, unique=True, index=True)
    from_status = Column(SQLEnum(TransactionStatus, name="status_event_from_status", native_enum=False, create_constraint=True, length=20), nullable=False)
    to_status = Column(SQLEnum(TransactionStatus, name="status_event_to_status", native_enum=False, create_constraint=True, length=20), nullable=False)
    reason = Column(Text, nullable=True)

    transaction = relationship("WalletTransaction", back_populates="status_event")
