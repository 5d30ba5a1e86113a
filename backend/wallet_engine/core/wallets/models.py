"""
Wallet model - One wallet per user, plus the platform system wallet
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Enum as SQLEnum, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class WalletKind(str, enum.Enum):
    """Wallet kind enum"""
    USER = "USER"  # Buyer/seller wallet (one per user)
    PLATFORM = "PLATFORM"  # System wallet collecting PLATFORM_FEE (user_id=None)


class Wallet(BaseModel):
    """
    Wallet model - identity and concurrency anchor for a user's funds

    A Wallet stores NO balance. Balances are projected on every read:
    - balance = SUM(amount) of COMPLETED balance-affecting wallet_transactions
    - locked_balance = SUM(amount) of ACTIVE holds
    - available_balance = balance - locked_balance

    `version` is the optimistic concurrency counter. Every operation that reads
    then writes a wallet's funds or holds bumps it; a concurrent writer holding a
    stale version fails its UPDATE and the caller receives BusyError.
    """

    __tablename__ = "wallets"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_wallets_user_id"), nullable=True, unique=True, index=True)
    kind = Column(SQLEnum(WalletKind, name="wallet_kind", create_constraint=True), nullable=False, default=WalletKind.USER, index=True)
    currency = Column(String(3), nullable=False)  # ISO 4217
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    user = relationship("User", back_populates="wallet", lazy="select")
    transactions = relationship("WalletTransaction", back_populates="wallet", lazy="select")
    holds = relationship("Hold", back_populates="wallet", lazy="select")

    __table_args__ = (
        # One platform wallet per currency (user_id IS NULL for system wallets)
        UniqueConstraint('kind', 'user_id', 'currency', name='uq_wallets_kind_user_currency'),
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }
