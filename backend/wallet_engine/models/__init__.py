"""
Models registry for Alembic - Import all models here to ensure Base.metadata is complete

Import order matters to avoid circular dependencies:
1. Base and common models first
2. Models without foreign keys
3. Models with foreign keys (in dependency order)
"""

# Import Base first
from wallet_engine.infrastructure.database import Base

# 1. Security models (no dependencies)
from wallet_engine.core.security.models import Role

# 2. User model (no foreign keys to other domain models)
from wallet_engine.core.users.models import User, UserStatus

# 3. Wallet model (depends on User)
from wallet_engine.core.wallets.models import Wallet, WalletKind

# 4. Hold model (depends on Wallet)
from wallet_engine.core.escrow.models import Hold, HoldReason, HoldStatus

# 5. Ledger models (depend on Wallet and Hold)
from wallet_engine.core.ledger.models import (
    WalletTransaction, TransactionStatusEvent, TransactionType, TransactionStatus,
)

# 6. Auction models (depend on User and Hold)
from wallet_engine.core.auctions.models import Product, Bid, ProductStatus, AuctionState

# 7. Order model (depends on User, Product, Bid and Hold)
from wallet_engine.core.orders.models import Order, OrderStatus, OrderKind

# 8. Idempotency records (no foreign keys)
from wallet_engine.core.idempotency.models import IdempotencyRecord

__all__ = [
    "Base",
    "Role",
    "User", "UserStatus",
    "Wallet", "WalletKind",
    "Hold", "HoldReason", "HoldStatus",
    "WalletTransaction", "TransactionStatusEvent", "TransactionType", "TransactionStatus",
    "Product", "Bid", "ProductStatus", "AuctionState",
    "Order", "OrderStatus", "OrderKind",
    "IdempotencyRecord",
]
