"""
Balance Projector - wallet balances derived from the ledger on every read

Nothing is materialized: the returned values always equal what a replay of
the ledger and the hold table produces.
"""

from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from wallet_engine.core.escrow.models import Hold, HoldStatus
from wallet_engine.core.ledger.models import WalletTransaction, TransactionStatusEvent, TransactionType, TransactionStatus
from wallet_engine.core.wallets.models import Wallet, WalletKind
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.services.errors import WalletNotFoundError
from wallet_engine.services.ledger_store import effective_status_expression, sum_completed


def get_locked_balance(db: Session, wallet_id: UUID) -> int:
    """SUM(amount) of ACTIVE holds on the wallet, 0 if none"""
    result = db.query(
        func.coalesce(func.sum(Hold.amount), 0)
    ).filter(
        Hold.wallet_id == wallet_id,
        Hold.status == HoldStatus.ACTIVE,
    ).scalar()
    return int(result or 0)


def get_balance(db: Session, wallet_id: UUID) -> Dict[str, int]:
    """
    Project a wallet's balances (integer minor units).

    Returns:
    - balance: SUM of COMPLETED balance-affecting transactions
    - locked_balance: SUM of ACTIVE holds
    - available_balance: balance - locked_balance

    Raises:
        WalletNotFoundError: If the wallet does not exist
    """
    if db.get(Wallet, wallet_id) is None:
        raise WalletNotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": str(wallet_id)})

    balance = sum_completed(db, wallet_id)
    locked_balance = get_locked_balance(db, wallet_id)

    return {
        'balance': balance,
        'locked_balance': locked_balance,
        'available_balance': balance - locked_balance,
    }


def get_wallet_for_user(db: Session, user_id: UUID, currency: Optional[str] = None) -> Wallet:
    """
    Get a user's wallet.

    Raises:
        WalletNotFoundError: If the user has no wallet
    """
    currency = currency or get_settings().CURRENCY
    wallet = db.query(Wallet).filter(
        Wallet.user_id == user_id,
        Wallet.kind == WalletKind.USER,
        Wallet.currency == currency,
    ).first()
    if not wallet:
        raise WalletNotFoundError(f"No wallet for user {user_id}", {"user_id": str(user_id)})
    return wallet


def ensure_wallet(db: Session, user_id: UUID, currency: Optional[str] = None) -> Wallet:
    """
    Get a user's wallet, creating it on first access.

    A concurrent first access loses on the unique user_id constraint (IntegrityError);
    the caller rolls back and retries.

    NO COMMIT - caller must commit.
    """
    currency = currency or get_settings().CURRENCY
    try:
        return get_wallet_for_user(db, user_id, currency)
    except WalletNotFoundError:
        pass

    wallet = Wallet(user_id=user_id, kind=WalletKind.USER, currency=currency, version=1)
    db.add(wallet)
    db.flush()
    return wallet


def get_platform_wallet(db: Session, currency: Optional[str] = None) -> Wallet:
    """
    Get the platform (system) wallet that collects PLATFORM_FEE, creating it if missing.

    NO COMMIT - caller must commit.
    """
    currency = currency or get_settings().CURRENCY
    wallet = db.query(Wallet).filter(
        Wallet.kind == WalletKind.PLATFORM,
        Wallet.user_id.is_(None),
        Wallet.currency == currency,
    ).order_by(Wallet.created_at).first()

    if not wallet:
        wallet = Wallet(user_id=None, kind=WalletKind.PLATFORM, currency=currency, version=1)
        db.add(wallet)
        db.flush()
    return wallet


def get_wallet_stats(db: Session, wallet_id: UUID) -> Dict[str, int]:
    """
    Wallet statistics (minor units / counts).

    - total_deposits: SUM of COMPLETED DEPOSIT amounts
    - total_purchases: SUM of |COMPLETED PURCHASE amounts|
    - total_withdrawals: SUM of |COMPLETED WITHDRAWAL amounts|
    - transaction_count: number of ledger transactions (all types and statuses)
    """
    rows = db.query(
        WalletTransaction.type,
        func.coalesce(func.sum(WalletTransaction.amount), 0),
    ).select_from(WalletTransaction).outerjoin(
        TransactionStatusEvent,
        TransactionStatusEvent.transaction_id == WalletTransaction.id,
    ).filter(
        WalletTransaction.wallet_id == wallet_id,
        effective_status_expression() == TransactionStatus.COMPLETED,
    ).group_by(WalletTransaction.type).all()
    sums = {row[0]: int(row[1]) for row in rows}

    transaction_count = db.query(func.count(WalletTransaction.id)).filter(
        WalletTransaction.wallet_id == wallet_id
    ).scalar()

    return {
        'total_deposits': sums.get(TransactionType.DEPOSIT, 0),
        'total_purchases': -sums.get(TransactionType.PURCHASE, 0),
        'total_withdrawals': -sums.get(TransactionType.WITHDRAWAL, 0),
        'transaction_count': int(transaction_count or 0),
    }
