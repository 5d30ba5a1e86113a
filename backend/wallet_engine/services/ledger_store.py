"""
Ledger Store - append-only wallet transaction log

The log is the single source of truth for wallet balances.

IMMUTABILITY RULES:
- append_transaction() is the only way to create ledger rows
- Rows are never updated or deleted; a PENDING row leaves PENDING exactly once,
  through record_status_change(), which appends a TransactionStatusEvent

Functions here flush but NEVER commit: the caller owns the database transaction
and must hold the wallet's lock (services.locking) before appending.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from wallet_engine.core.ledger.models import (
    WalletTransaction,
    TransactionStatusEvent,
    TransactionType,
    TransactionStatus,
    BALANCE_AFFECTING_TYPES,
    TERMINAL_STATUSES,
)
from wallet_engine.core.wallets.models import Wallet
from wallet_engine.services.errors import (
    InvalidAmountError,
    InvalidTransactionTransitionError,
    WalletNotFoundError,
)
from wallet_engine.services.locking import contention_guard
from wallet_engine.utils.metrics import record_transaction_appended
from wallet_engine.utils.money import STORAGE_MAX_MINOR_UNITS

logger = logging.getLogger(__name__)

# Sign each transaction type must carry. REFUND goes both ways (buyer credit,
# seller/platform reversal), PLATFORM_FEE is always a credit to the platform wallet.
CREDIT_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.AUCTION_RELEASE,
    TransactionType.ESCROW_RELEASE,
    TransactionType.SELLER_PAYOUT,
    TransactionType.PLATFORM_FEE,
})
DEBIT_TYPES = frozenset({
    TransactionType.WITHDRAWAL,
    TransactionType.PURCHASE,
    TransactionType.AUCTION_HOLD,
    TransactionType.ESCROW_HOLD,
})

MAX_PAGE_SIZE = 100


def effective_status_expression():
    """SQL expression for a transaction's current status (status event wins)"""
    return func.coalesce(TransactionStatusEvent.to_status, WalletTransaction.status)


def _validate_amount(transaction_type: TransactionType, amount: Any) -> None:
    # bool is an int subclass; minor units must be a real integer
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(
            "Ledger amounts must be integer minor units",
            {"amount": str(amount)},
        )
    if amount == 0:
        raise InvalidAmountError("Ledger amount must be non-zero", {"amount": "0"})
    if abs(amount) > STORAGE_MAX_MINOR_UNITS:
        raise InvalidAmountError("Ledger amount exceeds storage range", {"amount": str(amount)})
    if transaction_type in CREDIT_TYPES and amount < 0:
        raise InvalidAmountError(
            f"{transaction_type.value} must be a credit (positive amount)",
            {"type": transaction_type.value, "amount": str(amount)},
        )
    if transaction_type in DEBIT_TYPES and amount > 0:
        raise InvalidAmountError(
            f"{transaction_type.value} must be a debit (negative amount)",
            {"type": transaction_type.value, "amount": str(amount)},
        )


def _next_sequence(db: Session, wallet_id: UUID) -> int:
    current = db.query(func.max(WalletTransaction.sequence)).filter(
        WalletTransaction.wallet_id == wallet_id
    ).scalar()
    return (current or 0) + 1


def append_transaction(
    *,
    db: Session,
    wallet_id: UUID,
    transaction_type: TransactionType,
    amount: int,
    status: TransactionStatus,
    description: str = "",
    reference: Optional[str] = None,
    hold_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> WalletTransaction:
    """
    Append one transaction to a wallet's log.

    Args:
        amount: Signed integer minor units (credit > 0, debit < 0)
        reference: Correlation id (order id, bid id, payment reference)

    Raises:
        InvalidAmountError: If amount is zero, not an integer, or has the wrong sign for its type
        WalletNotFoundError: If the wallet does not exist

    NO COMMIT - caller must commit.
    """
    _validate_amount(transaction_type, amount)

    wallet = db.get(Wallet, wallet_id)
    if not wallet:
        raise WalletNotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": str(wallet_id)})

    transaction = WalletTransaction(
        wallet_id=wallet_id,
        sequence=_next_sequence(db, wallet_id),
        type=transaction_type,
        amount=amount,
        currency=wallet.currency,
        status=status,
        description=description,
        reference=reference,
        hold_id=hold_id,
        transaction_metadata=metadata,
    )
    db.add(transaction)
    # Duplicate (wallet_id, sequence): another writer appended from the same view
    with contention_guard("wallet"):
        db.flush()

    record_transaction_appended(transaction_type.value)
    logger.info(
        "Ledger transaction appended",
        extra={
            "wallet_id": str(wallet_id),
            "transaction_id": str(transaction.id),
            "sequence": transaction.sequence,
            "type": transaction_type.value,
            "amount": amount,
            "status": status.value,
            "reference": reference,
        },
    )
    return transaction


def record_status_change(
    *,
    db: Session,
    transaction: WalletTransaction,
    to_status: TransactionStatus,
    reason: Optional[str] = None,
) -> TransactionStatusEvent:
    """
    Move a PENDING transaction to a terminal status by appending a status event.

    Raises:
        InvalidTransactionTransitionError: If the transaction already left PENDING
            or the target status is not terminal

    NO COMMIT - caller must commit.
    """
    current = transaction.effective_status
    if current != TransactionStatus.PENDING or to_status not in TERMINAL_STATUSES:
        raise InvalidTransactionTransitionError(
            f"Transaction status cannot change from {current.value} to {to_status.value}",
            {"transaction_id": str(transaction.id), "from": current.value, "to": to_status.value},
        )

    event = TransactionStatusEvent(
        transaction=transaction,
        from_status=current,
        to_status=to_status,
        reason=reason,
    )
    db.add(event)
    db.flush()
    return event


def list_by_wallet(
    db: Session,
    wallet_id: UUID,
    page: int = 1,
    page_size: int = 20,
    transaction_type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
) -> Tuple[List[WalletTransaction], int]:
    """
    Page through a wallet's transactions, newest first.

    Returns:
        (transactions for the page, total matching count)
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    query = db.query(WalletTransaction).outerjoin(
        TransactionStatusEvent,
        TransactionStatusEvent.transaction_id == WalletTransaction.id,
    ).filter(WalletTransaction.wallet_id == wallet_id)

    if transaction_type is not None:
        query = query.filter(WalletTransaction.type == transaction_type)
    if status is not None:
        query = query.filter(effective_status_expression() == status)

    total = query.count()
    transactions = (
        query.order_by(WalletTransaction.sequence.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return transactions, total


def sum_completed(db: Session, wallet_id: UUID) -> int:
    """
    Wallet balance by replay: SUM(amount) of COMPLETED balance-affecting transactions.

    Returns 0 if no entries exist.
    """
    result = db.query(
        func.coalesce(func.sum(WalletTransaction.amount), 0)
    ).select_from(WalletTransaction).outerjoin(
        TransactionStatusEvent,
        TransactionStatusEvent.transaction_id == WalletTransaction.id,
    ).filter(
        WalletTransaction.wallet_id == wallet_id,
        WalletTransaction.type.in_(list(BALANCE_AFFECTING_TYPES)),
        effective_status_expression() == TransactionStatus.COMPLETED,
    ).scalar()

    return int(result or 0)
