"""
Escrow Manager - hold lifecycle against a wallet's available balance

State machine: ACTIVE -> RELEASED | FORFEITED (both terminal)

Ledger pairing:
- place:   AUCTION_HOLD / ESCROW_HOLD memo entry (PENDING, -amount)
- release: memo entry -> CANCELLED, AUCTION_RELEASE / ESCROW_RELEASE (COMPLETED, +amount)
- forfeit: memo entry -> CANCELLED, PURCHASE (COMPLETED, -amount) replaces it

Memo entries never change `balance`; only the PURCHASE debit does. Every
function takes the wallet lock before reading balances and flushes but
NEVER commits: the caller owns the database transaction.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from wallet_engine.core.common.base_model import utcnow
from wallet_engine.core.escrow.models import Hold, HoldReason, HoldStatus
from wallet_engine.core.ledger.models import WalletTransaction, TransactionType, TransactionStatus
from wallet_engine.services.balance_projector import get_balance
from wallet_engine.services.errors import (
    HoldNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidHoldStateError,
)
from wallet_engine.services.ledger_store import append_transaction, record_status_change
from wallet_engine.services.locking import lock_wallet, lock_wallets
from wallet_engine.utils.metrics import record_hold_action
from wallet_engine.utils.money import format_amount

logger = logging.getLogger(__name__)

_HOLD_TYPE = {
    HoldReason.BID: TransactionType.AUCTION_HOLD,
    HoldReason.ORDER_ESCROW: TransactionType.ESCROW_HOLD,
}
_RELEASE_TYPE = {
    HoldReason.BID: TransactionType.AUCTION_RELEASE,
    HoldReason.ORDER_ESCROW: TransactionType.ESCROW_RELEASE,
}


def _get_hold(db: Session, hold_id: UUID) -> Hold:
    hold = db.get(Hold, hold_id)
    if not hold:
        raise HoldNotFoundError(f"Hold {hold_id} not found", {"hold_id": str(hold_id)})
    return hold


def _memo_transaction(db: Session, hold: Hold) -> Optional[WalletTransaction]:
    if hold.hold_transaction_id is None:
        return None
    return db.get(WalletTransaction, hold.hold_transaction_id)


def place_hold(
    *,
    db: Session,
    wallet_id: UUID,
    amount: int,
    reason: HoldReason,
    reference_id: UUID,
    replacing: Optional[Hold] = None,
) -> Hold:
    """
    Reserve `amount` (minor units) of the wallet's available balance.

    Args:
        replacing: An ACTIVE hold on the same wallet that the caller releases
            right after this one succeeds (a bidder raising their own bid). Its
            amount counts as available for this check.

    Raises:
        InvalidAmountError: If amount is not a positive integer
        InsufficientFundsError: If amount > available balance (nothing is created)
        BusyError: If the wallet lock could not be acquired

    NO COMMIT - caller must commit.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError("Hold amount must be a positive integer of minor units", {"amount": str(amount)})

    lock_wallet(db, wallet_id)

    balances = get_balance(db, wallet_id)
    available = balances['available_balance']
    if (
        replacing is not None
        and replacing.wallet_id == wallet_id
        and replacing.status == HoldStatus.ACTIVE
    ):
        available += replacing.amount

    if amount > available:
        logger.info(
            "Hold rejected: insufficient funds",
            extra={"wallet_id": str(wallet_id), "amount": amount, "available_balance": available},
        )
        raise InsufficientFundsError(
            "Insufficient available balance",
            {
                "available_balance": format_amount(available),
                "requested_amount": format_amount(amount),
            },
        )

    hold = Hold(
        id=uuid4(),
        wallet_id=wallet_id,
        amount=amount,
        reason=reason,
        reference_id=reference_id,
        status=HoldStatus.ACTIVE,
    )
    db.add(hold)
    db.flush()

    memo = append_transaction(
        db=db,
        wallet_id=wallet_id,
        transaction_type=_HOLD_TYPE[reason],
        amount=-amount,
        status=TransactionStatus.PENDING,
        description=f"Funds reserved ({reason.value.lower()})",
        reference=str(reference_id),
        hold_id=hold.id,
    )
    hold.hold_transaction_id = memo.id
    db.flush()

    record_hold_action("placed")
    logger.info(
        "Hold placed",
        extra={
            "hold_id": str(hold.id),
            "wallet_id": str(wallet_id),
            "amount": amount,
            "reason": reason.value,
            "reference_id": str(reference_id),
        },
    )
    return hold


def release_hold(*, db: Session, hold_id: UUID, reason: Optional[str] = None) -> Hold:
    """
    Release an ACTIVE hold back to the available balance.

    Idempotent: releasing an already RELEASED hold is a no-op.

    Raises:
        HoldNotFoundError: If the hold does not exist
        InvalidHoldStateError: If the hold was FORFEITED

    NO COMMIT - caller must commit.
    """
    hold = _get_hold(db, hold_id)
    if hold.status == HoldStatus.RELEASED:
        return hold

    lock_wallet(db, hold.wallet_id)
    # Re-read under the lock: a concurrent resolver may have won
    db.refresh(hold)
    if hold.status == HoldStatus.RELEASED:
        return hold
    if hold.status != HoldStatus.ACTIVE:
        raise InvalidHoldStateError(
            f"Hold {hold_id} is {hold.status.value} and cannot be released",
            {"hold_id": str(hold_id), "status": hold.status.value},
        )

    memo = _memo_transaction(db, hold)
    if memo is not None:
        record_status_change(db=db, transaction=memo, to_status=TransactionStatus.CANCELLED, reason=reason or "hold released")

    release = append_transaction(
        db=db,
        wallet_id=hold.wallet_id,
        transaction_type=_RELEASE_TYPE[hold.reason],
        amount=hold.amount,
        status=TransactionStatus.COMPLETED,
        description=reason or "Reserved funds released",
        reference=str(hold.reference_id),
        hold_id=hold.id,
    )

    hold.status = HoldStatus.RELEASED
    hold.resolved_at = utcnow()
    hold.resolution_transaction_id = release.id
    db.flush()

    record_hold_action("released")
    logger.info(
        "Hold released",
        extra={"hold_id": str(hold.id), "wallet_id": str(hold.wallet_id), "amount": hold.amount},
    )
    return hold


def forfeit_hold(
    *,
    db: Session,
    hold_id: UUID,
    description: str = "Purchase",
    reference: Optional[str] = None,
) -> WalletTransaction:
    """
    Convert an ACTIVE hold into a COMPLETED PURCHASE debit of the same amount.

    Returns the PURCHASE transaction.

    Raises:
        HoldNotFoundError: If the hold does not exist
        InvalidHoldStateError: If the hold is not ACTIVE

    NO COMMIT - caller must commit.
    """
    hold = _get_hold(db, hold_id)

    lock_wallet(db, hold.wallet_id)
    db.refresh(hold)
    if hold.status != HoldStatus.ACTIVE:
        raise InvalidHoldStateError(
            f"Hold {hold_id} is {hold.status.value} and cannot be forfeited",
            {"hold_id": str(hold_id), "status": hold.status.value},
        )

    memo = _memo_transaction(db, hold)
    if memo is not None:
        record_status_change(db=db, transaction=memo, to_status=TransactionStatus.CANCELLED, reason="hold forfeited")

    purchase = append_transaction(
        db=db,
        wallet_id=hold.wallet_id,
        transaction_type=TransactionType.PURCHASE,
        amount=-hold.amount,
        status=TransactionStatus.COMPLETED,
        description=description,
        reference=reference or str(hold.reference_id),
        hold_id=hold.id,
    )

    hold.status = HoldStatus.FORFEITED
    hold.resolved_at = utcnow()
    hold.resolution_transaction_id = purchase.id
    db.flush()

    record_hold_action("forfeited")
    logger.info(
        "Hold forfeited",
        extra={"hold_id": str(hold.id), "wallet_id": str(hold.wallet_id), "amount": hold.amount},
    )
    return purchase


def extend_or_replace_hold(
    *,
    db: Session,
    old_hold_id: Optional[UUID],
    new_wallet_id: UUID,
    new_amount: int,
    reference_id: UUID,
    reason: HoldReason = HoldReason.BID,
) -> Hold:
    """
    Move a reservation: place the new hold, then release the old one.

    Both wallets are locked up front in global order. If the new hold fails
    (InsufficientFundsError) the old hold is untouched; the old hold is never
    released before the new one exists.

    NO COMMIT - caller must commit.
    """
    old_hold = _get_hold(db, old_hold_id) if old_hold_id else None

    wallet_ids = [new_wallet_id]
    if old_hold is not None:
        wallet_ids.append(old_hold.wallet_id)
    lock_wallets(db, wallet_ids)
    if old_hold is not None:
        db.refresh(old_hold)

    new_hold = place_hold(
        db=db,
        wallet_id=new_wallet_id,
        amount=new_amount,
        reason=reason,
        reference_id=reference_id,
        replacing=old_hold,
    )

    if old_hold is not None:
        release_hold(db=db, hold_id=old_hold.id, reason="Outbid: reserved funds released")

    return new_hold
