"""
Ledger invariant validation utilities
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from wallet_engine.core.auctions.models import AuctionState, Bid, Product
from wallet_engine.core.escrow.models import Hold, HoldStatus
from wallet_engine.core.ledger.models import (
    WalletTransaction,
    TransactionStatusEvent,
    TransactionType,
    TransactionStatus,
)
from wallet_engine.core.orders.models import Order
from wallet_engine.services.balance_projector import get_balance
from wallet_engine.services.ledger_store import effective_status_expression
from wallet_engine.utils.metrics import record_ledger_invariant_violation

logger = logging.getLogger(__name__)

_SETTLEMENT_TYPES = (
    TransactionType.PURCHASE,
    TransactionType.SELLER_PAYOUT,
    TransactionType.PLATFORM_FEE,
)


def validate_settlement_invariant(db: Session, order: Order) -> bool:
    """
    Validate a settled order's money movement.

    Invariant: -PURCHASE == SELLER_PAYOUT + PLATFORM_FEE == order.total_amount,
    counting COMPLETED transactions referencing the order.

    Side effects:
        Records metric if violation detected
    """
    rows = db.query(
        WalletTransaction.type,
        func.coalesce(func.sum(WalletTransaction.amount), 0),
    ).select_from(WalletTransaction).outerjoin(
        TransactionStatusEvent,
        TransactionStatusEvent.transaction_id == WalletTransaction.id,
    ).filter(
        WalletTransaction.reference == str(order.id),
        WalletTransaction.type.in_(_SETTLEMENT_TYPES),
        effective_status_expression() == TransactionStatus.COMPLETED,
    ).group_by(WalletTransaction.type).all()
    sums = {row[0]: int(row[1]) for row in rows}

    debited = -sums.get(TransactionType.PURCHASE, 0)
    credited = sums.get(TransactionType.SELLER_PAYOUT, 0) + sums.get(TransactionType.PLATFORM_FEE, 0)

    if debited != credited or debited != order.total_amount:
        logger.error(
            f"Settlement invariant violation: order_id={order.id}, "
            f"total={order.total_amount}, debited={debited}, credited={credited}"
        )
        record_ledger_invariant_violation()
        return False

    return True


def check_wallet_invariants(db: Session, wallet_id: UUID) -> List[str]:
    """
    Check a wallet's balance invariants by replay.

    - available_balance >= 0
    - locked_balance >= 0 and locked_balance <= balance
    - every ACTIVE hold has a PENDING memo transaction

    Returns:
        Human-readable violations (empty list when the wallet is consistent)
    """
    violations: List[str] = []
    balances = get_balance(db, wallet_id)

    if balances['available_balance'] < 0:
        violations.append(f"available_balance is negative ({balances['available_balance']})")
    if balances['locked_balance'] < 0:
        violations.append(f"locked_balance is negative ({balances['locked_balance']})")
    if balances['locked_balance'] > balances['balance']:
        violations.append(
            f"locked_balance ({balances['locked_balance']}) exceeds balance ({balances['balance']})"
        )

    active_holds = db.query(Hold).filter(
        Hold.wallet_id == wallet_id,
        Hold.status == HoldStatus.ACTIVE,
    ).all()
    for hold in active_holds:
        memo = db.get(WalletTransaction, hold.hold_transaction_id) if hold.hold_transaction_id else None
        if memo is None or memo.effective_status != TransactionStatus.PENDING:
            violations.append(f"active hold {hold.id} has no pending memo transaction")

    if violations:
        logger.error(f"Wallet invariant violation: wallet_id={wallet_id}, violations={violations}")
        record_ledger_invariant_violation()

    return violations


def check_auction_invariants(db: Session, product_id: UUID) -> List[str]:
    """
    Check a product's bid invariants.

    - at most one winning bid
    - the winning bid holds exactly one ACTIVE hold of the same amount
      (while the auction is open; after close the hold is forfeited or released)
    """
    violations: List[str] = []
    product = db.get(Product, product_id)
    auction_open = product is not None and product.auction_state != AuctionState.CLOSED
    winning = db.query(Bid).filter(Bid.product_id == product_id, Bid.is_winning.is_(True)).all()

    if len(winning) > 1:
        violations.append(f"{len(winning)} winning bids")

    for bid in winning:
        hold = db.get(Hold, bid.hold_id) if bid.hold_id else None
        if hold is None:
            violations.append(f"winning bid {bid.id} has no hold")
        elif auction_open and hold.status != HoldStatus.ACTIVE:
            violations.append(f"winning bid {bid.id} hold is {hold.status.value} on an open auction")
        elif hold.status == HoldStatus.ACTIVE and hold.amount != bid.amount:
            violations.append(f"winning bid {bid.id} hold amount {hold.amount} != bid amount {bid.amount}")

    if violations:
        logger.error(f"Auction invariant violation: product_id={product_id}, violations={violations}")
        record_ledger_invariant_violation()

    return violations
