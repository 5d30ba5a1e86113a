"""
Order Settlement Coordinator - converts reservations into completed payments

Payout sources:
- DIRECT orders: ORDER_ESCROW hold on the buyer
- AUCTION orders: the winning bid's existing hold
The hold is forfeited into the same COMPLETED triple, referencing the order id:
    buyer PURCHASE (-total), seller SELLER_PAYOUT (+total - fee), platform PLATFORM_FEE (+fee)

When the triple is written depends on the order's settlement mode:
- IMMEDIATE: on confirmation (settle_order)
- ESCROW: on delivery (release_escrow); until then the hold stays ACTIVE and a
  cancellation before shipment only releases it

The triple is written inside the caller's database transaction and validated
before returning. A failed validation rolls the transaction back, freezes the
order for manual reconciliation and raises SettlementPartialFailureError:
a half-applied settlement is never retried automatically.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from wallet_engine.core.common.base_model import utcnow
from wallet_engine.core.escrow.models import Hold, HoldReason, HoldStatus
from wallet_engine.core.ledger.models import TransactionType, TransactionStatus
from wallet_engine.core.orders.models import Order, OrderStatus, ORDER_TRANSITIONS, SettlementMode
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.services.balance_projector import (
    ensure_wallet,
    get_balance,
    get_platform_wallet,
    get_wallet_for_user,
)
from wallet_engine.services.errors import (
    InsufficientFundsError,
    InvalidOrderTransitionError,
    OrderFrozenError,
    OrderNotFoundError,
    SettlementPartialFailureError,
)
from wallet_engine.services.escrow_manager import forfeit_hold, place_hold, release_hold
from wallet_engine.services.ledger_store import append_transaction
from wallet_engine.services.locking import lock_wallets
from wallet_engine.utils.ledger_validator import validate_settlement_invariant
from wallet_engine.utils.metrics import record_settlement
from wallet_engine.utils.money import apply_rate, format_amount

logger = logging.getLogger(__name__)

# Statuses set by the fulfilment flow; CONFIRMED/CANCELLED/REFUNDED go through settle/cancel
FULFILMENT_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED})


def compute_platform_fee(total_amount: int, fee_rate: Optional[Decimal] = None) -> int:
    """Platform fee in minor units: total * rate, rounded half-up"""
    rate = get_settings().PLATFORM_FEE_RATE if fee_rate is None else Decimal(fee_rate)
    if rate < 0 or rate >= 1:
        raise ValueError("fee_rate must be >= 0 and < 1")
    return apply_rate(total_amount, rate)


def get_order(db: Session, order_id: UUID) -> Order:
    """
    Get an order.

    Raises:
        OrderNotFoundError: If the order does not exist
    """
    order = db.get(Order, order_id)
    if not order:
        raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})
    return order


def _ensure_not_frozen(order: Order) -> None:
    if order.is_frozen:
        raise OrderFrozenError(
            "Order is frozen pending manual reconciliation",
            {"order_id": str(order.id), "incident_reference": order.incident_reference},
        )


def new_incident_reference() -> str:
    return f"INC-{uuid4().hex[:12].upper()}"


def freeze_order_after_failure(db: Session, order_id: UUID, reason: str) -> str:
    """
    Roll back the failed unit, freeze the order and COMMIT the freeze.

    Returns the incident reference. When the order itself was created in the
    rolled-back unit (buy-now) there is nothing to freeze; the incident is
    still logged.
    """
    incident_reference = new_incident_reference()
    db.rollback()

    order = db.get(Order, order_id)
    if order is not None:
        order.is_frozen = True
        order.frozen_reason = reason
        order.incident_reference = incident_reference
        db.commit()

    record_settlement("failed")
    logger.critical(
        "Settlement failed, order frozen for manual reconciliation",
        extra={
            "order_id": str(order_id),
            "incident_reference": incident_reference,
            "reason": reason,
            "order_persisted": order is not None,
        },
    )
    return incident_reference


def current_settlement_mode() -> SettlementMode:
    """Settlement mode stamped on new orders"""
    return SettlementMode(get_settings().SETTLEMENT_MODE)


def _pay_seller(db: Session, order: Order, fee_rate: Optional[Decimal]) -> int:
    """
    Forfeit the order's hold into the COMPLETED triple and validate it.

    Returns the platform fee. Places the ORDER_ESCROW hold first when the
    order has none (DIRECT orders settled on confirmation).
    """
    buyer_wallet = get_wallet_for_user(db, order.buyer_id, order.currency)
    seller_wallet = ensure_wallet(db, order.seller_id, order.currency)
    platform_wallet = get_platform_wallet(db, order.currency)
    lock_wallets(db, [buyer_wallet.id, seller_wallet.id, platform_wallet.id])

    fee = compute_platform_fee(order.total_amount, fee_rate)
    payout = order.total_amount - fee

    if order.hold_id is None:
        hold = place_hold(
            db=db,
            wallet_id=buyer_wallet.id,
            amount=order.total_amount,
            reason=HoldReason.ORDER_ESCROW,
            reference_id=order.id,
        )
        order.hold_id = hold.id
        db.flush()

    forfeit_hold(
        db=db,
        hold_id=order.hold_id,
        description=f"Purchase of product {order.product_id}",
        reference=str(order.id),
    )

    if payout > 0:
        append_transaction(
            db=db,
            wallet_id=seller_wallet.id,
            transaction_type=TransactionType.SELLER_PAYOUT,
            amount=payout,
            status=TransactionStatus.COMPLETED,
            description=f"Sale of product {order.product_id}",
            reference=str(order.id),
            metadata={"gross": order.total_amount, "platform_fee": fee},
        )
    if fee > 0:
        append_transaction(
            db=db,
            wallet_id=platform_wallet.id,
            transaction_type=TransactionType.PLATFORM_FEE,
            amount=fee,
            status=TransactionStatus.COMPLETED,
            description=f"Platform fee for order {order.id}",
            reference=str(order.id),
        )

    if not validate_settlement_invariant(db, order):
        incident_reference = freeze_order_after_failure(
            db, order.id, "settlement invariant violation: purchase != payout + fee"
        )
        raise SettlementPartialFailureError(incident_reference, "settlement invariant violation")

    order.platform_fee_amount = fee
    order.settled_at = utcnow()
    db.flush()

    record_settlement("settled")
    logger.info(
        "Order settled",
        extra={
            "order_id": str(order.id),
            "kind": order.kind.value,
            "settlement_mode": order.settlement_mode.value,
            "total_amount": order.total_amount,
            "seller_payout": payout,
            "platform_fee": fee,
        },
    )
    return fee


def _hold_in_escrow(db: Session, order: Order) -> None:
    """Keep (or place) the buyer's hold ACTIVE until delivery"""
    if order.hold_id is not None:
        return
    buyer_wallet = get_wallet_for_user(db, order.buyer_id, order.currency)
    hold = place_hold(
        db=db,
        wallet_id=buyer_wallet.id,
        amount=order.total_amount,
        reason=HoldReason.ORDER_ESCROW,
        reference_id=order.id,
    )
    order.hold_id = hold.id
    db.flush()


def settle_order(
    *,
    db: Session,
    order_id: UUID,
    fee_rate: Optional[Decimal] = None,
) -> Order:
    """
    Confirm a PENDING order, PENDING -> CONFIRMED.

    IMMEDIATE orders are paid out here: buyer debit, seller credit, platform fee.
    ESCROW orders only secure the buyer's hold; the payout happens on delivery
    (release_escrow).

    Idempotent: an already confirmed order is returned unchanged.

    Raises:
        OrderNotFoundError, OrderFrozenError, InvalidOrderTransitionError
        InsufficientFundsError: DIRECT order and the buyer cannot cover the total
        SettlementPartialFailureError: Invariant check failed (rolled back, order frozen)

    NO COMMIT - caller must commit (except the freeze on SettlementPartialFailureError).
    """
    order = get_order(db, order_id)
    _ensure_not_frozen(order)

    escrowed = order.settlement_mode == SettlementMode.ESCROW
    if order.status == OrderStatus.CONFIRMED and (escrowed or order.settled_at is not None):
        return order
    if order.status != OrderStatus.PENDING:
        raise InvalidOrderTransitionError(
            f"Order cannot be settled from {order.status.value}",
            {"order_id": str(order.id), "status": order.status.value},
        )

    if escrowed:
        _hold_in_escrow(db, order)
        order.status = OrderStatus.CONFIRMED
        db.flush()
        record_settlement("escrowed")
        logger.info(
            "Order confirmed, funds held in escrow until delivery",
            extra={"order_id": str(order.id), "kind": order.kind.value, "total_amount": order.total_amount},
        )
        return order

    _pay_seller(db, order, fee_rate)
    order.status = OrderStatus.CONFIRMED
    db.flush()
    return order


def release_escrow(
    *,
    db: Session,
    order_id: UUID,
    fee_rate: Optional[Decimal] = None,
) -> Order:
    """
    Pay out a delivered ESCROW order, SHIPPED -> DELIVERED.

    The buyer's hold is forfeited into the PURCHASE / SELLER_PAYOUT /
    PLATFORM_FEE triple. Idempotent for an already delivered order.

    Raises:
        OrderNotFoundError, OrderFrozenError, InvalidOrderTransitionError
        SettlementPartialFailureError: Invariant check failed (rolled back, order frozen)

    NO COMMIT - caller must commit (except the freeze on SettlementPartialFailureError).
    """
    order = get_order(db, order_id)
    _ensure_not_frozen(order)

    if order.settlement_mode != SettlementMode.ESCROW:
        raise InvalidOrderTransitionError(
            "Order was paid out on confirmation and holds no escrow",
            {"order_id": str(order.id), "settlement_mode": order.settlement_mode.value},
        )
    if order.status == OrderStatus.DELIVERED and order.settled_at is not None:
        return order
    if order.status != OrderStatus.SHIPPED:
        raise InvalidOrderTransitionError(
            f"Escrow cannot be released from {order.status.value}",
            {"order_id": str(order.id), "status": order.status.value},
        )

    _pay_seller(db, order, fee_rate)
    order.status = OrderStatus.DELIVERED
    db.flush()
    return order


def cancel_order(*, db: Session, order_id: UUID, reason: Optional[str] = None) -> Order:
    """
    Cancel an order before shipment.

    - PENDING, or CONFIRMED with funds still in escrow: the ACTIVE hold is
      released, status -> CANCELLED. No money has moved, so this cannot fail
      for lack of funds.
    - CONFIRMED (settled): REFUND buyer +total, REFUND seller -payout,
      REFUND platform -fee, status -> REFUNDED. Rejected with
      InsufficientFundsError if the seller already spent the payout.

    NO COMMIT - caller must commit.
    """
    order = get_order(db, order_id)
    _ensure_not_frozen(order)

    if order.status not in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
        raise InvalidOrderTransitionError(
            f"Order cannot be cancelled from {order.status.value}",
            {"order_id": str(order.id), "status": order.status.value},
        )

    if order.settled_at is None:
        if order.hold_id is not None:
            hold = db.get(Hold, order.hold_id)
            if hold is not None and hold.status == HoldStatus.ACTIVE:
                release_hold(db=db, hold_id=hold.id, reason=reason or "Order cancelled")
        order.status = OrderStatus.CANCELLED
        db.flush()
        record_settlement("cancelled")
        logger.info("Order cancelled", extra={"order_id": str(order.id)})
        return order

    fee = order.platform_fee_amount or 0
    payout = order.total_amount - fee

    buyer_wallet = get_wallet_for_user(db, order.buyer_id, order.currency)
    seller_wallet = get_wallet_for_user(db, order.seller_id, order.currency)
    platform_wallet = get_platform_wallet(db, order.currency)
    lock_wallets(db, [buyer_wallet.id, seller_wallet.id, platform_wallet.id])

    for wallet, amount, label in (
        (seller_wallet, payout, "seller"),
        (platform_wallet, fee, "platform"),
    ):
        if amount <= 0:
            continue
        available = get_balance(db, wallet.id)['available_balance']
        if available < amount:
            raise InsufficientFundsError(
                f"Refund requires {label} funds that are no longer available",
                {
                    "wallet": label,
                    "available_balance": format_amount(available),
                    "required_amount": format_amount(amount),
                },
            )

    refund_description = reason or f"Refund for order {order.id}"
    append_transaction(
        db=db,
        wallet_id=buyer_wallet.id,
        transaction_type=TransactionType.REFUND,
        amount=order.total_amount,
        status=TransactionStatus.COMPLETED,
        description=refund_description,
        reference=str(order.id),
    )
    if payout > 0:
        append_transaction(
            db=db,
            wallet_id=seller_wallet.id,
            transaction_type=TransactionType.REFUND,
            amount=-payout,
            status=TransactionStatus.COMPLETED,
            description=refund_description,
            reference=str(order.id),
        )
    if fee > 0:
        append_transaction(
            db=db,
            wallet_id=platform_wallet.id,
            transaction_type=TransactionType.REFUND,
            amount=-fee,
            status=TransactionStatus.COMPLETED,
            description=refund_description,
            reference=str(order.id),
        )

    order.status = OrderStatus.REFUNDED
    db.flush()

    record_settlement("refunded")
    logger.info(
        "Order refunded",
        extra={"order_id": str(order.id), "total_amount": order.total_amount, "platform_fee": fee},
    )
    return order


def update_order_status(
    *,
    db: Session,
    order_id: UUID,
    new_status: OrderStatus,
    fee_rate: Optional[Decimal] = None,
) -> Order:
    """
    Apply an order status transition.

    CONFIRMED settles, CANCELLED/REFUNDED cancel, DELIVERED releases the
    escrow of ESCROW orders; otherwise the status just moves.

    Raises:
        InvalidOrderTransitionError: If the transition is not allowed

    NO COMMIT - caller must commit.
    """
    order = get_order(db, order_id)
    _ensure_not_frozen(order)

    if new_status not in ORDER_TRANSITIONS[order.status]:
        raise InvalidOrderTransitionError(
            f"Order cannot move from {order.status.value} to {new_status.value}",
            {
                "order_id": str(order.id),
                "status": order.status.value,
                "allowed": sorted(s.value for s in ORDER_TRANSITIONS[order.status]),
            },
        )

    if new_status == OrderStatus.CONFIRMED:
        return settle_order(db=db, order_id=order_id, fee_rate=fee_rate)
    if new_status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        return cancel_order(db=db, order_id=order_id)
    if new_status == OrderStatus.DELIVERED and order.settlement_mode == SettlementMode.ESCROW:
        return release_escrow(db=db, order_id=order_id, fee_rate=fee_rate)

    order.status = new_status
    db.flush()
    logger.info("Order status updated", extra={"order_id": str(order.id), "status": new_status.value})
    return order
