"""
Wallet API Facade - the boundary used by checkout, bidding and wallet routes

Translates external requests (decimal-string amounts, user ids) into ledger,
escrow, bidding and settlement operations. Each mutating call is one database
transaction owned here: commit on success, rollback on any error.

Mutating calls are idempotent. The key is client-supplied (Idempotency-Key
header) or derived from the request:
- add_funds: payment reference
- withdraw_funds: payout reference
- place_bid: product and amount
- buy_now: product
- cancel_order: order

Responses are JSON-ready dicts (amounts as decimal strings); a replay returns
the stored dict unchanged.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wallet_engine.core.auctions.models import Bid, Product, ProductStatus
from wallet_engine.core.ledger.models import (
    BALANCE_AFFECTING_TYPES,
    WalletTransaction,
    TransactionType,
    TransactionStatus,
)
from wallet_engine.core.orders.models import Order, OrderKind, OrderStatus
from wallet_engine.core.wallets.models import Wallet
from wallet_engine.services import bidding_engine, settlement
from wallet_engine.services.balance_projector import (
    ensure_wallet,
    get_balance as project_balance,
    get_wallet_for_user,
    get_wallet_stats,
)
from wallet_engine.services.errors import (
    InsufficientFundsError,
    OrderNotFoundError,
    ProductNotAvailableError,
    SelfBidError,
    WalletNotFoundError,
)
from wallet_engine.services.ledger_store import append_transaction, list_by_wallet
from wallet_engine.services.locking import lock_product, lock_wallet
from wallet_engine.utils.idempotency import check_idempotency_key, request_fingerprint, store_idempotent_response
from wallet_engine.utils.money import format_amount, to_minor_units

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value: Optional[int]) -> Optional[str]:
    return format_amount(value) if value is not None else None


def balance_payload(db: Session, wallet: Wallet) -> Dict[str, Any]:
    balances = project_balance(db, wallet.id)
    return {
        "wallet_id": str(wallet.id),
        "currency": wallet.currency,
        "balance": format_amount(balances['balance']),
        "locked_balance": format_amount(balances['locked_balance']),
        "available_balance": format_amount(balances['available_balance']),
    }


def transaction_payload(transaction: WalletTransaction) -> Dict[str, Any]:
    return {
        "id": str(transaction.id),
        "wallet_id": str(transaction.wallet_id),
        "sequence": transaction.sequence,
        "type": transaction.type.value,
        "amount": format_amount(transaction.amount),
        "currency": transaction.currency,
        "status": transaction.effective_status.value,
        "affects_balance": transaction.type in BALANCE_AFFECTING_TYPES,
        "description": transaction.description,
        "reference": transaction.reference,
        "created_at": _iso(transaction.created_at),
    }


def order_payload(order: Order) -> Dict[str, Any]:
    fee = order.platform_fee_amount
    return {
        "id": str(order.id),
        "buyer_id": str(order.buyer_id),
        "seller_id": str(order.seller_id),
        "product_id": str(order.product_id),
        "kind": order.kind.value,
        "status": order.status.value,
        "settlement_mode": order.settlement_mode.value,
        "total_amount": format_amount(order.total_amount),
        "platform_fee": _money(fee),
        "seller_payout": _money(order.total_amount - fee) if fee is not None else None,
        "currency": order.currency,
        "is_frozen": order.is_frozen,
        "settled_at": _iso(order.settled_at),
        "created_at": _iso(order.created_at),
    }


def auction_payload(state: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "product_id": str(state['product_id']),
        "status": state['status'].value,
        "auction_state": state['auction_state'].value,
        "current_bid": _money(state['current_bid']),
        "minimum_bid": _money(state['minimum_bid']),
        "min_increment": _money(state['min_increment']),
        "minimum_acceptable": _money(state['minimum_acceptable']),
        "auction_end_date": _iso(state['auction_end_date']),
        "is_active": state['is_active'],
        "bid_count": state['bid_count'],
        "winning_bid_id": str(state['winning_bid_id']) if state['winning_bid_id'] else None,
    }


def bid_payload(bid: Bid) -> Dict[str, Any]:
    return {
        "id": str(bid.id),
        "product_id": str(bid.product_id),
        "user_id": str(bid.user_id),
        "amount": format_amount(bid.amount),
        "is_winning": bid.is_winning,
        "created_at": _iso(bid.created_at),
    }


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

def _run_idempotent(
    db: Session,
    *,
    user_id: UUID,
    scope: str,
    idempotency_key: str,
    request: Dict[str, Any],
    operation: Callable[[], Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Run `operation` once per (user, scope, key) and commit it with its idempotency record.

    A concurrent duplicate losing the unique race on the record is rolled back
    and answered with the winner's stored response.
    """
    fingerprint = request_fingerprint(request)

    stored = check_idempotency_key(
        db, user_id=user_id, scope=scope, idempotency_key=idempotency_key, fingerprint=fingerprint
    )
    if stored is not None:
        logger.info("Idempotent replay", extra={"scope": scope, "idempotency_key": idempotency_key})
        return stored

    try:
        response = operation()
        store_idempotent_response(
            db,
            user_id=user_id,
            scope=scope,
            idempotency_key=idempotency_key,
            fingerprint=fingerprint,
            response=response,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        stored = check_idempotency_key(
            db, user_id=user_id, scope=scope, idempotency_key=idempotency_key, fingerprint=fingerprint
        )
        if stored is not None:
            return stored
        raise
    except Exception:
        db.rollback()
        raise

    return response


def _wallet_for(db: Session, user_id: UUID) -> Wallet:
    """User wallet, auto-provisioned on first access (committed)"""
    try:
        return get_wallet_for_user(db, user_id)
    except WalletNotFoundError:
        pass
    try:
        wallet = ensure_wallet(db, user_id)
        db.commit()
    except IntegrityError:
        # Lost a concurrent first-access race
        db.rollback()
        return get_wallet_for_user(db, user_id)
    return wallet


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------

def get_balance(*, db: Session, user_id: UUID) -> Dict[str, Any]:
    """Balance view, re-derived from the ledger on every call"""
    return balance_payload(db, _wallet_for(db, user_id))


def get_stats(*, db: Session, user_id: UUID) -> Dict[str, Any]:
    """Wallet statistics: total deposits, purchases, withdrawals, transaction count"""
    wallet = _wallet_for(db, user_id)
    stats = get_wallet_stats(db, wallet.id)
    return {
        "wallet_id": str(wallet.id),
        "currency": wallet.currency,
        "total_deposits": format_amount(stats['total_deposits']),
        "total_purchases": format_amount(stats['total_purchases']),
        "total_withdrawals": format_amount(stats['total_withdrawals']),
        "transaction_count": stats['transaction_count'],
    }


def get_transaction_history(
    *,
    db: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = 20,
    transaction_type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
) -> Dict[str, Any]:
    """Newest-first page of the user's ledger, optionally filtered by type and status"""
    wallet = _wallet_for(db, user_id)
    transactions, total = list_by_wallet(
        db,
        wallet.id,
        page=page,
        page_size=limit,
        transaction_type=transaction_type,
        status=status,
    )
    return {
        "items": [transaction_payload(tx) for tx in transactions],
        "page": page,
        "limit": limit,
        "total": total,
    }


def get_auction(*, db: Session, product_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
    return auction_payload(bidding_engine.get_auction_state(db, product_id, now=now))


def list_auction_bids(*, db: Session, product_id: UUID, limit: int = 50) -> Dict[str, Any]:
    bids = bidding_engine.list_bids(db, product_id, limit=limit)
    return {"items": [bid_payload(bid) for bid in bids]}


def get_order(*, db: Session, user_id: UUID, order_id: UUID) -> Dict[str, Any]:
    """Order visible to its buyer or seller (others get OrderNotFoundError)"""
    return order_payload(_order_for_party(db, user_id, order_id))


def _order_for_party(db: Session, user_id: UUID, order_id: UUID) -> Order:
    order = db.get(Order, order_id)
    if order is None or user_id not in (order.buyer_id, order.seller_id):
        raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})
    return order


# ---------------------------------------------------------------------------
# Mutating operations
# ---------------------------------------------------------------------------

def add_funds(
    *,
    db: Session,
    user_id: UUID,
    amount: str,
    payment_ref: str,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Record a DEPOSIT of funds already authorized by the payment processor.

    Returns {"transaction": ..., "wallet": ...}.
    """
    minor = to_minor_units(amount)
    key = idempotency_key or f"payment:{payment_ref}"

    def operation() -> Dict[str, Any]:
        wallet = ensure_wallet(db, user_id)
        lock_wallet(db, wallet.id)
        transaction = append_transaction(
            db=db,
            wallet_id=wallet.id,
            transaction_type=TransactionType.DEPOSIT,
            amount=minor,
            status=TransactionStatus.COMPLETED,
            description="Wallet top-up",
            reference=payment_ref,
            metadata={"payment_ref": payment_ref},
        )
        return {"transaction": transaction_payload(transaction), "wallet": balance_payload(db, wallet)}

    return _run_idempotent(
        db,
        user_id=user_id,
        scope="add_funds",
        idempotency_key=key,
        request={"amount": minor, "payment_ref": payment_ref},
        operation=operation,
    )


def withdraw_funds(
    *,
    db: Session,
    user_id: UUID,
    amount: str,
    payout_ref: str,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Record a WITHDRAWAL bounded by the available balance.

    Raises:
        InsufficientFundsError: If amount > available balance
    """
    minor = to_minor_units(amount)
    key = idempotency_key or f"payout:{payout_ref}"

    def operation() -> Dict[str, Any]:
        wallet = ensure_wallet(db, user_id)
        lock_wallet(db, wallet.id)
        available = project_balance(db, wallet.id)['available_balance']
        if minor > available:
            raise InsufficientFundsError(
                "Insufficient available balance",
                {"available_balance": format_amount(available), "requested_amount": format_amount(minor)},
            )
        transaction = append_transaction(
            db=db,
            wallet_id=wallet.id,
            transaction_type=TransactionType.WITHDRAWAL,
            amount=-minor,
            status=TransactionStatus.COMPLETED,
            description="Wallet withdrawal",
            reference=payout_ref,
            metadata={"payout_ref": payout_ref},
        )
        return {"transaction": transaction_payload(transaction), "wallet": balance_payload(db, wallet)}

    return _run_idempotent(
        db,
        user_id=user_id,
        scope="withdraw_funds",
        idempotency_key=key,
        request={"amount": minor, "payout_ref": payout_ref},
        operation=operation,
    )


def place_bid(
    *,
    db: Session,
    user_id: UUID,
    product_id: UUID,
    amount: str,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Place a bid. Returns the bid, the refreshed auction view
    (current bid, next minimum) and the bidder's balance.
    """
    minor = to_minor_units(amount)
    key = idempotency_key or f"bid:{product_id}:{minor}"

    def operation() -> Dict[str, Any]:
        bid = bidding_engine.place_bid(db=db, product_id=product_id, user_id=user_id, amount=minor, now=now)
        wallet = ensure_wallet(db, user_id)
        return {
            "bid": bid_payload(bid),
            "auction": get_auction(db=db, product_id=product_id, now=now),
            "wallet": balance_payload(db, wallet),
        }

    return _run_idempotent(
        db,
        user_id=user_id,
        scope="place_bid",
        idempotency_key=key,
        request={"product_id": str(product_id), "amount": minor},
        operation=operation,
    )


def buy_now(
    *,
    db: Session,
    user_id: UUID,
    product_id: UUID,
    idempotency_key: Optional[str] = None,
    fee_rate: Optional[Decimal] = None,
) -> Dict[str, Any]:
    """
    Direct purchase at the product's price: order created and settled in one unit.

    Raises:
        ProductNotAvailableError: Auction listing, no price, or product not ACTIVE
        SelfBidError: Buyer owns the product
        InsufficientFundsError: Buyer cannot cover the price (no order is created)
    """
    key = idempotency_key or f"buy-now:{product_id}"

    def operation() -> Dict[str, Any]:
        product = lock_product(db, product_id)
        _ensure_buyable(product, user_id)
        wallet = ensure_wallet(db, user_id, product.currency)

        order = Order(
            buyer_id=user_id,
            seller_id=product.owner_id,
            product_id=product.id,
            kind=OrderKind.DIRECT,
            total_amount=product.price,
            currency=product.currency,
            status=OrderStatus.PENDING,
            settlement_mode=settlement.current_settlement_mode(),
        )
        db.add(order)
        db.flush()

        order = settlement.settle_order(db=db, order_id=order.id, fee_rate=fee_rate)
        product.status = ProductStatus.SOLD
        db.flush()

        return {"order": order_payload(order), "wallet": balance_payload(db, wallet)}

    return _run_idempotent(
        db,
        user_id=user_id,
        scope="buy_now",
        idempotency_key=key,
        request={"product_id": str(product_id)},
        operation=operation,
    )


def _ensure_buyable(product: Product, user_id: UUID) -> None:
    if product.is_auction:
        raise ProductNotAvailableError(
            "Auction products can only be won by bidding",
            {"product_id": str(product.id)},
        )
    if product.status != ProductStatus.ACTIVE or not product.price:
        raise ProductNotAvailableError(
            "Product is not available for purchase",
            {"product_id": str(product.id), "status": product.status.value},
        )
    if product.owner_id == user_id:
        raise SelfBidError("You cannot buy your own product", {"product_id": str(product.id)})


def cancel_order(
    *,
    db: Session,
    user_id: UUID,
    order_id: UUID,
    reason: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Cancel (unsettled) or refund (settled) an order on behalf of its buyer or seller"""
    key = idempotency_key or f"cancel:{order_id}"

    def operation() -> Dict[str, Any]:
        _order_for_party(db, user_id, order_id)
        order = settlement.cancel_order(db=db, order_id=order_id, reason=reason)
        return {"order": order_payload(order)}

    return _run_idempotent(
        db,
        user_id=user_id,
        scope="cancel_order",
        idempotency_key=key,
        request={"order_id": str(order_id), "reason": reason},
        operation=operation,
    )
