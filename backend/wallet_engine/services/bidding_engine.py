"""
Auction Bidding Engine - validates and serializes competing bids per product

Auction state machine: NO_BIDS -> HAS_BIDS -> CLOSED

Bids on one product are strictly ordered by the product lock; bids on
different products only contend on shared wallets.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from wallet_engine.core.auctions.models import AuctionState, Bid, Product, ProductStatus
from wallet_engine.core.orders.models import Order, OrderKind, OrderStatus
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.services.balance_projector import ensure_wallet
from wallet_engine.services.errors import (
    AuctionNotActiveError,
    AuctionStillRunningError,
    BidTooLowError,
    InsufficientFundsError,
    InvalidAmountError,
    ProductNotAvailableError,
    ProductNotFoundError,
    SelfBidError,
)
from wallet_engine.services.escrow_manager import extend_or_replace_hold
from wallet_engine.services.locking import lock_product
from wallet_engine.services.settlement import current_settlement_mode, settle_order
from wallet_engine.utils.metrics import record_bid
from wallet_engine.utils.money import format_amount, to_minor_units

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite returns naive datetimes: they are stored as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _now(now: Optional[datetime]) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(timezone.utc)


def get_product(db: Session, product_id: UUID) -> Product:
    """
    Get a product.

    Raises:
        ProductNotFoundError: If the product does not exist
    """
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found", {"product_id": str(product_id)})
    return product


def min_increment(product: Product) -> int:
    if product.min_increment:
        return product.min_increment
    return to_minor_units(get_settings().DEFAULT_MIN_BID_INCREMENT)


def minimum_acceptable_bid(product: Product) -> int:
    """currentBid + minIncrement when a bid exists, minimumBid otherwise"""
    if product.current_bid is not None:
        return product.current_bid + min_increment(product)
    return product.minimum_bid or 0


def get_winning_bid(db: Session, product_id: UUID) -> Optional[Bid]:
    return db.query(Bid).filter(
        Bid.product_id == product_id,
        Bid.is_winning.is_(True),
    ).first()


def is_auction_open(product: Product, now: Optional[datetime] = None) -> bool:
    end = _as_utc(product.auction_end_date)
    return (
        product.is_auction
        and product.status == ProductStatus.ACTIVE
        and product.auction_state != AuctionState.CLOSED
        and end is not None
        and end > _now(now)
    )


def get_auction_state(db: Session, product_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Auction view for the bidding UI (amounts in minor units).

    Raises:
        ProductNotFoundError, ProductNotAvailableError (not an auction)
    """
    product = get_product(db, product_id)
    if not product.is_auction:
        raise ProductNotAvailableError("Product is not an auction", {"product_id": str(product_id)})

    winning = get_winning_bid(db, product_id)
    bid_count = db.query(Bid).filter(Bid.product_id == product_id).count()

    return {
        'product_id': product.id,
        'owner_id': product.owner_id,
        'status': product.status,
        'auction_state': product.auction_state or AuctionState.NO_BIDS,
        'current_bid': product.current_bid,
        'minimum_bid': product.minimum_bid,
        'min_increment': min_increment(product),
        'minimum_acceptable': minimum_acceptable_bid(product),
        'auction_end_date': _as_utc(product.auction_end_date),
        'is_active': is_auction_open(product, now),
        'bid_count': bid_count,
        'winning_bid_id': winning.id if winning else None,
        'winning_user_id': winning.user_id if winning else None,
    }


def place_bid(
    *,
    db: Session,
    product_id: UUID,
    user_id: UUID,
    amount: int,
    now: Optional[datetime] = None,
) -> Bid:
    """
    Place a bid (amount in minor units).

    Order of checks:
    1. AuctionNotActiveError if the auction ended (auctionEndDate <= now) or closed
    2. BidTooLowError if amount < minimum acceptable
    3. SelfBidError if the bidder owns the product
    4. New hold placed (InsufficientFundsError leaves the previous high bid untouched)
    5. Previous hold released, previous bid demoted, new winning bid inserted

    NO COMMIT - caller must commit; on any error the caller rolls back.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError("Bid amount must be a positive integer of minor units", {"amount": str(amount)})

    product = lock_product(db, product_id)
    if not product.is_auction:
        raise ProductNotAvailableError("Product is not an auction", {"product_id": str(product_id)})

    if not is_auction_open(product, now):
        record_bid("not_active")
        end = _as_utc(product.auction_end_date)
        raise AuctionNotActiveError(
            "Auction is not active",
            {
                "product_id": str(product_id),
                "auction_end_date": end.isoformat() if end else None,
                "status": product.status.value,
            },
        )

    minimum = minimum_acceptable_bid(product)
    if amount < minimum:
        record_bid("too_low")
        raise BidTooLowError(
            f"Bid must be at least {format_amount(minimum)}",
            {
                "minimum_acceptable": format_amount(minimum),
                "current_bid": format_amount(product.current_bid) if product.current_bid is not None else None,
                "amount": format_amount(amount),
            },
        )

    if user_id == product.owner_id:
        record_bid("self_bid")
        raise SelfBidError("You cannot bid on your own product", {"product_id": str(product_id)})

    wallet = ensure_wallet(db, user_id, product.currency)
    previous = get_winning_bid(db, product_id)

    bid_id = uuid4()
    try:
        hold = extend_or_replace_hold(
            db=db,
            old_hold_id=previous.hold_id if previous else None,
            new_wallet_id=wallet.id,
            new_amount=amount,
            reference_id=bid_id,
        )
    except InsufficientFundsError:
        record_bid("insufficient_funds")
        raise

    if previous is not None:
        previous.is_winning = False
        # Demote before inserting: one winning bid per product (partial unique index)
        db.flush()

    bid = Bid(
        id=bid_id,
        product_id=product_id,
        user_id=user_id,
        amount=amount,
        is_winning=True,
        hold_id=hold.id,
    )
    db.add(bid)

    product.current_bid = amount
    product.auction_state = AuctionState.HAS_BIDS
    db.flush()

    record_bid("accepted")
    logger.info(
        "Bid accepted",
        extra={
            "product_id": str(product_id),
            "bid_id": str(bid_id),
            "user_id": str(user_id),
            "amount": amount,
            "outbid_user_id": str(previous.user_id) if previous else None,
        },
    )
    return bid


def list_bids(db: Session, product_id: UUID, limit: int = 50) -> List[Bid]:
    """Bid history, highest first"""
    get_product(db, product_id)
    return db.query(Bid).filter(
        Bid.product_id == product_id,
    ).order_by(Bid.amount.desc(), Bid.created_at.desc()).limit(limit).all()


def close_auction(
    *,
    db: Session,
    product_id: UUID,
    now: Optional[datetime] = None,
) -> Optional[Order]:
    """
    Close an ended auction.

    - No bids: product EXPIRED (unsold), no money moves, returns None
    - Winning bid: product SOLD and a PENDING AUCTION order is created holding
      the winning bid's reservation; settle it with settlement.settle_order

    Idempotent: closing a CLOSED auction returns its order (or None).

    Raises:
        AuctionStillRunningError: If auctionEndDate is in the future
        ProductNotAvailableError: If the product is not an auction or has no end date

    NO COMMIT - caller must commit.
    """
    product = lock_product(db, product_id)
    if not product.is_auction:
        raise ProductNotAvailableError("Product is not an auction", {"product_id": str(product_id)})

    if product.auction_state == AuctionState.CLOSED:
        return db.query(Order).filter(
            Order.product_id == product_id,
            Order.kind == OrderKind.AUCTION,
        ).first()

    end = _as_utc(product.auction_end_date)
    if end is None:
        raise ProductNotAvailableError(
            "Auction has no end date and cannot be closed",
            {"product_id": str(product_id)},
        )
    if end > _now(now):
        raise AuctionStillRunningError(
            "Auction has not ended yet",
            {"product_id": str(product_id), "auction_end_date": end.isoformat()},
        )

    winning = get_winning_bid(db, product_id)
    product.auction_state = AuctionState.CLOSED

    if winning is None:
        product.status = ProductStatus.EXPIRED
        db.flush()
        logger.info("Auction closed without bids", extra={"product_id": str(product_id)})
        return None

    product.status = ProductStatus.SOLD
    order = Order(
        buyer_id=winning.user_id,
        seller_id=product.owner_id,
        product_id=product.id,
        kind=OrderKind.AUCTION,
        total_amount=winning.amount,
        currency=product.currency,
        status=OrderStatus.PENDING,
        settlement_mode=current_settlement_mode(),
        hold_id=winning.hold_id,
        winning_bid_id=winning.id,
    )
    db.add(order)
    db.flush()

    logger.info(
        "Auction closed with winner",
        extra={
            "product_id": str(product_id),
            "order_id": str(order.id),
            "winning_bid_id": str(winning.id),
            "buyer_id": str(winning.user_id),
            "amount": winning.amount,
        },
    )
    return order


def close_and_settle_auction(
    *,
    db: Session,
    product_id: UUID,
    now: Optional[datetime] = None,
    fee_rate: Optional[Decimal] = None,
) -> Optional[Order]:
    """
    Close an auction and settle the winner in two committed units.

    1. close_auction (product closed, PENDING order) - COMMIT
    2. settle_order (payout triple, or escrow confirmation for ESCROW orders) - COMMIT

    A crash between the two leaves a PENDING AUCTION order that the sweep
    settles on its next run. Rolls back and re-raises on failure of either unit.
    """
    try:
        order = close_auction(db=db, product_id=product_id, now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if order is None or order.status != OrderStatus.PENDING:
        return order

    try:
        order = settle_order(db=db, order_id=order.id, fee_rate=fee_rate)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return order


def find_expired_auctions(db: Session, now: Optional[datetime] = None, limit: int = 100) -> List[UUID]:
    """Ids of ACTIVE auction products whose end date passed"""
    rows = db.query(Product.id).filter(
        Product.is_auction.is_(True),
        Product.status == ProductStatus.ACTIVE,
        Product.auction_end_date <= _now(now),
    ).order_by(Product.auction_end_date).limit(limit).all()
    return [row[0] for row in rows]


def find_unsettled_auction_orders(db: Session, limit: int = 100) -> List[UUID]:
    """Ids of PENDING, non-frozen AUCTION orders (closed but not yet settled)"""
    rows = db.query(Order.id).filter(
        Order.kind == OrderKind.AUCTION,
        Order.status == OrderStatus.PENDING,
        Order.is_frozen.is_(False),
    ).order_by(Order.created_at).limit(limit).all()
    return [row[0] for row in rows]


def close_expired_auctions(
    *,
    db: Session,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
    fee_rate: Optional[Decimal] = None,
) -> Dict[str, Any]:
    """
    Sweep: close every ended auction and settle winners, one auction per unit.

    Also settles AUCTION orders left PENDING by an interrupted earlier sweep.
    A failure on one auction is logged and counted; the sweep continues.

    Returns a summary dict (counts and per-product errors).
    """
    limit = limit or get_settings().AUCTION_SWEEP_BATCH_SIZE
    product_ids = find_expired_auctions(db, now=now, limit=limit)
    pending_order_ids = find_unsettled_auction_orders(db, limit=limit)

    summary: Dict[str, Any] = {
        'matched': len(product_ids),
        'closed_unsold': 0,
        'settled': 0,
        'retried_settlements': 0,
        'failed': 0,
        'errors': [],
        'dry_run': dry_run,
    }
    if dry_run:
        summary['product_ids'] = [str(pid) for pid in product_ids]
        summary['pending_order_ids'] = [str(oid) for oid in pending_order_ids]
        return summary

    for order_id in pending_order_ids:
        try:
            settle_order(db=db, order_id=order_id, fee_rate=fee_rate)
            db.commit()
            summary['retried_settlements'] += 1
        except Exception as e:
            db.rollback()
            summary['failed'] += 1
            summary['errors'].append({'order_id': str(order_id), 'error': str(e)})
            logger.error(f"Settlement retry failed: order_id={order_id}, error={e}", exc_info=True)

    for product_id in product_ids:
        try:
            order = close_and_settle_auction(db=db, product_id=product_id, now=now, fee_rate=fee_rate)
            if order is None:
                summary['closed_unsold'] += 1
            else:
                summary['settled'] += 1
        except Exception as e:
            summary['failed'] += 1
            summary['errors'].append({'product_id': str(product_id), 'error': str(e)})
            logger.error(f"Auction close failed: product_id={product_id}, error={e}", exc_info=True)

    logger.info("Auction sweep completed", extra={k: v for k, v in summary.items() if k != 'errors'})
    return summary
