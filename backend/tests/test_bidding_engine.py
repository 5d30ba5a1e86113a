"""
Tests for the auction bidding engine
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from wallet_engine.core.auctions.models import AuctionState, Bid, ProductStatus
from wallet_engine.core.escrow.models import Hold, HoldStatus
from wallet_engine.core.ledger.models import WalletTransaction
from wallet_engine.services import bidding_engine, wallet_api
from wallet_engine.services.errors import (
    AuctionNotActiveError,
    BidTooLowError,
    InsufficientFundsError,
    ProductNotAvailableError,
    ProductNotFoundError,
    SelfBidError,
)
from wallet_engine.utils.ledger_validator import check_auction_invariants


def _bid(db_session, user, product, amount, **kwargs):
    return wallet_api.place_bid(db=db_session, user_id=user.id, product_id=product.id, amount=amount, **kwargs)


def test_outbid_moves_hold_to_new_bidder(db_session: Session, seller, bidder_a, bidder_b, fund, make_auction, balance_of):
    """
    A (500.00) bids 100.00, B outbids with 150.00: A is fully released,
    B is locked, P1.currentBid = 150.00 and A's bid is no longer winning.
    """
    fund(bidder_a, "500.00")
    fund(bidder_b, "500.00")
    product = make_auction(seller, minimum_bid=10000, min_increment=100)

    result = _bid(db_session, bidder_a, product, "100.00")
    assert result["wallet"]["available_balance"] == "400.00"
    assert result["wallet"]["locked_balance"] == "100.00"
    assert result["bid"]["is_winning"] is True
    assert result["auction"]["current_bid"] == "100.00"
    assert result["auction"]["minimum_acceptable"] == "101.00"
    first_bid_id = result["bid"]["id"]

    _bid(db_session, bidder_b, product, "150.00")

    assert balance_of(bidder_a) == {'balance': 50000, 'locked_balance': 0, 'available_balance': 50000}
    assert balance_of(bidder_b) == {'balance': 50000, 'locked_balance': 15000, 'available_balance': 35000}

    db_session.refresh(product)
    assert product.current_bid == 15000
    assert product.auction_state == AuctionState.HAS_BIDS

    first_bid = db_session.query(Bid).filter(Bid.user_id == bidder_a.id).one()
    assert str(first_bid.id) == first_bid_id
    assert first_bid.is_winning is False
    assert db_session.get(Hold, first_bid.hold_id).status == HoldStatus.RELEASED

    assert check_auction_invariants(db_session, product.id) == []


def test_insufficient_funds_rejects_bid_without_side_effects(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "50.00")
    product = make_auction(seller, minimum_bid=10000)
    ledger_rows = db_session.query(WalletTransaction).count()

    with pytest.raises(InsufficientFundsError) as exc_info:
        _bid(db_session, bidder_a, product, "100.00")

    assert exc_info.value.details["available_balance"] == "50.00"
    assert db_session.query(Hold).count() == 0
    assert db_session.query(Bid).count() == 0
    assert db_session.query(WalletTransaction).count() == ledger_rows
    db_session.refresh(product)
    assert product.current_bid is None
    assert product.auction_state == AuctionState.NO_BIDS


def test_insufficient_funds_keeps_previous_high_bid(db_session: Session, seller, bidder_a, bidder_b, fund, make_auction, balance_of):
    fund(bidder_a, "500.00")
    fund(bidder_b, "120.00")
    product = make_auction(seller, minimum_bid=10000)
    _bid(db_session, bidder_a, product, "100.00")

    with pytest.raises(InsufficientFundsError):
        _bid(db_session, bidder_b, product, "150.00")

    db_session.refresh(product)
    assert product.current_bid == 10000
    assert balance_of(bidder_a)['locked_balance'] == 10000
    winning = bidding_engine.get_winning_bid(db_session, product.id)
    assert winning.user_id == bidder_a.id
    assert check_auction_invariants(db_session, product.id) == []


def test_first_bid_must_reach_minimum_bid(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller, minimum_bid=10000)

    with pytest.raises(BidTooLowError) as exc_info:
        _bid(db_session, bidder_a, product, "99.99")

    assert exc_info.value.details["minimum_acceptable"] == "100.00"
    assert exc_info.value.details["current_bid"] is None


def test_next_bid_must_beat_current_by_increment(db_session: Session, seller, bidder_a, bidder_b, fund, make_auction):
    fund(bidder_a, "500.00")
    fund(bidder_b, "500.00")
    product = make_auction(seller, minimum_bid=10000, min_increment=500)
    _bid(db_session, bidder_a, product, "100.00")

    with pytest.raises(BidTooLowError) as exc_info:
        _bid(db_session, bidder_b, product, "104.99")
    assert exc_info.value.details["minimum_acceptable"] == "105.00"

    result = _bid(db_session, bidder_b, product, "105.00")
    assert result["auction"]["current_bid"] == "105.00"


def test_default_increment_applies_when_product_has_none(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller, minimum_bid=10000, min_increment=None)
    result = _bid(db_session, bidder_a, product, "100.00")
    assert result["auction"]["min_increment"] == "1.00"
    assert result["auction"]["minimum_acceptable"] == "101.00"


def test_owner_cannot_bid(db_session: Session, seller, fund, make_auction):
    fund(seller, "500.00")
    product = make_auction(seller, minimum_bid=10000)

    with pytest.raises(SelfBidError):
        _bid(db_session, seller, product, "100.00")
    assert db_session.query(Hold).count() == 0


def test_ended_auction_rejects_bids(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller, ends_in=timedelta(minutes=-1))

    with pytest.raises(AuctionNotActiveError):
        _bid(db_session, bidder_a, product, "100.00")
    assert db_session.query(Hold).count() == 0


def test_auction_end_date_is_exclusive(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller)
    end = product.auction_end_date
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)

    with pytest.raises(AuctionNotActiveError):
        bidding_engine.place_bid(db=db_session, product_id=product.id, user_id=bidder_a.id, amount=10000, now=end)
    db_session.rollback()


def test_bid_on_non_auction_product(db_session: Session, seller, bidder_a, fund, make_product):
    fund(bidder_a, "500.00")
    product = make_product(seller)
    with pytest.raises(ProductNotAvailableError):
        _bid(db_session, bidder_a, product, "100.00")


def test_bid_on_unknown_product(db_session: Session, bidder_a, fund):
    fund(bidder_a, "500.00")
    with pytest.raises(ProductNotFoundError):
        wallet_api.place_bid(db=db_session, user_id=bidder_a.id, product_id=uuid4(), amount="100.00")


def test_winner_can_raise_own_bid(db_session: Session, seller, bidder_a, fund, make_auction, balance_of):
    fund(bidder_a, "150.00")
    product = make_auction(seller, minimum_bid=10000)
    _bid(db_session, bidder_a, product, "100.00")

    # 50.00 available, but the 100.00 already reserved moves to the new bid
    _bid(db_session, bidder_a, product, "140.00")

    assert balance_of(bidder_a) == {'balance': 15000, 'locked_balance': 14000, 'available_balance': 1000}
    assert db_session.query(Hold).filter(Hold.status == HoldStatus.ACTIVE).count() == 1
    assert check_auction_invariants(db_session, product.id) == []


def test_bidding_war_keeps_single_winning_bid(db_session: Session, seller, bidder_a, bidder_b, fund, make_auction, balance_of):
    fund(bidder_a, "1000.00")
    fund(bidder_b, "1000.00")
    product = make_auction(seller, minimum_bid=10000, min_increment=1000)

    amounts = ["100.00", "110.00", "120.00", "130.00", "140.00", "150.00"]
    for index, amount in enumerate(amounts):
        bidder = bidder_a if index % 2 == 0 else bidder_b
        _bid(db_session, bidder, product, amount)

    assert db_session.query(Bid).filter(Bid.is_winning.is_(True)).count() == 1
    assert balance_of(bidder_a)['locked_balance'] == 0
    assert balance_of(bidder_b)['locked_balance'] == 15000
    assert check_auction_invariants(db_session, product.id) == []

    history = wallet_api.list_auction_bids(db=db_session, product_id=product.id)
    assert [item["amount"] for item in history["items"]] == list(reversed(amounts))


def test_bid_replay_with_same_idempotency_key(db_session: Session, seller, bidder_a, fund, make_auction, balance_of):
    fund(bidder_a, "500.00")
    product = make_auction(seller, minimum_bid=10000)

    first = _bid(db_session, bidder_a, product, "100.00", idempotency_key="bid-1")
    replay = _bid(db_session, bidder_a, product, "100.00", idempotency_key="bid-1")

    assert replay == first
    assert db_session.query(Bid).count() == 1
    assert balance_of(bidder_a)['locked_balance'] == 10000


def test_auction_state_view(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller, minimum_bid=10000)

    before = wallet_api.get_auction(db=db_session, product_id=product.id)
    assert before["auction_state"] == "NO_BIDS"
    assert before["current_bid"] is None
    assert before["minimum_acceptable"] == "100.00"
    assert before["is_active"] is True

    _bid(db_session, bidder_a, product, "100.00")
    after = wallet_api.get_auction(db=db_session, product_id=product.id)
    assert after["bid_count"] == 1
    assert after["auction_state"] == "HAS_BIDS"

    later = datetime.now(timezone.utc) + timedelta(days=1)
    assert wallet_api.get_auction(db=db_session, product_id=product.id, now=later)["is_active"] is False


def test_close_auction_without_bids_reverts_to_unsold(db_session: Session, seller, make_auction):
    product = make_auction(seller, ends_in=timedelta(minutes=-5))
    ledger_rows = db_session.query(WalletTransaction).count()

    order = bidding_engine.close_and_settle_auction(db=db_session, product_id=product.id)

    assert order is None
    db_session.refresh(product)
    assert product.status == ProductStatus.EXPIRED
    assert product.auction_state == AuctionState.CLOSED
    assert db_session.query(WalletTransaction).count() == ledger_rows


def test_closed_auction_rejects_bids(db_session: Session, seller, bidder_a, fund, make_auction):
    fund(bidder_a, "500.00")
    product = make_auction(seller)
    later = datetime.now(timezone.utc) + timedelta(hours=2)
    bidding_engine.close_and_settle_auction(db=db_session, product_id=product.id, now=later)

    with pytest.raises(AuctionNotActiveError):
        _bid(db_session, bidder_a, product, "100.00")


def test_auction_without_end_date_cannot_be_closed(db_session: Session, seller, make_auction):
    product = make_auction(seller)
    product.auction_end_date = None
    db_session.commit()

    with pytest.raises(ProductNotAvailableError):
        bidding_engine.close_auction(db=db_session, product_id=product.id)
    db_session.rollback()

    db_session.refresh(product)
    assert product.status == ProductStatus.ACTIVE
    assert product.auction_state == AuctionState.NO_BIDS
