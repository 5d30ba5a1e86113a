"""
Tests for the escrow manager (hold lifecycle)
"""

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from wallet_engine.core.escrow.models import Hold, HoldReason, HoldStatus
from wallet_engine.core.ledger.models import TransactionStatus, TransactionType, WalletTransaction
from wallet_engine.services.balance_projector import get_wallet_for_user
from wallet_engine.services.errors import (
    HoldNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidHoldStateError,
)
from wallet_engine.services.escrow_manager import (
    extend_or_replace_hold,
    forfeit_hold,
    place_hold,
    release_hold,
)
from wallet_engine.utils.ledger_validator import check_wallet_invariants


@pytest.fixture
def funded_wallet(db_session: Session, buyer, fund):
    fund(buyer, "500.00")
    return get_wallet_for_user(db_session, buyer.id)


def _hold(db_session, wallet, amount, reason=HoldReason.BID):
    hold = place_hold(
        db=db_session,
        wallet_id=wallet.id,
        amount=amount,
        reason=reason,
        reference_id=uuid4(),
    )
    db_session.commit()
    return hold


def _ledger(db_session, wallet, transaction_type):
    return db_session.query(WalletTransaction).filter(
        WalletTransaction.wallet_id == wallet.id,
        WalletTransaction.type == transaction_type,
    ).all()


def test_place_hold_locks_without_changing_balance(db_session: Session, buyer, funded_wallet, balance_of):
    hold = _hold(db_session, funded_wallet, 10000)

    assert hold.status == HoldStatus.ACTIVE
    assert balance_of(buyer) == {'balance': 50000, 'locked_balance': 10000, 'available_balance': 40000}

    memos = _ledger(db_session, funded_wallet, TransactionType.AUCTION_HOLD)
    assert len(memos) == 1
    assert memos[0].amount == -10000
    assert memos[0].effective_status == TransactionStatus.PENDING
    assert memos[0].hold_id == hold.id


def test_order_escrow_hold_uses_escrow_entry(db_session: Session, funded_wallet):
    _hold(db_session, funded_wallet, 2500, reason=HoldReason.ORDER_ESCROW)
    assert len(_ledger(db_session, funded_wallet, TransactionType.ESCROW_HOLD)) == 1


def test_place_hold_insufficient_funds_creates_nothing(db_session: Session, buyer, funded_wallet, balance_of):
    _hold(db_session, funded_wallet, 45000)

    with pytest.raises(InsufficientFundsError) as exc_info:
        place_hold(
            db=db_session,
            wallet_id=funded_wallet.id,
            amount=10000,
            reason=HoldReason.BID,
            reference_id=uuid4(),
        )
    db_session.rollback()

    assert exc_info.value.details["available_balance"] == "50.00"
    assert exc_info.value.details["requested_amount"] == "100.00"
    assert db_session.query(Hold).count() == 1
    assert balance_of(buyer)['locked_balance'] == 45000


def test_place_hold_exact_available_amount(db_session: Session, buyer, funded_wallet, balance_of):
    _hold(db_session, funded_wallet, 50000)
    assert balance_of(buyer)['available_balance'] == 0


@pytest.mark.parametrize("amount", [0, -100, 10.0])
def test_place_hold_rejects_invalid_amount(db_session: Session, funded_wallet, amount):
    with pytest.raises(InvalidAmountError):
        place_hold(
            db=db_session,
            wallet_id=funded_wallet.id,
            amount=amount,
            reason=HoldReason.BID,
            reference_id=uuid4(),
        )


def test_release_hold_restores_available_balance(db_session: Session, buyer, funded_wallet, balance_of):
    hold = _hold(db_session, funded_wallet, 10000)

    release_hold(db=db_session, hold_id=hold.id)
    db_session.commit()

    db_session.refresh(hold)
    assert hold.status == HoldStatus.RELEASED
    assert hold.resolved_at is not None
    assert balance_of(buyer) == {'balance': 50000, 'locked_balance': 0, 'available_balance': 50000}

    memo = _ledger(db_session, funded_wallet, TransactionType.AUCTION_HOLD)[0]
    assert memo.effective_status == TransactionStatus.CANCELLED
    releases = _ledger(db_session, funded_wallet, TransactionType.AUCTION_RELEASE)
    assert len(releases) == 1
    assert releases[0].amount == 10000


def test_release_hold_is_idempotent(db_session: Session, buyer, funded_wallet, balance_of):
    hold = _hold(db_session, funded_wallet, 10000)

    release_hold(db=db_session, hold_id=hold.id)
    db_session.commit()
    after_first = balance_of(buyer)

    release_hold(db=db_session, hold_id=hold.id)
    db_session.commit()

    assert balance_of(buyer) == after_first
    assert len(_ledger(db_session, funded_wallet, TransactionType.AUCTION_RELEASE)) == 1


def test_forfeit_hold_debits_purchase(db_session: Session, buyer, funded_wallet, balance_of):
    hold = _hold(db_session, funded_wallet, 15000)

    purchase = forfeit_hold(db=db_session, hold_id=hold.id, reference="order-1")
    db_session.commit()

    assert purchase.type == TransactionType.PURCHASE
    assert purchase.amount == -15000
    assert purchase.effective_status == TransactionStatus.COMPLETED
    assert purchase.reference == "order-1"

    db_session.refresh(hold)
    assert hold.status == HoldStatus.FORFEITED
    assert hold.resolution_transaction_id == purchase.id
    assert balance_of(buyer) == {'balance': 35000, 'locked_balance': 0, 'available_balance': 35000}

    memo = _ledger(db_session, funded_wallet, TransactionType.AUCTION_HOLD)[0]
    assert memo.effective_status == TransactionStatus.CANCELLED


def test_forfeit_released_hold_rejected(db_session: Session, funded_wallet):
    hold = _hold(db_session, funded_wallet, 10000)
    release_hold(db=db_session, hold_id=hold.id)
    db_session.commit()

    with pytest.raises(InvalidHoldStateError):
        forfeit_hold(db=db_session, hold_id=hold.id)


def test_release_forfeited_hold_rejected(db_session: Session, funded_wallet):
    hold = _hold(db_session, funded_wallet, 10000)
    forfeit_hold(db=db_session, hold_id=hold.id)
    db_session.commit()

    with pytest.raises(InvalidHoldStateError):
        release_hold(db=db_session, hold_id=hold.id)


def test_unknown_hold(db_session: Session):
    with pytest.raises(HoldNotFoundError):
        release_hold(db=db_session, hold_id=uuid4())
    with pytest.raises(HoldNotFoundError):
        forfeit_hold(db=db_session, hold_id=uuid4())


def test_extend_or_replace_hold_moves_reservation(db_session: Session, buyer, make_user, fund, funded_wallet, balance_of):
    other = make_user()
    fund(other, "300.00")
    other_wallet = get_wallet_for_user(db_session, other.id)
    old_hold = _hold(db_session, funded_wallet, 10000)

    new_hold = extend_or_replace_hold(
        db=db_session,
        old_hold_id=old_hold.id,
        new_wallet_id=other_wallet.id,
        new_amount=15000,
        reference_id=uuid4(),
    )
    db_session.commit()

    db_session.refresh(old_hold)
    assert old_hold.status == HoldStatus.RELEASED
    assert new_hold.status == HoldStatus.ACTIVE
    assert balance_of(buyer)['available_balance'] == 50000
    assert balance_of(other)['locked_balance'] == 15000


def test_extend_or_replace_hold_keeps_old_hold_on_failure(db_session: Session, buyer, make_user, fund, funded_wallet, balance_of):
    other = make_user()
    fund(other, "50.00")
    other_wallet = get_wallet_for_user(db_session, other.id)
    old_hold = _hold(db_session, funded_wallet, 10000)

    with pytest.raises(InsufficientFundsError):
        extend_or_replace_hold(
            db=db_session,
            old_hold_id=old_hold.id,
            new_wallet_id=other_wallet.id,
            new_amount=15000,
            reference_id=uuid4(),
        )
    db_session.rollback()

    db_session.refresh(old_hold)
    assert old_hold.status == HoldStatus.ACTIVE
    assert balance_of(buyer)['locked_balance'] == 10000
    assert balance_of(other)['locked_balance'] == 0


def test_extend_or_replace_hold_same_wallet_counts_old_amount(db_session: Session, buyer, funded_wallet, balance_of):
    old_hold = _hold(db_session, funded_wallet, 40000)

    # Only 100.00 available, but the 400.00 being replaced is freed by the move
    extend_or_replace_hold(
        db=db_session,
        old_hold_id=old_hold.id,
        new_wallet_id=funded_wallet.id,
        new_amount=45000,
        reference_id=uuid4(),
    )
    db_session.commit()

    assert balance_of(buyer) == {'balance': 50000, 'locked_balance': 45000, 'available_balance': 5000}


def test_wallet_invariants_hold_after_hold_lifecycle(db_session: Session, funded_wallet):
    first = _hold(db_session, funded_wallet, 10000)
    second = _hold(db_session, funded_wallet, 20000)
    release_hold(db=db_session, hold_id=first.id)
    forfeit_hold(db=db_session, hold_id=second.id)
    _hold(db_session, funded_wallet, 5000)
    db_session.commit()

    assert check_wallet_invariants(db_session, funded_wallet.id) == []
