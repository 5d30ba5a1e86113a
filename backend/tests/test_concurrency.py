"""
Lock contention: two sessions claiming the same wallet
"""

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from wallet_engine.core.users.models import User, UserStatus
from wallet_engine.core.wallets.models import Wallet
from wallet_engine.infrastructure.database import Base
from wallet_engine.services import wallet_api
from wallet_engine.services.balance_projector import ensure_wallet, get_balance
from wallet_engine.services.errors import BusyError
from wallet_engine.services.locking import contention_guard, lock_wallet


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file-backed SQLite database (separate connections, short busy timeout)"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'contention.db'}",
        connect_args={"timeout": 0.2, "check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def user_with_wallet(file_sessions):
    db = file_sessions()
    user = User(id=uuid4(), email="contended@example.com", status=UserStatus.ACTIVE)
    db.add(user)
    db.flush()
    wallet = ensure_wallet(db, user.id)
    db.commit()
    ids = (user.id, wallet.id)
    db.close()
    return ids


def test_second_writer_gets_busy_then_succeeds_on_retry(file_sessions, user_with_wallet):
    user_id, wallet_id = user_with_wallet
    first = file_sessions()
    second = file_sessions()
    try:
        lock_wallet(first, wallet_id)

        with pytest.raises(BusyError) as exc_info:
            wallet_api.add_funds(db=second, user_id=user_id, amount="25.00", payment_ref="pi_contended")
        assert exc_info.value.http_status == 503
        assert exc_info.value.retry_after >= 1

        first.commit()

        result = wallet_api.add_funds(db=second, user_id=user_id, amount="25.00", payment_ref="pi_contended")
        assert result["wallet"]["balance"] == "25.00"
        assert get_balance(second, wallet_id)["balance"] == 2500
    finally:
        first.close()
        second.close()


def test_stale_version_is_busy(file_sessions, user_with_wallet):
    _, wallet_id = user_with_wallet
    reader = file_sessions()
    writer = file_sessions()
    try:
        stale = reader.get(Wallet, wallet_id)

        lock_wallet(writer, wallet_id)
        writer.commit()

        with pytest.raises(BusyError):
            with contention_guard("wallet"):
                stale.version += 1
                reader.flush()
        reader.rollback()
    finally:
        reader.close()
        writer.close()


def test_contention_guard_translations():
    with pytest.raises(BusyError) as exc_info:
        with contention_guard("wallet"):
            raise StaleDataError("UPDATE statement on table 'wallets' expected to update 1 row(s); 0 were matched.")
    assert exc_info.value.details == {"resource": "wallet"}

    with pytest.raises(BusyError):
        with contention_guard("wallet"):
            raise OperationalError("UPDATE wallets", {}, Exception("database is locked"))

    with pytest.raises(BusyError):
        with contention_guard("wallet"):
            raise IntegrityError(
                "INSERT INTO wallet_transactions",
                {},
                Exception("UNIQUE constraint failed: wallet_transactions.wallet_id, wallet_transactions.sequence"),
            )


def test_contention_guard_passes_other_errors_through():
    with pytest.raises(OperationalError):
        with contention_guard("wallet"):
            raise OperationalError("SELECT 1", {}, Exception("no such table: wallets"))

    with pytest.raises(IntegrityError):
        with contention_guard("wallet"):
            raise IntegrityError("INSERT INTO users", {}, Exception("UNIQUE constraint failed: users.email"))
