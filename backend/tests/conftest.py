"""
Pytest configuration and fixtures
"""

import pytest
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["JWT_SECRET"] = "test-jwt-secret-min-32-chars-for-testing-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"

from wallet_engine.infrastructure.database import Base, get_db
import wallet_engine.models  # noqa: F401 - registers every table on Base.metadata
from wallet_engine.main import app
from auth_utils import admin_auth_headers
from wallet_engine.core.auctions.models import AuctionState, Product, ProductStatus
from wallet_engine.core.users.models import User, UserStatus
from wallet_engine.services import wallet_api
from wallet_engine.services.balance_projector import get_balance, get_wallet_for_user


# In-memory SQLite shared by every session of a test (single connection)
test_engine = create_engine(
    os.environ["DATABASE_URL"],
    poolclass=StaticPool,
    connect_args={"check_same_thread": False} if "sqlite" in os.environ["DATABASE_URL"] else {},
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Fresh database session for each test.
    Tables are dropped and recreated around every test.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db_session: Session):
    """
    FastAPI test client sharing the test session.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory: create an ACTIVE user"""
    def _make_user(email: str = None, status: UserStatus = UserStatus.ACTIVE) -> User:
        user = User(
            id=uuid4(),
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def seller(make_user) -> User:
    return make_user("seller@example.com")


@pytest.fixture
def buyer(make_user) -> User:
    return make_user("buyer@example.com")


@pytest.fixture
def bidder_a(make_user) -> User:
    return make_user("bidder-a@example.com")


@pytest.fixture
def bidder_b(make_user) -> User:
    return make_user("bidder-b@example.com")


@pytest.fixture
def fund(db_session: Session) -> Callable[[User, str], Dict]:
    """Factory: deposit a decimal-string amount into a user's wallet (committed)"""
    def _fund(user: User, amount: str) -> Dict:
        return wallet_api.add_funds(
            db=db_session,
            user_id=user.id,
            amount=amount,
            payment_ref=f"pay-{uuid4().hex[:12]}",
        )
    return _fund


@pytest.fixture
def make_auction(db_session: Session) -> Callable[..., Product]:
    """Factory: create an ACTIVE auction product (amounts in minor units)"""
    def _make_auction(
        owner: User,
        minimum_bid: int = 10000,
        min_increment: int = 100,
        ends_in: timedelta = timedelta(hours=1),
    ) -> Product:
        product = Product(
            id=uuid4(),
            owner_id=owner.id,
            title="Vintage camera",
            currency="USD",
            status=ProductStatus.ACTIVE,
            is_auction=True,
            minimum_bid=minimum_bid,
            min_increment=min_increment,
            auction_end_date=datetime.now(timezone.utc) + ends_in,
            auction_state=AuctionState.NO_BIDS,
            version=1,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make_auction


@pytest.fixture
def make_product(db_session: Session) -> Callable[..., Product]:
    """Factory: create an ACTIVE buy-now product (price in minor units)"""
    def _make_product(owner: User, price: int = 20000) -> Product:
        product = Product(
            id=uuid4(),
            owner_id=owner.id,
            title="Leather jacket",
            currency="USD",
            status=ProductStatus.ACTIVE,
            is_auction=False,
            price=price,
            version=1,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make_product


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return admin_auth_headers()


@pytest.fixture
def balance_of(db_session: Session) -> Callable[[User], Dict[str, int]]:
    """Factory: projected balances of a user's wallet (minor units)"""
    def _balance_of(user: User) -> Dict[str, int]:
        wallet = get_wallet_for_user(db_session, user.id)
        return get_balance(db_session, wallet.id)
    return _balance_of
