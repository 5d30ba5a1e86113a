"""
Tests for admin reporting and lifecycle endpoints
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from auth_utils import auth_headers
from wallet_engine.core.auctions.models import ProductStatus
from wallet_engine.core.escrow.models import Hold, HoldStatus
from wallet_engine.services import settlement, wallet_api


def _end_now(db_session: Session, product):
    product.auction_end_date = datetime.now(timezone.utc) - timedelta(minutes=1)
    db_session.commit()


def test_admin_endpoints_require_admin_role(client: TestClient, buyer):
    for path in ("/admin/v1/reports/wallets", "/admin/v1/orders/frozen"):
        assert client.get(path).status_code == 401
        response = client.get(path, headers=auth_headers(buyer))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"


def test_wallet_reports(client: TestClient, db_session: Session, admin_headers, buyer, seller, fund, make_product):
    fund(buyer, "300.00")
    product = make_product(seller, price=10000)
    wallet_api.buy_now(db=db_session, user_id=buyer.id, product_id=product.id)

    response = client.get("/admin/v1/reports/wallets", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    # buyer, seller, platform
    assert data["total"] == 3
    assert data["items"][-1]["kind"] == "PLATFORM"
    assert data["items"][-1]["balance"] == "2.50"

    report = client.get(f"/admin/v1/reports/wallets/{buyer.id}", headers=admin_headers).json()
    assert report["balance"] == "200.00"
    assert report["holds"] == {"FORFEITED": 1}
    aggregates = {(row["type"], row["status"]): row for row in report["transactions"]}
    assert aggregates[("DEPOSIT", "COMPLETED")]["sum"] == "300.00"
    assert aggregates[("PURCHASE", "COMPLETED")]["sum"] == "-100.00"
    assert aggregates[("ESCROW_HOLD", "CANCELLED")]["count"] == 1

    seller_report = client.get(f"/admin/v1/reports/wallets/{seller.id}", headers=admin_headers).json()
    assert seller_report["balance"] == "97.50"

    missing = client.get(f"/admin/v1/reports/wallets/{uuid4()}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "WALLET_NOT_FOUND"


def test_wallet_audit(client: TestClient, db_session: Session, admin_headers, bidder_a, seller, fund, make_auction):
    fund(bidder_a, "200.00")
    product = make_auction(seller)
    wallet_api.place_bid(db=db_session, user_id=bidder_a.id, product_id=product.id, amount="120.00")

    response = client.get(f"/admin/v1/reports/wallets/{bidder_a.id}/audit", headers=admin_headers)
    assert response.status_code == 200
    audit = response.json()
    assert audit["consistent"] is True
    assert audit["violations"] == []
    assert audit["balance"] == "200.00"
    assert audit["locked_balance"] == "120.00"
    assert audit["available_balance"] == "80.00"


def test_close_auction_endpoint(client: TestClient, db_session: Session, admin_headers, seller, bidder_a, bidder_b, fund, make_auction):
    fund(bidder_a, "500.00")
    fund(bidder_b, "500.00")
    product = make_auction(seller)
    wallet_api.place_bid(db=db_session, user_id=bidder_a.id, product_id=product.id, amount="100.00")
    wallet_api.place_bid(db=db_session, user_id=bidder_b.id, product_id=product.id, amount="150.00")

    early = client.post(f"/admin/v1/auctions/{product.id}/close", headers=admin_headers)
    assert early.status_code == 409
    assert early.json()["error"]["code"] == "AUCTION_STILL_RUNNING"

    _end_now(db_session, product)
    response = client.post(f"/admin/v1/auctions/{product.id}/close", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["sold"] is True
    assert data["order_status"] == "CONFIRMED"

    balance_a = client.get("/api/v1/wallet", headers=auth_headers(bidder_a)).json()
    balance_b = client.get("/api/v1/wallet", headers=auth_headers(bidder_b)).json()
    assert balance_a["balance"] == "500.00"
    assert balance_a["locked_balance"] == "0.00"
    assert balance_b["balance"] == "350.00"
    assert balance_b["locked_balance"] == "0.00"
    # 150.00 - 2.5% fee
    assert client.get("/api/v1/wallet", headers=auth_headers(seller)).json()["balance"] == "146.25"

    again = client.post(f"/admin/v1/auctions/{product.id}/close", headers=admin_headers)
    assert again.json()["order_id"] == data["order_id"]


def test_close_auction_without_bids(client: TestClient, db_session: Session, admin_headers, seller, make_auction):
    product = make_auction(seller)
    _end_now(db_session, product)

    response = client.post(f"/admin/v1/auctions/{product.id}/close", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {
        "product_id": str(product.id),
        "sold": False,
        "order_id": None,
        "order_status": None,
    }
    db_session.refresh(product)
    assert product.status == ProductStatus.EXPIRED


def test_order_status_transitions(client: TestClient, db_session: Session, admin_headers, buyer, seller, fund, make_product):
    fund(buyer, "300.00")
    product = make_product(seller, price=10000)
    order_id = wallet_api.buy_now(db=db_session, user_id=buyer.id, product_id=product.id)["order"]["id"]

    response = client.post(f"/admin/v1/orders/{order_id}/status", headers=admin_headers, json={"status": "SHIPPED"})
    assert response.status_code == 200
    assert response.json()["status"] == "SHIPPED"

    response = client.post(f"/admin/v1/orders/{order_id}/status", headers=admin_headers, json={"status": "REFUNDED"})
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "INVALID_ORDER_TRANSITION"
    assert error["details"]["allowed"] == ["DELIVERED"]

    response = client.post(f"/admin/v1/orders/{order_id}/status", headers=admin_headers, json={"status": "LOST"})
    assert response.status_code == 422

    response = client.post(f"/admin/v1/orders/{order_id}/status", headers=admin_headers, json={"status": "DELIVERED"})
    assert response.json()["status"] == "DELIVERED"


def test_frozen_orders_listed(client: TestClient, db_session: Session, admin_headers, seller, bidder_a, fund, make_auction, monkeypatch):
    fund(bidder_a, "500.00")
    product = make_auction(seller)
    wallet_api.place_bid(db=db_session, user_id=bidder_a.id, product_id=product.id, amount="100.00")
    _end_now(db_session, product)
    monkeypatch.setattr(settlement, "validate_settlement_invariant", lambda db, order: False)

    response = client.post(f"/admin/v1/auctions/{product.id}/close", headers=admin_headers)
    assert response.status_code == 500
    incident_reference = response.json()["error"]["details"]["incident_reference"]

    frozen = client.get("/admin/v1/orders/frozen", headers=admin_headers).json()["items"]
    assert len(frozen) == 1
    assert frozen[0]["incident_reference"] == incident_reference
    assert frozen[0]["is_frozen"] is True
    assert frozen[0]["status"] == "PENDING"

    # The winning bid stays reserved until someone reconciles the order
    hold = db_session.query(Hold).one()
    assert hold.status == HoldStatus.ACTIVE
