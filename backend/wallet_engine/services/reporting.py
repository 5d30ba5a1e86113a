"""
Reporting - read-only aggregates for the admin console
"""

from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from wallet_engine.core.escrow.models import Hold
from wallet_engine.core.ledger.models import WalletTransaction, TransactionStatusEvent
from wallet_engine.core.orders.models import Order
from wallet_engine.core.wallets.models import Wallet, WalletKind
from wallet_engine.services.balance_projector import get_balance, get_wallet_for_user
from wallet_engine.services.ledger_store import effective_status_expression
from wallet_engine.utils.ledger_validator import check_wallet_invariants
from wallet_engine.utils.money import format_amount


def transaction_aggregates(db: Session, wallet_id: UUID) -> List[Dict[str, Any]]:
    """Count and sum per (type, effective status)"""
    status_expr = effective_status_expression().label("status")
    rows = db.query(
        WalletTransaction.type,
        status_expr,
        func.count(WalletTransaction.id),
        func.coalesce(func.sum(WalletTransaction.amount), 0),
    ).select_from(WalletTransaction).outerjoin(
        TransactionStatusEvent,
        TransactionStatusEvent.transaction_id == WalletTransaction.id,
    ).filter(
        WalletTransaction.wallet_id == wallet_id,
    ).group_by(WalletTransaction.type, status_expr).all()

    return sorted(
        (
            {
                "type": tx_type.value,
                "status": status.value if hasattr(status, "value") else str(status),
                "count": int(count),
                "sum": format_amount(int(total)),
            }
            for tx_type, status, count, total in rows
        ),
        key=lambda row: (row["type"], row["status"]),
    )


def hold_aggregates(db: Session, wallet_id: UUID) -> Dict[str, int]:
    """Number of holds per status"""
    rows = db.query(Hold.status, func.count(Hold.id)).filter(
        Hold.wallet_id == wallet_id
    ).group_by(Hold.status).all()
    return {status.value: int(count) for status, count in rows}


def wallet_report(db: Session, wallet: Wallet) -> Dict[str, Any]:
    balances = get_balance(db, wallet.id)
    return {
        "wallet_id": str(wallet.id),
        "user_id": str(wallet.user_id) if wallet.user_id else None,
        "kind": wallet.kind.value,
        "currency": wallet.currency,
        "balance": format_amount(balances['balance']),
        "locked_balance": format_amount(balances['locked_balance']),
        "available_balance": format_amount(balances['available_balance']),
        "transactions": transaction_aggregates(db, wallet.id),
        "holds": hold_aggregates(db, wallet.id),
    }


def get_user_wallet_report(db: Session, user_id: UUID) -> Dict[str, Any]:
    """
    Aggregate report for one user's wallet.

    Raises:
        WalletNotFoundError: If the user has no wallet
    """
    return wallet_report(db, get_wallet_for_user(db, user_id))


def list_wallet_reports(db: Session, page: int = 1, limit: int = 50) -> Dict[str, Any]:
    """Aggregate reports for every wallet (users first, platform wallets last)"""
    page = max(page, 1)
    limit = min(max(limit, 1), 200)
    query = db.query(Wallet)
    total = query.count()
    wallets = query.order_by(
        (Wallet.kind == WalletKind.PLATFORM), Wallet.created_at
    ).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [wallet_report(db, wallet) for wallet in wallets],
        "page": page,
        "limit": limit,
        "total": total,
    }


def audit_user_wallet(db: Session, user_id: UUID) -> Dict[str, Any]:
    """Replay the wallet's ledger and check its invariants"""
    wallet = get_wallet_for_user(db, user_id)
    violations = check_wallet_invariants(db, wallet.id)
    balances = get_balance(db, wallet.id)
    return {
        "wallet_id": str(wallet.id),
        "user_id": str(user_id),
        "consistent": not violations,
        "violations": violations,
        "balance": format_amount(balances['balance']),
        "locked_balance": format_amount(balances['locked_balance']),
        "available_balance": format_amount(balances['available_balance']),
    }


def list_frozen_orders(db: Session) -> List[Order]:
    """Orders frozen after a failed settlement, oldest first"""
    return db.query(Order).filter(Order.is_frozen.is_(True)).order_by(Order.created_at).all()
