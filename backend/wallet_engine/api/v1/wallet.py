"""
Wallet API endpoints - balance, statistics, deposits, withdrawals, history
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from wallet_engine.api.exceptions import to_http_exception
from wallet_engine.auth.dependencies import get_current_user_id
from wallet_engine.core.ledger.models import TransactionType, TransactionStatus
from wallet_engine.infrastructure.database import get_db
from wallet_engine.schemas.wallet import (
    DepositRequest,
    TransactionListResponse,
    WalletBalanceResponse,
    WalletMutationResponse,
    WalletStatsResponse,
    WithdrawalRequest,
)
from wallet_engine.services import wallet_api
from wallet_engine.services.errors import WalletEngineError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet"])


@router.get(
    "/wallet",
    response_model=WalletBalanceResponse,
    summary="Get wallet balance",
    description="Balance, locked balance and available balance, re-derived from the ledger. Requires USER role.",
)
def get_wallet(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> WalletBalanceResponse:
    """The wallet is provisioned on first access."""
    try:
        return WalletBalanceResponse(**wallet_api.get_balance(db=db, user_id=user_id))
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)


@router.get(
    "/wallet/stats",
    response_model=WalletStatsResponse,
    summary="Get wallet statistics",
)
def get_wallet_stats(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> WalletStatsResponse:
    try:
        return WalletStatsResponse(**wallet_api.get_stats(db=db, user_id=user_id))
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)


@router.post(
    "/wallet/deposits",
    response_model=WalletMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add funds",
    description=(
        "Record a deposit already authorized by the payment processor. "
        "Idempotent per Idempotency-Key header, or per payment_ref when the header is absent."
    ),
)
def create_deposit(
    request: DepositRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> WalletMutationResponse:
    logger.info(
        f"Deposit request: user_id={user_id}, amount={request.amount}",
        extra={"user_id": str(user_id), "payment_ref": request.payment_ref},
    )
    try:
        result = wallet_api.add_funds(
            db=db,
            user_id=user_id,
            amount=request.amount,
            payment_ref=request.payment_ref,
            idempotency_key=idempotency_key,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return WalletMutationResponse(**result)


@router.post(
    "/wallet/withdrawals",
    response_model=WalletMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Withdraw funds",
    description="Withdraw up to the available balance. Idempotent per Idempotency-Key or payout_ref.",
)
def create_withdrawal(
    request: WithdrawalRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> WalletMutationResponse:
    try:
        result = wallet_api.withdraw_funds(
            db=db,
            user_id=user_id,
            amount=request.amount,
            payout_ref=request.payout_ref,
            idempotency_key=idempotency_key,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return WalletMutationResponse(**result)


@router.get(
    "/wallet/transactions",
    response_model=TransactionListResponse,
    summary="Get transaction history",
    description="Newest-first ledger page. Unknown type/status values are rejected (422).",
)
def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[TransactionType] = Query(None, description="Filter by transaction type"),
    status: Optional[TransactionStatus] = Query(None, description="Filter by effective status"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> TransactionListResponse:
    try:
        result = wallet_api.get_transaction_history(
            db=db,
            user_id=user_id,
            page=page,
            limit=limit,
            transaction_type=type,
            status=status,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return TransactionListResponse(**result)
