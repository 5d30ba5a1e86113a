"""
Admin reporting endpoints - READ-ONLY aggregates per user wallet
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from wallet_engine.api.exceptions import to_http_exception
from wallet_engine.auth.dependencies import require_admin_role
from wallet_engine.auth.principal import Principal
from wallet_engine.infrastructure.database import get_db
from wallet_engine.schemas.reports import WalletAuditResponse, WalletReport, WalletReportListResponse
from wallet_engine.services import reporting
from wallet_engine.services.errors import WalletEngineError

router = APIRouter(tags=["admin-reports"])


@router.get(
    "/reports/wallets",
    response_model=WalletReportListResponse,
    summary="Wallet aggregates",
    description="Transaction counts and sums per wallet, type and status. READ-ONLY. Requires ADMIN role.",
)
def list_wallet_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> WalletReportListResponse:
    return WalletReportListResponse(**reporting.list_wallet_reports(db, page=page, limit=limit))


@router.get(
    "/reports/wallets/{user_id}",
    response_model=WalletReport,
    summary="Wallet aggregates for one user",
)
def get_wallet_report(
    user_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> WalletReport:
    try:
        return WalletReport(**reporting.get_user_wallet_report(db, user_id))
    except WalletEngineError as e:
        raise to_http_exception(e)


@router.get(
    "/reports/wallets/{user_id}/audit",
    response_model=WalletAuditResponse,
    summary="Audit a wallet by ledger replay",
)
def audit_wallet(
    user_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role()),
) -> WalletAuditResponse:
    try:
        return WalletAuditResponse(**reporting.audit_user_wallet(db, user_id))
    except WalletEngineError as e:
        raise to_http_exception(e)
