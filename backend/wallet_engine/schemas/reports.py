"""
Admin reporting response schemas (read-only)
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class TransactionAggregate(BaseModel):
    type: str
    status: str
    count: int
    sum: str


class WalletReport(BaseModel):
    """Aggregate transaction counts/sums for one wallet"""
    wallet_id: str
    user_id: Optional[str] = None
    kind: str = Field(..., description="USER or PLATFORM")
    currency: str
    balance: str
    locked_balance: str
    available_balance: str
    transactions: List[TransactionAggregate]
    holds: Dict[str, int] = Field(..., description="Number of holds per status")


class WalletReportListResponse(BaseModel):
    items: List[WalletReport]
    page: int
    limit: int
    total: int


class WalletAuditResponse(BaseModel):
    """Replay audit of one wallet"""
    wallet_id: str
    user_id: str
    consistent: bool
    violations: List[str]
    balance: str
    locked_balance: str
    available_balance: str


class AuctionCloseResponse(BaseModel):
    product_id: str
    sold: bool
    order_id: Optional[str] = None
    order_status: Optional[str] = None
