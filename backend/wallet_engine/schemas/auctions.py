"""
Auction API request/response schemas
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from wallet_engine.schemas.wallet import WalletBalanceResponse


class AuctionResponse(BaseModel):
    """Auction view for the bidding UI"""
    product_id: str
    status: str = Field(..., description="ACTIVE, SOLD, EXPIRED, INACTIVE")
    auction_state: str = Field(..., description="NO_BIDS, HAS_BIDS, CLOSED")
    current_bid: Optional[str] = None
    minimum_bid: Optional[str] = None
    min_increment: Optional[str] = None
    minimum_acceptable: Optional[str] = Field(None, description="Lowest amount the next bid may have")
    auction_end_date: Optional[str] = None
    is_active: bool
    bid_count: int
    winning_bid_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "123e4567-e89b-12d3-a456-426614174000",
                "status": "ACTIVE",
                "auction_state": "HAS_BIDS",
                "current_bid": "150.00",
                "minimum_bid": "100.00",
                "min_increment": "1.00",
                "minimum_acceptable": "151.00",
                "auction_end_date": "2026-01-01T00:00:00+00:00",
                "is_active": True,
                "bid_count": 2,
                "winning_bid_id": "123e4567-e89b-12d3-a456-426614174001",
            }
        }


class PlaceBidRequest(BaseModel):
    """Bid amount as a decimal string"""
    amount: str = Field(..., description="Decimal amount, e.g. '150.00'", examples=["150.00"])


class BidItem(BaseModel):
    id: str
    product_id: str
    user_id: str
    amount: str
    is_winning: bool
    created_at: Optional[str] = None


class BidListResponse(BaseModel):
    """Bid history, highest first"""
    items: List[BidItem]


class PlaceBidResponse(BaseModel):
    """Accepted bid with the refreshed auction view and the bidder's balance"""
    bid: BidItem
    auction: AuctionResponse
    wallet: WalletBalanceResponse
