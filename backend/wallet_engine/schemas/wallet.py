"""
Wallet API request/response schemas

Amounts cross the API as decimal strings ("100.00"); numbers are rejected.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class WalletBalanceResponse(BaseModel):
    """Wallet balance response schema"""
    wallet_id: str = Field(..., description="Wallet UUID")
    currency: str = Field(..., description="ISO 4217 currency code (e.g., USD)")
    balance: str = Field(..., description="Total balance (sum of COMPLETED transactions)")
    locked_balance: str = Field(..., description="Sum of ACTIVE holds (bids, order escrow)")
    available_balance: str = Field(..., description="balance - locked_balance")

    class Config:
        json_schema_extra = {
            "example": {
                "wallet_id": "123e4567-e89b-12d3-a456-426614174000",
                "currency": "USD",
                "balance": "500.00",
                "locked_balance": "100.00",
                "available_balance": "400.00",
            }
        }


class WalletStatsResponse(BaseModel):
    """Wallet statistics response schema"""
    wallet_id: str
    currency: str
    total_deposits: str = Field(..., description="Sum of COMPLETED deposits")
    total_purchases: str = Field(..., description="Sum of COMPLETED purchases (absolute)")
    total_withdrawals: str = Field(..., description="Sum of COMPLETED withdrawals (absolute)")
    transaction_count: int = Field(..., description="Number of ledger transactions")


class DepositRequest(BaseModel):
    """Add funds already authorized by the payment processor"""
    amount: str = Field(..., description="Decimal amount, e.g. '100.00'", examples=["100.00"])
    payment_ref: str = Field(..., min_length=1, max_length=255, description="Opaque payment processor reference")

    class Config:
        json_schema_extra = {
            "example": {
                "amount": "100.00",
                "payment_ref": "pi_3Nk2xY2eZvKYlo2C1",
            }
        }


class WithdrawalRequest(BaseModel):
    """Withdraw available funds"""
    amount: str = Field(..., description="Decimal amount, e.g. '50.00'")
    payout_ref: str = Field(..., min_length=1, max_length=255, description="Opaque payout reference")


class TransactionItem(BaseModel):
    """Ledger transaction (amount signed: credit > 0, debit < 0)"""
    id: str
    wallet_id: str
    sequence: int
    type: str = Field(..., description="DEPOSIT, WITHDRAWAL, PURCHASE, REFUND, AUCTION_HOLD, ...")
    amount: str
    currency: str
    status: str = Field(..., description="PENDING, COMPLETED, FAILED, CANCELLED")
    affects_balance: bool = Field(
        ..., description="False for hold/release memo entries, which track reservations and never count towards balance"
    )
    description: str
    reference: Optional[str] = None
    created_at: Optional[str] = Field(None, description="ISO 8601 timestamp")


class TransactionListResponse(BaseModel):
    """Newest-first page of transactions"""
    items: List[TransactionItem]
    page: int
    limit: int
    total: int


class WalletMutationResponse(BaseModel):
    """Response of deposit / withdrawal"""
    transaction: TransactionItem
    wallet: WalletBalanceResponse
