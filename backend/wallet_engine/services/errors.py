"""
Wallet engine errors - one taxonomy shared by services, routes and jobs

Every rejection carries the violated invariant in `details` so callers can
render actionable feedback (minimum acceptable bid, available balance, ...).
"""

from typing import Any, Dict, Optional


class WalletEngineError(Exception):
    """Base class for every domain error raised by the wallet engine"""

    code = "WALLET_ENGINE_ERROR"
    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error(self) -> Dict[str, Any]:
        """Error body in the API's {"error": {...}} shape (trace_id added by the handler)"""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class InvalidAmountError(WalletEngineError):
    """Raised when an amount is zero, negative, a float, or finer than the minor unit"""
    code = "INVALID_AMOUNT"
    http_status = 422


class InsufficientFundsError(WalletEngineError):
    """Raised when an amount exceeds the wallet's available balance"""
    code = "INSUFFICIENT_FUNDS"
    http_status = 409


class AuctionNotActiveError(WalletEngineError):
    """Raised when bidding on an auction that ended or was closed"""
    code = "AUCTION_NOT_ACTIVE"
    http_status = 409


class AuctionStillRunningError(WalletEngineError):
    """Raised when closing an auction before its end date"""
    code = "AUCTION_STILL_RUNNING"
    http_status = 409


class BidTooLowError(WalletEngineError):
    """Raised when a bid is below the minimum acceptable amount"""
    code = "BID_TOO_LOW"
    http_status = 422


class SelfBidError(WalletEngineError):
    """Raised when the product owner bids on (or buys) their own product"""
    code = "SELF_BID"
    http_status = 403


class HoldNotFoundError(WalletEngineError):
    """Raised when a hold does not exist"""
    code = "HOLD_NOT_FOUND"
    http_status = 404


class InvalidHoldStateError(WalletEngineError):
    """Raised when resolving a hold that is no longer ACTIVE (e.g. forfeiting a released hold)"""
    code = "INVALID_HOLD_STATE"
    http_status = 409


class WalletNotFoundError(WalletEngineError):
    """Raised when a wallet does not exist"""
    code = "WALLET_NOT_FOUND"
    http_status = 404


class ProductNotFoundError(WalletEngineError):
    """Raised when a product does not exist"""
    code = "PRODUCT_NOT_FOUND"
    http_status = 404


class ProductNotAvailableError(WalletEngineError):
    """Raised when a product cannot be bought or bid on (sold, expired, wrong listing kind)"""
    code = "PRODUCT_NOT_AVAILABLE"
    http_status = 409


class OrderNotFoundError(WalletEngineError):
    """Raised when an order does not exist"""
    code = "ORDER_NOT_FOUND"
    http_status = 404


class InvalidOrderTransitionError(WalletEngineError):
    """Raised when an order status change is not allowed from its current status"""
    code = "INVALID_ORDER_TRANSITION"
    http_status = 409


class OrderFrozenError(WalletEngineError):
    """Raised when acting on an order frozen for manual reconciliation"""
    code = "ORDER_FROZEN"
    http_status = 409


class IdempotencyConflictError(WalletEngineError):
    """Raised when an idempotency key is reused with a different request"""
    code = "IDEMPOTENCY_KEY_CONFLICT"
    http_status = 422


class BusyError(WalletEngineError):
    """Raised when a wallet or product lock could not be acquired in time (retryable)"""
    code = "BUSY"
    http_status = 503

    def __init__(self, message: str = "Resource is busy, please retry", details: Optional[Dict[str, Any]] = None, retry_after: int = 1):
        super().__init__(message, details)
        self.retry_after = retry_after


class SettlementPartialFailureError(WalletEngineError):
    """
    Raised when a settlement fails its invariant check.

    Fatal: the order is frozen and an incident reference is issued. The message
    exposed to callers is generic; the internal cause is only logged.
    """
    code = "SETTLEMENT_FAILED"
    http_status = 500

    def __init__(self, incident_reference: str, internal_reason: str = ""):
        super().__init__(
            "Unable to process the payment. Please contact support with the incident reference.",
            {"incident_reference": incident_reference},
        )
        self.incident_reference = incident_reference
        self.internal_reason = internal_reason


class InvalidTransactionTransitionError(WalletEngineError):
    """Raised when a ledger transaction status change is not PENDING -> terminal"""
    code = "INVALID_TRANSACTION_TRANSITION"
    http_status = 409
