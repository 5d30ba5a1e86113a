"""
Prometheus metrics for observability
"""

import re
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

# Create a custom registry to avoid conflicts
metrics_registry = CollectorRegistry()

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["path", "method"],
    registry=metrics_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Rate limiting metrics
rate_limited_total = Counter(
    "rate_limited_total",
    "Total requests rate limited",
    ["group"],  # bids, money, admin, api
    registry=metrics_registry,
)

# Ledger metrics
ledger_invariant_violations_total = Counter(
    "ledger_invariant_violations_total",
    "Total ledger invariant violations detected",
    registry=metrics_registry,
)

wallet_transactions_appended_total = Counter(
    "wallet_transactions_appended_total",
    "Total wallet transactions appended to the ledger",
    ["type"],
    registry=metrics_registry,
)

# Escrow metrics
holds_total = Counter(
    "holds_total",
    "Total hold lifecycle actions",
    ["action"],  # placed, released, forfeited
    registry=metrics_registry,
)

# Auction metrics
bids_total = Counter(
    "bids_total",
    "Total bids processed",
    ["result"],  # accepted, too_low, self_bid, not_active, insufficient_funds
    registry=metrics_registry,
)

# Settlement metrics
settlements_total = Counter(
    "settlements_total",
    "Total order settlements",
    ["result"],  # settled, escrowed, refunded, cancelled, failed
    registry=metrics_registry,
)

# Concurrency metrics
busy_rejections_total = Counter(
    "busy_rejections_total",
    "Total operations rejected because a lock could not be acquired",
    ["resource"],  # wallet, product
    registry=metrics_registry,
)


def record_http_request(
    path: str,
    method: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics.

    Args:
        path: Request path (normalized)
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        path=normalized_path,
        method=method.upper(),
        status=str(status_code),
    ).inc()

    http_request_duration_seconds.labels(
        path=normalized_path,
        method=method.upper(),
    ).observe(duration_seconds)


def record_rate_limit_exceeded(group: str) -> None:
    """
    Record rate limit exceeded.

    Args:
        group: Endpoint group (bids, money, admin, api)
    """
    rate_limited_total.labels(group=group).inc()


def record_ledger_invariant_violation() -> None:
    """Record ledger invariant violation"""
    ledger_invariant_violations_total.inc()


def record_transaction_appended(transaction_type: str) -> None:
    """Record a ledger append"""
    wallet_transactions_appended_total.labels(type=transaction_type).inc()


def record_hold_action(action: str) -> None:
    """
    Record hold lifecycle action.

    Args:
        action: placed, released, forfeited
    """
    holds_total.labels(action=action).inc()


def record_bid(result: str) -> None:
    """Record bid outcome"""
    bids_total.labels(result=result).inc()


def record_settlement(result: str) -> None:
    """Record settlement outcome"""
    settlements_total.labels(result=result).inc()


def record_busy_rejection(resource: str) -> None:
    """Record lock contention rejection"""
    busy_rejections_total.labels(resource=resource).inc()


def _normalize_path(path: str) -> str:
    """
    Normalize path for metrics (replace UUIDs and IDs with placeholders).

    Examples:
        /api/v1/wallet -> /api/v1/wallet
        /api/v1/auctions/123e4567-.../bids -> /api/v1/auctions/{id}/bids
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE,
    )

    # Replace numeric IDs (if any remain)
    path = re.sub(r'/\d+', '/{id}', path)

    return path


def get_metrics_output() -> bytes:
    """Get Prometheus metrics output"""
    return generate_latest(metrics_registry)
