#!/usr/bin/env python3
"""
Auction close sweep runner

Closes every ACTIVE auction whose end date passed: winners are settled
(PURCHASE / SELLER_PAYOUT / PLATFORM_FEE), auctions without bids are marked
unsold. Designed to be run by cron (e.g. every minute); it can also be run
manually or pushed onto the rq queue.

Usage:
    # Sweep now
    python -m scripts.run_auction_close_job

    # List what would be closed
    python -m scripts.run_auction_close_job --dry-run

    # Treat a past instant as "now", at most 50 auctions
    python -m scripts.run_auction_close_job --as-of 2026-01-27T12:00:00+00:00 --limit 50

    # Hand the sweep to the rq worker instead of running it inline
    python -m scripts.run_auction_close_job --enqueue
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from wallet_engine.infrastructure.logging_config import setup_logging, trace_id_context
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.workers.jobs import close_expired_auctions_job, enqueue_auction_sweep


def parse_as_of(as_of_str: Optional[str]) -> datetime:
    """
    Parse --as-of (ISO 8601) or default to now UTC. Naive values are taken as UTC.
    """
    if not as_of_str:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(as_of_str)
    except ValueError:
        raise ValueError(f"Invalid timestamp: {as_of_str}. Expected ISO 8601, e.g. 2026-01-27T12:00:00+00:00")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def main():
    """Main entry point for the job runner"""
    parser = argparse.ArgumentParser(
        description='Close ended auctions and settle winners',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('--as-of', type=str, default=None, help='Instant treated as now (ISO 8601, default: now UTC)')
    parser.add_argument('--dry-run', action='store_true', help='List auctions that would be closed, change nothing')
    parser.add_argument('--limit', type=int, default=None, help='Maximum auctions per run (default: AUCTION_SWEEP_BATCH_SIZE)')
    parser.add_argument('--enqueue', action='store_true', help='Enqueue the sweep on the rq default queue')
    args = parser.parse_args()

    setup_logging(get_settings().LOG_LEVEL)

    try:
        as_of = parse_as_of(args.as_of)
    except ValueError as e:
        print(json.dumps({"job": "auction_close", "error": str(e), "exit_code": 1}), file=sys.stderr)
        sys.exit(1)

    trace_id = f"job-auction-close-{as_of.strftime('%Y%m%d%H%M')}-{str(uuid4())[:8]}"
    trace_id_context.set(trace_id)

    if args.enqueue:
        job = enqueue_auction_sweep(as_of=as_of.isoformat(), limit=args.limit)
        print(json.dumps({"job": "auction_close", "trace_id": trace_id, "enqueued": job.id, "exit_code": 0}))
        sys.exit(0)

    summary = close_expired_auctions_job(as_of=as_of.isoformat(), limit=args.limit, dry_run=args.dry_run)
    output = {
        "job": "auction_close",
        "trace_id": trace_id,
        "as_of": as_of.isoformat(),
        "dry_run": args.dry_run,
        "summary": summary,
        "exit_code": 0 if summary['failed'] == 0 else 1,
    }
    print(json.dumps(output, default=str))
    sys.exit(output["exit_code"])


if __name__ == "__main__":
    main()
