"""
RQ Jobs - Background tasks
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from rq import Queue

from wallet_engine.infrastructure.database import SessionLocal
from wallet_engine.infrastructure.redis_client import get_queue_connection
from wallet_engine.services.bidding_engine import close_expired_auctions

logger = logging.getLogger(__name__)

QUEUE_NAME = "default"


def close_expired_auctions_job(
    as_of: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Close every ended auction and settle its winner.

    Args:
        as_of: ISO 8601 timestamp treated as "now" (defaults to the current time)
        limit: Maximum auctions per run (defaults to AUCTION_SWEEP_BATCH_SIZE)
        dry_run: Only list what would be closed

    Returns the sweep summary.
    """
    now = datetime.fromisoformat(as_of) if as_of else None

    db = SessionLocal()
    try:
        summary = close_expired_auctions(db=db, now=now, limit=limit, dry_run=dry_run)
    finally:
        db.close()

    if summary['failed']:
        logger.error(
            f"Auction sweep finished with failures: failed={summary['failed']}",
            extra={"errors": summary['errors']},
        )
    return summary


def enqueue_auction_sweep(as_of: Optional[str] = None, limit: Optional[int] = None):
    """Enqueue close_expired_auctions_job on the default queue"""
    queue = Queue(QUEUE_NAME, connection=get_queue_connection())
    job = queue.enqueue(close_expired_auctions_job, as_of=as_of, limit=limit)
    logger.info(f"Auction sweep enqueued: job_id={job.id}")
    return job
