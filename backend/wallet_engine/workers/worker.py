"""
RQ Worker bootstrap
"""

from rq import Queue, Worker

from wallet_engine.infrastructure.logging_config import setup_logging
from wallet_engine.infrastructure.redis_client import get_queue_connection
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.workers.jobs import QUEUE_NAME, close_expired_auctions_job  # noqa: F401 - registers jobs

listen = [QUEUE_NAME]

if __name__ == "__main__":
    setup_logging(get_settings().LOG_LEVEL)
    redis_conn = get_queue_connection()
    worker = Worker([Queue(name, connection=redis_conn) for name in listen], connection=redis_conn)
    worker.work()
