"""
Per-wallet and per-product serialization

Two mechanisms are combined:
- Pessimistic: SELECT ... FOR UPDATE on the wallet/product row (PostgreSQL,
  bounded by `SET LOCAL lock_timeout`).
- Optimistic: every claim bumps the row's `version` (SQLAlchemy version_id_col).
  A writer that read a stale version fails its UPDATE with StaleDataError.

Claiming a row issues its UPDATE immediately (flush), so on SQLite the claim
also takes the database write lock.

Lock order (deadlock avoidance): products first, then wallets sorted by id.
Lock timeout, stale version, "database is locked" and a duplicate ledger
sequence all surface as BusyError.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterable
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from wallet_engine.core.auctions.models import Product
from wallet_engine.core.wallets.models import Wallet
from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.services.errors import BusyError, ProductNotFoundError, WalletNotFoundError
from wallet_engine.utils.metrics import record_busy_rejection

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs: lock_not_available, serialization_failure, deadlock_detected
_CONTENTION_PGCODES = frozenset({"55P03", "40001", "40P01"})


def _is_lock_contention(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _CONTENTION_PGCODES:
        return True
    message = str(exc.orig).lower()
    return "database is locked" in message or "lock timeout" in message


def _is_sequence_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_wallet_transactions_wallet_sequence" in message or (
        "wallet_transactions.sequence" in message
    )


def _busy(resource: str, reason: str) -> BusyError:
    record_busy_rejection(resource)
    logger.warning("Lock contention, rejecting operation", extra={"resource": resource, "reason": reason})
    return BusyError(
        details={"resource": resource},
        retry_after=get_settings().BUSY_RETRY_AFTER_SECONDS,
    )


@contextmanager
def contention_guard(resource: str):
    """
    Translate lock contention raised inside the block into BusyError.

    The session is left as-is; the caller owning the transaction rolls back.
    """
    try:
        yield
    except StaleDataError as e:
        raise _busy(resource, "stale_version") from e
    except OperationalError as e:
        if _is_lock_contention(e):
            raise _busy(resource, "lock_timeout") from e
        raise
    except IntegrityError as e:
        if _is_sequence_conflict(e):
            raise _busy(resource, "ledger_sequence_conflict") from e
        raise


def _set_lock_timeout(db: Session) -> None:
    """Bound lock waits on PostgreSQL (SQLite uses its own busy timeout)"""
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{int(get_settings().LOCK_TIMEOUT_MS)}ms'"))


def lock_wallets(db: Session, wallet_ids: Iterable[UUID]) -> Dict[UUID, Wallet]:
    """
    Lock wallets in global id order and claim them (version bump).

    Re-locking a wallet already held by this transaction is a no-op lock-wise.

    Raises:
        WalletNotFoundError: If any wallet does not exist
        BusyError: If a lock could not be acquired in time
    """
    ordered_ids = sorted(set(wallet_ids), key=str)
    wallets: Dict[UUID, Wallet] = {}

    with contention_guard("wallet"):
        _set_lock_timeout(db)
        for wallet_id in ordered_ids:
            wallet = (
                db.query(Wallet)
                .filter(Wallet.id == wallet_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not wallet:
                raise WalletNotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": str(wallet_id)})
            wallet.version += 1
            wallets[wallet_id] = wallet
        db.flush()

    return wallets


def lock_wallet(db: Session, wallet_id: UUID) -> Wallet:
    """Lock a single wallet (see lock_wallets)"""
    return lock_wallets(db, [wallet_id])[wallet_id]


def lock_product(db: Session, product_id: UUID) -> Product:
    """
    Lock a product row and claim it (version bump).

    Must be called before any wallet lock in the same transaction.

    Raises:
        ProductNotFoundError: If the product does not exist
        BusyError: If the lock could not be acquired in time
    """
    with contention_guard("product"):
        _set_lock_timeout(db)
        product = (
            db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found", {"product_id": str(product_id)})
        product.version += 1
        db.flush()

    return product
