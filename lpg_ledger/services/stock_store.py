"""Keyed storage of StockRecords with optimistic compare-and-swap.

``compare_and_swap`` is the only way stock quantities change. It never
commits: callers group one or more swaps plus their audit records into a
single transaction and drive it through ``run_with_retry``, which rolls
back and re-runs the whole attempt from fresh reads on a version conflict.
"""

import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lpg_ledger.config import settings
from lpg_ledger.database import utcnow
from lpg_ledger.exceptions import ConcurrentModificationError, NotFoundError
from lpg_ledger.models.product import Product
from lpg_ledger.models.stock import StockKey, StockRecord, StockSnapshot
from lpg_ledger.models.warehouse import Warehouse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleVersionError(Exception):
    """A compare-and-swap lost the race; the current attempt must be retried."""

    def __init__(self, key: StockKey | None = None, detail: str = ""):
        self.key = key
        super().__init__(detail or f"Stale version for {key}")


def _row_to_snapshot(row) -> StockSnapshot:
    return StockSnapshot(
        warehouse_id=row.warehouse_id,
        product_id=row.product_id,
        qty_full=row.qty_full,
        qty_empty=row.qty_empty,
        qty_reserved=row.qty_reserved,
        version=row.version,
        updated_at=row.updated_at,
    )


def ensure_key_exists(db: Session, warehouse_id: str, product_id: str) -> None:
    if db.get(Warehouse, warehouse_id) is None:
        raise NotFoundError("Warehouse", warehouse_id)
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)


def get(db: Session, warehouse_id: str, product_id: str) -> StockSnapshot:
    """Current record for the pair, or a zero-valued one (version 0) if none exists yet."""
    row = db.execute(
        select(
            StockRecord.warehouse_id,
            StockRecord.product_id,
            StockRecord.qty_full,
            StockRecord.qty_empty,
            StockRecord.qty_reserved,
            StockRecord.version,
            StockRecord.updated_at,
        ).where(StockRecord.warehouse_id == warehouse_id, StockRecord.product_id == product_id)
    ).first()
    if row is not None:
        return _row_to_snapshot(row)
    ensure_key_exists(db, warehouse_id, product_id)
    return StockSnapshot(warehouse_id=warehouse_id, product_id=product_id)


def compare_and_swap(db: Session, key: StockKey, expected_version: int, new_record: StockSnapshot) -> StockSnapshot | None:
    """Write ``new_record`` if the stored version still equals ``expected_version``.

    Returns the stored snapshot (with its new version) on success, None on conflict.
    """
    now = utcnow()
    values = {
        "qty_full": new_record.qty_full,
        "qty_empty": new_record.qty_empty,
        "qty_reserved": new_record.qty_reserved,
        "updated_at": now,
    }

    if expected_version == 0:
        try:
            db.execute(
                insert(StockRecord).values(
                    warehouse_id=key.warehouse_id,
                    product_id=key.product_id,
                    version=1,
                    **values,
                )
            )
        except IntegrityError:
            # Another writer created the row first
            logger.warning("Stock record insert conflict for %s/%s", key.warehouse_id, key.product_id)
            return None
        new_version = 1
    else:
        result = db.execute(
            update(StockRecord)
            .where(
                StockRecord.warehouse_id == key.warehouse_id,
                StockRecord.product_id == key.product_id,
                StockRecord.version == expected_version,
            )
            .values(version=StockRecord.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Stock record version conflict for %s/%s (expected v%d)",
                key.warehouse_id, key.product_id, expected_version,
            )
            return None
        new_version = expected_version + 1

    return StockSnapshot(
        warehouse_id=key.warehouse_id,
        product_id=key.product_id,
        qty_full=new_record.qty_full,
        qty_empty=new_record.qty_empty,
        qty_reserved=new_record.qty_reserved,
        version=new_version,
        updated_at=now,
    )


def swap_or_raise(db: Session, current: StockSnapshot, new_record: StockSnapshot) -> StockSnapshot:
    stored = compare_and_swap(db, current.key, current.version, new_record)
    if stored is None:
        raise StaleVersionError(current.key)
    return stored


def _retry_delay(attempt: int) -> float:
    base = settings.CAS_RETRY_BASE_DELAY
    return base * attempt + random.uniform(0, base)


def run_with_retry(
    db: Session,
    operation: str,
    attempt: Callable[[], T],
    max_attempts: int | None = None,
    **context,
) -> T:
    """Run ``attempt`` in a transaction, committing on success.

    A StaleVersionError rolls back and re-runs the attempt; any other error
    rolls back and propagates, so no partial state is ever left behind.
    """
    attempts = max_attempts or settings.CAS_MAX_RETRIES
    for n in range(1, attempts + 1):
        try:
            result = attempt()
            db.commit()
            return result
        except StaleVersionError as e:
            db.rollback()
            logger.warning("%s: %s (attempt %d/%d)", operation, e, n, attempts)
            if n < attempts:
                time.sleep(_retry_delay(n))
        except Exception:
            db.rollback()
            raise
    raise ConcurrentModificationError(operation, attempts, **context)
