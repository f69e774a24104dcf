"""
Optimistic concurrency against a file-backed SQLite database.

Each session gets its own connection, so a write from one session is a
real conflict for a stale compare-and-swap in another.
"""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import make_order, make_product
from lpg_ledger.config import settings
from lpg_ledger.database import init_db
from lpg_ledger.exceptions import ConcurrentModificationError, InsufficientStockError
from lpg_ledger.models.adjustment import AdjustmentRecord
from lpg_ledger.models.order import OrderStatus
from lpg_ledger.schemas.catalog import WarehouseCreate
from lpg_ledger.services import adjustment_service, catalog_service, reservation_service, stock_store


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    factory = sessionmaker(autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def stocked(file_sessions):
    db = file_sessions()
    warehouse = catalog_service.create_warehouse(db, WarehouseCreate(name="Race Depot"))
    product = make_product(db, "CYL-20KG-STD")
    adjustment_service.adjust(db, warehouse.id, product.id, "full", 10, "opening stock", "ops")
    yield db, warehouse, product
    db.close()


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(stock_store.time, "sleep", lambda s: None)


def interleave_once(monkeypatch, writer):
    """Run ``writer`` right after the first stock read, before its compare-and-swap."""
    real_get = stock_store.get
    state = {"fired": False}

    def racing_get(db, warehouse_id, product_id):
        snap = real_get(db, warehouse_id, product_id)
        if not state["fired"]:
            state["fired"] = True
            writer()
        return snap

    monkeypatch.setattr(stock_store, "get", racing_get)


class TestInterleavedWriters:
    def test_lost_update_is_retried(self, file_sessions, stocked, monkeypatch, no_sleep):
        db, warehouse, product = stocked
        other = file_sessions()
        interleave_once(
            monkeypatch,
            lambda: adjustment_service.adjust(other, warehouse.id, product.id, "full", 5, "delivery in", "bob"),
        )

        stored = adjustment_service.adjust(db, warehouse.id, product.id, "full", -3, "damaged", "alice")

        assert stored.qty_full == 12
        assert stored.version == 3
        fresh = file_sessions()
        assert stock_store.get(fresh, warehouse.id, product.id).qty_full == 12
        assert fresh.query(AdjustmentRecord).count() == 3
        fresh.close()
        other.close()

    def test_reservation_rechecks_availability_after_conflict(self, file_sessions, stocked, monkeypatch, no_sleep):
        db, warehouse, product = stocked
        order = make_order(db, warehouse, [(product, 6)])
        other = file_sessions()
        interleave_once(
            monkeypatch,
            lambda: adjustment_service.adjust(other, warehouse.id, product.id, "reserved", 5, "walk-in", "bob"),
        )

        with pytest.raises(InsufficientStockError):
            reservation_service.apply_transition(db, order, OrderStatus.CONFIRMED)

        fresh = file_sessions()
        snap = stock_store.get(fresh, warehouse.id, product.id)
        assert (snap.qty_full, snap.qty_reserved) == (10, 5)
        fresh.close()
        other.close()

    def test_gives_up_when_always_stale(self, file_sessions, stocked, monkeypatch, no_sleep):
        db, warehouse, product = stocked
        other = file_sessions()
        real_get = stock_store.get

        def always_racing_get(session, warehouse_id, product_id):
            snap = real_get(session, warehouse_id, product_id)
            if session is db:
                adjustment_service.adjust(other, warehouse_id, product_id, "empty", 1, "returns", "bob")
            return snap

        monkeypatch.setattr(stock_store, "get", always_racing_get)
        monkeypatch.setattr(settings, "CAS_MAX_RETRIES", 3)

        with pytest.raises(ConcurrentModificationError) as exc:
            adjustment_service.adjust(db, warehouse.id, product.id, "full", 1, "count", "alice")

        assert exc.value.attempts == 3
        fresh = file_sessions()
        snap = stock_store.get(fresh, warehouse.id, product.id)
        assert (snap.qty_full, snap.qty_empty) == (10, 3)
        fresh.close()
        other.close()


def test_parallel_adjustments_are_not_lost(file_sessions, stocked, monkeypatch):
    _, warehouse, product = stocked
    warehouse_id, product_id = warehouse.id, product.id
    monkeypatch.setattr(settings, "CAS_MAX_RETRIES", 100)
    monkeypatch.setattr(settings, "CAS_RETRY_BASE_DELAY", 0.001)
    errors = []

    def worker():
        session = file_sessions()
        try:
            for _ in range(5):
                adjustment_service.adjust(session, warehouse_id, product_id, "full", 1, "count", "worker")
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    fresh = file_sessions()
    snap = stock_store.get(fresh, warehouse_id, product_id)
    assert snap.qty_full == 30
    assert snap.version == 21
    fresh.close()
