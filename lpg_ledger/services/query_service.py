"""Read-only aggregation over stock records and the audit trail.

Nothing here writes or takes part in compare-and-swap; every function is safe
to re-run at any time.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from lpg_ledger.config import settings
from lpg_ledger.database import utcnow
from lpg_ledger.exceptions import NotFoundError, ValidationError
from lpg_ledger.models.adjustment import AdjustmentRecord, InventoryType, MovementType
from lpg_ledger.models.product import Product, ProductStatus
from lpg_ledger.models.stock import StockRecord
from lpg_ledger.models.warehouse import Warehouse

TIER_OUT = "out"
TIER_LOW = "low"
TIER_GOOD = "good"


@dataclass(frozen=True)
class LowStockItem:
    warehouse_id: str
    warehouse_name: str
    product_id: str
    product_sku: str
    available: int
    full: int
    tier: str

    @property
    def ratio(self) -> float:
        return self.available / self.full if self.full else 0.0


def stock_tier(qty_full: int, qty_reserved: int, threshold_ratio: float | None = None) -> str:
    """Alert tier for one record: out when nothing is full, low below the ratio."""
    ratio = settings.LOW_STOCK_RATIO if threshold_ratio is None else threshold_ratio
    if qty_full == 0:
        return TIER_OUT
    if (qty_full - qty_reserved) / qty_full < ratio:
        return TIER_LOW
    return TIER_GOOD


def _require_product(db: Session, product_id: str) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def totals_by_product(db: Session, product_id: str) -> dict:
    _require_product(db, product_id)
    full, empty, reserved = (
        db.query(
            func.coalesce(func.sum(StockRecord.qty_full), 0),
            func.coalesce(func.sum(StockRecord.qty_empty), 0),
            func.coalesce(func.sum(StockRecord.qty_reserved), 0),
        )
        .filter(StockRecord.product_id == product_id)
        .one()
    )
    return {
        "full": int(full),
        "empty": int(empty),
        "reserved": int(reserved),
        "available": int(full) - int(reserved),
    }


def low_stock(db: Session, threshold_ratio: float | None = None) -> list[LowStockItem]:
    ratio = settings.LOW_STOCK_RATIO if threshold_ratio is None else threshold_ratio
    if not 0 < ratio <= 1:
        raise ValidationError("threshold_ratio must be within (0, 1]", threshold_ratio=ratio)

    rows = (
        db.query(StockRecord, Warehouse.name, Product.sku)
        .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
        .join(Product, Product.id == StockRecord.product_id)
        .all()
    )
    items = []
    for record, warehouse_name, sku in rows:
        tier = stock_tier(record.qty_full, record.qty_reserved, ratio)
        if tier == TIER_GOOD:
            continue
        items.append(
            LowStockItem(
                warehouse_id=record.warehouse_id,
                warehouse_name=warehouse_name,
                product_id=record.product_id,
                product_sku=sku,
                available=record.available,
                full=record.qty_full,
                tier=tier,
            )
        )
    items.sort(key=lambda i: (i.tier != TIER_OUT, i.ratio, i.warehouse_name, i.product_sku))
    return items


def _deliveries_between(db: Session, product_id: str, start: datetime, end: datetime) -> dict[date, int]:
    """Replay delivery audit records into quantity delivered per day."""
    records = (
        db.query(AdjustmentRecord.delta, AdjustmentRecord.created_at)
        .filter(
            AdjustmentRecord.product_id == product_id,
            AdjustmentRecord.movement_type == MovementType.DELIVERY.value,
            AdjustmentRecord.inventory_type == InventoryType.FULL.value,
            AdjustmentRecord.created_at >= start,
            AdjustmentRecord.created_at < end,
        )
        .all()
    )
    per_day: dict[date, int] = defaultdict(int)
    for delta, created_at in records:
        per_day[created_at.date()] += -delta
    return per_day


def usage_trend(db: Session, product_id: str, window_days: int = 30, today: date | None = None) -> list[tuple[date, int]]:
    """(date, quantity delivered) for days with deliveries in the last ``window_days``, oldest first."""
    if window_days < 1:
        raise ValidationError("window_days must be at least 1", window_days=window_days)
    _require_product(db, product_id)
    today = today or utcnow().date()
    start = datetime.combine(today - timedelta(days=window_days), time.min)
    end = datetime.combine(today + timedelta(days=1), time.min)
    per_day = _deliveries_between(db, product_id, start, end)
    return sorted(per_day.items())


def usage_analytics(db: Session, product_id: str, today: date | None = None) -> dict:
    today = today or utcnow().date()
    month_start = datetime.combine(today.replace(day=1), time.min)
    end = datetime.combine(today + timedelta(days=1), time.min)
    total_month = sum(_deliveries_between(db, product_id, month_start, end).values())
    trend = usage_trend(db, product_id, 30, today)
    return {
        "total_delivered_month": total_month,
        "average_daily_usage": round(total_month / today.day, 2),
        "usage_trend": [{"date": d.isoformat(), "quantity": q} for d, q in trend],
    }


def warehouse_overview(db: Session) -> list[dict]:
    warehouses = db.query(Warehouse).order_by(Warehouse.name).all()
    totals = dict(
        db.query(StockRecord.warehouse_id, func.sum(StockRecord.qty_full + StockRecord.qty_empty))
        .group_by(StockRecord.warehouse_id)
        .all()
    )
    result = []
    for w in warehouses:
        total = int(totals.get(w.id) or 0)
        capacity = w.capacity_cylinders or settings.DEFAULT_WAREHOUSE_CAPACITY
        utilization = total / capacity * 100 if capacity > 0 else 0.0
        if utilization > 90:
            status = "critical"
        elif utilization > 75:
            status = "warning"
        else:
            status = "good"
        result.append({
            "id": w.id,
            "name": w.name,
            "total_cylinders": total,
            "capacity_cylinders": capacity,
            "utilization_percentage": round(utilization),
            "status": status,
        })
    return result


def stock_levels(db: Session) -> list[dict]:
    """Per active product: breakdown by warehouse, totals and a good/low/out status."""
    products = db.query(Product).filter(Product.status == ProductStatus.ACTIVE).order_by(Product.sku).all()
    rows = (
        db.query(StockRecord, Warehouse.name)
        .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
        .all()
    )
    by_product: dict[str, list] = defaultdict(list)
    for record, warehouse_name in rows:
        by_product[record.product_id].append((record, warehouse_name))

    result = []
    for p in products:
        warehouses = {}
        total_full = total_empty = total_reserved = 0
        for record, warehouse_name in by_product.get(p.id, []):
            warehouses[record.warehouse_id] = {
                "warehouse_name": warehouse_name,
                "qty_full": record.qty_full,
                "qty_empty": record.qty_empty,
                "qty_reserved": record.qty_reserved,
            }
            total_full += record.qty_full
            total_empty += record.qty_empty
            total_reserved += record.qty_reserved
        total_available = total_full - total_reserved
        if total_available == 0:
            stock_status = TIER_OUT
        elif total_available < settings.LOW_STOCK_UNITS:
            stock_status = TIER_LOW
        else:
            stock_status = TIER_GOOD
        result.append({
            "product_id": p.id,
            "product_sku": p.sku,
            "product_name": p.name,
            "warehouses": warehouses,
            "total_full": total_full,
            "total_empty": total_empty,
            "total_reserved": total_reserved,
            "total_available": total_available,
            "stock_status": stock_status,
        })
    return result


def recent_movements(db: Session, limit: int = 20) -> list[dict]:
    rows = (
        db.query(AdjustmentRecord, Product.sku, Product.name, Warehouse.name)
        .join(Product, Product.id == AdjustmentRecord.product_id)
        .join(Warehouse, Warehouse.id == AdjustmentRecord.warehouse_id)
        .order_by(AdjustmentRecord.created_at.desc(), AdjustmentRecord.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": rec.id,
            "timestamp": rec.created_at.isoformat() if rec.created_at else None,
            "product_sku": sku,
            "product_name": product_name,
            "warehouse_name": warehouse_name,
            "movement_type": rec.movement_type,
            "inventory_type": rec.inventory_type,
            "quantity": rec.delta,
            "reason": rec.reason,
            "reference": rec.reference_id,
            "actor": rec.actor,
        }
        for rec, sku, product_name, warehouse_name in rows
    ]
