from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lpg_ledger.database import get_db
from lpg_ledger.schemas.inventory import LowStockOut, ProductTotalsOut, UsagePoint
from lpg_ledger.services import query_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/totals/{product_id}", response_model=ProductTotalsOut)
def product_totals(product_id: str, db: Session = Depends(get_db)):
    return query_service.totals_by_product(db, product_id)


@router.get("/low-stock", response_model=list[LowStockOut])
def low_stock(threshold_ratio: float | None = Query(None), db: Session = Depends(get_db)):
    return query_service.low_stock(db, threshold_ratio)


@router.get("/usage-trend/{product_id}", response_model=list[UsagePoint])
def usage_trend(
    product_id: str,
    window_days: int = Query(30, ge=1, le=365),
    today: date | None = Query(None),
    db: Session = Depends(get_db),
):
    trend = query_service.usage_trend(db, product_id, window_days, today)
    return [{"date": d.isoformat(), "quantity": q} for d, q in trend]


@router.get("/usage/{product_id}")
def usage_analytics(product_id: str, today: date | None = Query(None), db: Session = Depends(get_db)):
    return query_service.usage_analytics(db, product_id, today)


@router.get("/warehouses")
def warehouse_overview(db: Session = Depends(get_db)):
    return query_service.warehouse_overview(db)


@router.get("/stock-levels")
def stock_levels(db: Session = Depends(get_db)):
    return query_service.stock_levels(db)


@router.get("/movements")
def recent_movements(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    return query_service.recent_movements(db, limit=limit)
