from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from lpg_ledger.database import get_db
from lpg_ledger.schemas.inventory import (
    AdjustmentOut,
    InventoryAdjust,
    SeedRequest,
    StockRecordOut,
    StockTransfer,
    TransferOut,
)
from lpg_ledger.services import adjustment_service, audit_service, export_service, seeding_service, stock_store
from lpg_ledger.services.webhook_service import send_stock_alerts

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.post("/adjust", response_model=StockRecordOut)
def adjust_inventory(data: InventoryAdjust, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    record = adjustment_service.adjust(
        db,
        data.warehouse_id,
        data.product_id,
        data.inventory_type,
        data.delta,
        data.reason,
        data.actor,
    )
    background_tasks.add_task(send_stock_alerts, [record])
    return record.as_dict()


@router.post("/transfer", response_model=TransferOut)
def transfer_stock(data: StockTransfer, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    source, destination = adjustment_service.transfer(
        db,
        data.from_warehouse_id,
        data.to_warehouse_id,
        data.product_id,
        data.quantity,
        data.reason,
        data.actor,
    )
    background_tasks.add_task(send_stock_alerts, [source])
    return {"source": source.as_dict(), "destination": destination.as_dict()}


@router.get("/history", response_model=list[AdjustmentOut])
def adjustment_history(
    warehouse_id: str,
    product_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return audit_service.history(db, warehouse_id, product_id, limit)


@router.get("/export")
def export_inventory(db: Session = Depends(get_db)):
    content = export_service.export_inventory_csv(db)
    filename = f"inventory-export-{datetime.now(timezone.utc).strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/seed")
def seed_inventory(data: SeedRequest | None = None, db: Session = Depends(get_db)):
    result = seeding_service.run_complete_seeding(db, actor=data.actor if data else "seed")
    return asdict(result)


@router.get("/{warehouse_id}/{product_id}", response_model=StockRecordOut)
def get_stock_record(warehouse_id: str, product_id: str, db: Session = Depends(get_db)):
    return stock_store.get(db, warehouse_id, product_id).as_dict()
