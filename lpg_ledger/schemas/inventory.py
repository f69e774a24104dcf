from datetime import datetime

from pydantic import BaseModel, Field

from lpg_ledger.models.adjustment import InventoryType


class StockRecordOut(BaseModel):
    warehouse_id: str
    product_id: str
    qty_full: int
    qty_empty: int
    qty_reserved: int
    available: int
    version: int
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class InventoryAdjust(BaseModel):
    warehouse_id: str
    product_id: str
    inventory_type: InventoryType
    delta: int  # positive to add, negative to remove
    reason: str
    actor: str = ""


class StockTransfer(BaseModel):
    from_warehouse_id: str
    to_warehouse_id: str
    product_id: str
    quantity: int = Field(ge=1)
    reason: str = "Stock transfer"
    actor: str = ""


class TransferOut(BaseModel):
    source: StockRecordOut
    destination: StockRecordOut


class AdjustmentOut(BaseModel):
    id: int
    warehouse_id: str
    product_id: str
    inventory_type: str
    delta: int
    reason: str
    actor: str
    movement_type: str
    reference_id: str
    resulting_quantity: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductTotalsOut(BaseModel):
    full: int
    empty: int
    reserved: int
    available: int


class LowStockOut(BaseModel):
    warehouse_id: str
    warehouse_name: str
    product_id: str
    product_sku: str
    available: int
    full: int
    tier: str

    model_config = {"from_attributes": True}


class UsagePoint(BaseModel):
    date: str
    quantity: int


class SeedRequest(BaseModel):
    actor: str = "seed"
