from datetime import datetime

from pydantic import BaseModel, Field

from lpg_ledger.models.product import ProductStatus


# --- Warehouse schemas ---

class WarehouseCreate(BaseModel):
    name: str = Field(min_length=1)
    capacity_cylinders: int | None = Field(default=None, gt=0)


class WarehouseOut(BaseModel):
    id: str
    name: str
    capacity_cylinders: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Product schemas ---

class ProductCreate(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    capacity_kg: float = Field(gt=0)
    tare_weight_kg: float = Field(gt=0)
    valve_type: str = ""
    status: ProductStatus = ProductStatus.ACTIVE


class ProductUpdate(BaseModel):
    sku: str | None = None
    name: str | None = None
    description: str | None = None
    capacity_kg: float | None = Field(default=None, gt=0)
    tare_weight_kg: float | None = Field(default=None, gt=0)
    valve_type: str | None = None
    status: ProductStatus | None = None


class ProductOut(BaseModel):
    id: str
    sku: str
    name: str
    description: str
    capacity_kg: float
    tare_weight_kg: float
    valve_type: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
