import json
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from lpg_ledger.models.order import OrderStatus


class OrderLineCreate(BaseModel):
    product_id: str
    quantity: int = Field(default=1, gt=0)
    unit_price: float = Field(default=0.0, ge=0)


class OrderCreate(BaseModel):
    customer_id: str
    delivery_address_id: str = ""
    warehouse_id: str
    lines: list[OrderLineCreate] = Field(min_length=1)
    status: OrderStatus = OrderStatus.DRAFT  # draft or pending
    notes: str = ""


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: str = ""
    actor: str = ""


class OrderLineOut(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: str
    order_number: str
    customer_id: str
    delivery_address_id: str
    warehouse_id: str
    status: str
    lines: list[OrderLineOut]
    total_amount: float
    status_history: list[dict] = []
    notes: str
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status_history", mode="before")
    @classmethod
    def parse_status_history(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class TransitionOut(BaseModel):
    order: OrderOut
    previous_status: str
    effect: str
