from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lpg_ledger.database import Base, utcnow


class InventoryType(str, PyEnum):
    FULL = "full"
    EMPTY = "empty"
    RESERVED = "reserved"


class MovementType(str, PyEnum):
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"
    DELIVERY = "delivery"
    RELEASE = "release"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    SEED = "seed"


class AdjustmentRecord(Base):
    """Append-only audit entry: one per quantity slot changed by a ledger mutation."""

    __tablename__ = "adjustment_records"
    __table_args__ = (
        Index("ix_adjustment_records_key_created", "warehouse_id", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    # Insertion order breaks ties between records written in the same instant
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[str] = mapped_column(String, ForeignKey("warehouses.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False)
    inventory_type: Mapped[str] = mapped_column(String, nullable=False)  # full, empty, reserved
    delta: Mapped[int] = mapped_column(Integer, nullable=False)  # positive=in, negative=out
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String, default="")
    movement_type: Mapped[str] = mapped_column(String, default=MovementType.ADJUSTMENT.value, index=True)
    reference_id: Mapped[str] = mapped_column(String, default="")  # order_id or transfer id
    resulting_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
