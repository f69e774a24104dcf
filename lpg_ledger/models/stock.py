import uuid
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lpg_ledger.database import Base, utcnow


class StockRecord(Base):
    """Full / empty / reserved cylinder counts for one (warehouse, product) pair."""

    __tablename__ = "stock_records"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_stock_records_key"),
        CheckConstraint("qty_full >= 0", name="ck_stock_full_non_negative"),
        CheckConstraint("qty_empty >= 0", name="ck_stock_empty_non_negative"),
        CheckConstraint("qty_reserved >= 0", name="ck_stock_reserved_non_negative"),
        CheckConstraint("qty_reserved <= qty_full", name="ck_stock_reserved_within_full"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    warehouse_id: Mapped[str] = mapped_column(String, ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)
    qty_full: Mapped[int] = mapped_column(Integer, default=0)
    qty_empty: Mapped[int] = mapped_column(Integer, default=0)
    qty_reserved: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=1)  # bumped by every successful compare-and-swap
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    warehouse = relationship("Warehouse")
    product = relationship("Product")

    @property
    def available(self) -> int:
        return self.qty_full - self.qty_reserved


@dataclass(frozen=True)
class StockKey:
    warehouse_id: str
    product_id: str


@dataclass(frozen=True)
class StockSnapshot:
    """Immutable view of a StockRecord as read from the store.

    version 0 means no row exists yet (implicit zero baseline).
    """

    warehouse_id: str
    product_id: str
    qty_full: int = 0
    qty_empty: int = 0
    qty_reserved: int = 0
    version: int = 0
    updated_at: datetime | None = None

    @property
    def key(self) -> StockKey:
        return StockKey(self.warehouse_id, self.product_id)

    @property
    def available(self) -> int:
        return self.qty_full - self.qty_reserved

    @property
    def is_zero(self) -> bool:
        return self.qty_full == 0 and self.qty_empty == 0 and self.qty_reserved == 0

    def quantity(self, inventory_type: str) -> int:
        return getattr(self, f"qty_{inventory_type}")

    def with_delta(self, inventory_type: str, delta: int) -> "StockSnapshot":
        field = f"qty_{inventory_type}"
        return replace(self, **{field: getattr(self, field) + delta})

    def as_dict(self) -> dict:
        return {
            "warehouse_id": self.warehouse_id,
            "product_id": self.product_id,
            "qty_full": self.qty_full,
            "qty_empty": self.qty_empty,
            "qty_reserved": self.qty_reserved,
            "available": self.available,
            "version": self.version,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
