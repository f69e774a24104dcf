import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lpg_ledger.database import Base, utcnow


class ProductStatus(str, PyEnum):
    ACTIVE = "active"
    END_OF_SALE = "end_of_sale"
    OBSOLETE = "obsolete"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sku: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")

    # Cylinder specs: capacity_kg must exceed tare_weight_kg
    capacity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    tare_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    valve_type: Mapped[str] = mapped_column(String, default="")

    status: Mapped[str] = mapped_column(
        Enum(ProductStatus, values_callable=lambda x: [e.value for e in x]),
        default=ProductStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
