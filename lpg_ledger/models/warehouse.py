import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from lpg_ledger.database import Base, utcnow


class Warehouse(Base):
    __tablename__ = "warehouses"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    capacity_cylinders: Mapped[int | None] = mapped_column(Integer, nullable=True)  # max cylinders on site
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
