import csv
import io

from sqlalchemy.orm import Session

from lpg_ledger.models.product import Product
from lpg_ledger.models.stock import StockRecord
from lpg_ledger.models.warehouse import Warehouse

CSV_COLUMNS = [
    "Warehouse", "Product SKU", "Product Name", "Full Qty", "Empty Qty",
    "Reserved Qty", "Available Qty", "Last Updated",
]


def inventory_rows(db: Session) -> list[list[str]]:
    """One row per stock record ever written, by warehouse name then SKU."""
    rows = (
        db.query(StockRecord, Warehouse.name, Product.sku, Product.name)
        .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
        .join(Product, Product.id == StockRecord.product_id)
        .order_by(Warehouse.name, Product.sku)
        .all()
    )
    return [
        [
            warehouse_name,
            sku,
            product_name,
            str(record.qty_full),
            str(record.qty_empty),
            str(record.qty_reserved),
            str(record.available),
            record.updated_at.date().isoformat() if record.updated_at else "",
        ]
        for record, warehouse_name, sku, product_name in rows
    ]


def export_inventory_csv(db: Session) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    writer.writerows(inventory_rows(db))
    return buf.getvalue()
