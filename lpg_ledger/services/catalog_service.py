import logging

from sqlalchemy.orm import Session

from lpg_ledger.exceptions import NotFoundError, ValidationError
from lpg_ledger.models.product import Product
from lpg_ledger.models.stock import StockRecord
from lpg_ledger.models.warehouse import Warehouse
from lpg_ledger.schemas.catalog import ProductCreate, ProductUpdate, WarehouseCreate

logger = logging.getLogger(__name__)


# --- Warehouses ---

def create_warehouse(db: Session, data: WarehouseCreate) -> Warehouse:
    if get_warehouse_by_name(db, data.name):
        raise ValidationError(f"Warehouse '{data.name}' already exists", name=data.name)
    warehouse = Warehouse(name=data.name, capacity_cylinders=data.capacity_cylinders)
    db.add(warehouse)
    db.commit()
    db.refresh(warehouse)
    logger.info("Created warehouse %s (%s)", warehouse.name, warehouse.id)
    return warehouse


def get_warehouse(db: Session, warehouse_id: str) -> Warehouse | None:
    return db.query(Warehouse).filter(Warehouse.id == warehouse_id).first()


def get_warehouse_by_name(db: Session, name: str) -> Warehouse | None:
    return db.query(Warehouse).filter(Warehouse.name == name).first()


def list_warehouses(db: Session) -> list[Warehouse]:
    return db.query(Warehouse).order_by(Warehouse.name).all()


# --- Products ---

def _check_weights(capacity_kg: float, tare_weight_kg: float, sku: str) -> None:
    if capacity_kg <= tare_weight_kg:
        raise ValidationError(
            "Capacity must be greater than tare weight",
            sku=sku,
            capacity_kg=capacity_kg,
            tare_weight_kg=tare_weight_kg,
        )


def create_product(db: Session, data: ProductCreate) -> Product:
    if get_product_by_sku(db, data.sku):
        raise ValidationError(f"Product with SKU {data.sku} already exists", sku=data.sku)
    _check_weights(data.capacity_kg, data.tare_weight_kg, data.sku)
    product = Product(**data.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_product_by_sku(db: Session, sku: str) -> Product | None:
    return db.query(Product).filter(Product.sku == sku).first()


def list_products(db: Session, skip: int = 0, limit: int = 100, status: str | None = None) -> list[Product]:
    q = db.query(Product)
    if status:
        q = q.filter(Product.status == status)
    return q.order_by(Product.sku).offset(skip).limit(limit).all()


def is_referenced(db: Session, product_id: str) -> bool:
    return db.query(StockRecord.id).filter(StockRecord.product_id == product_id).first() is not None


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)

    new_sku = update_data.get("sku")
    if new_sku and new_sku != product.sku:
        if is_referenced(db, product.id):
            raise ValidationError(
                "SKU cannot change once stock is recorded for the product",
                product_id=product.id,
                sku=product.sku,
            )
        if get_product_by_sku(db, new_sku):
            raise ValidationError(f"Product with SKU {new_sku} already exists", sku=new_sku)

    _check_weights(
        update_data.get("capacity_kg", product.capacity_kg),
        update_data.get("tare_weight_kg", product.tare_weight_kg),
        product.sku,
    )
    for field, value in update_data.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product
