"""Default depot, cylinder catalog and baseline stock for a fresh install.

Safe to run repeatedly: existing warehouses and products are reused by
name / SKU, and pairs that already hold stock are skipped.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.orm import Session

from lpg_ledger.exceptions import ValidationError
from lpg_ledger.models.product import ProductStatus
from lpg_ledger.schemas.catalog import ProductCreate, WarehouseCreate
from lpg_ledger.services import adjustment_service, catalog_service

logger = logging.getLogger(__name__)

DEFAULT_WAREHOUSE = {"name": "Main Depot", "capacity_cylinders": 1000}

DEFAULT_PRODUCTS = [
    {
        "sku": "CYL-20KG-STD",
        "name": "20kg Standard Cylinder",
        "description": "Standard 20kg LPG cylinder for residential use",
        "capacity_kg": 20,
        "tare_weight_kg": 15,
        "valve_type": "Standard",
    },
    {
        "sku": "CYL-50KG-STD",
        "name": "50kg Standard Cylinder",
        "description": "Standard 50kg LPG cylinder for commercial use",
        "capacity_kg": 50,
        "tare_weight_kg": 25,
        "valve_type": "Standard",
    },
    {
        "sku": "CYL-100KG-IND",
        "name": "100kg Industrial Cylinder",
        "description": "Heavy-duty 100kg LPG cylinder for industrial applications",
        "capacity_kg": 100,
        "tare_weight_kg": 45,
        "valve_type": "Industrial",
    },
]

DEFAULT_INVENTORY = [
    {"sku": "CYL-20KG-STD", "qty_full": 100, "qty_empty": 50},
    {"sku": "CYL-50KG-STD", "qty_full": 75, "qty_empty": 25},
    {"sku": "CYL-100KG-IND", "qty_full": 30, "qty_empty": 10},
]


@dataclass
class SeedingProgress:
    step: str
    progress: int
    total: int


@dataclass
class SeedingResult:
    warehouse_id: str
    product_ids: dict[str, str]
    seeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str]
    warnings: list[str]


def validate_inventory_quantities(qty_full: int, qty_empty: int, qty_reserved: int = 0, low_stock_units: int = 10) -> ValidationResult:
    errors = []
    warnings = []
    if qty_full < 0:
        errors.append("Full quantity cannot be negative")
    if qty_empty < 0:
        errors.append("Empty quantity cannot be negative")
    if qty_reserved < 0:
        errors.append("Reserved quantity cannot be negative")
    if qty_reserved > qty_full:
        errors.append("Reserved quantity cannot exceed full quantity")

    available = qty_full - qty_reserved
    if 0 < available < low_stock_units:
        warnings.append(f"Low stock warning: Only {available} units available")
    if available <= 0:
        warnings.append("Product is out of stock")
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def create_default_warehouse(db: Session) -> str:
    existing = catalog_service.get_warehouse_by_name(db, DEFAULT_WAREHOUSE["name"])
    if existing:
        return existing.id
    return catalog_service.create_warehouse(db, WarehouseCreate(**DEFAULT_WAREHOUSE)).id


def create_default_products(db: Session) -> dict[str, str]:
    product_ids = {}
    for defaults in DEFAULT_PRODUCTS:
        existing = catalog_service.get_product_by_sku(db, defaults["sku"])
        if existing:
            product_ids[defaults["sku"]] = existing.id
            continue
        product = catalog_service.create_product(db, ProductCreate(status=ProductStatus.ACTIVE, **defaults))
        product_ids[defaults["sku"]] = product.id
    return product_ids


def seed_inventory(
    db: Session,
    warehouse_id: str,
    product_ids: dict[str, str],
    actor: str = "seed",
    on_progress: Callable[[SeedingProgress], None] | None = None,
) -> tuple[list[str], list[str]]:
    seeded, skipped = [], []
    total = len(DEFAULT_INVENTORY)
    for n, entry in enumerate(DEFAULT_INVENTORY, start=1):
        sku = entry["sku"]
        product_id = product_ids.get(sku)
        if not product_id:
            raise ValidationError(f"Product not found for SKU: {sku}", sku=sku)

        check = validate_inventory_quantities(entry["qty_full"], entry["qty_empty"])
        if not check.is_valid:
            raise ValidationError(f"Validation failed for {sku}: {', '.join(check.errors)}", sku=sku)

        stored = adjustment_service.seed_baseline(
            db, warehouse_id, product_id, entry["qty_full"], entry["qty_empty"],
            reason="Initial stock seeding", actor=actor,
        )
        (seeded if stored is not None else skipped).append(sku)
        if on_progress:
            on_progress(SeedingProgress(step=f"Seeding inventory for {sku}", progress=n, total=total))
    return seeded, skipped


def run_complete_seeding(
    db: Session,
    actor: str = "seed",
    on_progress: Callable[[SeedingProgress], None] | None = None,
) -> SeedingResult:
    def report(step: str, progress: int) -> None:
        if on_progress:
            on_progress(SeedingProgress(step=step, progress=progress, total=4))

    report("Creating Main Depot warehouse...", 1)
    warehouse_id = create_default_warehouse(db)

    report("Creating default products...", 2)
    product_ids = create_default_products(db)

    report("Seeding inventory data...", 3)
    seeded, skipped = seed_inventory(
        db, warehouse_id, product_ids, actor=actor,
        on_progress=lambda p: report(p.step, 3),
    )

    report("Seeding completed successfully!", 4)
    logger.info("Seeding finished: %d seeded, %d skipped", len(seeded), len(skipped))
    return SeedingResult(warehouse_id=warehouse_id, product_ids=product_ids, seeded=seeded, skipped=skipped)
