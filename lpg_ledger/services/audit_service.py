from sqlalchemy.orm import Session

from lpg_ledger.exceptions import ValidationError
from lpg_ledger.models.adjustment import AdjustmentRecord, InventoryType, MovementType
from lpg_ledger.models.stock import StockSnapshot


def append(db: Session, record: AdjustmentRecord) -> AdjustmentRecord:
    """Add an audit record to the caller's transaction.

    Storage errors propagate so the whole mutation rolls back with it.
    """
    db.add(record)
    db.flush()
    return record


def record_change(
    db: Session,
    stored: StockSnapshot,
    inventory_type: InventoryType,
    delta: int,
    reason: str,
    actor: str,
    movement_type: MovementType = MovementType.ADJUSTMENT,
    reference_id: str = "",
) -> AdjustmentRecord:
    return append(
        db,
        AdjustmentRecord(
            warehouse_id=stored.warehouse_id,
            product_id=stored.product_id,
            inventory_type=inventory_type.value,
            delta=delta,
            reason=reason,
            actor=actor,
            movement_type=movement_type.value,
            reference_id=reference_id,
            resulting_quantity=stored.quantity(inventory_type.value),
            created_at=stored.updated_at,
        ),
    )


def history(db: Session, warehouse_id: str, product_id: str, limit: int = 50) -> list[AdjustmentRecord]:
    if limit < 1:
        raise ValidationError("limit must be at least 1", limit=limit)
    return (
        db.query(AdjustmentRecord)
        .filter(AdjustmentRecord.warehouse_id == warehouse_id, AdjustmentRecord.product_id == product_id)
        .order_by(AdjustmentRecord.created_at.desc(), AdjustmentRecord.id.desc())
        .limit(limit)
        .all()
    )


def by_reference(db: Session, reference_id: str) -> list[AdjustmentRecord]:
    return (
        db.query(AdjustmentRecord)
        .filter(AdjustmentRecord.reference_id == reference_id)
        .order_by(AdjustmentRecord.created_at, AdjustmentRecord.id)
        .all()
    )
