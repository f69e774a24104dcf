import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lpg_ledger.exceptions import InsufficientStockError, InvariantViolationError, ValidationError
from lpg_ledger.models.adjustment import InventoryType, MovementType
from lpg_ledger.models.order import CommitState, OrderLineCommit
from lpg_ledger.models.stock import StockSnapshot
from lpg_ledger.services import audit_service, stock_store

logger = logging.getLogger(__name__)


def _parse_inventory_type(inventory_type: str | InventoryType) -> InventoryType:
    try:
        return InventoryType(inventory_type)
    except ValueError:
        raise ValidationError(
            f"Unknown inventory type '{inventory_type}'",
            inventory_type=str(inventory_type),
        ) from None


def _require_reason(reason: str | None, **context) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A reason is required for every inventory change", **context)
    return reason.strip()


def check_invariants(current: StockSnapshot, new: StockSnapshot, inventory_type: InventoryType, delta: int) -> None:
    """Reject a change that would break non-negative stock or reserved <= full."""
    resulting = new.quantity(inventory_type.value)
    if resulting < 0:
        raise InsufficientStockError(
            current.warehouse_id,
            current.product_id,
            requested=delta,
            current=current.quantity(inventory_type.value),
            inventory_type=inventory_type.value,
        )
    if new.qty_reserved > new.qty_full:
        raise InvariantViolationError(
            current.warehouse_id,
            current.product_id,
            qty_full=new.qty_full,
            qty_reserved=new.qty_reserved,
            requested=delta,
        )


def held_by_orders(db: Session, warehouse_id: str, product_id: str) -> int:
    """Units reserved for open orders through the order commit log."""
    return db.execute(
        select(func.coalesce(func.sum(OrderLineCommit.quantity), 0)).where(
            OrderLineCommit.warehouse_id == warehouse_id,
            OrderLineCommit.product_id == product_id,
            OrderLineCommit.state == CommitState.RESERVED.value,
        )
    ).scalar_one()


def _check_held(db: Session, current: StockSnapshot, new: StockSnapshot, delta: int) -> None:
    held = held_by_orders(db, current.warehouse_id, current.product_id)
    if new.qty_reserved < held:
        raise InsufficientStockError(
            current.warehouse_id,
            current.product_id,
            requested=delta,
            current=current.qty_reserved - held,
            inventory_type=InventoryType.RESERVED.value,
            message=f"{held} reserved units are held by open orders; cancel those orders to release them",
        )


def adjust(
    db: Session,
    warehouse_id: str,
    product_id: str,
    inventory_type: str | InventoryType,
    delta: int,
    reason: str,
    actor: str,
    *,
    movement_type: MovementType = MovementType.ADJUSTMENT,
    reference_id: str = "",
) -> StockSnapshot:
    """Apply a signed change to one quantity slot of one stock record.

    Never clamps: a change that would go below zero raises
    InsufficientStockError and leaves the record untouched. Reserved stock
    held by open orders can only be given back through those orders.
    """
    slot = _parse_inventory_type(inventory_type)
    reason = _require_reason(reason, warehouse_id=warehouse_id, product_id=product_id, requested=delta)
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError(
            "Quantity change must be a non-zero whole number",
            warehouse_id=warehouse_id,
            product_id=product_id,
            requested=delta,
        )

    def attempt() -> StockSnapshot:
        current = stock_store.get(db, warehouse_id, product_id)
        new = current.with_delta(slot.value, delta)
        check_invariants(current, new, slot, delta)
        if slot == InventoryType.RESERVED and delta < 0:
            _check_held(db, current, new, delta)
        stored = stock_store.swap_or_raise(db, current, new)
        audit_service.record_change(db, stored, slot, delta, reason, actor, movement_type, reference_id)
        return stored

    stored = stock_store.run_with_retry(
        db, "adjust", attempt, warehouse_id=warehouse_id, product_id=product_id, requested=delta
    )
    logger.info(
        "Adjusted %s stock %s/%s by %+d -> %d (%s, by %s)",
        slot.value, warehouse_id, product_id, delta, stored.quantity(slot.value), reason, actor or "-",
    )
    return stored


def transfer(
    db: Session,
    from_warehouse_id: str,
    to_warehouse_id: str,
    product_id: str,
    quantity: int,
    reason: str,
    actor: str,
) -> tuple[StockSnapshot, StockSnapshot]:
    """Move full cylinders between warehouses; both sides land or neither does."""
    reason = _require_reason(reason, warehouse_id=from_warehouse_id, product_id=product_id, requested=quantity)
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError(
            "Source and destination warehouses must be different",
            warehouse_id=from_warehouse_id,
            product_id=product_id,
        )
    if not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            "Quantity must be at least 1",
            warehouse_id=from_warehouse_id,
            product_id=product_id,
            requested=quantity,
        )
    transfer_id = f"TRF-{uuid.uuid4().hex[:12].upper()}"

    def attempt() -> tuple[StockSnapshot, StockSnapshot]:
        source = stock_store.get(db, from_warehouse_id, product_id)
        dest = stock_store.get(db, to_warehouse_id, product_id)
        if quantity > source.available:
            raise InsufficientStockError(
                from_warehouse_id,
                product_id,
                requested=quantity,
                current=source.available,
                message=f"Only {source.available} units available for transfer",
            )
        stored_source = stock_store.swap_or_raise(db, source, source.with_delta("full", -quantity))
        stored_dest = stock_store.swap_or_raise(db, dest, dest.with_delta("full", quantity))
        audit_service.record_change(
            db, stored_source, InventoryType.FULL, -quantity, reason, actor, MovementType.TRANSFER_OUT, transfer_id
        )
        audit_service.record_change(
            db, stored_dest, InventoryType.FULL, quantity, reason, actor, MovementType.TRANSFER_IN, transfer_id
        )
        return stored_source, stored_dest

    result = stock_store.run_with_retry(
        db, "transfer", attempt, warehouse_id=from_warehouse_id, product_id=product_id, requested=quantity
    )
    logger.info(
        "Transferred %d x %s from %s to %s (%s)", quantity, product_id, from_warehouse_id, to_warehouse_id, transfer_id
    )
    return result


def seed_baseline(
    db: Session,
    warehouse_id: str,
    product_id: str,
    qty_full: int,
    qty_empty: int,
    reason: str,
    actor: str,
) -> StockSnapshot | None:
    """Establish initial stock for a pair that has none.

    Returns None without writing when the record already holds stock, so
    re-running a seed never double counts.
    """
    reason = _require_reason(reason, warehouse_id=warehouse_id, product_id=product_id)
    if qty_full < 0 or qty_empty < 0:
        raise ValidationError(
            "Seed quantities cannot be negative",
            warehouse_id=warehouse_id,
            product_id=product_id,
            qty_full=qty_full,
            qty_empty=qty_empty,
        )

    def attempt() -> StockSnapshot | None:
        current = stock_store.get(db, warehouse_id, product_id)
        if not current.is_zero:
            return None
        new = StockSnapshot(warehouse_id, product_id, qty_full=current.qty_full + qty_full,
                            qty_empty=current.qty_empty + qty_empty)
        stored = stock_store.swap_or_raise(db, current, new)
        if qty_full:
            audit_service.record_change(db, stored, InventoryType.FULL, qty_full, reason, actor, MovementType.SEED)
        if qty_empty:
            audit_service.record_change(db, stored, InventoryType.EMPTY, qty_empty, reason, actor, MovementType.SEED)
        return stored

    stored = stock_store.run_with_retry(db, "seed", attempt, warehouse_id=warehouse_id, product_id=product_id)
    if stored is None:
        logger.info("Skipped seeding %s/%s: stock already on record", warehouse_id, product_id)
    return stored
