"""
Order-lifecycle side effects on inventory.

    draft/pending              -> confirmed : reserve  (qty_reserved += quantity)
    confirmed/scheduled/en_route -> delivered : commit (qty_full, qty_reserved -= quantity)
    any non-terminal           -> cancelled : release  (qty_reserved -= quantity, reserved lines only)

Every other allowed move (draft -> pending, confirmed -> scheduled, ...) is a
pure status change. Each (order, product) pair has a row in the
order_line_commit_log recording whether its stock is reserved, committed or
released. That row makes repeated deliveries and cancellations no-ops, and it
stops a cancelled draft from releasing stock it never held. A line released
while the order was still open is held again when the order is confirmed.

The direct reserve / commit / release calls refuse an order whose current
status could not move to confirmed / delivered / cancelled.

A transition (status change, stock swaps, commit log, audit) is one
transaction driven by stock_store.run_with_retry: either all of it lands
or none of it does.
"""

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lpg_ledger.database import utcnow
from lpg_ledger.exceptions import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from lpg_ledger.models.adjustment import InventoryType, MovementType
from lpg_ledger.models.order import TERMINAL_STATUSES, CommitState, Order, OrderLineCommit, OrderStatus
from lpg_ledger.models.product import Product, ProductStatus
from lpg_ledger.models.stock import StockSnapshot
from lpg_ledger.services import audit_service, stock_store
from lpg_ledger.services.stock_store import StaleVersionError

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.PENDING: frozenset({OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.SCHEDULED, OrderStatus.EN_ROUTE, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SCHEDULED: frozenset({OrderStatus.EN_ROUTE, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.EN_ROUTE: frozenset({OrderStatus.SCHEDULED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


@dataclass
class TransitionResult:
    order_id: str
    previous_status: OrderStatus
    status: OrderStatus
    effect: str = "none"  # none, reserve, commit, release, noop
    records: list[StockSnapshot] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.effect != "noop"


def _aggregate_lines(order: Order) -> "OrderedDict[str, int]":
    totals: OrderedDict[str, int] = OrderedDict()
    for line in order.lines:
        if line.quantity <= 0:
            raise ValidationError(
                "Order line quantity must be positive",
                order_id=order.id,
                product_id=line.product_id,
                requested=line.quantity,
            )
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def _commit_entries(db: Session, order_id: str) -> dict[str, OrderLineCommit]:
    rows = db.execute(
        select(OrderLineCommit)
        .where(OrderLineCommit.order_id == order_id)
        .execution_options(populate_existing=True)
    ).scalars().all()
    return {row.product_id: row for row in rows}


def _mark_entry(
    db: Session,
    entry: OrderLineCommit,
    new_state: CommitState,
    from_state: CommitState = CommitState.RESERVED,
    **values,
) -> None:
    result = db.execute(
        update(OrderLineCommit)
        .where(OrderLineCommit.id == entry.id, OrderLineCommit.state == from_state.value)
        .values(state=new_state.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleVersionError(detail=f"Commit log entry {entry.order_id}/{entry.product_id} changed concurrently")


def _insert_entry(db: Session, order: Order, product_id: str, quantity: int, stored: StockSnapshot) -> None:
    try:
        db.execute(
            insert(OrderLineCommit).values(
                order_id=order.id,
                product_id=product_id,
                warehouse_id=order.warehouse_id,
                quantity=quantity,
                state=CommitState.RESERVED.value,
                updated_at=stored.updated_at,
            )
        )
    except IntegrityError:
        raise StaleVersionError(detail=f"Order {order.id} line {product_id} reserved concurrently") from None


def _reason(order: Order, action: str) -> str:
    return f"order {order.order_number or order.id}: {action}"


def _reserve_lines(db: Session, order: Order, actor: str) -> list[StockSnapshot]:
    wanted = _aggregate_lines(order)
    entries = _commit_entries(db, order.id)
    # Lines released before the order was confirmed are held again
    todo = OrderedDict(
        (pid, qty) for pid, qty in wanted.items()
        if pid not in entries or entries[pid].state == CommitState.RELEASED.value
    )

    # Validate every line before writing anything
    snapshots: dict[str, StockSnapshot] = {}
    for product_id, quantity in todo.items():
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.status == ProductStatus.OBSOLETE:
            raise ValidationError(
                f"Product {product.sku} is obsolete and cannot be reserved",
                order_id=order.id,
                warehouse_id=order.warehouse_id,
                product_id=product_id,
                requested=quantity,
            )
        current = stock_store.get(db, order.warehouse_id, product_id)
        if quantity > current.available:
            raise InsufficientStockError(
                order.warehouse_id,
                product_id,
                requested=quantity,
                current=current.available,
                inventory_type=InventoryType.RESERVED.value,
                message=f"Insufficient stock for {product.sku}. Available: {current.available}, requested: {quantity}",
            )
        snapshots[product_id] = current

    stored_records = []
    for product_id, quantity in todo.items():
        current = snapshots[product_id]
        stored = stock_store.swap_or_raise(db, current, current.with_delta("reserved", quantity))
        if product_id in entries:
            _mark_entry(
                db, entries[product_id], CommitState.RESERVED,
                from_state=CommitState.RELEASED, quantity=quantity, warehouse_id=order.warehouse_id,
            )
        else:
            _insert_entry(db, order, product_id, quantity, stored)
        audit_service.record_change(
            db, stored, InventoryType.RESERVED, quantity, _reason(order, "reserve"), actor,
            MovementType.RESERVATION, order.id,
        )
        stored_records.append(stored)
    return stored_records


def _commit_lines(db: Session, order: Order, actor: str) -> list[StockSnapshot]:
    stored_records = []
    for entry in _commit_entries(db, order.id).values():
        if entry.state != CommitState.RESERVED.value:
            continue
        current = stock_store.get(db, entry.warehouse_id, entry.product_id)
        new = current.with_delta("full", -entry.quantity).with_delta("reserved", -entry.quantity)
        if new.qty_full < 0 or new.qty_reserved < 0:
            raise InsufficientStockError(
                entry.warehouse_id,
                entry.product_id,
                requested=-entry.quantity,
                current=current.qty_reserved,
                inventory_type=InventoryType.RESERVED.value,
            )
        stored = stock_store.swap_or_raise(db, current, new)
        _mark_entry(db, entry, CommitState.COMMITTED)
        reason = _reason(order, "deliver")
        audit_service.record_change(
            db, stored, InventoryType.FULL, -entry.quantity, reason, actor, MovementType.DELIVERY, order.id
        )
        audit_service.record_change(
            db, stored, InventoryType.RESERVED, -entry.quantity, reason, actor, MovementType.DELIVERY, order.id
        )
        stored_records.append(stored)
    return stored_records


def _release_lines(db: Session, order: Order, actor: str) -> list[StockSnapshot]:
    stored_records = []
    for entry in _commit_entries(db, order.id).values():
        if entry.state != CommitState.RESERVED.value:
            continue
        current = stock_store.get(db, entry.warehouse_id, entry.product_id)
        new = current.with_delta("reserved", -entry.quantity)
        if new.qty_reserved < 0:
            raise InsufficientStockError(
                entry.warehouse_id,
                entry.product_id,
                requested=-entry.quantity,
                current=current.qty_reserved,
                inventory_type=InventoryType.RESERVED.value,
            )
        stored = stock_store.swap_or_raise(db, current, new)
        _mark_entry(db, entry, CommitState.RELEASED)
        audit_service.record_change(
            db, stored, InventoryType.RESERVED, -entry.quantity, _reason(order, "cancel"), actor,
            MovementType.RELEASE, order.id,
        )
        stored_records.append(stored)
    return stored_records


def _run_effect(db: Session, order: Order, target: OrderStatus, operation: str, apply, actor: str):
    """Run one stock effect outside a status change, provided the order could make that move now."""

    def attempt() -> list[StockSnapshot]:
        status = db.execute(select(Order.status).where(Order.id == order.id)).scalar_one_or_none()
        if status is None:
            raise NotFoundError("Order", order.id)
        current = OrderStatus(status)
        if current != target and target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(order.id, current.value, target.value)
        return apply(db, order, actor)

    return stock_store.run_with_retry(db, operation, attempt, order_id=order.id, warehouse_id=order.warehouse_id)


def reserve(db: Session, order: Order, actor: str = "") -> list[StockSnapshot]:
    """Hold stock for every line not yet reserved. All lines or none."""
    records = _run_effect(db, order, OrderStatus.CONFIRMED, "reserve", _reserve_lines, actor)
    logger.info("Reserved stock for order %s (%d lines)", order.id, len(records))
    return records


def commit(db: Session, order: Order, actor: str = "") -> list[StockSnapshot]:
    """Deduct reserved stock at delivery. Lines already committed are skipped."""
    records = _run_effect(db, order, OrderStatus.DELIVERED, "commit", _commit_lines, actor)
    logger.info("Committed stock for order %s (%d lines)", order.id, len(records))
    return records


def release(db: Session, order: Order, actor: str = "") -> list[StockSnapshot]:
    """Return reserved stock to available. Lines never reserved are left alone."""
    records = _run_effect(db, order, OrderStatus.CANCELLED, "release", _release_lines, actor)
    logger.info("Released stock for order %s (%d lines)", order.id, len(records))
    return records


def _effect_for(target: OrderStatus) -> str:
    if target == OrderStatus.CONFIRMED:
        return "reserve"
    if target == OrderStatus.DELIVERED:
        return "commit"
    if target == OrderStatus.CANCELLED:
        return "release"
    return "none"


def _append_history(raw: str | None, status: OrderStatus, note: str) -> str:
    history = json.loads(raw) if raw else []
    history.append({
        "status": status.value,
        "timestamp": utcnow().isoformat(),
        "note": note,
    })
    return json.dumps(history)


def apply_transition(
    db: Session,
    order: Order,
    target_status: str | OrderStatus,
    actor: str = "",
    note: str = "",
) -> TransitionResult:
    """Move an order to ``target_status`` together with its inventory side effect.

    Repeating the current status is a successful no-op, so status events
    delivered more than once are harmless.
    """
    try:
        target = OrderStatus(target_status)
    except ValueError:
        raise ValidationError(f"Unknown order status '{target_status}'", order_id=order.id) from None

    effects = {"reserve": _reserve_lines, "commit": _commit_lines, "release": _release_lines}

    def attempt() -> TransitionResult:
        row = db.execute(select(Order.status, Order.status_history).where(Order.id == order.id)).first()
        if row is None:
            raise NotFoundError("Order", order.id)
        current = OrderStatus(row.status)
        if current == target:
            return TransitionResult(order.id, current, target, effect="noop")
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(order.id, current.value, target.value)

        effect = _effect_for(target)
        records = effects[effect](db, order, actor) if effect in effects else []

        values = {
            "status": target,
            "status_history": _append_history(row.status_history, target, note),
            "updated_at": utcnow(),
        }
        if target == OrderStatus.DELIVERED:
            values["delivered_at"] = utcnow()
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleVersionError(detail=f"Order {order.id} status changed concurrently")
        return TransitionResult(order.id, current, target, effect=effect, records=records)

    outcome = stock_store.run_with_retry(
        db, f"transition to {target.value}", attempt, order_id=order.id, warehouse_id=order.warehouse_id
    )
    db.refresh(order)
    if outcome.effect == "noop":
        logger.info("Order %s already %s; nothing to do", order.id, target.value)
    else:
        logger.info(
            "Order %s: %s -> %s (%s, %d stock records)",
            order.id, outcome.previous_status.value, target.value, outcome.effect, len(outcome.records),
        )
    return outcome
