"""
Typed exceptions raised by the inventory ledger.

Every error carries a machine-readable ``kind`` and a ``context`` dict
(warehouse_id, product_id, requested delta, ...) so callers can render a
specific message instead of a generic failure:

    LedgerError
    +-- ValidationError
    |   +-- InvalidTransitionError
    +-- NotFoundError
    +-- InsufficientStockError
    +-- InvariantViolationError
    +-- ConcurrentModificationError
"""

from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    kind: str = "ledger_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind, "context": self.context}


class ValidationError(LedgerError):
    """Malformed input, rejected before any store access."""

    kind = "validation_error"


class InvalidTransitionError(ValidationError):
    """Order status change not allowed from the current status."""

    kind = "invalid_transition"

    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot change order {order_id} from '{current}' to '{target}'",
            order_id=order_id,
            current_status=current,
            target_status=target,
        )


class NotFoundError(LedgerError):
    """Referenced warehouse, product or order does not exist."""

    kind = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found", entity_type=entity_type, entity_id=entity_id)


class InsufficientStockError(LedgerError):
    """Change would drive a quantity below zero or exceed available stock."""

    kind = "insufficient_stock"

    def __init__(
        self,
        warehouse_id: str,
        product_id: str,
        requested: int,
        current: int,
        inventory_type: str = "full",
        message: str | None = None,
    ):
        self.warehouse_id = warehouse_id
        self.product_id = product_id
        self.requested = requested
        self.current = current
        self.inventory_type = inventory_type
        super().__init__(
            message
            or f"Insufficient {inventory_type} stock. Current: {current}, requested change: {requested}",
            warehouse_id=warehouse_id,
            product_id=product_id,
            inventory_type=inventory_type,
            requested=requested,
            current=current,
        )


class InvariantViolationError(LedgerError):
    """Change would leave reserved stock above full stock."""

    kind = "invariant_violation"

    def __init__(self, warehouse_id: str, product_id: str, qty_full: int, qty_reserved: int, requested: int):
        self.warehouse_id = warehouse_id
        self.product_id = product_id
        self.qty_full = qty_full
        self.qty_reserved = qty_reserved
        super().__init__(
            f"Reserved quantity ({qty_reserved}) cannot exceed full quantity ({qty_full})",
            warehouse_id=warehouse_id,
            product_id=product_id,
            qty_full=qty_full,
            qty_reserved=qty_reserved,
            requested=requested,
        )


class ConcurrentModificationError(LedgerError):
    """Compare-and-swap retries exhausted; retry the whole operation from fresh reads."""

    kind = "concurrent_modification"

    def __init__(self, operation: str, attempts: int, **context: Any):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} gave up after {attempts} attempts: stock was modified concurrently",
            operation=operation,
            attempts=attempts,
            **context,
        )
