import json
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from lpg_ledger.exceptions import NotFoundError, ValidationError
from lpg_ledger.models.order import Order, OrderLine, OrderStatus
from lpg_ledger.models.product import Product
from lpg_ledger.models.warehouse import Warehouse
from lpg_ledger.schemas.order import OrderCreate
from lpg_ledger.services import reservation_service
from lpg_ledger.services.reservation_service import TransitionResult


def _generate_order_number() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    short = uuid.uuid4().hex[:6].upper()
    return f"ORD-{ts}-{short}"


def _initial_history(status: OrderStatus) -> str:
    return json.dumps([{
        "status": status.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "note": "Order created",
    }])


def create_order(db: Session, data: OrderCreate) -> Order:
    """Create a draft or pending order. Stock is untouched until it is confirmed."""
    if data.status not in (OrderStatus.DRAFT, OrderStatus.PENDING):
        raise ValidationError("New orders must start as draft or pending", status=data.status.value)
    if db.get(Warehouse, data.warehouse_id) is None:
        raise NotFoundError("Warehouse", data.warehouse_id)

    order = Order(
        order_number=_generate_order_number(),
        customer_id=data.customer_id,
        delivery_address_id=data.delivery_address_id,
        warehouse_id=data.warehouse_id,
        status=data.status,
        status_history=_initial_history(data.status),
        notes=data.notes,
    )
    db.add(order)
    db.flush()

    for position, line_data in enumerate(data.lines):
        if db.get(Product, line_data.product_id) is None:
            db.rollback()
            raise NotFoundError("Product", line_data.product_id)
        db.add(OrderLine(
            order_id=order.id,
            product_id=line_data.product_id,
            position=position,
            quantity=line_data.quantity,
            unit_price=line_data.unit_price,
        ))

    db.commit()
    db.refresh(order)
    return order


def get_order(db: Session, order_id: str) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()


def list_orders(
    db: Session, skip: int = 0, limit: int = 100, status: OrderStatus | None = None
) -> list[Order]:
    q = db.query(Order)
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc()).offset(skip).limit(limit).all()


def change_status(
    db: Session, order_id: str, status: OrderStatus | str, note: str = "", actor: str = ""
) -> tuple[Order, TransitionResult]:
    order = get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    result = reservation_service.apply_transition(db, order, status, actor=actor, note=note)
    return order, result
