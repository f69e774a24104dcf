from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from lpg_ledger.database import get_db
from lpg_ledger.models.order import OrderStatus
from lpg_ledger.schemas.order import OrderCreate, OrderOut, OrderStatusUpdate, TransitionOut
from lpg_ledger.services import order_service
from lpg_ledger.services.webhook_service import send_stock_alerts

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(data: OrderCreate, db: Session = Depends(get_db)):
    return order_service.create_order(db, data)


@router.get("", response_model=list[OrderOut])
def list_orders(skip: int = 0, limit: int = 100, status: OrderStatus | None = None, db: Session = Depends(get_db)):
    return order_service.list_orders(db, skip=skip, limit=limit, status=status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@router.post("/{order_id}/status", response_model=TransitionOut)
def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Change order status; confirm reserves, deliver deducts, cancel releases stock."""
    order, result = order_service.change_status(db, order_id, data.status, note=data.note, actor=data.actor)
    if result.records:
        background_tasks.add_task(send_stock_alerts, result.records)
    return {
        "order": OrderOut.model_validate(order),
        "previous_status": result.previous_status.value,
        "effect": result.effect,
    }
