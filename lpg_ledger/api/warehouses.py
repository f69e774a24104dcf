from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lpg_ledger.database import get_db
from lpg_ledger.schemas.catalog import WarehouseCreate, WarehouseOut
from lpg_ledger.services import catalog_service

router = APIRouter(prefix="/warehouses", tags=["Warehouses"])


@router.post("", response_model=WarehouseOut, status_code=201)
def create_warehouse(data: WarehouseCreate, db: Session = Depends(get_db)):
    return catalog_service.create_warehouse(db, data)


@router.get("", response_model=list[WarehouseOut])
def list_warehouses(db: Session = Depends(get_db)):
    return catalog_service.list_warehouses(db)


@router.get("/{warehouse_id}", response_model=WarehouseOut)
def get_warehouse(warehouse_id: str, db: Session = Depends(get_db)):
    warehouse = catalog_service.get_warehouse(db, warehouse_id)
    if not warehouse:
        raise HTTPException(404, "Warehouse not found")
    return warehouse
