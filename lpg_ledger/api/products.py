from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lpg_ledger.database import get_db
from lpg_ledger.models.product import ProductStatus
from lpg_ledger.schemas.catalog import ProductCreate, ProductOut, ProductUpdate
from lpg_ledger.services import catalog_service

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return catalog_service.create_product(db, data)


@router.get("", response_model=list[ProductOut])
def list_products(skip: int = 0, limit: int = 100, status: ProductStatus | None = None, db: Session = Depends(get_db)):
    return catalog_service.list_products(db, skip=skip, limit=limit, status=status)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = catalog_service.get_product(db, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: str, data: ProductUpdate, db: Session = Depends(get_db)):
    return catalog_service.update_product(db, product_id, data)
