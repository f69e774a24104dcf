import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lpg_ledger.database import get_db, init_db
from lpg_ledger.main import app
from lpg_ledger.models.order import OrderStatus
from lpg_ledger.models.product import ProductStatus
from lpg_ledger.schemas.catalog import ProductCreate, WarehouseCreate
from lpg_ledger.schemas.order import OrderCreate, OrderLineCreate
from lpg_ledger.services import adjustment_service, catalog_service, order_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def warehouse(db):
    return catalog_service.create_warehouse(db, WarehouseCreate(name="North Depot", capacity_cylinders=500))


@pytest.fixture
def other_warehouse(db):
    return catalog_service.create_warehouse(db, WarehouseCreate(name="South Depot", capacity_cylinders=200))


def make_product(db, sku, capacity_kg=20, tare_weight_kg=15, status=ProductStatus.ACTIVE):
    return catalog_service.create_product(
        db,
        ProductCreate(
            sku=sku,
            name=f"{capacity_kg:g}kg Cylinder {sku}",
            capacity_kg=capacity_kg,
            tare_weight_kg=tare_weight_kg,
            valve_type="Standard",
            status=status,
        ),
    )


@pytest.fixture
def product(db):
    return make_product(db, "CYL-20KG-STD")


@pytest.fixture
def other_product(db):
    return make_product(db, "CYL-50KG-STD", capacity_kg=50, tare_weight_kg=25)


def stock_up(db, warehouse, product, full=0, empty=0):
    """Put full/empty cylinders on record through the adjustment path."""
    record = None
    if full:
        record = adjustment_service.adjust(db, warehouse.id, product.id, "full", full, "stock count", "tester")
    if empty:
        record = adjustment_service.adjust(db, warehouse.id, product.id, "empty", empty, "stock count", "tester")
    return record


def make_order(db, warehouse, lines, status=OrderStatus.DRAFT):
    """lines: list of (product, quantity)."""
    return order_service.create_order(
        db,
        OrderCreate(
            customer_id="cust-1",
            warehouse_id=warehouse.id,
            status=status,
            lines=[OrderLineCreate(product_id=p.id, quantity=q, unit_price=25.0) for p, q in lines],
        ),
    )
