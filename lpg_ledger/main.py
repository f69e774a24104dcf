import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lpg_ledger.api import inventory, orders, products, reports, warehouses
from lpg_ledger.config import settings
from lpg_ledger.database import init_db
from lpg_ledger.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    InvariantViolationError,
    LedgerError,
    NotFoundError,
    ValidationError,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_ERROR = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (InsufficientStockError, 409),
    (InvariantViolationError, 409),
    (ConcurrentModificationError, 409),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="LPG Cylinder Ledger API",
    description="Warehouse stock, reservations, deliveries and inventory reporting for LPG cylinders",
    version="1.0.0",
    lifespan=lifespan,
)


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    """Structured body so the UI can show which warehouse/product/quantity failed."""
    status_code = status_for(exc)
    logger.warning("%s %s rejected: %s %s", request.method, request.url.path, exc.kind, exc.context)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so frontend can parse error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(warehouses.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/health")
def health():
    return {"status": "ok"}
