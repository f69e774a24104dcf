from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from lpg_ledger.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models() -> None:
    """Import all models so Base.metadata knows about them."""
    import lpg_ledger.models.adjustment  # noqa: F401
    import lpg_ledger.models.order  # noqa: F401
    import lpg_ledger.models.product  # noqa: F401
    import lpg_ledger.models.stock  # noqa: F401
    import lpg_ledger.models.warehouse  # noqa: F401


def init_db(bind=None):
    import_models()
    Base.metadata.create_all(bind=bind or engine)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
