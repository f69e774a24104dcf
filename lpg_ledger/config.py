from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "LPG Cylinder Ledger"
    DATABASE_URL: str = "sqlite:///./lpg_ledger.db"

    LOG_LEVEL: str = "INFO"

    # Optimistic concurrency: attempts per mutation and base sleep between them (seconds)
    CAS_MAX_RETRIES: int = 5
    CAS_RETRY_BASE_DELAY: float = 0.01

    # Low stock: available/full ratio for alerts, absolute units for the stock level matrix
    LOW_STOCK_RATIO: float = 0.2
    LOW_STOCK_UNITS: int = 10

    # Used when a warehouse has no capacity on record
    DEFAULT_WAREHOUSE_CAPACITY: int = 1000

    # Webhook: list of stock alert callback URLs (comma-separated)
    WEBHOOK_URLS: str = ""

    model_config = {"env_file": ".env"}


settings = Settings()
