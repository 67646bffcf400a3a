# order_service/config.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from pathlib import Path
from functools import lru_cache


class Settings(BaseSettings):
    ENV: str = "development"
    DATA_DIR: Path = Path("data")  # where the CSV tables live
    ORDERS_FILE: str = "orders.csv"
    ORDER_ITEMS_FILE: str = "order_items.csv"
    # seconds to wait for a table lock before giving up
    LOCK_TIMEOUT_SECONDS: float = 10.0

    # background PENDING -> PROCESSING sweep
    SCHEDULER_ENABLED: bool = True
    PROMOTION_INTERVAL_SECONDS: float = 300.0
    HIGH_FAILURE_RATE_THRESHOLD: float = 0.10

    LOG_LEVEL: str = "INFO"
    # comma separated list of browser origins allowed to call the API
    CORS_ORIGINS: str = "http://localhost:3000"

    # Example .env:
    # DATA_DIR=./data
    # SCHEDULER_ENABLED=false
    # PROMOTION_INTERVAL_SECONDS=60

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
