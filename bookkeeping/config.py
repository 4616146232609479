from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Bookkeeping Ledger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    INIT_DB_ON_STARTUP: bool = True  # create_all on startup; use Alembic in production

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Background Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"
    SCHEDULER_MISFIRE_GRACE_SECONDS: int = 300
    RECURRING_JOURNAL_INTERVAL_MINUTES: int = 60  # How often to scan for due recurring journals
    RECURRING_INVOICE_INTERVAL_MINUTES: int = 60  # How often to scan for due recurring invoices
    AUTO_RECONCILE_INTERVAL_MINUTES: int = 360  # How often to auto-reconcile bank accounts

    # Invoicing
    DEFAULT_DAYS_UNTIL_DUE: int = 30

    # Bank Reconciliation
    MATCH_SUGGESTION_WINDOW_DAYS: int = 3  # +/- days searched for match suggestions
    MATCH_SUGGESTION_MIN_SCORE: int = 30  # Suggestions must score strictly above this
    IMPORT_ERROR_SAMPLE_LIMIT: int = 20  # Max error strings returned by a statement import

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
