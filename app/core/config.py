"""
Service settings, read from the environment and .env via pydantic-settings
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional, List
from decimal import Decimal
from functools import lru_cache

class Settings(BaseSettings):
    APP_NAME: str = "Vendora Marketplace API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # postgresql:// and sqlite:// URLs are switched to their async drivers
    DATABASE_URL: str = "sqlite:///./vendora.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_ECHO: bool = False

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Stripe Connect
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds
    STRIPE_API_VERSION: Optional[str] = None

    # Settlement rules
    DEFAULT_CURRENCY: str = "mxn"
    MINIMUM_PAYOUT_AMOUNT: Decimal = Decimal("10.00")
    DEFAULT_USER_USAGE_LIMIT: int = 1

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # slowapi
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "1000/hour"
    COUPON_VALIDATE_RATE_LIMIT: str = "30/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", mode="before")
    @classmethod
    def strip_secret(cls, v: Optional[str]) -> Optional[str]:
        """Pasted keys often carry trailing whitespace"""
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def lower_currency(cls, v: str) -> str:
        # Stripe reports currencies in lower case
        return v.lower()

    @property
    def database_url_async(self) -> str:
        for sync_prefix, async_prefix in (
            ("postgresql://", "postgresql+asyncpg://"),
            ("sqlite://", "sqlite+aiosqlite://"),
        ):
            if self.DATABASE_URL.startswith(sync_prefix):
                return async_prefix + self.DATABASE_URL[len(sync_prefix):]
        return self.DATABASE_URL

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
