"""Configuration management for the shortlink service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching. The resulting ``Settings`` object is
built once at startup and handed to every component's constructor.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache │
    │ (lru_cache) │
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Override in tests**::
    settings = Settings(DATABASE_URL="sqlite+aiosqlite:///./test.db", CACHE_ENABLED=False)

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables override defaults automatically.
- Out-of-range values (code length, attempt budget, TTLs) raise ValidationError.
- Settings instances are frozen; components never mutate configuration.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_CODE_LENGTH = 16


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # Durable store
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DB_POOL_SIZE: int = Field(20, ge=1)
    DB_MAX_OVERFLOW: int = Field(10, ge=0)
    DB_POOL_TIMEOUT_SECONDS: float = Field(5.0, gt=0)

    # Redis cache
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = Field(3600, gt=0)
    CACHE_TIMEOUT_SECONDS: float = Field(0.25, gt=0)

    # Short code allocation
    SHORT_CODE_LENGTH: int = Field(8, ge=1, le=MAX_CODE_LENGTH)
    SHORT_CODE_MAX_ATTEMPTS: int = Field(10, ge=1, le=100)
    CUSTOM_CODE_MIN_LENGTH: int = Field(1, ge=1, le=MAX_CODE_LENGTH)
    CUSTOM_CODE_MAX_LENGTH: int = Field(MAX_CODE_LENGTH, ge=1, le=MAX_CODE_LENGTH)

    # Link lifetime and URL validation
    DEFAULT_EXPIRY_HOURS: int = Field(0, ge=0)  # 0 means links never expire unless asked to
    STRICT_URL_VALIDATION: bool = True

    # Click accounting
    CLICK_WORKERS: int = Field(4, ge=1)
    CLICK_QUEUE_SIZE: int = Field(10000, ge=1)
    CLICK_MAX_RETRIES: int = Field(3, ge=0)
    CLICK_RETRY_DELAY_SECONDS: float = Field(0.1, ge=0)

    # Expiry sweep; 0 disables the periodic loop
    MAINTENANCE_INTERVAL_SECONDS: int = Field(300, ge=0)

    # Admin listing
    LIST_DEFAULT_LIMIT: int = Field(50, ge=1)
    LIST_MAX_LIMIT: int = Field(100, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def check_bounds(self) -> "Settings":
        if self.CUSTOM_CODE_MIN_LENGTH > self.CUSTOM_CODE_MAX_LENGTH:
            raise ValueError("CUSTOM_CODE_MIN_LENGTH cannot be greater than CUSTOM_CODE_MAX_LENGTH")
        if self.LIST_DEFAULT_LIMIT > self.LIST_MAX_LIMIT:
            raise ValueError("LIST_DEFAULT_LIMIT cannot be greater than LIST_MAX_LIMIT")
        return self


@lru_cache()
def get_settings() -> Settings:
    return Settings()
