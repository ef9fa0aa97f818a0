"""Configuration management for the short link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
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
    length = settings.SHORT_CODE_LENGTH

**Step 3 — Override for tests**::
    settings = Settings(STORE_BACKEND="memory", CACHE_ENABLED=False)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- STORE_BACKEND selects PostgreSQL ("sql") or the in-process store ("memory").
- The reachability probe never rejects a URL unless SECURITY_REJECT_UNREACHABLE is set.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink-service"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    STORE_BACKEND: Literal["sql", "memory"] = "sql"

    # Redis resolution cache
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_REPLICA_URL: str = ""
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 30
    CACHE_TOMBSTONE_SECONDS: int = 60

    # Short code allocation
    SHORT_CODE_LENGTH: int = 6
    SHORT_CODE_ALPHABET: str = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
    MAX_GENERATION_ATTEMPTS: int = 10
    CUSTOM_CODE_MIN_LENGTH: int = 3
    CUSTOM_CODE_MAX_LENGTH: int = 20

    # Link lifecycle
    DEFAULT_VALIDITY_MINUTES: int = 30
    HIDE_FOREIGN_LINKS: bool = True
    OWNER_HEADER: str = "X-Owner-Id"
    DEFAULT_CLICK_LOCATION: str = "unknown"

    # Security pre-check
    SECURITY_PROBE_ENABLED: bool = True
    SECURITY_PROBE_TIMEOUT_SECONDS: float = 5.0
    SECURITY_PROBE_MAX_REDIRECTS: int = 5
    SECURITY_REJECT_UNREACHABLE: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
