"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from gauge.app.core.config import settings
    print(settings.BOM_WATERDATA_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "GAUGE Flood Telemetry"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Cache ──
    CACHE_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: Optional[str] = None
    CACHE_KEY_PREFIX: str = "gauge"
    STATEWIDE_RAINFALL_MAX_AGE_SECONDS: int = 600
    WATER_LEVELS_MAX_AGE_SECONDS: int = 180
    WATER_LEVELS_ELEVATED_MAX_AGE_SECONDS: int = 60  # any station at watch or above
    WATER_LEVELS_STALE_AFTER_SECONDS: int = 120  # served from cache, refreshed in background
    CACHE_WARM_ON_STARTUP: bool = True

    # ── Rate limiting ──
    RATE_LIMIT_REQUESTS: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # ── Reconciliation ──
    PROVIDER_PRIORITY: List[str] = ["bom", "wmip"]  # primary first
    FETCH_BATCH_SIZE: int = 5
    FRESHNESS_WINDOW_HOURS: float = 48.0

    # ── External APIs ──
    BOM_WATERDATA_URL: str = "http://www.bom.gov.au/waterdata/services"
    BOM_TIMEOUT: float = 15.0
    BOM_HISTORY_TIMEOUT: float = 20.0
    BOM_CAPABILITIES_TIMEOUT: float = 10.0
    WMIP_BASE_URL: str = "https://water-monitoring.information.qld.gov.au/cgi/webservice.exe"
    WMIP_TIMEOUT: float = 10.0
    OPEN_METEO_BASE_URL: str = "https://api.open-meteo.com/v1"
    OPEN_METEO_TIMEOUT: float = 10.0
    BOM_WARNINGS_URL: str = "https://www.bom.gov.au/fwo/IDQ60000.warnings_qld.xml"
    BOM_PRODUCT_URL: str = "http://www.bom.gov.au/fwo/{product_id}.amoc.xml"
    WARNINGS_TIMEOUT: float = 15.0

    # ── Demo ──
    DEMO_MODE: bool = False  # serve canned warnings instead of an empty feed

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
