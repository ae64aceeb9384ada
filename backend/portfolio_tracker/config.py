# backend/portfolio_tracker/config.py
"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- DATABASE_URL: SQLAlchemy URL for the embedded holdings/snapshot store
- QUOTE_*: Quote provider selection, endpoint and timeout
- PRICE_CACHE_TTL_SECONDS: Freshness window of cached quotes

Environment-specific behavior:
- test: Defaults to an in-memory SQLite database
- development/production: Defaults to a SQLite file next to the working dir

Configuration is validated on application startup. Invalid configuration
will raise a ValueError with a descriptive message.

Usage:
    from portfolio_tracker.config import settings

    cache = PriceCache(provider, ttl_seconds=settings.price_cache_ttl_seconds)
"""
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Find the .env file in project root (parent of backend/)
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_SQLITE_URL = "sqlite:///./portfolio.db"
TEST_SQLITE_URL = "sqlite:///:memory:"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        - ENVIRONMENT: Runtime environment (development, test, production)
        - DATABASE_URL: SQLAlchemy connection string (default: SQLite file)
        - APP_NAME: Application name (default: "Portfolio Tracker")
        - DEBUG: Enable debug mode (default: False)
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: "text" or "json" (default: "text")

    Quote settings:
        - QUOTE_PROVIDER: "backend" (REST JSON service) or "yahoo"
        - QUOTE_API_BASE_URL: Base URL of the REST quote backend
        - QUOTE_TIMEOUT_SECONDS: Bound on every external call (10-30s)
        - PRICE_CACHE_TTL_SECONDS: Quote freshness window (5-15 minutes)
        - DEFAULT_EXCHANGE_RATE: JPY per USD used before any live rate
    """

    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format"
    )

    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for holdings and snapshots"
    )

    app_name: str = "Portfolio Tracker"
    debug: bool = False

    # =========================================================================
    # QUOTE PROVIDER
    # =========================================================================
    quote_provider: Literal["backend", "yahoo"] = Field(
        default="backend",
        description="Which quote provider implementation to use"
    )
    quote_api_base_url: str = Field(
        default="https://backendindex.vercel.app",
        description="Base URL of the REST quote backend"
    )
    quote_timeout_seconds: float = Field(
        default=15.0,
        ge=10,
        le=30,
        description="Timeout applied to every external quote call"
    )

    # =========================================================================
    # VALUATION
    # =========================================================================
    price_cache_ttl_seconds: int = Field(
        default=900,
        ge=300,
        le=900,
        description="How long a fetched quote is served without refetching"
    )
    default_exchange_rate: Decimal = Field(
        default=Decimal("155.0"),
        gt=0,
        description="JPY per 1 USD used when no live rate was ever fetched"
    )
    reporting_currency: str = Field(
        default="JPY",
        min_length=3,
        max_length=3,
        description="Currency all portfolio totals are reported in"
    )
    refresh_max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Parallel quote fetches during one refresh"
    )

    # =========================================================================
    # CORS
    # =========================================================================
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins (comma-separated in env var)"
    )
    cors_allow_methods: list[str] = Field(
        default=["*"],
        description="Allowed HTTP methods for CORS"
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        description="Allowed HTTP headers for CORS"
    )

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_database_config(self) -> "Settings":
        """
        Fill in the database URL for the current environment.

        Rules:
        - test: in-memory SQLite unless DATABASE_URL is set
        - development/production: SQLite file unless DATABASE_URL is set
        """
        if self.database_url is None:
            default_url = TEST_SQLITE_URL if self.environment == "test" else DEFAULT_SQLITE_URL
            object.__setattr__(self, "database_url", default_url)

        if not self.quote_api_base_url.lower().startswith(("http://", "https://")):
            raise ValueError(
                "QUOTE_API_BASE_URL must be an http(s) URL, "
                f"got: {self.quote_api_base_url[:30]}"
            )

        object.__setattr__(self, "reporting_currency", self.reporting_currency.upper())
        return self

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_url is not None and self.database_url.lower().startswith("sqlite://")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"


# Create single instance
settings = Settings()
