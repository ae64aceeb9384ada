# backend/portfolio_tracker/dependencies.py
"""
Dependency injection module for FastAPI.

Builds the object graph once per process and shares it across requests:

    QuoteProvider     -> PriceCache ───────┐
    SqlAlchemyStorage -> HoldingStore ─────┼─> ValuationEngine
                      -> SnapshotHistory ──┘

Services are lazily initialized on first use to avoid import-time side
effects (no network client or database file is opened on import).

Usage in routers:
    from portfolio_tracker.dependencies import get_valuation_engine

    @router.get("/summary")
    def summary(engine: ValuationEngine = Depends(get_valuation_engine)):
        ...

Tests override get_valuation_engine through app.dependency_overrides.
"""

import logging
from functools import lru_cache

from sqlalchemy import Engine

from portfolio_tracker.config import settings
from portfolio_tracker.database import create_db_engine, create_session_factory
from portfolio_tracker.models import Base
from portfolio_tracker.services.holding_store import HoldingStore
from portfolio_tracker.services.market_data import (
    BackendQuoteProvider,
    QuoteProvider,
    YahooQuoteProvider,
)
from portfolio_tracker.services.price_cache import PriceCache
from portfolio_tracker.services.snapshot_history import SnapshotHistory
from portfolio_tracker.services.valuation import ValuationEngine
from portfolio_tracker.storage import SqlAlchemyStorage

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# @lru_cache returns the same instance on every call (lazy singleton).
# Order: provider -> cache; db engine -> storage -> store/history; engine last.


@lru_cache(maxsize=1)
def get_db_engine() -> Engine:
    """Shared SQLAlchemy engine; creates tables on first use."""
    engine = create_db_engine()
    Base.metadata.create_all(bind=engine)
    return engine


@lru_cache(maxsize=1)
def get_storage() -> SqlAlchemyStorage:
    return SqlAlchemyStorage(create_session_factory(get_db_engine()))


@lru_cache(maxsize=1)
def get_quote_provider() -> QuoteProvider:
    """Quote provider selected by QUOTE_PROVIDER."""
    if settings.quote_provider == "yahoo":
        logger.debug("Initializing singleton YahooQuoteProvider")
        return YahooQuoteProvider(timeout=settings.quote_timeout_seconds)

    logger.debug("Initializing singleton BackendQuoteProvider")
    return BackendQuoteProvider(
        base_url=settings.quote_api_base_url,
        timeout=settings.quote_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_price_cache() -> PriceCache:
    return PriceCache(get_quote_provider(), ttl_seconds=settings.price_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_valuation_engine() -> ValuationEngine:
    """The process-wide ValuationEngine (single owner of portfolio state)."""
    logger.debug("Initializing singleton ValuationEngine")
    storage = get_storage()
    return ValuationEngine(
        price_cache=get_price_cache(),
        holding_store=HoldingStore(storage),
        history=SnapshotHistory(storage),
        default_exchange_rate=settings.default_exchange_rate,
        reporting_currency=settings.reporting_currency,
        fetch_timeout=settings.quote_timeout_seconds,
        max_workers=settings.refresh_max_workers,
    )


def clear_service_caches() -> None:
    """
    Drop all singletons.

    Used by tests and on shutdown; the next call rebuilds the graph.
    """
    if get_quote_provider.cache_info().currsize:
        provider = get_quote_provider()
        if isinstance(provider, BackendQuoteProvider):
            provider.close()
    if get_db_engine.cache_info().currsize:
        get_db_engine().dispose()

    get_valuation_engine.cache_clear()
    get_price_cache.cache_clear()
    get_quote_provider.cache_clear()
    get_storage.cache_clear()
    get_db_engine.cache_clear()
    logger.debug("Service caches cleared")
