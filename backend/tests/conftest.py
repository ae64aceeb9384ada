# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database fixtures (in-memory SQLite) and SqlAlchemyStorage
- FakeQuoteProvider: scriptable prices, rates and failures
- FakeClock / FailingStorage helpers
- Stock and Holding factories
- A fully wired ValuationEngine over the fakes
"""

import os

# Settings are read at import time; use the test profile (in-memory SQLite)
os.environ.setdefault("ENVIRONMENT", "test")

import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from portfolio_tracker.database import create_session_factory
from portfolio_tracker.models import Base, Market, RateSource
from portfolio_tracker.services.exceptions import StorageError, UpstreamError
from portfolio_tracker.services.holding_store import HoldingStore
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    PriceQuote,
    QuoteProvider,
    StockCandidate,
)
from portfolio_tracker.services.price_cache import PriceCache
from portfolio_tracker.services.snapshot_history import SnapshotHistory
from portfolio_tracker.services.types import Holding, Stock
from portfolio_tracker.services.valuation import ValuationEngine
from portfolio_tracker.storage import SqlAlchemyStorage


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def storage(db_engine) -> SqlAlchemyStorage:
    """SqlAlchemyStorage over the in-memory database."""
    return SqlAlchemyStorage(create_session_factory(db_engine))


class FailingStorage:
    """
    Wraps a real storage and raises StorageError on writes while `fail_writes` is set.

    Reads always pass through.
    """

    WRITE_METHODS = {
        "insert_holding",
        "update_holding_prices",
        "delete_holding",
        "delete_all_holdings",
        "append_snapshot",
        "prune_snapshots",
    }

    def __init__(self, inner: SqlAlchemyStorage):
        self._inner = inner
        self.fail_writes = False
        self.failed_calls: list[str] = []

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if name not in self.WRITE_METHODS:
            return attr

        def guarded(*args, **kwargs):
            if self.fail_writes:
                self.failed_calls.append(name)
                raise StorageError(name, "disk is full")
            return attr(*args, **kwargs)

        return guarded


@pytest.fixture
def failing_storage(storage) -> FailingStorage:
    return FailingStorage(storage)


# =============================================================================
# CLOCKS
# =============================================================================

class FakeClock:
    """Monotonic clock (seconds) that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC datetime clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


# =============================================================================
# FAKE QUOTE PROVIDER
# =============================================================================

class FakeQuoteProvider(QuoteProvider):
    """
    Scriptable QuoteProvider for testing.

    Prices and errors are configured per (normalized symbol, market). An
    unknown symbol fails with UpstreamError. Retries are disabled so that
    failure tests stay fast.
    """

    MAX_RETRY_ATTEMPTS = 1

    def __init__(self):
        self._prices: dict[tuple[str, Market], Decimal] = {}
        self._errors: dict[tuple[str, Market], Exception] = {}
        self._rate: Decimal | None = Decimal("150")
        self._rate_error: Exception | None = None
        self._search_results: list[StockCandidate] = []
        self._lock = threading.Lock()
        self.price_calls: list[tuple[str, Market]] = []
        self.batch_calls: list[list[tuple[str, Market]]] = []
        self.rate_calls = 0
        # When set, price (or rate) fetches block until the event is set
        self.gate: threading.Event | None = None
        self.rate_gate: threading.Event | None = None

    @property
    def name(self) -> str:
        return "fake"

    def set_price(self, symbol: str, market: Market, price) -> None:
        self._prices[(symbol, market)] = Decimal(str(price))
        self._errors.pop((symbol, market), None)

    def set_error(self, symbol: str, market: Market, error: Exception) -> None:
        self._errors[(symbol, market)] = error

    def set_rate(self, rate) -> None:
        self._rate = Decimal(str(rate))
        self._rate_error = None

    def set_rate_error(self, error: Exception) -> None:
        self._rate_error = error

    def set_search_results(self, results: list[StockCandidate]) -> None:
        self._search_results = results

    def _fetch_price(self, symbol: str, market: Market) -> PriceQuote:
        with self._lock:
            self.price_calls.append((symbol, market))
        if self.gate is not None:
            self.gate.wait(timeout=5)

        key = (symbol, market)
        if key in self._errors:
            raise self._errors[key]
        if key not in self._prices:
            raise UpstreamError(provider=self.name, reason="unknown symbol", symbol=symbol)
        return PriceQuote(
            symbol=symbol,
            market=market,
            price=self._prices[key],
            currency=market.currency,
            fetched_at=datetime.now(timezone.utc),
            name=f"{symbol} Corp",
        )

    def _fetch_prices(self, keys):
        with self._lock:
            self.batch_calls.append(list(keys))
        return super()._fetch_prices(keys)

    def _fetch_exchange_rate(self) -> ExchangeRate:
        with self._lock:
            self.rate_calls += 1
        if self.rate_gate is not None:
            self.rate_gate.wait(timeout=5)
        if self._rate_error is not None:
            raise self._rate_error
        return ExchangeRate(rate=self._rate, timestamp=datetime.now(timezone.utc), source=RateSource.LIVE)

    def _search(self, query: str, market: Market) -> list[StockCandidate]:
        return [c for c in self._search_results if c.market is market]


@pytest.fixture
def provider() -> FakeQuoteProvider:
    return FakeQuoteProvider()


# =============================================================================
# FACTORIES
# =============================================================================

def create_stock(
        symbol: str = "AAPL",
        market: Market = Market.FOREIGN,
        price="110",
        name: str | None = None,
) -> Stock:
    """Create a Stock with sensible defaults."""
    return Stock(
        symbol=symbol,
        name=name or symbol,
        market=market,
        current_price=Decimal(str(price)),
        currency=market.currency,
    )


def create_holding(
        symbol: str = "AAPL",
        market: Market = Market.FOREIGN,
        quantity="10",
        purchase_price="100",
        current_price="110",
        purchase_date: date = date(2024, 1, 15),
        account: str = "Default",
) -> Holding:
    """Create a Holding with sensible defaults."""
    return Holding(
        stock=create_stock(symbol, market, current_price),
        quantity=Decimal(str(quantity)),
        purchase_price=Decimal(str(purchase_price)),
        purchase_date=purchase_date,
        account=account,
    )


def create_rate(rate="150", source: RateSource = RateSource.LIVE) -> ExchangeRate:
    return ExchangeRate(
        rate=Decimal(str(rate)),
        timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc),
        source=source,
    )


# =============================================================================
# WIRED ENGINE
# =============================================================================

@pytest.fixture
def price_cache(provider, clock) -> PriceCache:
    return PriceCache(provider, ttl_seconds=900, clock=clock)


@pytest.fixture
def holding_store(failing_storage) -> HoldingStore:
    return HoldingStore(failing_storage)


@pytest.fixture
def history(failing_storage, wall_clock) -> SnapshotHistory:
    return SnapshotHistory(failing_storage, capacity=90, clock=wall_clock)


@pytest.fixture
def engine(price_cache, holding_store, history, wall_clock) -> Iterator[ValuationEngine]:
    """ValuationEngine over FakeQuoteProvider, fake clocks and FailingStorage."""
    yield ValuationEngine(
        price_cache=price_cache,
        holding_store=holding_store,
        history=history,
        default_exchange_rate=Decimal("155.0"),
        fetch_timeout=2.0,
        max_workers=4,
        clock=wall_clock,
    )
