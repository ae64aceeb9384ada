# backend/portfolio_tracker/services/price_cache.py
"""
Time-bounded cache in front of a QuoteProvider.

Quotes are keyed by (normalized symbol, market); the exchange rate has a
single slot. Reads within the TTL never touch the provider. Once an entry
is older than the TTL the next read refetches it; if that fetch fails, the
old entry is returned marked STALE instead of failing the caller.

Read outcomes:
    FRESH   - fetched from the provider during this call
    CACHED  - served from cache, younger than the TTL
    STALE   - refetch failed; previous entry served (error attached)
    (raise) - refetch failed and nothing was cached: the FetchError propagates

Thread Safety:
    A threading.Lock guards the entry maps. Provider calls run outside the
    lock so different symbols can be fetched in parallel. Concurrent misses
    on the same key may both fetch; the last completed write wins.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from portfolio_tracker.models import Market
from portfolio_tracker.services.constants import DEFAULT_PRICE_TTL_SECONDS
from portfolio_tracker.services.exceptions import FetchError
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    FetchResult,
    PriceKey,
    PriceQuote,
    QuoteProvider,
)
from portfolio_tracker.services.market_data.symbols import normalize_symbol

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_SLOT = "USDJPY"


class CacheSource(str, enum.Enum):
    FRESH = "FRESH"
    CACHED = "CACHED"
    STALE = "STALE"


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    """
    A value read through the cache.

    Attributes:
        value: The quote or rate
        source: How it was obtained (see module docstring)
        age_seconds: Time since the value was stored
        error: The refetch failure, when source is STALE
    """

    value: T
    source: CacheSource
    age_seconds: float = 0.0
    error: FetchError | None = None

    @property
    def is_stale(self) -> bool:
        return self.source is CacheSource.STALE


@dataclass
class CacheStats:
    """Counters for diagnostics (status endpoint, logs)."""

    hits: int = 0
    misses: int = 0
    stale_served: int = 0
    failures: int = 0


class PriceCache:
    """
    TTL cache of quotes and the exchange rate.

    Args:
        provider: Quote source consulted on a miss
        ttl_seconds: Freshness window (default 15 minutes)
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
            self,
            provider: QuoteProvider,
            ttl_seconds: float = DEFAULT_PRICE_TTL_SECONDS,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._provider = provider
        self._ttl = ttl_seconds
        self._clock = clock
        self._quotes: dict[PriceKey, tuple[float, PriceQuote]] = {}
        self._rates: dict[str, tuple[float, ExchangeRate]] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    @property
    def provider(self) -> QuoteProvider:
        return self._provider

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**vars(self._stats))

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_price(self, symbol: str, market: Market) -> CachedValue[PriceQuote]:
        """
        Current quote for (symbol, market).

        Raises:
            ValidationError: Empty symbol or unknown market
            FetchError: Fetch failed and nothing was cached for this key
        """
        key = (normalize_symbol(symbol, market), market)

        cached = self._lookup(self._quotes, key)
        if cached is not None:
            return cached

        result = self._provider.get_price(*key)
        return self._settle(self._quotes, key, result)

    def get_prices(self, requests: list[tuple[str, Market]]) -> dict[PriceKey, FetchResult[CachedValue[PriceQuote]]]:
        """
        Quotes for several symbols; misses are fetched in one provider call.

        Returns:
            Dict keyed by (normalized symbol, market). Entries fail
            individually, only when there is nothing cached to fall back on.
        """
        keys = list(dict.fromkeys(
            (normalize_symbol(symbol, market), market) for symbol, market in requests
        ))
        results: dict[PriceKey, FetchResult[CachedValue[PriceQuote]]] = {}
        missing: list[PriceKey] = []

        for key in keys:
            cached = self._lookup(self._quotes, key)
            if cached is not None:
                results[key] = FetchResult.success(cached)
            else:
                missing.append(key)

        if missing:
            fetched = self._provider.get_prices(missing)
            for key in missing:
                try:
                    results[key] = FetchResult.success(self._settle(self._quotes, key, fetched[key]))
                except FetchError as e:
                    results[key] = FetchResult.failure(e)

        return results

    def peek_price(self, symbol: str, market: Market) -> PriceQuote | None:
        """Last stored quote for (symbol, market), fresh or not. Never fetches."""
        key = (normalize_symbol(symbol, market), market)
        with self._lock:
            entry = self._quotes.get(key)
        return entry[1] if entry else None

    def invalidate(self, symbol: str, market: Market) -> None:
        key = (normalize_symbol(symbol, market), market)
        with self._lock:
            self._quotes.pop(key, None)

    # =========================================================================
    # EXCHANGE RATE
    # =========================================================================

    def get_exchange_rate(self) -> CachedValue[ExchangeRate]:
        """
        Current USD/JPY rate.

        Raises:
            FetchError: Fetch failed and no rate was ever cached
        """
        cached = self._lookup(self._rates, _RATE_SLOT)
        if cached is not None:
            return cached

        result = self._provider.get_exchange_rate()
        return self._settle(self._rates, _RATE_SLOT, result)

    def clear(self) -> None:
        with self._lock:
            self._quotes.clear()
            self._rates.clear()
        logger.debug("Price cache cleared")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _lookup(self, entries: dict, key) -> CachedValue | None:
        """Return a CACHED value if the entry is younger than the TTL."""
        now = self._clock()
        with self._lock:
            entry = entries.get(key)
            if entry is not None and now - entry[0] < self._ttl:
                self._stats.hits += 1
                logger.debug(f"Cache hit for {key}")
                return CachedValue(value=entry[1], source=CacheSource.CACHED, age_seconds=now - entry[0])
            self._stats.misses += 1
        logger.debug(f"Cache miss for {key}")
        return None

    def _settle(self, entries: dict, key, result: FetchResult[T]) -> CachedValue[T]:
        """Store a successful fetch, or fall back to the previous entry."""
        now = self._clock()
        with self._lock:
            if result.ok:
                entries[key] = (now, result.value)
                return CachedValue(value=result.value, source=CacheSource.FRESH)

            self._stats.failures += 1
            previous = entries.get(key)
            if previous is not None:
                self._stats.stale_served += 1

        if previous is None:
            raise result.error

        logger.warning(f"Serving stale value for {key} after fetch failure: {result.error}")
        return CachedValue(
            value=previous[1],
            source=CacheSource.STALE,
            age_seconds=now - previous[0],
            error=result.error,
        )
