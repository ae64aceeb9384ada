# backend/portfolio_tracker/services/market_data/base.py
"""
Abstract interface for quote providers.

A quote provider turns (symbol, market) into a current price, fetches the
USD/JPY exchange rate, and searches listings. It does no caching and no
persistence; that is the PriceCache's job.

Contract:
- Public methods return FetchResult objects. Expected failures (HTTP errors,
  bad bodies, timeouts) come back as FetchResult.error and never raise.
- Programming errors (empty symbol, unknown market) raise ValidationError
  immediately.
- UnreachableError is retried with exponential backoff; UpstreamError is not.

Subclasses implement the _fetch_* methods and raise UpstreamError or
UnreachableError from them. The base class adds validation, normalization,
retries and result wrapping.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Generic, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.exceptions import (
    FetchError,
    UpstreamError,
    UnreachableError,
    ValidationError,
)
from portfolio_tracker.services.market_data.symbols import normalize_symbol

logger = logging.getLogger(__name__)

T = TypeVar('T')

PriceKey = tuple[str, Market]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PriceQuote:
    """
    Current price of one symbol as reported by a provider.

    Attributes:
        symbol: Normalized provider symbol (e.g., "AAPL", "7203.T")
        market: Market the symbol was requested for
        price: Last price in `currency`
        currency: ISO 4217 code of the quote
        fetched_at: When the provider answered (UTC)
        name: Company name, when the provider returns one
    """

    symbol: str
    market: Market
    price: Decimal
    currency: str
    fetched_at: datetime
    name: str | None = None

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")


@dataclass(frozen=True)
class ExchangeRate:
    """
    JPY per 1 USD.

    Convention: value_jpy = value_usd * rate. Always replaced whole.
    """

    rate: Decimal
    timestamp: datetime
    source: RateSource = RateSource.LIVE

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError(f"rate must be positive, got {self.rate}")


@dataclass(frozen=True)
class StockCandidate:
    """A search hit that can be turned into a Stock."""

    symbol: str
    name: str
    market: Market
    currency: str
    price: Decimal | None = None
    exchange: str | None = None


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    Value-or-error result of a provider call.

    Exactly one of value/error is set.
    """

    value: T | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the stored FetchError."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult[T]":
        return cls(error=error)


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class QuoteProvider(ABC):
    """
    Abstract base class for quote providers.

    Retry Behavior:
        _execute_with_retry retries UnreachableError with exponential backoff.
        Subclasses (and tests) can tune it through class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 5)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 5
    RETRY_MULTIPLIER: float = 1

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and errors (e.g., "backend")."""

    @abstractmethod
    def _fetch_price(self, symbol: str, market: Market) -> PriceQuote:
        """
        Fetch one quote. `symbol` is already normalized.

        Raises:
            UpstreamError: Provider answered with an error or unusable body
            UnreachableError: Timeout or connection failure
        """

    @abstractmethod
    def _fetch_exchange_rate(self) -> ExchangeRate:
        """Fetch the live USD/JPY rate (JPY per 1 USD)."""

    @abstractmethod
    def _search(self, query: str, market: Market) -> list[StockCandidate]:
        """Return listings on `market` matching `query`."""

    def _fetch_prices(self, keys: list[PriceKey]) -> dict[PriceKey, FetchResult[PriceQuote]]:
        """
        Fetch several quotes at once.

        Default implementation fetches one by one. Providers with a batch
        endpoint override this.
        """
        return {key: self._price_result(*key) for key in keys}

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_price(self, symbol: str, market: Market) -> FetchResult[PriceQuote]:
        """
        Fetch the current price for (symbol, market).

        Raises:
            ValidationError: Empty symbol or unknown market
        """
        normalized = normalize_symbol(symbol, market)
        return self._price_result(normalized, market)

    def get_prices(self, requests: list[tuple[str, Market]]) -> dict[PriceKey, FetchResult[PriceQuote]]:
        """
        Fetch prices for several symbols.

        Returns:
            Dict keyed by (normalized symbol, market). Each entry succeeds or
            fails independently.
        """
        keys = list(dict.fromkeys(
            (normalize_symbol(symbol, market), market) for symbol, market in requests
        ))
        if not keys:
            return {}
        return self._fetch_prices(keys)

    def get_exchange_rate(self) -> FetchResult[ExchangeRate]:
        """Fetch the live USD/JPY exchange rate."""
        return self._wrap(self._fetch_exchange_rate)

    def search(self, query: str, market: Market) -> FetchResult[list[StockCandidate]]:
        """
        Search listings on `market`.

        Raises:
            ValidationError: Empty query or unknown market
        """
        if not isinstance(market, Market):
            raise ValidationError(f"Unknown market: {market!r}", field="market")
        if query is None or not query.strip():
            raise ValidationError("Search query must not be empty", field="query")
        return self._wrap(self._search, query.strip(), market)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _price_result(self, symbol: str, market: Market) -> FetchResult[PriceQuote]:
        return self._wrap(self._fetch_price, symbol, market, symbol=symbol)

    def _wrap(
            self,
            func: Callable[..., T],
            *args: Any,
            symbol: str | None = None,
    ) -> FetchResult[T]:
        """Run func with retries and fold failures into a FetchResult."""
        try:
            return FetchResult.success(self._execute_with_retry(func, *args))
        except FetchError as e:
            logger.warning(f"{self.name}: {e}")
            return FetchResult.failure(e)
        except Exception as e:
            # Anything a provider did not classify is treated as a bad response
            logger.exception(f"{self.name}: unexpected error for {symbol or func.__name__}")
            return FetchResult.failure(
                UpstreamError(provider=self.name, reason=str(e), symbol=symbol)
            )

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute func, retrying UnreachableError with exponential backoff.

        UpstreamError and other exceptions are not retried.

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type(UnreachableError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()
