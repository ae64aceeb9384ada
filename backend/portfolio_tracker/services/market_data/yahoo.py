# backend/portfolio_tracker/services/market_data/yahoo.py
"""
Yahoo Finance quote provider implementation.

Uses the yfinance library:
- Prices from Ticker(symbol).info (regularMarketPrice, falling back to
  currentPrice / previousClose)
- USD/JPY from the "USDJPY=X" ticker
- Search through yfinance.Search, filtered to the requested market

Tokyo listings need the ".T" suffix ("7203" -> "7203.T"); the base class
normalizes symbols before they reach this module.

Limitations:
- Unofficial API with undocumented rate limits
- Quotes may be delayed 15-20 minutes
"""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import yfinance as yf

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.constants import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    PRICE_PRECISION,
    SEARCH_RESULT_LIMIT,
    USDJPY_SYMBOL,
)
from portfolio_tracker.services.exceptions import UpstreamError, UnreachableError
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    PriceQuote,
    QuoteProvider,
    StockCandidate,
)
from portfolio_tracker.services.market_data.symbols import matches_market

logger = logging.getLogger(__name__)


class YahooQuoteProvider(QuoteProvider):
    """
    Yahoo Finance implementation of QuoteProvider.

    Error classification (yfinance raises plain exceptions):
        - "not found", "no data", "delisted", "invalid" -> UpstreamError
        - anything else (timeouts, connection resets, rate limiting)
          -> UnreachableError, which the base class retries
    """

    PRICE_FIELDS = ("regularMarketPrice", "currentPrice", "previousClose")

    PERMANENT_ERROR_MARKERS = ("not found", "no data", "delisted", "invalid")

    def __init__(self, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout
        logger.info(f"YahooQuoteProvider initialized (timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "yahoo"

    # =========================================================================
    # QUOTES
    # =========================================================================

    def _fetch_price(self, symbol: str, market: Market) -> PriceQuote:
        logger.debug(f"Fetching Yahoo quote for {symbol}")
        info = self._ticker_info(symbol)

        price = self._first_price(info)
        if price is None:
            raise UpstreamError(provider=self.name, reason="no price in quote", symbol=symbol)

        return PriceQuote(
            symbol=symbol,
            market=market,
            price=price,
            currency=(info.get("currency") or market.currency).upper(),
            fetched_at=datetime.now(timezone.utc),
            name=info.get("shortName") or info.get("longName"),
        )

    def _fetch_exchange_rate(self) -> ExchangeRate:
        info = self._ticker_info(USDJPY_SYMBOL)
        rate = self._first_price(info)
        if rate is None:
            raise UpstreamError(provider=self.name, reason="no USD/JPY rate in quote", symbol=USDJPY_SYMBOL)
        return ExchangeRate(rate=rate, timestamp=datetime.now(timezone.utc), source=RateSource.LIVE)

    # =========================================================================
    # SEARCH
    # =========================================================================

    def _search(self, query: str, market: Market) -> list[StockCandidate]:
        try:
            quotes = yf.Search(query, max_results=SEARCH_RESULT_LIMIT * 2, timeout=self._timeout).quotes
        except Exception as e:
            raise self._classify(e, symbol=None) from e

        candidates = []
        for quote in quotes or []:
            symbol = (quote.get("symbol") or "").upper()
            if not symbol or not matches_market(symbol, market):
                continue
            candidates.append(StockCandidate(
                symbol=symbol,
                name=quote.get("shortname") or quote.get("longname") or symbol,
                market=market,
                currency=market.currency,
                exchange=quote.get("exchange"),
            ))
        return candidates[:SEARCH_RESULT_LIMIT]

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _ticker_info(self, symbol: str) -> dict[str, Any]:
        try:
            info = yf.Ticker(symbol).info
        except Exception as e:
            raise self._classify(e, symbol=symbol) from e

        if not info:
            raise UpstreamError(provider=self.name, reason="symbol not found", symbol=symbol)
        return info

    def _first_price(self, info: dict[str, Any]) -> Decimal | None:
        for field_name in self.PRICE_FIELDS:
            price = self._to_decimal(info.get(field_name))
            if price is not None and price > 0:
                return price
        return None

    def _classify(self, error: Exception, symbol: str | None) -> UpstreamError | UnreachableError:
        error_str = str(error).lower()
        if any(marker in error_str for marker in self.PERMANENT_ERROR_MARKERS):
            return UpstreamError(provider=self.name, reason=str(error), symbol=symbol)
        logger.error(f"Yahoo Finance error for {symbol or 'search'}: {error}")
        return UnreachableError(provider=self.name, reason=str(error), symbol=symbol)

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return Decimal(str(value)).quantize(PRICE_PRECISION)
        except (TypeError, ValueError):
            return None
