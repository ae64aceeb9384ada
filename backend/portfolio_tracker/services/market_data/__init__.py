# backend/portfolio_tracker/services/market_data/__init__.py
"""
Quote providers: current prices, the USD/JPY rate and listing search.

Usage:
    from portfolio_tracker.services.market_data import BackendQuoteProvider, Market

    provider = BackendQuoteProvider(base_url="https://backendindex.vercel.app")
    result = provider.get_price("7203", Market.DOMESTIC)
    if result.ok:
        print(result.value.price)
"""

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    FetchResult,
    PriceKey,
    PriceQuote,
    QuoteProvider,
    StockCandidate,
)
from portfolio_tracker.services.market_data.backend import BackendQuoteProvider
from portfolio_tracker.services.market_data.symbols import (
    market_for_symbol,
    matches_market,
    normalize_symbol,
)
from portfolio_tracker.services.market_data.yahoo import YahooQuoteProvider

__all__ = [
    "Market",
    "RateSource",
    "ExchangeRate",
    "FetchResult",
    "PriceKey",
    "PriceQuote",
    "QuoteProvider",
    "StockCandidate",
    "BackendQuoteProvider",
    "YahooQuoteProvider",
    "market_for_symbol",
    "matches_market",
    "normalize_symbol",
]
