# backend/portfolio_tracker/services/market_data/symbols.py
"""
Symbol normalization rules.

Pure functions, no I/O. Providers call these before building requests so
that "7203", " 7203 " and "7203.t" all resolve to the same quote and the
same cache key.
"""

from portfolio_tracker.models import Market
from portfolio_tracker.services.constants import (
    JAPANESE_SYMBOL_PREFIXES,
    JAPANESE_SYMBOL_SUFFIXES,
    TOKYO_SUFFIX,
)
from portfolio_tracker.services.exceptions import ValidationError


def normalize_symbol(symbol: str, market: Market) -> str:
    """
    Canonical provider symbol for (symbol, market).

    Tokyo listings are addressed with a ".T" suffix, so a DOMESTIC symbol
    without any exchange suffix gets one. FOREIGN symbols are only trimmed
    and uppercased.

    Examples:
        normalize_symbol("7203", Market.DOMESTIC)   -> "7203.T"
        normalize_symbol("7203.T", Market.DOMESTIC) -> "7203.T"
        normalize_symbol(" aapl ", Market.FOREIGN)  -> "AAPL"

    Raises:
        ValidationError: If the symbol is empty or market is not a Market
    """
    if not isinstance(market, Market):
        raise ValidationError(f"Unknown market: {market!r}", field="market")
    if symbol is None or not symbol.strip():
        raise ValidationError("Symbol must not be empty", field="symbol")

    normalized = symbol.strip().upper()
    if market is Market.DOMESTIC and "." not in normalized:
        normalized = f"{normalized}{TOKYO_SUFFIX}"
    return normalized


def market_for_symbol(symbol: str) -> Market:
    """Classify a provider symbol as DOMESTIC (Japanese-listed) or FOREIGN."""
    upper = symbol.strip().upper()
    if upper.endswith(JAPANESE_SYMBOL_SUFFIXES) or upper.startswith(JAPANESE_SYMBOL_PREFIXES):
        return Market.DOMESTIC
    return Market.FOREIGN


def matches_market(symbol: str, market: Market) -> bool:
    """True if a search result symbol belongs to `market`."""
    return market_for_symbol(symbol) is market
