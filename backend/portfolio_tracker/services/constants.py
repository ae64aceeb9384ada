# backend/portfolio_tracker/services/constants.py
"""
Centralized constants for the Portfolio Tracker services.

Single source of truth for business constants. Values that operators may
want to tune (TTL, timeouts, default rate) are also exposed through Settings;
the values here are the fallbacks used when a component is built without
explicit configuration (e.g., in tests).

Usage:
    from portfolio_tracker.services.constants import (
        CURRENCY_PRECISION,
        DEFAULT_EXCHANGE_RATE,
    )
"""

from decimal import Decimal


# =============================================================================
# PRECISION
# =============================================================================

# Reporting currency amounts (values, cost basis, gain/loss)
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Gain/loss percentages
PERCENTAGE_PRECISION: Decimal = Decimal("0.01")

# Prices and exchange rates as received from providers
PRICE_PRECISION: Decimal = Decimal("0.00000001")


# =============================================================================
# EXCHANGE RATE
# =============================================================================

# JPY per 1 USD, used until a live rate has been fetched at least once
DEFAULT_EXCHANGE_RATE: Decimal = Decimal("155.0")

# Yahoo Finance symbol for the USD/JPY pair
USDJPY_SYMBOL: str = "USDJPY=X"


# =============================================================================
# SYMBOLS & MARKETS
# =============================================================================

# Suffix appended to Tokyo Stock Exchange codes (e.g., "7203" -> "7203.T")
TOKYO_SUFFIX: str = ".T"

# Suffixes/prefixes that mark a provider symbol as Japanese-listed
JAPANESE_SYMBOL_SUFFIXES: tuple[str, ...] = (".T", ".F")
JAPANESE_SYMBOL_PREFIXES: tuple[str, ...] = ("JP:",)

# Maximum number of search candidates returned to the caller
SEARCH_RESULT_LIMIT: int = 10


# =============================================================================
# HOLDINGS & HISTORY
# =============================================================================

# Account label used when a holding is created without one
DEFAULT_ACCOUNT: str = "Default"

# Number of portfolio snapshots kept (oldest evicted first)
DEFAULT_SNAPSHOT_CAPACITY: int = 90


# =============================================================================
# CACHE & FETCH
# =============================================================================

# Default freshness window for cached quotes (15 minutes)
DEFAULT_PRICE_TTL_SECONDS: int = 900

# Bound on each external call and on the refresh fan-in
DEFAULT_FETCH_TIMEOUT_SECONDS: float = 15.0

# Parallel quote fetches during one refresh
DEFAULT_REFRESH_WORKERS: int = 8
