# backend/portfolio_tracker/services/valuation/__init__.py
"""
Valuation Engine Package.

Usage:
    from portfolio_tracker.services.valuation import ValuationEngine

    engine = ValuationEngine(price_cache, holding_store, history)
    engine.add_holding(stock, Decimal("10"), Decimal("100"))
    summary = engine.refresh()      # never raises
    status = engine.status()        # degraded flag and warnings

Architecture:
    valuation/
    ├── __init__.py       # This file - package exports
    ├── types.py          # HoldingValuation, PortfolioSummary, RefreshStatus
    ├── calculators.py    # Stateless conversion/valuation calculators
    └── engine.py         # ValuationEngine (orchestrator, state owner)

Data Flow:
    PriceCache -> quotes + rate
    Holdings + quotes -> updated Holdings -> HoldingValuationCalculator
    HoldingValuations -> PortfolioCalculator -> PortfolioSummary
    PortfolioSummary.total_value -> SnapshotHistory
"""

from portfolio_tracker.services.valuation.calculators import (
    ConversionCalculator,
    HoldingValuationCalculator,
    PortfolioCalculator,
)
from portfolio_tracker.services.valuation.engine import ValuationEngine
from portfolio_tracker.services.valuation.types import (
    HoldingValuation,
    PortfolioSummary,
    RefreshStatus,
)

__all__ = [
    "ValuationEngine",
    "ConversionCalculator",
    "HoldingValuationCalculator",
    "PortfolioCalculator",
    "HoldingValuation",
    "PortfolioSummary",
    "RefreshStatus",
]
