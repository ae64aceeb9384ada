# backend/portfolio_tracker/routers/__init__.py
"""
API routers for the Portfolio Tracker.

- holdings: Add, list and remove holdings
- portfolio: Summary, refresh, status and history
- stocks: Listing search and quote lookups
"""

from portfolio_tracker.routers.holdings import router as holdings_router
from portfolio_tracker.routers.portfolio import router as portfolio_router
from portfolio_tracker.routers.stocks import router as stocks_router

__all__ = [
    "holdings_router",
    "portfolio_router",
    "stocks_router",
]
