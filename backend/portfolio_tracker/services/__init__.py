# backend/portfolio_tracker/services/__init__.py
"""
Service layer for portfolio valuation.

Services have NO knowledge of HTTP: they raise domain exceptions from
services/exceptions.py and receive their collaborators through their
constructors.

Architecture:
    services/
    ├── __init__.py           # This file
    ├── exceptions.py         # Domain exceptions
    ├── constants.py          # Business constants
    ├── protocols.py          # PortfolioStorage protocol
    ├── types.py              # Stock, Holding, PortfolioSnapshot, WriteResult
    ├── market_data/          # Quote providers (REST backend, Yahoo)
    ├── price_cache.py        # TTL cache with stale fallback
    ├── holding_store.py      # Holdings with write-through persistence
    ├── snapshot_history.py   # Bounded total-value series
    └── valuation/            # Calculators and the ValuationEngine
"""
