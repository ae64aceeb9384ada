# backend/portfolio_tracker/schemas/stocks.py
"""
Pydantic schemas for stock search and quote lookups.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.models import Market
from portfolio_tracker.services.price_cache import CacheSource


class StockCandidateResponse(BaseModel):
    """A search hit."""

    model_config = ConfigDict(from_attributes=True)

    symbol: str
    name: str
    market: Market
    currency: str
    price: Decimal | None = None
    exchange: str | None = None


class SearchResponse(BaseModel):
    """Response for GET /stocks/search."""

    query: str
    market: Market
    results: list[StockCandidateResponse]


class QuoteRequestItem(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=32)
    market: Market


class QuoteRequest(BaseModel):
    """Request body for POST /stocks/quotes."""

    symbols: list[QuoteRequestItem] = Field(..., min_length=1, max_length=100)


class QuoteResponseItem(BaseModel):
    """Quote for one requested symbol, or the reason it is missing."""

    symbol: str
    market: Market
    price: Decimal | None = None
    currency: str | None = None
    name: str | None = None
    fetched_at: datetime | None = None
    source: CacheSource | None = Field(default=None, description="FRESH, CACHED or STALE")
    error: str | None = None


class QuoteResponse(BaseModel):
    quotes: list[QuoteResponseItem]
