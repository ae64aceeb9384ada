# backend/portfolio_tracker/services/types.py
"""
Core value objects shared by the store, the history and the valuation engine.

All of these are immutable. A price refresh never edits a Holding in place:
it builds a new Stock and a new Holding with the same id (see with_price).

Design Principles:
- frozen=True for every value object
- Decimal for all money and quantities (never float)
- Timestamps are timezone-aware UTC datetimes
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from portfolio_tracker.models import Market
from portfolio_tracker.services.constants import DEFAULT_ACCOUNT


@dataclass(frozen=True)
class Stock:
    """
    A listed equity and its last known price.

    Attributes:
        symbol: Provider symbol (e.g., "AAPL", "7203.T")
        name: Display name
        market: DOMESTIC or FOREIGN
        current_price: Last known price in the stock's own currency
        currency: ISO 4217 trading currency (JPY or USD)
    """

    symbol: str
    name: str
    market: Market
    current_price: Decimal
    currency: str

    def with_price(self, price: Decimal, name: str | None = None) -> Stock:
        return replace(self, current_price=price, name=name or self.name)


@dataclass(frozen=True)
class Holding:
    """
    A position in one stock.

    quantity and purchase_price are fixed at creation; only the embedded
    Stock is swapped when prices are refreshed.
    """

    stock: Stock
    quantity: Decimal
    purchase_price: Decimal
    purchase_date: date
    account: str = DEFAULT_ACCOUNT
    id: UUID = field(default_factory=uuid4)

    @property
    def key(self) -> tuple[str, Market]:
        """(symbol, market) pair used for quote lookups."""
        return (self.stock.symbol, self.stock.market)

    def with_price(self, price: Decimal, name: str | None = None) -> Holding:
        return replace(self, stock=self.stock.with_price(price, name))


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Total portfolio value (reporting currency) at one point in time."""

    timestamp: datetime
    total_value: Decimal
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of a store mutation.

    The in-memory mutation always takes effect. durable=False means the
    durable write failed and the change will not survive a restart.
    """

    durable: bool = True
    error: str | None = None

    @classmethod
    def failed(cls, error: Exception) -> WriteResult:
        return cls(durable=False, error=str(error))
