# backend/portfolio_tracker/services/valuation/types.py
"""
Internal data types for the Valuation Engine.

These dataclasses are produced by the calculators and the engine. They are
NOT Pydantic schemas; API serialization lives in schemas/portfolio.py.

Design Principles:
- Immutable (frozen=True); a new summary is built on every change
- Decimal for ALL financial values (never float)
- All amounts are in the reporting currency and quantized to 0.01
- A summary is never stored: it is always recomputable from
  (holdings, exchange rate)

Type Hierarchy:
    HoldingValuation  - Converted value, cost and gain/loss of one holding
    PortfolioSummary  - Totals plus the per-holding breakdown
    RefreshStatus     - Side channel describing the last refresh
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from portfolio_tracker.models import RateSource
from portfolio_tracker.services.market_data.base import ExchangeRate
from portfolio_tracker.services.types import Holding


@dataclass(frozen=True)
class HoldingValuation:
    """
    Valuation of one holding in the reporting currency.

    Attributes:
        holding: The holding as valued (with the price used)
        conversion_factor: Multiplier into the reporting currency
            (the exchange rate for FOREIGN stocks, 1 for DOMESTIC)
        current_value: price x quantity x factor
        cost_basis: purchase_price x quantity x factor
        gain_loss: current_value - cost_basis
        gain_loss_pct: gain_loss / cost_basis x 100 (0 when cost basis is 0)
    """

    holding: Holding
    conversion_factor: Decimal
    current_value: Decimal
    cost_basis: Decimal
    gain_loss: Decimal
    gain_loss_pct: Decimal

    @property
    def holding_id(self) -> UUID:
        return self.holding.id

    @property
    def symbol(self) -> str:
        return self.holding.stock.symbol


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Aggregate portfolio valuation.

    total_value is the exact sum of holdings[*].current_value (and likewise
    for cost basis and gain/loss). calculated_at is informational and is
    excluded from equality so that two summaries of the same inputs compare
    equal.
    """

    total_value: Decimal
    total_cost_basis: Decimal
    total_gain_loss: Decimal
    total_gain_loss_pct: Decimal
    holdings: tuple[HoldingValuation, ...]
    exchange_rate: ExchangeRate
    reporting_currency: str
    calculated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    @property
    def holding_count(self) -> int:
        return len(self.holdings)


@dataclass(frozen=True)
class RefreshStatus:
    """
    What happened during the last refresh.

    A refresh never raises; partial failures are reported here instead.

    Attributes:
        degraded: True if any quote or the exchange rate could not be fetched
            fresh, or a write was not persisted
        warnings: Human-readable descriptions of each problem
        failed_symbols: Symbols whose last-known price was kept
        exchange_rate_source: LIVE or FALLBACK
        started_at / finished_at: Refresh wall-clock bounds (UTC)
        durable: False if any storage write of the refresh failed
    """

    degraded: bool = False
    warnings: tuple[str, ...] = ()
    failed_symbols: tuple[str, ...] = ()
    exchange_rate_source: RateSource = RateSource.FALLBACK
    started_at: datetime | None = None
    finished_at: datetime | None = None
    durable: bool = True
