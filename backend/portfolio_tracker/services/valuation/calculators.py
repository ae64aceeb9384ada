# backend/portfolio_tracker/services/valuation/calculators.py
"""
Point-in-time valuation calculators.

Each calculator follows the Single Responsibility Principle:
- ConversionCalculator: Factor that converts a stock's currency to the
  reporting currency
- HoldingValuationCalculator: Value, cost basis and gain/loss of one holding
- PortfolioCalculator: Totals over all holdings

Design Principles:
- Stateless (no instance state, pure functions)
- Receives all inputs explicitly (holdings, exchange rate)
- Uses Decimal for ALL financial calculations
- Per-holding amounts are quantized first and totals are their sums, so the
  breakdown always adds up to the total exactly

Usage:
    summary = PortfolioCalculator().summarize(holdings, exchange_rate)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from portfolio_tracker.models import Market
from portfolio_tracker.services.constants import CURRENCY_PRECISION, PERCENTAGE_PRECISION
from portfolio_tracker.services.market_data.base import ExchangeRate
from portfolio_tracker.services.types import Holding
from portfolio_tracker.services.valuation.types import HoldingValuation, PortfolioSummary

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole x 100, quantized. Defined as 0 when whole is 0."""
    if whole == _ZERO:
        return _ZERO.quantize(PERCENTAGE_PRECISION)
    return (part / whole * _HUNDRED).quantize(PERCENTAGE_PRECISION)


# =============================================================================
# CONVERSION CALCULATOR
# =============================================================================

class ConversionCalculator:
    """
    Converts stock-currency amounts into the reporting currency (JPY).

    FOREIGN (USD) amounts are multiplied by the rate (JPY per USD); DOMESTIC
    amounts are already in the reporting currency. The same factor applies
    to current value and cost basis.
    """

    def factor(self, market: Market, exchange_rate: ExchangeRate) -> Decimal:
        if market is Market.FOREIGN:
            return exchange_rate.rate
        return Decimal("1")


# =============================================================================
# HOLDING VALUATION CALCULATOR
# =============================================================================

class HoldingValuationCalculator:
    """Values one holding at its embedded stock price."""

    def __init__(self, conversion: ConversionCalculator | None = None) -> None:
        self._conversion = conversion or ConversionCalculator()

    def calculate(self, holding: Holding, exchange_rate: ExchangeRate) -> HoldingValuation:
        factor = self._conversion.factor(holding.stock.market, exchange_rate)

        current_value = (holding.stock.current_price * holding.quantity * factor).quantize(CURRENCY_PRECISION)
        cost_basis = (holding.purchase_price * holding.quantity * factor).quantize(CURRENCY_PRECISION)
        gain_loss = current_value - cost_basis

        return HoldingValuation(
            holding=holding,
            conversion_factor=factor,
            current_value=current_value,
            cost_basis=cost_basis,
            gain_loss=gain_loss,
            gain_loss_pct=percentage(gain_loss, cost_basis),
        )


# =============================================================================
# PORTFOLIO CALCULATOR
# =============================================================================

class PortfolioCalculator:
    """Builds a PortfolioSummary from holdings and one exchange rate."""

    def __init__(self, holding_calculator: HoldingValuationCalculator | None = None) -> None:
        self._holding_calculator = holding_calculator or HoldingValuationCalculator()

    def summarize(
            self,
            holdings: Iterable[Holding],
            exchange_rate: ExchangeRate,
            reporting_currency: str = "JPY",
            calculated_at: datetime | None = None,
    ) -> PortfolioSummary:
        valuations = tuple(
            self._holding_calculator.calculate(holding, exchange_rate)
            for holding in holdings
        )

        total_value = sum((v.current_value for v in valuations), _ZERO.quantize(CURRENCY_PRECISION))
        total_cost = sum((v.cost_basis for v in valuations), _ZERO.quantize(CURRENCY_PRECISION))
        total_gain = total_value - total_cost

        return PortfolioSummary(
            total_value=total_value,
            total_cost_basis=total_cost,
            total_gain_loss=total_gain,
            total_gain_loss_pct=percentage(total_gain, total_cost),
            holdings=valuations,
            exchange_rate=exchange_rate,
            reporting_currency=reporting_currency,
            calculated_at=calculated_at or datetime.now(timezone.utc),
        )
