# backend/portfolio_tracker/routers/holdings.py
"""
Holding management endpoints.

- GET    /holdings       - List holdings in insertion order
- POST   /holdings       - Add a holding (201)
- DELETE /holdings/{id}  - Remove a holding (204, idempotent)
- DELETE /holdings       - Remove all holdings (204)

Domain validation errors raised by the engine are mapped to 400 by the
global handlers in main.py.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from portfolio_tracker.dependencies import get_valuation_engine
from portfolio_tracker.schemas.holdings import (
    HoldingCreate,
    HoldingListResponse,
    HoldingResponse,
)
from portfolio_tracker.services.types import Stock
from portfolio_tracker.services.valuation import ValuationEngine

router = APIRouter(
    prefix="/holdings",
    tags=["Holdings"],
)


@router.get("", response_model=HoldingListResponse)
def list_holdings(engine: ValuationEngine = Depends(get_valuation_engine)):
    """List all holdings."""
    holdings = engine.holdings()
    return HoldingListResponse(
        items=[HoldingResponse.model_validate(h) for h in holdings],
        count=len(holdings),
    )


@router.post("", response_model=HoldingResponse, status_code=status.HTTP_201_CREATED)
def create_holding(
        payload: HoldingCreate,
        engine: ValuationEngine = Depends(get_valuation_engine),
):
    """
    Add a holding.

    Tokyo symbols may be given without the ".T" suffix; it is added.
    The current price defaults to the purchase price until the next refresh.
    """
    stock = Stock(
        symbol=payload.symbol,
        name=payload.name or payload.symbol.upper(),
        market=payload.market,
        current_price=payload.current_price if payload.current_price is not None else payload.purchase_price,
        currency=payload.market.currency,
    )
    holding = engine.add_holding(
        stock=stock,
        quantity=payload.quantity,
        purchase_price=payload.purchase_price,
        purchase_date=payload.purchase_date,
        account=payload.account,
    )
    return HoldingResponse.model_validate(holding)


@router.delete("/{holding_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holding(
        holding_id: UUID,
        engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Remove a holding. Unknown ids succeed without effect."""
    engine.remove_holding(holding_id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_holdings(engine: ValuationEngine = Depends(get_valuation_engine)):
    """Remove every holding."""
    engine.clear_holdings()
