# backend/portfolio_tracker/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- SqlAlchemyStorage satisfies PortfolioStorage without inheriting from it
- Tests can pass in-memory or failing fakes
- The store and history only see the operations they need
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from portfolio_tracker.services.types import Holding, PortfolioSnapshot


class PortfolioStorage(Protocol):
    """
    Durable storage for holdings and snapshots.

    Every method either completes the write or raises StorageError.
    """

    def insert_holding(self, holding: Holding) -> None:
        ...

    def fetch_holdings(self) -> list[Holding]:
        """Return all holdings in insertion order."""
        ...

    def update_holding_prices(self, holdings: list[Holding]) -> None:
        """Persist the embedded stock price/name of each holding."""
        ...

    def delete_holding(self, holding_id: UUID) -> None:
        ...

    def delete_all_holdings(self) -> None:
        ...

    def append_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        ...

    def fetch_snapshots(self, since: datetime | None = None) -> list[PortfolioSnapshot]:
        """Return snapshots in ascending time order."""
        ...

    def prune_snapshots(self, keep: int) -> int:
        """Delete all but the newest `keep` snapshots. Returns rows deleted."""
        ...
