# backend/portfolio_tracker/services/holding_store.py
"""
In-memory holdings backed by durable storage.

The store is the only writer of holding records. It loads everything from
storage on construction and then serves reads from memory.

Write policy:
    Every mutation is validated, applied in memory, then flushed to storage
    synchronously. If the flush raises StorageError the in-memory change is
    kept (no rollback) and the returned WriteResult has durable=False.
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from uuid import UUID

from portfolio_tracker.services.exceptions import StorageError, ValidationError
from portfolio_tracker.services.protocols import PortfolioStorage
from portfolio_tracker.services.types import Holding, WriteResult

logger = logging.getLogger(__name__)


def validate_holding(holding: Holding) -> None:
    """
    Check the invariants every stored holding satisfies.

    Raises:
        ValidationError: non-finite amount, quantity or purchase price not
            positive, negative current price, or empty symbol
    """
    if not holding.stock.symbol or not holding.stock.symbol.strip():
        raise ValidationError("Symbol must not be empty", field="symbol")
    for field_name, value in (
            ("quantity", holding.quantity),
            ("purchase_price", holding.purchase_price),
            ("current_price", holding.stock.current_price),
    ):
        if not value.is_finite():
            raise ValidationError(f"{field_name} must be a finite number, got {value}", field=field_name)
    if holding.quantity <= Decimal("0"):
        raise ValidationError(
            f"Quantity must be positive, got {holding.quantity}", field="quantity"
        )
    if holding.purchase_price <= Decimal("0"):
        raise ValidationError(
            f"Purchase price must be positive, got {holding.purchase_price}",
            field="purchase_price",
        )
    if holding.stock.current_price < Decimal("0"):
        raise ValidationError(
            f"Current price must not be negative, got {holding.stock.current_price}",
            field="current_price",
        )


class HoldingStore:
    """CRUD over holdings with synchronous write-through to storage."""

    def __init__(self, storage: PortfolioStorage) -> None:
        self._storage = storage
        self._lock = threading.RLock()
        self._holdings: dict[UUID, Holding] = {}

        try:
            loaded = storage.fetch_holdings()
        except StorageError as e:
            logger.warning(f"Could not load holdings, starting empty: {e}")
            loaded = []
        for holding in loaded:
            self._holdings[holding.id] = holding
        logger.info(f"HoldingStore loaded {len(self._holdings)} holding(s)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._holdings)

    def list(self) -> list[Holding]:
        """All holdings in insertion order."""
        with self._lock:
            return list(self._holdings.values())

    def get(self, holding_id: UUID) -> Holding | None:
        with self._lock:
            return self._holdings.get(holding_id)

    def create(self, holding: Holding) -> WriteResult:
        """
        Add a holding.

        Raises:
            ValidationError: Invalid holding (nothing is stored)
        """
        validate_holding(holding)
        with self._lock:
            if holding.id in self._holdings:
                raise ValidationError(f"Holding {holding.id} already exists", field="id")
            self._holdings[holding.id] = holding
            result = self._flush("create", self._storage.insert_holding, holding)

        logger.info(
            f"Holding added: {holding.quantity} x {holding.stock.symbol} "
            f"@ {holding.purchase_price} {holding.stock.currency}"
        )
        return result

    def delete(self, holding_id: UUID) -> WriteResult:
        """Remove a holding. Unknown ids are a no-op."""
        with self._lock:
            removed = self._holdings.pop(holding_id, None)
            if removed is None:
                logger.debug(f"Delete of unknown holding {holding_id} ignored")
                return WriteResult()
            result = self._flush("delete", self._storage.delete_holding, holding_id)

        logger.info(f"Holding removed: {removed.stock.symbol} ({holding_id})")
        return result

    def clear(self) -> WriteResult:
        """Remove every holding."""
        with self._lock:
            count = len(self._holdings)
            self._holdings.clear()
            result = self._flush("clear", self._storage.delete_all_holdings)
        logger.info(f"All holdings cleared ({count})")
        return result

    def update_prices(self, holdings: list[Holding]) -> WriteResult:
        """
        Replace the embedded stock of each holding with a refreshed one.

        Only the stock is taken from the given holdings; quantity, purchase
        price, date and account always come from the stored record. Holdings
        deleted in the meantime are skipped.
        """
        with self._lock:
            updated = []
            for refreshed in holdings:
                current = self._holdings.get(refreshed.id)
                if current is None:
                    continue
                replacement = current.with_price(refreshed.stock.current_price, refreshed.stock.name)
                self._holdings[current.id] = replacement
                updated.append(replacement)

            if not updated:
                return WriteResult()
            return self._flush("update_prices", self._storage.update_holding_prices, updated)

    def _flush(self, operation: str, write, *args) -> WriteResult:
        try:
            write(*args)
        except StorageError as e:
            logger.warning(f"Holding {operation} kept in memory but not persisted: {e}")
            return WriteResult.failed(e)
        return WriteResult()
