# backend/portfolio_tracker/services/valuation/engine.py
"""
Valuation Engine - single owner of live portfolio state.

Responsibilities:
- Refresh: fetch the exchange rate and every holding's price (in parallel,
  through the PriceCache), revalue, persist the new prices and append a
  snapshot
- Summary: recompute totals from the current holdings and rate, no I/O
- Holding lifecycle: add / remove / clear through the HoldingStore
- Observers: notify subscribers with each new summary

Failure Semantics:
    refresh() never raises for fetch or storage failures.
    - Exchange rate unavailable -> last known rate (initially the configured
      default, 155 JPY/USD) marked FALLBACK
    - A symbol's price unavailable -> that holding keeps its last price
    - Storage write failed -> in-memory state still advances
    Each case sets RefreshStatus.degraded and adds a warning.

Concurrency:
    Mutations and refreshes are serialized by one RLock. A refresh()
    issued while another is running does not start a second round: it waits
    for the in-flight refresh and returns its summary. The exchange rate and
    price fetches of one refresh run on a thread pool under a single fan-in
    deadline; a fetch still running at the deadline counts as
    UnreachableError.
"""

import contextvars
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.constants import (
    DEFAULT_ACCOUNT,
    DEFAULT_EXCHANGE_RATE,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_REFRESH_WORKERS,
)
from portfolio_tracker.services.exceptions import FetchError, UnreachableError
from portfolio_tracker.services.holding_store import HoldingStore
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    FetchResult,
    PriceKey,
    PriceQuote,
    StockCandidate,
)
from portfolio_tracker.services.market_data.symbols import normalize_symbol
from portfolio_tracker.services.price_cache import CachedValue, PriceCache
from portfolio_tracker.services.snapshot_history import SnapshotHistory, TimeRange
from portfolio_tracker.services.types import Holding, PortfolioSnapshot, Stock, WriteResult
from portfolio_tracker.services.valuation.calculators import PortfolioCalculator
from portfolio_tracker.services.valuation.types import PortfolioSummary, RefreshStatus

logger = logging.getLogger(__name__)

SummaryListener = Callable[[PortfolioSummary], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValuationEngine:
    """
    Portfolio valuation over a price cache, a holding store and a history.

    Args:
        price_cache: Quote/rate source (wraps the QuoteProvider)
        holding_store: Holdings owner
        history: Snapshot series owner
        default_exchange_rate: JPY per USD until a live rate is fetched
        reporting_currency: Currency of all totals
        fetch_timeout: Fan-in deadline for one refresh, in seconds
        max_workers: Parallel price fetches per refresh
        calculator: Portfolio calculator (injectable for tests)
        clock: Source of "now" (UTC)
    """

    def __init__(
            self,
            price_cache: PriceCache,
            holding_store: HoldingStore,
            history: SnapshotHistory,
            default_exchange_rate: Decimal = DEFAULT_EXCHANGE_RATE,
            reporting_currency: str = "JPY",
            fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
            max_workers: int = DEFAULT_REFRESH_WORKERS,
            calculator: PortfolioCalculator | None = None,
            clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._cache = price_cache
        self._store = holding_store
        self._history = history
        self._reporting_currency = reporting_currency
        self._fetch_timeout = fetch_timeout
        self._max_workers = max_workers
        self._calculator = calculator or PortfolioCalculator()
        self._clock = clock

        self._lock = threading.RLock()
        self._inflight_lock = threading.Lock()
        self._inflight: Future | None = None

        self._listeners: list[SummaryListener] = []
        self._listeners_lock = threading.Lock()

        self._exchange_rate = ExchangeRate(
            rate=default_exchange_rate,
            timestamp=clock(),
            source=RateSource.FALLBACK,
        )
        self._status = RefreshStatus(exchange_rate_source=RateSource.FALLBACK)
        self._summary = self._recompute()

    # =========================================================================
    # READ MODELS
    # =========================================================================

    @property
    def exchange_rate(self) -> ExchangeRate:
        return self._exchange_rate

    def status(self) -> RefreshStatus:
        return self._status

    def summary(self) -> PortfolioSummary:
        """Totals recomputed from current holdings and rate. No fetching."""
        with self._lock:
            self._summary = self._recompute()
            return self._summary

    def holdings(self) -> list[Holding]:
        return self._store.list()

    def history(self, time_range: TimeRange | None = None) -> list[PortfolioSnapshot]:
        """Snapshots in ascending order, optionally limited to a chart window."""
        if time_range is None:
            return self._history.list()
        return self._history.list_range(time_range, now=self._clock())

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    def add_holding(
            self,
            stock: Stock,
            quantity: Decimal,
            purchase_price: Decimal,
            purchase_date: date | None = None,
            account: str = DEFAULT_ACCOUNT,
    ) -> Holding:
        """
        Validate and add a holding, then publish the new summary.

        Raises:
            ValidationError: Empty symbol, non-positive quantity or price
        """
        stock = replace(
            stock,
            symbol=normalize_symbol(stock.symbol, stock.market),
            currency=(stock.currency or stock.market.currency).upper(),
        )
        holding = Holding(
            stock=stock,
            quantity=quantity,
            purchase_price=purchase_price,
            purchase_date=purchase_date or self._clock().date(),
            account=account or DEFAULT_ACCOUNT,
        )

        with self._lock:
            write = self._store.create(holding)
            self._record_write(write, f"add {stock.symbol}")
            summary = self._recompute()
            self._summary = summary

        self._notify(summary)
        return holding

    def remove_holding(self, holding_id: UUID) -> None:
        """Remove a holding. Unknown ids are ignored."""
        with self._lock:
            write = self._store.delete(holding_id)
            self._record_write(write, f"remove {holding_id}")
            summary = self._recompute()
            self._summary = summary

        self._notify(summary)

    def clear_holdings(self) -> None:
        """Remove every holding."""
        with self._lock:
            write = self._store.clear()
            self._record_write(write, "clear holdings")
            summary = self._recompute()
            self._summary = summary

        self._notify(summary)

    # =========================================================================
    # REFRESH
    # =========================================================================

    def refresh(self) -> PortfolioSummary:
        """
        Fetch rate and prices, revalue, persist and snapshot.

        Concurrent callers share one in-flight refresh and its result.
        """
        with self._inflight_lock:
            inflight = self._inflight
            is_owner = inflight is None
            if is_owner:
                inflight = self._inflight = Future()

        if not is_owner:
            logger.debug("Refresh already in flight; waiting for its result")
            return inflight.result()

        try:
            summary = self._run_refresh()
        except Exception as e:
            logger.exception("Refresh failed unexpectedly")
            inflight.set_exception(e)
            raise
        finally:
            with self._inflight_lock:
                self._inflight = None

        inflight.set_result(summary)
        self._notify(summary)
        return summary

    def _run_refresh(self) -> PortfolioSummary:
        with self._lock:
            started_at = self._clock()
            warnings: list[str] = []

            holdings = self._store.list()
            rate_outcome, quotes = self._fetch_market_data(list(dict.fromkeys(h.key for h in holdings)))
            rate = self._resolve_exchange_rate(rate_outcome, warnings)

            updated: list[Holding] = []
            failed_symbols: list[str] = []
            for holding in holdings:
                outcome = quotes[holding.key]
                if outcome.ok:
                    cached = outcome.value
                    if cached.is_stale:
                        warnings.append(f"{holding.stock.symbol}: using cached price ({cached.error})")
                        failed_symbols.append(holding.stock.symbol)
                    updated.append(holding.with_price(cached.value.price, cached.value.name))
                else:
                    warnings.append(f"{holding.stock.symbol}: keeping last price ({outcome.error})")
                    failed_symbols.append(holding.stock.symbol)
                    updated.append(holding)

            summary = self._calculator.summarize(
                updated, rate, reporting_currency=self._reporting_currency
            )

            durable = True
            write = self._store.update_prices(updated)
            if not write.durable:
                durable = False
                warnings.append(f"prices not persisted: {write.error}")

            finished_at = self._clock()
            self._history.append(summary.total_value, timestamp=finished_at)
            if not self._history.last_write.durable:
                durable = False
                warnings.append(f"snapshot not persisted: {self._history.last_write.error}")

            self._summary = summary
            self._status = RefreshStatus(
                degraded=bool(warnings),
                warnings=tuple(warnings),
                failed_symbols=tuple(dict.fromkeys(failed_symbols)),
                exchange_rate_source=rate.source,
                started_at=started_at,
                finished_at=finished_at,
                durable=durable,
            )

        if warnings:
            logger.warning(
                f"Refresh degraded: {len(warnings)} issue(s), "
                f"{len(self._status.failed_symbols)} symbol(s) on last-known price",
                extra={"failed_symbols": list(self._status.failed_symbols)},
            )
        logger.info(
            f"Refresh complete: {summary.holding_count} holding(s), "
            f"total {summary.total_value} {summary.reporting_currency}, "
            f"rate {rate.rate} ({rate.source.value})"
        )
        return summary

    def _resolve_exchange_rate(
            self,
            outcome: FetchResult[CachedValue[ExchangeRate]],
            warnings: list[str],
    ) -> ExchangeRate:
        """Rate from the cache, else the last known rate marked FALLBACK."""
        if not outcome.ok:
            warnings.append(f"exchange rate unavailable, using {self._exchange_rate.rate}: {outcome.error}")
            self._exchange_rate = replace(self._exchange_rate, source=RateSource.FALLBACK)
            return self._exchange_rate

        cached = outcome.value
        rate = cached.value
        if cached.is_stale:
            warnings.append(f"exchange rate refetch failed, using cached {rate.rate}: {cached.error}")
            rate = replace(rate, source=RateSource.FALLBACK)
        self._exchange_rate = rate
        return rate

    def _fetch_market_data(
            self,
            keys: list[PriceKey],
    ) -> tuple[
        FetchResult[CachedValue[ExchangeRate]],
        dict[PriceKey, FetchResult[CachedValue[PriceQuote]]],
    ]:
        """
        Fetch the exchange rate and all keys in parallel under one deadline.

        Anything unfinished at the deadline counts as UnreachableError.
        """
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(keys)) + 1,
            thread_name_prefix="quote-fetch",
        )
        try:
            # copy_context keeps the correlation ID on worker threads
            rate_future = executor.submit(contextvars.copy_context().run, self._cache.get_exchange_rate)
            futures = {
                executor.submit(contextvars.copy_context().run, self._cache.get_price, symbol, market): (symbol, market)
                for symbol, market in keys
            }
            done, _ = wait([rate_future, *futures], timeout=self._fetch_timeout)

            rate_outcome = self._collect(rate_future, done)
            quotes = {key: self._collect(future, done, symbol=key[0]) for future, key in futures.items()}
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return rate_outcome, quotes

    def _collect(self, future: Future, done: set[Future], symbol: str | None = None) -> FetchResult:
        if future not in done:
            future.cancel()
            return FetchResult.failure(UnreachableError(
                provider=self._cache.provider.name,
                reason=f"no answer within {self._fetch_timeout}s",
                symbol=symbol,
            ))
        try:
            return FetchResult.success(future.result())
        except FetchError as e:
            return FetchResult.failure(e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {symbol or 'exchange rate'}")
            return FetchResult.failure(UnreachableError(
                provider=self._cache.provider.name, reason=str(e), symbol=symbol,
            ))

    # =========================================================================
    # SEARCH & QUOTES
    # =========================================================================

    def search(self, query: str, market: Market) -> list[StockCandidate]:
        """
        Search listings on `market`.

        Raises:
            ValidationError: Empty query
            FetchError: Provider failed (search is interactive, so it surfaces)
        """
        return self._cache.provider.search(query, market).unwrap()

    def quotes(self, requests: list[tuple[str, Market]]) -> dict[PriceKey, FetchResult[CachedValue[PriceQuote]]]:
        """
        Current quotes for arbitrary symbols, through the cache (batch fetch on misses).

        Bounded by the refresh deadline; on timeout every key is Unreachable.
        """
        keys = list(dict.fromkeys((normalize_symbol(symbol, market), market) for symbol, market in requests))
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="quote-fetch")
        try:
            future = executor.submit(contextvars.copy_context().run, self._cache.get_prices, keys)
            done, _ = wait([future], timeout=self._fetch_timeout)
            if future in done:
                return future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.warning(f"Quote request for {len(keys)} symbol(s) timed out after {self._fetch_timeout}s")
        return {key: self._collect(future, done, symbol=key[0]) for key in keys}

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, listener: SummaryListener) -> Callable[[], None]:
        """
        Call `listener` with every new summary.

        Returns:
            A function that unsubscribes the listener
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, summary: PortfolioSummary) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(summary)
            except Exception:
                logger.exception(f"Summary listener {listener!r} failed")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _recompute(self) -> PortfolioSummary:
        return self._calculator.summarize(
            self._store.list(),
            self._exchange_rate,
            reporting_currency=self._reporting_currency,
        )

    def _record_write(self, write: WriteResult, action: str) -> None:
        if write.durable:
            return
        self._status = replace(
            self._status,
            degraded=True,
            durable=False,
            warnings=self._status.warnings + (f"{action} not persisted: {write.error}",),
        )
