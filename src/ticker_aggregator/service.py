from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Protocol, Sequence, TypeVar

from pydantic import BaseModel, Field

from .connectors.loader import load_connectors
from .domain import CanonicalSymbol, ExchangeName, RateLimitInfo, Ticker, TickerStatus, utcnow
from .errors import ExchangeNotConfiguredError, NoAdaptersConfiguredError, SymbolError
from .exchanges.adapter import ExchangeAdapter
from .settings import Settings, settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TickerSource(Protocol):
    """What the aggregator needs from an exchange adapter."""

    @property
    def name(self) -> ExchangeName:
        ...

    async def fetch_ticker(self, symbol: CanonicalSymbol | str) -> Ticker:
        ...

    async def fetch_tickers(self, symbols: Sequence[CanonicalSymbol | str]) -> List[Ticker]:
        ...

    async def is_healthy(self) -> bool:
        ...

    def rate_limit_info(self) -> RateLimitInfo:
        ...

    async def supported_symbols(self) -> List[str]:
        ...

    async def reconnect(self) -> bool:
        ...

    async def aclose(self) -> None:
        ...


class OverallStatus(str, Enum):
    HEALTHY = "HEALTHY"
    PARTIAL = "PARTIAL"
    CRITICAL = "CRITICAL"
    NO_EXCHANGES = "NO_EXCHANGES"


class ExchangeStatusReport(BaseModel):
    status: OverallStatus
    exchanges: Dict[ExchangeName, bool] = Field(default_factory=dict)
    checked_at: datetime = Field(default_factory=utcnow)


class BestPrice(BaseModel):
    """Outcome of a best price lookup.

    ``ticker`` is ``None`` when no exchange produced an ``ACTIVE`` ticker; the
    per-exchange failures are kept in ``errors`` so that "not found" can be
    told apart from an answer.
    """

    symbol: str
    ticker: Ticker | None = None
    candidates: int = 0
    errors: Dict[ExchangeName, str] = Field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.ticker is not None


@dataclass(frozen=True)
class SymbolDiscovery:
    """Символы по всем биржам: объединение и разбивка по биржам."""

    symbols_union: List[str]
    per_exchange: Dict[ExchangeName, List[str]]


def select_best(tickers: Iterable[Ticker]) -> Ticker | None:
    """Pick the best ``ACTIVE`` ticker.

    Highest 24h volume wins (liquidity proxy); ties go to the lowest price,
    then to the alphabetically first exchange so the choice is deterministic.
    """

    active = [ticker for ticker in tickers if ticker.status is TickerStatus.ACTIVE]
    if not active:
        return None
    return min(active, key=lambda t: (-t.volume, t.price, t.exchange))


def overall_status(statuses: Dict[ExchangeName, bool]) -> OverallStatus:
    if not statuses:
        return OverallStatus.NO_EXCHANGES
    healthy = sum(1 for ok in statuses.values() if ok)
    if healthy == len(statuses):
        return OverallStatus.HEALTHY
    if healthy:
        return OverallStatus.PARTIAL
    return OverallStatus.CRITICAL


def _display_symbol(symbol: CanonicalSymbol | str | None) -> str:
    try:
        return str(CanonicalSymbol.parse(symbol))
    except SymbolError:
        return "" if symbol is None else str(symbol).strip().upper()


class TickerAggregator:
    """Registry of exchange adapters with fan-out/fan-in aggregate queries."""

    def __init__(
        self,
        adapters: Iterable[TickerSource] = (),
        *,
        timeout: float | None = None,
        batch_timeout: float | None = None,
    ) -> None:
        self._adapters: Dict[ExchangeName, TickerSource] = {}
        self._status: Dict[ExchangeName, bool] = {}
        self._timeout = settings.aggregate_timeout if timeout is None else timeout
        self._batch_timeout = settings.batch_timeout if batch_timeout is None else batch_timeout
        for adapter in adapters:
            self.register(adapter)
        logger.info(
            "Initialized TickerAggregator with %d adapters: %s",
            len(self._adapters),
            ", ".join(self._adapters) or "-",
        )

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "TickerAggregator":
        adapters = [
            ExchangeAdapter(
                spec,
                timeout=cfg.http_timeout,
                stale_after=cfg.stale_after,
                concurrency=cfg.fetch_concurrency,
            )
            for spec in load_connectors(cfg.enabled_exchanges)
        ]
        return cls(adapters, timeout=cfg.aggregate_timeout, batch_timeout=cfg.batch_timeout)

    def register(self, adapter: TickerSource) -> None:
        key = adapter.name.upper()
        if key in self._adapters:
            raise ValueError(f"adapter for {key} is already registered")
        self._adapters[key] = adapter

    @property
    def exchanges(self) -> tuple[ExchangeName, ...]:
        return tuple(self._adapters)

    def get_adapter(self, exchange: str) -> TickerSource:
        adapter = self._adapters.get(str(exchange or "").strip().upper())
        if adapter is None:
            logger.warning("No adapter found for exchange: %s", exchange)
            raise ExchangeNotConfiguredError(str(exchange))
        return adapter

    def _require_adapters(self) -> None:
        if not self._adapters:
            raise NoAdaptersConfiguredError("no exchange adapters configured")

    async def _per_exchange(
        self,
        call: Callable[[TickerSource], Awaitable[T]],
        on_failure: Callable[[ExchangeName, BaseException | None], T],
        timeout: float,
    ) -> Dict[ExchangeName, T]:
        """Run ``call`` for every adapter concurrently and wait at most ``timeout``.

        Adapters still running at the deadline are cancelled and reported
        through ``on_failure(name, None)``; an adapter that raised anyway is
        reported through ``on_failure(name, exc)``.
        """

        tasks = {
            asyncio.create_task(call(adapter), name=f"{name.lower()}-fanout"): name
            for name, adapter in self._adapters.items()
        }
        if not tasks:
            return {}
        try:
            _done, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[ExchangeName, T] = {}
        for task, name in tasks.items():
            if task in pending or task.cancelled():
                logger.warning("%s did not answer within %.1f s", name, timeout)
                results[name] = on_failure(name, None)
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("%s failed during fan-out", name, exc_info=exc)
                results[name] = on_failure(name, exc)
            else:
                results[name] = task.result()
        return results

    async def fetch_from_all_exchanges(self, symbol: CanonicalSymbol | str) -> Dict[ExchangeName, Ticker]:
        """One ticker per configured exchange, ``ERROR`` entries included."""

        self._require_adapters()
        display = _display_symbol(symbol)

        def _failed(name: ExchangeName, exc: BaseException | None) -> Ticker:
            if exc is None:
                return Ticker.failed(display, name, f"no response within {self._timeout:g}s")
            return Ticker.failed(display, name, f"unexpected error: {exc.__class__.__name__}: {exc}")

        results = await self._per_exchange(lambda a: a.fetch_ticker(symbol), _failed, self._timeout)
        logger.debug("Completed fetching %s from %d exchanges", display, len(results))
        return results

    async def best_price(self, symbol: CanonicalSymbol | str) -> BestPrice:
        tickers = await self.fetch_from_all_exchanges(symbol)
        best = select_best(tickers.values())
        errors = {
            name: ticker.error or ticker.status.value
            for name, ticker in tickers.items()
            if ticker.status is not TickerStatus.ACTIVE
        }
        result = BestPrice(
            symbol=_display_symbol(symbol),
            ticker=best,
            candidates=len(tickers) - len(errors),
            errors=errors,
        )
        if not result.found:
            logger.warning("No price data found for symbol: %s", result.symbol)
        return result

    async def exchange_status(self) -> ExchangeStatusReport:
        if not self._adapters:
            return ExchangeStatusReport(status=OverallStatus.NO_EXCHANGES)
        statuses = await self._per_exchange(
            lambda a: a.is_healthy(),
            lambda _name, _exc: False,
            self._timeout,
        )
        self._status.update(statuses)
        report = ExchangeStatusReport(status=overall_status(statuses), exchanges=statuses)
        logger.debug("Updated exchange status: %s", statuses)
        return report

    async def supported_symbols(self, exchange: str) -> List[str]:
        adapter = self.get_adapter(exchange)
        try:
            return await asyncio.wait_for(adapter.supported_symbols(), timeout=self._batch_timeout)
        except asyncio.TimeoutError:
            logger.error("Fetching symbols from %s timed out", adapter.name)
            return []

    async def all_supported_symbols(self) -> SymbolDiscovery:
        per_exchange = await self._per_exchange(
            lambda a: a.supported_symbols(),
            lambda _name, _exc: [],
            self._batch_timeout,
        )
        discovered = {name: symbols for name, symbols in per_exchange.items() if symbols}
        if not discovered:
            return SymbolDiscovery(symbols_union=[], per_exchange={})
        union = sorted(set().union(*discovered.values()))
        return SymbolDiscovery(symbols_union=union, per_exchange=discovered)

    async def fetch_ticker(self, exchange: str, symbol: CanonicalSymbol | str) -> Ticker:
        adapter = self.get_adapter(exchange)
        try:
            return await asyncio.wait_for(adapter.fetch_ticker(symbol), timeout=self._timeout)
        except asyncio.TimeoutError:
            return Ticker.failed(_display_symbol(symbol), adapter.name, f"no response within {self._timeout:g}s")

    async def fetch_tickers(self, exchange: str, symbols: Sequence[CanonicalSymbol | str]) -> List[Ticker]:
        adapter = self.get_adapter(exchange)
        try:
            return await asyncio.wait_for(adapter.fetch_tickers(symbols), timeout=self._batch_timeout)
        except asyncio.TimeoutError:
            message = f"batch did not complete within {self._batch_timeout:g}s"
            logger.error("Fetching %d tickers from %s timed out", len(symbols), adapter.name)
            return [Ticker.failed(_display_symbol(symbol), adapter.name, message) for symbol in symbols]

    async def fetch_tracked(
        self, symbols: Sequence[CanonicalSymbol | str] | None = None
    ) -> Dict[str, Dict[ExchangeName, Ticker]]:
        """Fetch every tracked symbol from every exchange, keyed by ``BASE/QUOTE``."""

        tracked = list(symbols) if symbols is not None else list(settings.tracked_symbols)
        unique: Dict[str, CanonicalSymbol | str] = {}
        for symbol in tracked:
            unique.setdefault(_display_symbol(symbol), symbol)
        maps = await asyncio.gather(*(self.fetch_from_all_exchanges(symbol) for symbol in unique.values()))
        return dict(zip(unique, maps))

    def rate_limit_info(self) -> Dict[ExchangeName, RateLimitInfo]:
        return {name: adapter.rate_limit_info() for name, adapter in self._adapters.items()}

    def available_exchanges(self) -> List[ExchangeName]:
        """Exchanges whose last health check succeeded."""

        return sorted(name for name in self._adapters if self._status.get(name))

    def is_exchange_available(self, exchange: str) -> bool:
        return str(exchange or "").strip().upper() in self.available_exchanges()

    async def initialize(self) -> ExchangeStatusReport:
        report = await self.exchange_status()
        for name, healthy in report.exchanges.items():
            if healthy:
                logger.info("Successfully initialized adapter for %s", name)
            else:
                logger.error("Failed to initialize adapter for %s", name)
        return report

    async def restart_adapter(self, exchange: str) -> bool:
        """Reconnect one adapter and record the outcome of its fresh health check."""

        adapter = self.get_adapter(exchange)
        name = adapter.name.upper()
        logger.info("Restarting adapter for %s", name)
        try:
            healthy = await asyncio.wait_for(adapter.reconnect(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("Restart of %s did not finish within %.1f s", name, self._timeout)
            healthy = False
        self._status[name] = healthy
        if healthy:
            logger.info("Successfully restarted adapter for %s", name)
        else:
            logger.error("Failed to restart adapter for %s", name)
        return healthy

    async def aclose(self) -> None:
        logger.info("Shutting down all exchange adapters")
        results = await asyncio.gather(
            *(adapter.aclose() for adapter in self._adapters.values()),
            return_exceptions=True,
        )
        for name, result in zip(self._adapters, results):
            if isinstance(result, Exception):
                logger.error("Error closing %s adapter: %s", name, result)
