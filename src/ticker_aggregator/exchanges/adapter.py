from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, List, Sequence

import httpx
from pydantic import ValidationError

from ..connectors.base import ConnectorSpec, ParsedTicker
from ..domain import AdapterHealth, CanonicalSymbol, ExchangeName, RateLimitInfo, Ticker, TickerStatus, utcnow
from ..errors import AdapterError, PayloadError, ProviderError, SymbolError
from ..settings import settings
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def _get_client_params(spec: ConnectorSpec, timeout: float) -> dict[str, Any]:
    params: dict[str, Any] = {
        "base_url": spec.base_url,
        "timeout": httpx.Timeout(timeout, connect=min(timeout, 5.0)),
    }
    if spec.headers:
        params["headers"] = dict(spec.headers)
    if settings.httpx_proxy:
        params["proxy"] = settings.httpx_proxy
    return params


def _display_symbol(symbol: CanonicalSymbol | str | None) -> str:
    if symbol is None:
        return ""
    return str(symbol).strip().upper()


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for key in ("msg", "retMsg", "message"):
        value = body.get(key)
        if value:
            return str(value)
    return None


class ExchangeAdapter:
    """REST ticker adapter for one exchange.

    Behaviour that differs between exchanges lives in the :class:`ConnectorSpec`
    (endpoints, symbol normalizer, payload parsers); the adapter adds the rate
    limiter, health bookkeeping and the error boundary.  No adapter-level
    exception escapes the public coroutines: tickers fail as ``ERROR`` tickers,
    health checks as ``False`` and symbol listings as an empty list.
    """

    def __init__(
        self,
        spec: ConnectorSpec,
        *,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        timeout: float | None = None,
        stale_after: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.spec = spec
        self._timeout = timeout if timeout is not None else settings.http_timeout
        self._owns_client = client is None
        self._client = client or self._new_client()
        self._limiter = limiter or RateLimiter(spec.requests_per_minute, name=spec.name)
        self._stale_after = settings.stale_after if stale_after is None else stale_after
        self._concurrency = max(1, concurrency if concurrency is not None else settings.fetch_concurrency)
        self._health: AdapterHealth | None = None
        self._health_lock = asyncio.Lock()
        logger.info(
            "Initialized %s adapter with base URL %s, rate limit %d req/min",
            spec.name,
            spec.base_url,
            self._limiter.requests_per_minute,
        )

    @property
    def name(self) -> ExchangeName:
        return self.spec.name

    @property
    def health(self) -> AdapterHealth | None:
        return self._health

    def __repr__(self) -> str:
        return f"ExchangeAdapter({self.name!r})"

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(**_get_client_params(self.spec, self._timeout))

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        await self._limiter.acquire()
        logger.debug("GET %s%s params=%s", self.spec.base_url, path, params)
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise PayloadError("response body is not valid JSON") from exc

    def _failed(self, symbol: str, message: str) -> Ticker:
        logger.warning("Ticker %s on %s failed: %s", symbol, self.name, message)
        return Ticker.failed(symbol, self.name, message)

    def _build_ticker(self, symbol: str, parsed: ParsedTicker) -> Ticker:
        status = TickerStatus.ACTIVE
        now = utcnow()
        if (
            parsed.source_ts is not None
            and self._stale_after > 0
            and now - parsed.source_ts > timedelta(seconds=self._stale_after)
        ):
            status = TickerStatus.STALE
        try:
            return Ticker(
                symbol=symbol,
                exchange=self.name,
                price=parsed.price,
                bid=parsed.bid,
                ask=parsed.ask,
                volume=parsed.volume,
                change=parsed.change,
                timestamp=now,
                source_ts=parsed.source_ts,
                status=status,
            )
        except ValidationError as exc:
            raise PayloadError(f"ticker values rejected: {exc.errors()[0]['msg']}") from exc

    async def fetch_ticker(self, symbol: CanonicalSymbol | str | None) -> Ticker:
        display = _display_symbol(symbol)
        normalizer = self.spec.normalizer
        try:
            provider_symbol = normalizer.normalize(symbol)
            display = str(normalizer.denormalize(provider_symbol))
        except SymbolError as exc:
            return self._failed(display, f"invalid symbol: {exc}")

        logger.debug("Fetching ticker for normalized symbol %s on %s", provider_symbol, self.name)
        try:
            payload = await self._get_json(self.spec.ticker_path, self.spec.ticker_params(provider_symbol))
            parsed = self.spec.parse_ticker(payload)
            if parsed.provider_symbol != provider_symbol:
                raise PayloadError(
                    f"response is for '{parsed.provider_symbol}', expected '{provider_symbol}'"
                )
            return self._build_ticker(display, parsed)
        except ProviderError as exc:
            return self._failed(display, f"{self.name} API error {exc.code}: {exc.message}")
        except PayloadError as exc:
            return self._failed(display, f"failed to parse {self.name} ticker response: {exc}")
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _error_detail(exc.response)
            message = f"{self.name} returned HTTP {status_code}"
            if detail:
                message = f"{message}: {detail}"
            return self._failed(display, message)
        except httpx.HTTPError as exc:
            return self._failed(display, f"request to {self.name} failed: {exc.__class__.__name__}: {exc}")
        except Exception as exc:  # noqa: BLE001 - ошибка одного адаптера не должна выходить наружу
            logger.exception("Unexpected failure fetching %s from %s", display, self.name)
            return Ticker.failed(display, self.name, f"unexpected error: {exc.__class__.__name__}: {exc}")

    async def fetch_tickers(self, symbols: Sequence[CanonicalSymbol | str]) -> List[Ticker]:
        """Fetch several symbols concurrently; the result follows input order."""

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(symbol: CanonicalSymbol | str) -> Ticker:
            async with semaphore:
                return await self.fetch_ticker(symbol)

        tickers = await asyncio.gather(*(_one(symbol) for symbol in symbols))
        logger.debug("Fetched %d tickers from %s", len(tickers), self.name)
        return list(tickers)

    async def is_healthy(self) -> bool:
        started = time.perf_counter()
        latency_ms: float | None = None
        try:
            payload = await self._get_json(self.spec.health_path)
            healthy = bool(self.spec.parse_health(payload))
            latency_ms = (time.perf_counter() - started) * 1000
        except asyncio.CancelledError:
            self._health = AdapterHealth(exchange=self.name, healthy=False)
            raise
        except (httpx.HTTPError, AdapterError) as exc:
            logger.warning("Health check for %s failed: %s", self.name, exc)
            healthy = False
        except Exception:  # noqa: BLE001 - health probe never raises
            logger.exception("Unexpected failure during %s health check", self.name)
            healthy = False
        async with self._health_lock:
            self._health = AdapterHealth(exchange=self.name, healthy=healthy, latency_ms=latency_ms)
        return healthy

    async def initialize(self) -> bool:
        healthy = await self.is_healthy()
        if healthy:
            logger.info("%s adapter initialized successfully", self.name)
        else:
            logger.warning("%s adapter initialization failed - API not responding", self.name)
        return healthy

    def rate_limit_info(self) -> RateLimitInfo:
        return self._limiter.info()

    async def supported_symbols(self) -> List[str]:
        """Tradable instruments quoted in the adapter's quote currency, as ``BASE/QUOTE``."""

        quote = self.spec.quote_currency.upper()
        params = dict(self.spec.instruments_params) if self.spec.instruments_params else None
        try:
            payload = await self._get_json(self.spec.instruments_path, params)
            instruments = self.spec.parse_instruments(payload)
        except (httpx.HTTPError, AdapterError) as exc:
            logger.error("Failed to fetch symbols from %s: %s", self.name, exc)
            return []
        except Exception:  # noqa: BLE001 - пустой список вместо исключения
            logger.exception("Unexpected failure fetching symbols from %s", self.name)
            return []

        out: set[str] = set()
        for instrument in instruments:
            if instrument.quote_asset and str(instrument.quote_asset).upper() != quote:
                continue
            try:
                canonical = self.spec.normalizer.denormalize(instrument.provider_symbol)
            except SymbolError:
                continue
            if canonical.quote != quote:
                continue
            out.add(str(canonical))
        return sorted(out)

    async def aclose(self) -> None:
        logger.info("Disconnecting from %s", self.name)
        if self._owns_client:
            await self._client.aclose()

    async def reconnect(self) -> bool:
        """Drop the HTTP client, open a fresh one and run the health check again."""

        await self.aclose()
        if self._owns_client:
            self._client = self._new_client()
        self._health = None
        return await self.initialize()
