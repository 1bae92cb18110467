from __future__ import annotations

import logging
from typing import List

from fastapi import FastAPI, HTTPException, Query

from .errors import ExchangeNotConfiguredError, NoAdaptersConfiguredError
from .logging_setup import configure_logging
from .service import TickerAggregator
from .settings import settings

app = FastAPI(title="Ticker Aggregator API", version="1.0.0")

SERVICE: TickerAggregator = TickerAggregator.from_settings(settings)

logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup():
    configure_logging(settings.log_level)
    try:
        report = await SERVICE.initialize()
        logger.info("Exchange status on startup: %s", report.status.value)
    except Exception:  # noqa: BLE001 - сервис поднимается даже без бирж
        logger.exception("Initial exchange health check failed")


@app.on_event("shutdown")
async def shutdown():
    await SERVICE.aclose()


def _not_configured(exc: ExchangeNotConfiguredError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "exchanges": list(SERVICE.exchanges),
        "available": SERVICE.available_exchanges(),
        "tracked_symbols": settings.tracked_symbols,
    }


@app.get("/api/exchanges/status")
async def exchanges_status():
    report = await SERVICE.exchange_status()
    return report.model_dump(mode="json")


@app.get("/api/exchanges/rate-limits")
async def exchanges_rate_limits():
    payload = {}
    for name, info in SERVICE.rate_limit_info().items():
        entry = info.model_dump(mode="json")
        entry["usage_pct"] = round(info.usage_pct, 2)
        entry["level"] = info.level.value
        payload[name] = entry
    return payload


@app.get("/api/exchanges/{exchange}/symbols")
async def exchange_symbols(exchange: str):
    try:
        symbols = await SERVICE.supported_symbols(exchange)
    except ExchangeNotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return {"exchange": exchange.upper(), "symbols": symbols}


@app.post("/api/exchanges/{exchange}/restart")
async def exchange_restart(exchange: str):
    try:
        healthy = await SERVICE.restart_adapter(exchange)
    except ExchangeNotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return {"exchange": exchange.upper(), "healthy": healthy}


@app.get("/api/exchanges/{exchange}/tickers/{symbol}")
async def exchange_ticker(exchange: str, symbol: str):
    try:
        ticker = await SERVICE.fetch_ticker(exchange, symbol)
    except ExchangeNotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return ticker.model_dump(mode="json")


@app.get("/api/tickers")
async def tracked_tickers(symbols: List[str] | None = Query(default=None)):
    try:
        result = await SERVICE.fetch_tracked(symbols or None)
    except NoAdaptersConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {
        symbol: {name: ticker.model_dump(mode="json") for name, ticker in per_exchange.items()}
        for symbol, per_exchange in result.items()
    }


@app.get("/api/tickers/{symbol}")
async def ticker_all_exchanges(symbol: str):
    try:
        tickers = await SERVICE.fetch_from_all_exchanges(symbol)
    except NoAdaptersConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {name: ticker.model_dump(mode="json") for name, ticker in tickers.items()}


@app.get("/api/tickers/{symbol}/best")
async def ticker_best(symbol: str):
    try:
        best = await SERVICE.best_price(symbol)
    except NoAdaptersConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not best.found:
        raise HTTPException(
            status_code=404,
            detail={"message": f"no price found for {best.symbol}", "errors": best.errors},
        )
    return best.model_dump(mode="json")
