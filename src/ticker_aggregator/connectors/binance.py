from __future__ import annotations

from decimal import Decimal
from typing import Any, List

from ..settings import settings
from .base import (
    ConnectorSpec,
    Instrument,
    ParsedTicker,
    ms_to_datetime,
    require_fields,
    require_mapping,
    to_decimal,
)
from .normalization import BINANCE_QUOTES, ConcatenatedSymbolNormalizer

BINANCE_BASE_URL = "https://api.binance.com"
BINANCE_TICKER = "/api/v3/ticker/24hr"
BINANCE_PING = "/api/v3/ping"
BINANCE_EXCHANGE_INFO = "/api/v3/exchangeInfo"
BINANCE_REQUESTS_PER_MINUTE = 1200
BINANCE_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Cache-Control": "no-cache",
}


def _ticker_params(provider_symbol: str) -> dict[str, str]:
    return {"symbol": provider_symbol}


def parse_binance_ticker(payload: Any) -> ParsedTicker:
    """Parse ``/api/v3/ticker/24hr`` (flat object, decimal strings)."""

    data = require_mapping(payload, "Binance ticker")
    require_fields(data, "symbol", "lastPrice")
    return ParsedTicker(
        provider_symbol=str(data["symbol"]).upper(),
        price=to_decimal(data, "lastPrice", required=True),
        volume=to_decimal(data, "volume") or Decimal(0),
        change=to_decimal(data, "priceChangePercent") or Decimal(0),
        bid=to_decimal(data, "bidPrice"),
        ask=to_decimal(data, "askPrice"),
        source_ts=ms_to_datetime(data.get("closeTime")),
    )


def parse_binance_instruments(payload: Any) -> List[Instrument]:
    data = require_mapping(payload, "Binance exchange info")
    out: List[Instrument] = []
    for item in data.get("symbols") or []:
        if not isinstance(item, dict):
            continue
        if item.get("status") != "TRADING":
            continue
        symbol = item.get("symbol")
        if not symbol:
            continue
        out.append(
            Instrument(
                provider_symbol=str(symbol).upper(),
                base_asset=item.get("baseAsset"),
                quote_asset=item.get("quoteAsset"),
            )
        )
    return out


connector = ConnectorSpec(
    name="BINANCE",
    base_url=BINANCE_BASE_URL,
    requests_per_minute=settings.rate_limit_for("binance", BINANCE_REQUESTS_PER_MINUTE),
    normalizer=ConcatenatedSymbolNormalizer(BINANCE_QUOTES),
    ticker_path=BINANCE_TICKER,
    ticker_params=_ticker_params,
    parse_ticker=parse_binance_ticker,
    health_path=BINANCE_PING,
    instruments_path=BINANCE_EXCHANGE_INFO,
    parse_instruments=parse_binance_instruments,
    headers=BINANCE_HEADERS,
)
