from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Mapping

from ..errors import PayloadError, ProviderError
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
from .normalization import BYBIT_QUOTES, ConcatenatedSymbolNormalizer

BYBIT_BASE_URL = "https://api.bybit.com"
BYBIT_TICKERS = "/v5/market/tickers"
BYBIT_TIME = "/v5/market/time"
BYBIT_INSTRUMENTS = "/v5/market/instruments-info"
BYBIT_REQUESTS_PER_MINUTE = 120


def _ticker_params(provider_symbol: str) -> dict[str, str]:
    return {"category": "spot", "symbol": provider_symbol}


def _result(payload: Any, what: str) -> tuple[Mapping[str, Any], Mapping[str, Any]]:
    envelope = require_mapping(payload, what)
    ret_code = envelope.get("retCode")
    if ret_code is None:
        raise PayloadError(f"{what}: envelope has no 'retCode'")
    if str(ret_code) != "0":
        raise ProviderError(str(ret_code), str(envelope.get("retMsg") or ""))
    result = envelope.get("result")
    if not isinstance(result, Mapping):
        raise PayloadError(f"{what}: missing result object")
    return envelope, result


def parse_bybit_ticker(payload: Any) -> ParsedTicker:
    envelope, result = _result(payload, "Bybit ticker")
    items = result.get("list")
    if not isinstance(items, list) or not items:
        raise PayloadError("Bybit ticker: empty result list")
    entry = items[0]
    if not isinstance(entry, Mapping):
        raise PayloadError("Bybit ticker: list entry is not an object")
    require_fields(entry, "symbol", "lastPrice")
    # price24hPcnt приходит долей (0.0123), а не процентами
    change = to_decimal(entry, "price24hPcnt") or Decimal(0)
    return ParsedTicker(
        provider_symbol=str(entry["symbol"]).upper(),
        price=to_decimal(entry, "lastPrice", required=True),
        volume=to_decimal(entry, "volume24h") or Decimal(0),
        change=change * 100,
        bid=to_decimal(entry, "bid1Price"),
        ask=to_decimal(entry, "ask1Price"),
        source_ts=ms_to_datetime(envelope.get("time")),
    )


def parse_bybit_instruments(payload: Any) -> List[Instrument]:
    _envelope, result = _result(payload, "Bybit instruments")
    out: List[Instrument] = []
    for item in result.get("list") or []:
        if not isinstance(item, dict):
            continue
        if str(item.get("status") or "").lower() != "trading":
            continue
        symbol = item.get("symbol")
        if not symbol:
            continue
        out.append(
            Instrument(
                provider_symbol=str(symbol).upper(),
                base_asset=item.get("baseCoin"),
                quote_asset=item.get("quoteCoin"),
            )
        )
    return out


def parse_bybit_health(payload: Any) -> bool:
    _result(payload, "Bybit server time")
    return True


connector = ConnectorSpec(
    name="BYBIT",
    base_url=BYBIT_BASE_URL,
    requests_per_minute=settings.rate_limit_for("bybit", BYBIT_REQUESTS_PER_MINUTE),
    normalizer=ConcatenatedSymbolNormalizer(BYBIT_QUOTES),
    ticker_path=BYBIT_TICKERS,
    ticker_params=_ticker_params,
    parse_ticker=parse_bybit_ticker,
    health_path=BYBIT_TIME,
    instruments_path=BYBIT_INSTRUMENTS,
    instruments_params={"category": "spot"},
    parse_instruments=parse_bybit_instruments,
    parse_health=parse_bybit_health,
)
