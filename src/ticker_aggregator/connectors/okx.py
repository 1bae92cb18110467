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
from .normalization import DelimitedSymbolNormalizer

OKX_BASE_URL = "https://www.okx.com"
OKX_TICKER = "/api/v5/market/ticker"
OKX_STATUS = "/api/v5/system/status"
OKX_INSTRUMENTS = "/api/v5/public/instruments"
# 20 запросов за 2 секунды ~ 600 в минуту
OKX_REQUESTS_PER_MINUTE = 600


def _ticker_params(provider_symbol: str) -> dict[str, str]:
    return {"instId": provider_symbol}


def _unwrap(payload: Any, what: str) -> list:
    """Validate the ``{code, msg, data}`` envelope and return ``data``.

    ``code`` other than ``"0"`` is a business error regardless of HTTP status.
    """

    envelope = require_mapping(payload, what)
    code = envelope.get("code")
    if code is None:
        raise PayloadError(f"{what}: envelope has no 'code'")
    if str(code) != "0":
        raise ProviderError(str(code), str(envelope.get("msg") or ""))
    data = envelope.get("data")
    if not isinstance(data, list):
        raise PayloadError(f"{what}: missing data array")
    return data


def _change_pct(last: Decimal, open_24h: Decimal | None) -> Decimal:
    if not open_24h:
        return Decimal(0)
    return (last - open_24h) / open_24h * 100


def parse_okx_ticker(payload: Any) -> ParsedTicker:
    data = _unwrap(payload, "OKX ticker")
    if not data:
        raise PayloadError("OKX ticker: empty data array")
    entry = data[0]
    if not isinstance(entry, Mapping):
        raise PayloadError("OKX ticker: data entry is not an object")
    require_fields(entry, "instId", "last")
    last = to_decimal(entry, "last", required=True)
    return ParsedTicker(
        provider_symbol=str(entry["instId"]).upper(),
        price=last,
        volume=to_decimal(entry, "vol24h") or Decimal(0),
        change=_change_pct(last, to_decimal(entry, "open24h")),
        bid=to_decimal(entry, "bidPx"),
        ask=to_decimal(entry, "askPx"),
        source_ts=ms_to_datetime(entry.get("ts")),
    )


def parse_okx_instruments(payload: Any) -> List[Instrument]:
    out: List[Instrument] = []
    for item in _unwrap(payload, "OKX instruments"):
        if not isinstance(item, dict):
            continue
        if item.get("state") != "live":
            continue
        inst_id = item.get("instId")
        if not inst_id:
            continue
        out.append(
            Instrument(
                provider_symbol=str(inst_id).upper(),
                base_asset=item.get("baseCcy"),
                quote_asset=item.get("quoteCcy"),
            )
        )
    return out


def parse_okx_health(payload: Any) -> bool:
    _unwrap(payload, "OKX system status")
    return True


connector = ConnectorSpec(
    name="OKX",
    base_url=OKX_BASE_URL,
    requests_per_minute=settings.rate_limit_for("okx", OKX_REQUESTS_PER_MINUTE),
    normalizer=DelimitedSymbolNormalizer("-"),
    ticker_path=OKX_TICKER,
    ticker_params=_ticker_params,
    parse_ticker=parse_okx_ticker,
    health_path=OKX_STATUS,
    instruments_path=OKX_INSTRUMENTS,
    instruments_params={"instType": "SPOT"},
    parse_instruments=parse_okx_instruments,
    parse_health=parse_okx_health,
)
