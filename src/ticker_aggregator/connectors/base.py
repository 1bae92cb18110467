from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Protocol, Sequence

from ..domain import ExchangeName
from ..errors import PayloadError
from .normalization import SymbolNormalizer


@dataclass(frozen=True, slots=True)
class ParsedTicker:
    """Provider ticker fields after validation, before they become a Ticker."""

    provider_symbol: str
    price: Decimal
    volume: Decimal = Decimal(0)
    change: Decimal = Decimal(0)
    bid: Decimal | None = None
    ask: Decimal | None = None
    source_ts: datetime | None = None


@dataclass(frozen=True, slots=True)
class Instrument:
    """Tradable instrument as listed by the provider."""

    provider_symbol: str
    base_asset: str | None = None
    quote_asset: str | None = None


class TickerParser(Protocol):
    def __call__(self, payload: Any) -> ParsedTicker:
        ...


class InstrumentParser(Protocol):
    def __call__(self, payload: Any) -> Sequence[Instrument]:
        ...


class HealthParser(Protocol):
    def __call__(self, payload: Any) -> bool:
        ...


def _always_healthy(payload: Any) -> bool:
    return True


@dataclass(frozen=True)
class ConnectorSpec:
    """Описание REST-коннектора биржи: эндпоинты, лимиты и парсеры."""

    name: ExchangeName
    base_url: str
    requests_per_minute: int
    normalizer: SymbolNormalizer
    ticker_path: str
    ticker_params: Callable[[str], dict[str, str]]
    parse_ticker: TickerParser
    health_path: str
    instruments_path: str
    parse_instruments: InstrumentParser
    instruments_params: Mapping[str, str] | None = None
    parse_health: HealthParser = _always_healthy
    quote_currency: str = "USDT"
    headers: Mapping[str, str] = field(default_factory=dict)


def to_decimal(payload: Mapping[str, Any], key: str, *, required: bool = False) -> Decimal | None:
    """Read a decimal string field; ``None`` when absent and not required."""

    raw = payload.get(key)
    if raw is None or raw == "":
        if required:
            raise PayloadError(f"missing required field '{key}'")
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError) as exc:
        raise PayloadError(f"field '{key}' is not a number: {raw!r}") from exc
    if not value.is_finite():
        raise PayloadError(f"field '{key}' is not finite: {raw!r}")
    return value


def ms_to_datetime(raw: Any) -> datetime | None:
    try:
        millis = int(raw)
    except (TypeError, ValueError):
        return None
    if millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=UTC)


def require_mapping(payload: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise PayloadError(f"{what} must be a JSON object, got {type(payload).__name__}")
    return payload


def require_fields(payload: Mapping[str, Any], *keys: str) -> None:
    missing = [key for key in keys if payload.get(key) in (None, "")]
    if missing:
        raise PayloadError(f"missing required fields: {', '.join(missing)}")


__all__ = [
    "ConnectorSpec",
    "HealthParser",
    "Instrument",
    "InstrumentParser",
    "ParsedTicker",
    "TickerParser",
    "ms_to_datetime",
    "require_fields",
    "require_mapping",
    "to_decimal",
]
