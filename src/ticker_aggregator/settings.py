from __future__ import annotations

import os
from functools import cached_property
from typing import Dict, List

from pydantic import BaseModel, Field


DEFAULT_ENABLED_EXCHANGES: tuple[str, ...] = (
    "binance",
    "okx",
    "bybit",
)

DEFAULT_TRACKED_SYMBOLS: tuple[str, ...] = (
    "BTC/USDT",
    "ETH/USDT",
    "SOL/USDT",
)


def _normalise_exchange(value: str) -> str:
    return value.strip().lower()


def _parse_enabled_exchanges(raw: str | None) -> List[str]:
    """Defaults plus extra names from ``ENABLED_EXCHANGES``; ``-name`` drops one."""

    tokens = [_normalise_exchange(item) for item in (raw or "").split(",")]
    excluded = {token[1:].strip() for token in tokens if token.startswith("-")}
    extra = [token for token in tokens if token and token[0] != "-" and token not in {"all", "*"}]
    ordered = dict.fromkeys([*DEFAULT_ENABLED_EXCHANGES, *extra])
    return [name for name in ordered if name not in excluded]


def _build_enabled_exchanges() -> List[str]:
    return _parse_enabled_exchanges(os.getenv("ENABLED_EXCHANGES"))


def _parse_tracked_symbols(raw: str | None) -> List[str]:
    if not raw:
        return list(DEFAULT_TRACKED_SYMBOLS)
    out: List[str] = []
    for item in raw.split(","):
        token = item.strip().upper()
        if token and token not in out:
            out.append(token)
    return out or list(DEFAULT_TRACKED_SYMBOLS)


def _parse_rate_limits(raw: str | None) -> Dict[str, int]:
    """Parse ``RATE_LIMITS`` of the form ``binance=600,okx=300``.

    Malformed entries are skipped; a ceiling must be a positive integer.
    """

    limits: Dict[str, int] = {}
    if not raw:
        return limits
    for item in raw.split(","):
        name, sep, value = item.partition("=")
        if not sep:
            continue
        exchange = _normalise_exchange(name)
        try:
            ceiling = int(value.strip())
        except ValueError:
            continue
        if exchange and ceiling > 0:
            limits[exchange] = ceiling
    return limits


class Settings(BaseModel):
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    enabled_exchanges: list[str] = Field(default_factory=_build_enabled_exchanges)
    tracked_symbols: list[str] = Field(
        default_factory=lambda: _parse_tracked_symbols(os.getenv("TRACKED_SYMBOLS"))
    )
    rate_limits: Dict[str, int] = Field(
        default_factory=lambda: _parse_rate_limits(os.getenv("RATE_LIMITS"))
    )
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))
    aggregate_timeout: float = float(os.getenv("AGGREGATE_TIMEOUT", "10"))
    batch_timeout: float = float(os.getenv("BATCH_TIMEOUT", "30"))
    stale_after: float = float(os.getenv("STALE_AFTER", "120"))
    fetch_concurrency: int = int(os.getenv("FETCH_CONCURRENCY", "5"))
    http_proxy: str | None = os.getenv("HTTP_PROXY")
    https_proxy: str | None = os.getenv("HTTPS_PROXY")

    @cached_property
    def httpx_proxy(self) -> str | None:
        return self.https_proxy or self.http_proxy or None

    def rate_limit_for(self, exchange: str, default: int) -> int:
        return self.rate_limits.get(_normalise_exchange(exchange), default)


settings = Settings()
