from __future__ import annotations

import logging
from typing import Protocol

from ..domain import KNOWN_QUOTES, CanonicalSymbol, split_on_quote
from ..errors import SymbolError

logger = logging.getLogger(__name__)

DEFAULT_QUOTE = "USDT"

BINANCE_QUOTES: tuple[str, ...] = ("USDT", "BUSD", "BTC", "ETH")
BYBIT_QUOTES: tuple[str, ...] = ("USDT", "USDC", "BTC", "ETH")
OKX_QUOTES: tuple[str, ...] = ("USDT", "USDC", "BTC", "ETH")


class SymbolNormalizer(Protocol):
    def normalize(self, symbol: CanonicalSymbol | str | None) -> str:
        ...

    def denormalize(self, provider_symbol: str | None) -> CanonicalSymbol:
        ...


def _strip_separators(value: str) -> str:
    return value.replace("/", "").replace("-", "").replace("_", "")


def _clean(symbol: CanonicalSymbol | str | None) -> str:
    if symbol is None:
        raise SymbolError("symbol must not be empty")
    raw = str(symbol).strip().upper()
    if not raw:
        raise SymbolError("symbol must not be empty")
    return raw


def _has_separator(raw: str) -> bool:
    return any(sep in raw for sep in ("/", "-", "_"))


class ConcatenatedSymbolNormalizer:
    """``BTC/USDT`` <-> ``BTCUSDT`` (Binance and Bybit spot style).

    ``default_quotes`` are the quote suffixes recognised in a bare string; a
    bare string without one gets ``DEFAULT_QUOTE`` appended.
    """

    def __init__(
        self,
        default_quotes: tuple[str, ...],
        *,
        default_quote: str = DEFAULT_QUOTE,
        known_quotes: tuple[str, ...] = KNOWN_QUOTES,
    ) -> None:
        self.default_quotes = default_quotes
        self.default_quote = default_quote
        self.known_quotes = tuple(dict.fromkeys(default_quotes + known_quotes))

    def normalize(self, symbol: CanonicalSymbol | str | None) -> str:
        if isinstance(symbol, CanonicalSymbol):
            return symbol.base + symbol.quote
        raw = _clean(symbol)
        if _has_separator(raw):
            normalized = _strip_separators(raw)
        elif split_on_quote(raw, self.default_quotes) is None:
            normalized = raw + self.default_quote
        else:
            normalized = raw
        if not normalized.isalnum():
            raise SymbolError(f"symbol '{symbol}' contains unsupported characters")
        logger.debug("Normalized symbol %s to %s", symbol, normalized)
        return normalized

    def denormalize(self, provider_symbol: str | None) -> CanonicalSymbol:
        raw = _strip_separators(_clean(provider_symbol))
        parts = split_on_quote(raw, self.known_quotes)
        if parts is None:
            raise SymbolError(f"cannot determine quote asset of '{raw}'")
        return CanonicalSymbol.of(*parts)


class DelimitedSymbolNormalizer:
    """``BTC/USDT`` <-> ``BTC-USDT`` (OKX style)."""

    def __init__(
        self,
        separator: str = "-",
        *,
        quotes: tuple[str, ...] = OKX_QUOTES,
        default_quote: str = DEFAULT_QUOTE,
    ) -> None:
        self.separator = separator
        self.quotes = quotes
        self.default_quote = default_quote

    def normalize(self, symbol: CanonicalSymbol | str | None) -> str:
        if isinstance(symbol, CanonicalSymbol):
            return f"{symbol.base}{self.separator}{symbol.quote}"
        raw = _clean(symbol)
        if _has_separator(raw):
            normalized = raw.replace("/", self.separator).replace("_", self.separator)
            if self.separator != "-":
                normalized = normalized.replace("-", self.separator)
        else:
            parts = split_on_quote(raw, self.quotes)
            if parts is None:
                normalized = f"{raw}{self.separator}{self.default_quote}"
            else:
                normalized = f"{parts[0]}{self.separator}{parts[1]}"
        logger.debug("Normalized symbol %s to %s", symbol, normalized)
        return normalized

    def denormalize(self, provider_symbol: str | None) -> CanonicalSymbol:
        raw = _clean(provider_symbol)
        parts = [part for part in raw.split(self.separator) if part]
        if len(parts) < 2:
            raise SymbolError(f"'{raw}' is not a '{self.separator}' separated pair")
        # Деривативы приходят как BTC-USDT-SWAP: берём только базу и котировку.
        return CanonicalSymbol.of(parts[0], parts[1])


__all__ = [
    "BINANCE_QUOTES",
    "BYBIT_QUOTES",
    "DEFAULT_QUOTE",
    "OKX_QUOTES",
    "ConcatenatedSymbolNormalizer",
    "DelimitedSymbolNormalizer",
    "SymbolNormalizer",
]
