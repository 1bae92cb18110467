from __future__ import annotations


class TickerAggregatorError(Exception):
    """Base class for every error raised by :mod:`ticker_aggregator`."""


class SymbolError(TickerAggregatorError, ValueError):
    """Symbol input that cannot be mapped to or from an exchange format."""


class AdapterError(TickerAggregatorError):
    """Failure inside a single exchange adapter.

    Never escapes :class:`~ticker_aggregator.exchanges.adapter.ExchangeAdapter`;
    it is turned into an ``ERROR`` ticker at the adapter boundary.
    """


class PayloadError(AdapterError):
    """Response body is malformed or misses required fields."""


class ProviderError(AdapterError):
    """Exchange answered with a business error inside its envelope."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message or "Unknown error"
        super().__init__(f"provider error {code}: {self.message}")


class ExchangeNotConfiguredError(TickerAggregatorError, KeyError):
    """Requested exchange has no configured adapter."""

    def __init__(self, exchange: str) -> None:
        self.exchange = exchange
        super().__init__(exchange)

    def __str__(self) -> str:
        return f"exchange '{self.exchange}' is not configured"


class NoAdaptersConfiguredError(TickerAggregatorError, RuntimeError):
    """Aggregation was requested but no exchange adapters are registered."""
