import pytest

from ticker_aggregator.connectors.base import ConnectorSpec
from ticker_aggregator.connectors.loader import load_connectors
from ticker_aggregator.errors import ExchangeNotConfiguredError, NoAdaptersConfiguredError
from ticker_aggregator.exchanges.adapter import ExchangeAdapter
from ticker_aggregator.service import TickerAggregator
from ticker_aggregator.settings import Settings


def test_load_connectors_in_order():
    specs = load_connectors(["okx", "binance", "OKX", ""])
    assert [spec.name for spec in specs] == ["OKX", "BINANCE"]
    assert all(isinstance(spec, ConnectorSpec) for spec in specs)
    assert specs[1].requests_per_minute > 0


def test_load_connectors_unknown_exchange():
    with pytest.raises(ExchangeNotConfiguredError):
        load_connectors(["kraken"])


def test_load_connectors_rejects_non_connector_module():
    with pytest.raises(RuntimeError):
        load_connectors(["normalization"])


def test_load_connectors_requires_one():
    with pytest.raises(NoAdaptersConfiguredError):
        load_connectors([])


@pytest.mark.asyncio
async def test_from_settings_builds_adapters():
    service = TickerAggregator.from_settings(Settings(enabled_exchanges=["binance", "bybit"]))
    try:
        assert service.exchanges == ("BINANCE", "BYBIT")
        assert isinstance(service.get_adapter("bybit"), ExchangeAdapter)
    finally:
        await service.aclose()
