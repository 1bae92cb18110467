from decimal import Decimal

import pytest

from ticker_aggregator.connectors.binance import parse_binance_instruments, parse_binance_ticker
from ticker_aggregator.connectors.bybit import parse_bybit_instruments, parse_bybit_ticker
from ticker_aggregator.connectors.okx import parse_okx_health, parse_okx_instruments, parse_okx_ticker
from ticker_aggregator.errors import PayloadError, ProviderError


def test_parse_binance_ticker():
    parsed = parse_binance_ticker(
        {"symbol": "BTCUSDT", "lastPrice": "45000.50", "volume": "1250.75", "priceChangePercent": "2.3"}
    )
    assert parsed.provider_symbol == "BTCUSDT"
    assert parsed.price == Decimal("45000.50")
    assert parsed.volume == Decimal("1250.75")
    assert parsed.change == Decimal("2.3")
    assert parsed.bid is None
    assert parsed.source_ts is None


def test_parse_binance_ticker_defaults_optional_fields():
    parsed = parse_binance_ticker({"symbol": "ETHUSDT", "lastPrice": "2500"})
    assert parsed.volume == 0
    assert parsed.change == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"lastPrice": "1"},
        {"symbol": "BTCUSDT"},
        {"symbol": "BTCUSDT", "lastPrice": "abc"},
        {"symbol": "BTCUSDT", "lastPrice": "NaN"},
        [],
        None,
    ],
)
def test_parse_binance_ticker_rejects_incomplete_payload(payload):
    with pytest.raises(PayloadError):
        parse_binance_ticker(payload)


def test_parse_binance_instruments_keeps_trading_only():
    instruments = parse_binance_instruments(
        {
            "symbols": [
                {"symbol": "BTCUSDT", "status": "TRADING", "quoteAsset": "USDT"},
                {"symbol": "LUNAUSDT", "status": "BREAK", "quoteAsset": "USDT"},
                {"symbol": "ETHBTC", "status": "TRADING", "quoteAsset": "BTC"},
                "junk",
            ]
        }
    )
    assert [item.provider_symbol for item in instruments] == ["BTCUSDT", "ETHBTC"]


def test_parse_okx_ticker():
    parsed = parse_okx_ticker(
        {
            "code": "0",
            "msg": "",
            "data": [
                {
                    "instId": "BTC-USDT",
                    "last": "45000",
                    "vol24h": "800.5",
                    "open24h": "40000",
                    "sodUtc0": "44000",
                    "bidPx": "44999.9",
                    "askPx": "45000.1",
                    "ts": "1700000000000",
                }
            ],
        }
    )
    assert parsed.provider_symbol == "BTC-USDT"
    assert parsed.price == Decimal("45000")
    assert parsed.volume == Decimal("800.5")
    assert parsed.change == Decimal("12.5")
    assert parsed.bid == Decimal("44999.9")
    assert parsed.source_ts is not None


def test_parse_okx_business_error():
    with pytest.raises(ProviderError) as info:
        parse_okx_ticker({"code": "1", "msg": "Invalid instrument"})
    assert info.value.code == "1"
    assert info.value.message == "Invalid instrument"


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "0", "msg": "", "data": []},
        {"code": "0", "msg": ""},
        {"msg": "no code"},
        {"code": "0", "data": [{"instId": "BTC-USDT"}]},
    ],
)
def test_parse_okx_malformed(payload):
    with pytest.raises(PayloadError):
        parse_okx_ticker(payload)


def test_parse_okx_instruments_live_only():
    instruments = parse_okx_instruments(
        {
            "code": "0",
            "data": [
                {"instId": "BTC-USDT", "state": "live"},
                {"instId": "ETH-USDT", "state": "suspend"},
                {"instId": "SOL-USDC", "state": "live"},
            ],
        }
    )
    assert [item.provider_symbol for item in instruments] == ["BTC-USDT", "SOL-USDC"]


def test_parse_okx_health():
    assert parse_okx_health({"code": "0", "data": []}) is True
    with pytest.raises(ProviderError):
        parse_okx_health({"code": "50001", "msg": "maintenance"})


def test_parse_bybit_ticker_converts_fraction_to_percent():
    parsed = parse_bybit_ticker(
        {
            "retCode": 0,
            "retMsg": "OK",
            "result": {
                "category": "spot",
                "list": [
                    {
                        "symbol": "BTCUSDT",
                        "lastPrice": "45000",
                        "bid1Price": "44999",
                        "ask1Price": "45001",
                        "volume24h": "321.5",
                        "price24hPcnt": "0.0123",
                    }
                ],
            },
            "time": 1700000000000,
        }
    )
    assert parsed.change == Decimal("1.23")
    assert parsed.volume == Decimal("321.5")
    assert parsed.ask == Decimal("45001")


def test_parse_bybit_business_error():
    with pytest.raises(ProviderError):
        parse_bybit_ticker({"retCode": 10001, "retMsg": "Not supported symbols", "result": {}})


def test_parse_bybit_instruments():
    instruments = parse_bybit_instruments(
        {
            "retCode": 0,
            "result": {
                "list": [
                    {"symbol": "BTCUSDT", "status": "Trading", "quoteCoin": "USDT"},
                    {"symbol": "OLDUSDT", "status": "Closed", "quoteCoin": "USDT"},
                ]
            },
        }
    )
    assert [item.provider_symbol for item in instruments] == ["BTCUSDT"]
