import pytest

from ticker_aggregator.connectors.normalization import (
    BINANCE_QUOTES,
    BYBIT_QUOTES,
    ConcatenatedSymbolNormalizer,
    DelimitedSymbolNormalizer,
)
from ticker_aggregator.domain import CanonicalSymbol
from ticker_aggregator.errors import SymbolError


binance = ConcatenatedSymbolNormalizer(BINANCE_QUOTES)
bybit = ConcatenatedSymbolNormalizer(BYBIT_QUOTES)
okx = DelimitedSymbolNormalizer("-")


def test_btc_usdt_forms():
    assert binance.normalize("BTC/USDT") == "BTCUSDT"
    assert okx.normalize("BTC/USDT") == "BTC-USDT"


def test_binance_appends_default_quote():
    assert binance.normalize("btc") == "BTCUSDT"
    assert binance.normalize("sol") == "SOLUSDT"
    assert binance.normalize("ETHBTC") == "ETHBTC"
    assert binance.normalize("bnbbusd") == "BNBBUSD"
    assert binance.normalize("eth-usdt") == "ETHUSDT"
    assert binance.normalize("doge_usdt") == "DOGEUSDT"


def test_okx_normalize_rules():
    assert okx.normalize("eth") == "ETH-USDT"
    assert okx.normalize("ETHUSDT") == "ETH-USDT"
    assert okx.normalize("btc-usdt") == "BTC-USDT"
    assert okx.normalize("SOL_USDC") == "SOL-USDC"


@pytest.mark.parametrize("normalizer", [binance, bybit, okx])
@pytest.mark.parametrize("value", [None, "", "   "])
def test_empty_symbol_rejected(normalizer, value):
    with pytest.raises(SymbolError):
        normalizer.normalize(value)


@pytest.mark.parametrize("normalizer", [binance, bybit, okx])
@pytest.mark.parametrize(
    "symbol",
    [
        CanonicalSymbol.of("BTC", "USDT"),
        CanonicalSymbol.of("eth", "btc"),
        CanonicalSymbol.of("SOL", "USDC"),
        CanonicalSymbol.of("1000pepe", "usdt"),
    ],
)
def test_round_trip(normalizer, symbol):
    assert normalizer.denormalize(normalizer.normalize(symbol)) == symbol


def test_round_trip_from_raw_strings_is_case_and_separator_insensitive():
    for raw in ("btc/usdt", "BTC-USDT", "Btc_Usdt"):
        expected = CanonicalSymbol.parse(raw)
        assert binance.denormalize(binance.normalize(raw)) == expected
        assert okx.denormalize(okx.normalize(raw)) == expected


def test_okx_denormalize_ignores_contract_suffix():
    assert str(okx.denormalize("BTC-USDT-SWAP")) == "BTC/USDT"


def test_denormalize_rejects_unknown_layout():
    with pytest.raises(SymbolError):
        okx.denormalize("BTCUSDT")
    with pytest.raises(SymbolError):
        binance.denormalize("USDT")
