from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from ticker_aggregator import app as app_module
from ticker_aggregator.domain import Ticker
from ticker_aggregator.exchanges.rate_limit import RateLimiter
from ticker_aggregator.service import TickerAggregator


class _StubAdapter:
    def __init__(self, name, price=None, error=None, symbols=()):
        self._name = name
        self.price = price
        self.error = error
        self.symbols = list(symbols)
        self.health = None
        self.limiter = RateLimiter(10, name=name)

    @property
    def name(self):
        return self._name

    async def fetch_ticker(self, symbol):
        if self.error:
            return Ticker.failed("BTC/USDT", self.name, self.error)
        return Ticker(symbol="BTC/USDT", exchange=self.name, price=Decimal(self.price), volume=Decimal("1"))

    async def fetch_tickers(self, symbols):
        return [await self.fetch_ticker(symbol) for symbol in symbols]

    async def is_healthy(self):
        return self.error is None

    async def reconnect(self):
        return await self.is_healthy()

    def rate_limit_info(self):
        return self.limiter.info()

    async def supported_symbols(self):
        return list(self.symbols)

    async def aclose(self):
        return None


@pytest.fixture
def client(monkeypatch):
    service = TickerAggregator(
        [_StubAdapter("BINANCE", price="45000.5", symbols=["BTC/USDT"]), _StubAdapter("OKX", error="down")]
    )
    monkeypatch.setattr(app_module, "SERVICE", service)
    return TestClient(app_module.app)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["exchanges"] == ["BINANCE", "OKX"]


def test_tickers_for_all_exchanges(client):
    r = client.get("/api/tickers/BTC-USDT")
    assert r.status_code == 200
    body = r.json()
    assert body["BINANCE"]["status"] == "ACTIVE"
    assert Decimal(body["BINANCE"]["price"]) == Decimal("45000.5")
    assert body["OKX"]["status"] == "ERROR"
    assert body["OKX"]["error"] == "down"


def test_best_price(client):
    r = client.get("/api/tickers/BTCUSDT/best")
    assert r.status_code == 200
    assert r.json()["ticker"]["exchange"] == "BINANCE"


def test_best_price_not_found(monkeypatch):
    monkeypatch.setattr(app_module, "SERVICE", TickerAggregator([_StubAdapter("OKX", error="down")]))
    r = TestClient(app_module.app).get("/api/tickers/BTCUSDT/best")
    assert r.status_code == 404
    assert r.json()["detail"]["errors"] == {"OKX": "down"}


def test_no_adapters_is_service_unavailable(monkeypatch):
    monkeypatch.setattr(app_module, "SERVICE", TickerAggregator([]))
    r = TestClient(app_module.app).get("/api/tickers/BTCUSDT")
    assert r.status_code == 503


def test_exchange_status(client):
    r = client.get("/api/exchanges/status")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "PARTIAL"
    assert body["exchanges"] == {"BINANCE": True, "OKX": False}


def test_symbols_unknown_exchange(client):
    assert client.get("/api/exchanges/binance/symbols").json()["symbols"] == ["BTC/USDT"]
    r = client.get("/api/exchanges/UNKNOWN_EXCHANGE/symbols")
    assert r.status_code == 404


def test_rate_limits(client):
    body = client.get("/api/exchanges/rate-limits").json()
    assert body["BINANCE"]["requests_per_minute"] == 10
    assert body["BINANCE"]["level"] == "NORMAL"


def test_single_exchange_ticker(client):
    r = client.get("/api/exchanges/binance/tickers/BTC-USDT")
    assert r.status_code == 200
    assert r.json()["exchange"] == "BINANCE"
    assert client.get("/api/exchanges/kraken/tickers/BTC-USDT").status_code == 404


def test_tracked_tickers(client):
    r = client.get("/api/tickers", params={"symbols": ["BTC/USDT"]})
    assert r.status_code == 200
    assert set(r.json()["BTC/USDT"]) == {"BINANCE", "OKX"}


def test_restart_exchange(client):
    r = client.post("/api/exchanges/binance/restart")
    assert r.status_code == 200
    assert r.json() == {"exchange": "BINANCE", "healthy": True}

    r = client.post("/api/exchanges/okx/restart")
    assert r.json()["healthy"] is False

    r = client.get("/health")
    assert r.json()["available"] == ["BINANCE"]

    assert client.post("/api/exchanges/kraken/restart").status_code == 404
