from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import SymbolError

# Биржа задаётся строкой в верхнем регистре ("BINANCE", "OKX"), это ключ во всех словарях.
ExchangeName = str

KNOWN_QUOTES: tuple[str, ...] = (
    "FDUSD",
    "USDT",
    "USDC",
    "BUSD",
    "TUSD",
    "BTC",
    "ETH",
    "BNB",
    "EUR",
    "TRY",
)

_SEPARATORS: tuple[str, ...] = ("/", "-", "_")


def utcnow() -> datetime:
    return datetime.now(UTC)


def split_on_quote(raw: str, quotes: tuple[str, ...] = KNOWN_QUOTES) -> tuple[str, str] | None:
    """Split a separator-less pair like ``BTCUSDT`` on its longest known quote."""

    for quote in sorted(quotes, key=len, reverse=True):
        if raw.endswith(quote) and len(raw) > len(quote):
            return raw[: -len(quote)], quote
    return None


class CanonicalSymbol(BaseModel):
    """Exchange-agnostic trading pair, displayed as ``BASE/QUOTE``."""

    model_config = ConfigDict(frozen=True)

    base: str
    quote: str

    @field_validator("base", "quote", mode="before")
    @classmethod
    def _upper(cls, value: object) -> str:
        token = str(value or "").strip().upper()
        if not token:
            raise ValueError("asset must not be empty")
        if not token.isalnum():
            raise ValueError(f"asset '{token}' must be alphanumeric")
        return token

    @classmethod
    def of(cls, base: str, quote: str) -> "CanonicalSymbol":
        try:
            return cls(base=base, quote=quote)
        except ValidationError as exc:
            raise SymbolError(f"invalid symbol {base!r}/{quote!r}") from exc

    @classmethod
    def parse(cls, value: "CanonicalSymbol | str | None") -> "CanonicalSymbol":
        """Parse ``BTC/USDT``, ``btc-usdt``, ``BTC_USDT`` or ``BTCUSDT``."""

        if isinstance(value, CanonicalSymbol):
            return value
        if value is None:
            raise SymbolError("symbol must not be empty")
        raw = str(value).strip().upper()
        if not raw:
            raise SymbolError("symbol must not be empty")
        for sep in _SEPARATORS:
            if sep in raw:
                base, _, quote = raw.partition(sep)
                return cls.of(base, quote)
        parts = split_on_quote(raw)
        if parts is None:
            raise SymbolError(f"cannot determine quote asset of '{raw}'")
        return cls.of(*parts)

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"


class TickerStatus(str, Enum):
    ACTIVE = "ACTIVE"
    STALE = "STALE"
    ERROR = "ERROR"


class Ticker(BaseModel):
    symbol: str
    exchange: ExchangeName
    price: Decimal = Field(ge=0)
    bid: Decimal | None = Field(default=None, ge=0)
    ask: Decimal | None = Field(default=None, ge=0)
    volume: Decimal = Field(default=Decimal(0), ge=0)
    change: Decimal = Decimal(0)
    timestamp: datetime = Field(default_factory=utcnow)
    source_ts: datetime | None = None
    status: TickerStatus = TickerStatus.ACTIVE
    error: str | None = None

    @model_validator(mode="after")
    def _check_status(self) -> "Ticker":
        if self.status is TickerStatus.ACTIVE and self.price <= 0:
            raise ValueError("active ticker must carry a positive price")
        if self.status is TickerStatus.ERROR and not self.error:
            raise ValueError("error ticker must carry an error message")
        return self

    @classmethod
    def failed(cls, symbol: object, exchange: ExchangeName, message: str) -> "Ticker":
        return cls(
            symbol=str(symbol) if symbol is not None else "",
            exchange=exchange,
            price=Decimal(0),
            status=TickerStatus.ERROR,
            error=message or "unknown error",
        )

    @property
    def ok(self) -> bool:
        return self.status is TickerStatus.ACTIVE

    @property
    def spread(self) -> Decimal | None:
        if self.bid is None or self.ask is None:
            return None
        return self.ask - self.bid


class RateLimitLevel(str, Enum):
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    EXCEEDED = "EXCEEDED"


class RateLimitInfo(BaseModel):
    requests_per_minute: int
    used: int
    remaining: int
    reset_at: datetime
    is_limited: bool

    @property
    def usage_pct(self) -> float:
        if self.requests_per_minute <= 0:
            return 100.0
        return self.used / self.requests_per_minute * 100

    @property
    def level(self) -> RateLimitLevel:
        if self.is_limited:
            return RateLimitLevel.EXCEEDED
        pct = self.usage_pct
        if pct >= 90:
            return RateLimitLevel.CRITICAL
        if pct >= 70:
            return RateLimitLevel.WARNING
        return RateLimitLevel.NORMAL


class AdapterHealth(BaseModel):
    exchange: ExchangeName
    healthy: bool
    checked_at: datetime = Field(default_factory=utcnow)
    latency_ms: float | None = None
