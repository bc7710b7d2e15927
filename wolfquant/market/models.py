"""Market data models — normalized candles, tickers, and products."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.

    ``(symbol, source, interval, timestamp)`` is the natural key.  Adapters
    return bars with only the price fields set; the importer stamps the
    identity fields before persisting.
    """

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    symbol: str = ""
    source: str = ""
    interval: str = "1d"
    asset_type: str = ""


@dataclass(frozen=True)
class Ticker:
    """A last-price snapshot."""

    symbol: str
    price: float
    timestamp: datetime
    volume: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None


@dataclass(frozen=True)
class Product:
    """A tradable instrument offered by a source."""

    symbol: str
    name: str
    asset_type: str
    source: str


# ── Intervals ────────────────────────────────────────────────────────────

CANDLES_PER_DAY: dict[str, float] = {
    "1m": 1440,
    "5m": 288,
    "15m": 96,
    "30m": 48,
    "1h": 24,
    "4h": 6,
    "1d": 1,
    "1w": 1 / 7,
}

DEFAULT_INTERVAL = "1d"


def normalize_interval(interval: str) -> str:
    """Map *interval* onto the canonical set; unknown values become ``1d``."""
    key = (interval or "").strip().lower()
    return key if key in CANDLES_PER_DAY else DEFAULT_INTERVAL


def to_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive input is taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_timestamp(seconds: float) -> datetime:
    """Unix seconds → aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
