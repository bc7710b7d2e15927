"""Binance spot REST adapter (public market-data endpoints only)."""

from datetime import datetime

from wolfquant.adapters.base import HttpAdapter
from wolfquant.errors import AdapterError
from wolfquant.market.models import (
    Candle,
    Product,
    Ticker,
    from_timestamp,
    normalize_interval,
    to_utc,
)

_BASE_URL = "https://api.binance.com"
_KLINE_LIMIT = 1000


class BinanceAdapter(HttpAdapter):
    """Crypto source backed by ``api.binance.com``."""

    name = "binance"
    asset_type = "crypto"

    def __init__(self, base_url: str = _BASE_URL, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout)

    async def check_connection(self) -> bool:
        return await self._ping("/api/v3/ping")

    async def get_products(self) -> list[Product]:
        """Return every symbol currently in ``TRADING`` status."""
        data = await self._get_json("/api/v3/exchangeInfo")
        try:
            return [
                Product(
                    symbol=s["symbol"],
                    name=f"{s['baseAsset']}/{s['quoteAsset']}",
                    asset_type=self.asset_type,
                    source=self.name,
                )
                for s in data["symbols"]
                if s.get("status") == "TRADING"
            ]
        except (KeyError, TypeError) as exc:
            raise self._bad_payload("exchangeInfo", exc) from exc

    async def get_ticker(self, symbol: str) -> Ticker:
        """Last price plus 24h volume / high / low."""
        data = await self._get_json("/api/v3/ticker/24hr", params={"symbol": symbol})
        try:
            return Ticker(
                symbol=symbol,
                price=float(data["lastPrice"]),
                timestamp=from_timestamp(int(data["closeTime"]) / 1000),
                volume=float(data["volume"]),
                high_24h=float(data["highPrice"]),
                low_24h=float(data["lowPrice"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise self._bad_payload("ticker", exc) from exc

    async def get_candles(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> list[Candle]:
        """Download klines for ``[start, end)``.

        Binance returns at most 1000 rows per call, oldest first.  Full
        pages move ``startTime`` past the last open time until the range
        is covered.
        """
        start, end = to_utc(start), to_utc(end)
        end_ms = int(end.timestamp() * 1000)
        cursor = int(start.timestamp() * 1000)
        candles: list[Candle] = []
        while cursor < end_ms:
            params = {
                "symbol": symbol,
                "interval": normalize_interval(interval),
                "startTime": cursor,
                "endTime": end_ms,
                "limit": _KLINE_LIMIT,
            }
            rows = await self._get_json("/api/v3/klines", params=params)
            if not isinstance(rows, list):
                raise self._bad_payload("klines")
            page = self._parse_klines(rows)
            candles.extend(page)
            if len(rows) < _KLINE_LIMIT or not page:
                break
            last_open = max(int(c.timestamp.timestamp() * 1000) for c in page)
            if last_open < cursor:
                raise AdapterError(f"binance: klines page for {symbol} did not advance past {cursor}")
            cursor = last_open + 1
        return self._in_range(self._dedupe(candles), start, end)

    def _parse_klines(self, rows: list) -> list[Candle]:
        candles: list[Candle] = []
        try:
            for k in rows:
                if len(k) < 6:
                    continue
                candles.append(
                    Candle(
                        timestamp=from_timestamp(int(k[0]) / 1000),
                        open=float(k[1]),
                        high=float(k[2]),
                        low=float(k[3]),
                        close=float(k[4]),
                        volume=float(k[5]),
                    )
                )
        except (TypeError, ValueError) as exc:
            raise self._bad_payload("klines", exc) from exc
        return candles
