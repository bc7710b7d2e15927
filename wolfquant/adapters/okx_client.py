"""OKX v5 REST adapter (public market-data endpoints only)."""

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

_BASE_URL = "https://www.okx.com"
_CANDLE_LIMIT = 100

# OKX spells hour-and-above bars in upper case.
_BAR_MAP: dict[str, str] = {
    "1m": "1m",
    "5m": "5m",
    "15m": "15m",
    "30m": "30m",
    "1h": "1H",
    "4h": "4H",
    "1d": "1D",
    "1w": "1W",
}


class OkxAdapter(HttpAdapter):
    """Crypto source backed by ``www.okx.com``."""

    name = "okx"
    asset_type = "crypto"

    def __init__(self, base_url: str = _BASE_URL, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout)

    async def _get_data(self, path: str, params: dict | None = None) -> list:
        """GET an OKX envelope and return its ``data`` list."""
        payload = await self._get_json(path, params=params)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise self._bad_payload(path)
        if str(payload.get("code", "0")) != "0":
            raise AdapterError(f"okx: {path} error {payload.get('code')}: {payload.get('msg', '')}")
        return payload["data"]

    async def check_connection(self) -> bool:
        return await self._ping("/api/v5/public/time")

    async def get_products(self) -> list[Product]:
        data = await self._get_data("/api/v5/public/instruments", {"instType": "SPOT"})
        try:
            return [
                Product(
                    symbol=inst["instId"],
                    name=f"{inst['baseCcy']}/{inst['quoteCcy']}",
                    asset_type=self.asset_type,
                    source=self.name,
                )
                for inst in data
            ]
        except (KeyError, TypeError) as exc:
            raise self._bad_payload("instruments", exc) from exc

    async def get_ticker(self, symbol: str) -> Ticker:
        data = await self._get_data("/api/v5/market/ticker", {"instId": symbol})
        if not data:
            raise AdapterError(f"okx: no ticker for {symbol}")
        t = data[0]
        try:
            return Ticker(
                symbol=symbol,
                price=float(t["last"]),
                timestamp=from_timestamp(int(t["ts"]) / 1000),
                volume=float(t["vol24h"]),
                high_24h=float(t["high24h"]),
                low_24h=float(t["low24h"]),
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
        """Download bars for ``[start, end)``.

        OKX pages backwards: ``after`` bounds the newest bar and ``before``
        the oldest, and each page holds the newest ``limit`` rows between
        them.  Full pages move ``after`` to the oldest returned bar until
        the range start is reached.  Rows are re-sorted oldest-first.
        """
        start, end = to_utc(start), to_utc(end)
        start_ms = int(start.timestamp() * 1000)
        cursor = int(end.timestamp() * 1000)
        candles: list[Candle] = []
        while cursor > start_ms:
            params = {
                "instId": symbol,
                "bar": _BAR_MAP[normalize_interval(interval)],
                "before": start_ms - 1,
                "after": cursor,
                "limit": _CANDLE_LIMIT,
            }
            rows = await self._get_data("/api/v5/market/history-candles", params)
            page = self._parse_rows(rows)
            candles.extend(page)
            if len(rows) < _CANDLE_LIMIT or not page:
                break
            oldest = min(int(c.timestamp.timestamp() * 1000) for c in page)
            if oldest >= cursor:
                raise AdapterError(f"okx: candles page for {symbol} did not move before {cursor}")
            cursor = oldest
        return self._in_range(self._dedupe(candles), start, end)

    def _parse_rows(self, rows: list) -> list[Candle]:
        candles: list[Candle] = []
        try:
            for row in rows:
                if len(row) < 6:
                    continue
                candles.append(
                    Candle(
                        timestamp=from_timestamp(int(row[0]) / 1000),
                        open=float(row[1]),
                        high=float(row[2]),
                        low=float(row[3]),
                        close=float(row[4]),
                        volume=float(row[5]),
                    )
                )
        except (TypeError, ValueError) as exc:
            raise self._bad_payload("candles", exc) from exc
        return candles
