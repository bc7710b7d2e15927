"""Sina Finance fund adapter — daily NAV history."""

from datetime import datetime, timezone

from wolfquant.adapters.base import FundNavAdapter
from wolfquant.market.models import Candle, Product, Ticker, to_utc

_BASE_URL = "https://stock.finance.sina.com.cn/fundInfo"

_PRODUCTS = [
    ("000001", "华夏成长混合"),
    ("000002", "华夏优势增长混合"),
]


class SinaFundAdapter(FundNavAdapter):
    """Fund source backed by ``stock.finance.sina.com.cn``."""

    name = "sina"

    def __init__(self, base_url: str = _BASE_URL, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout)

    async def check_connection(self) -> bool:
        return await self._ping("")

    async def get_products(self) -> list[Product]:
        return [
            Product(symbol=code, name=name, asset_type=self.asset_type, source=self.name)
            for code, name in _PRODUCTS
        ]

    async def get_ticker(self, symbol: str) -> Ticker:
        payload = await self._get_json("/api/fund/get_nav", params={"symbol": symbol})
        try:
            price = float(payload["data"]["nav"])
        except (KeyError, TypeError, ValueError) as exc:
            raise self._bad_payload("ticker", exc) from exc
        return Ticker(symbol=symbol, price=price, timestamp=datetime.now(timezone.utc))

    async def get_candles(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> list[Candle]:
        start, end = to_utc(start), to_utc(end)
        params = {
            "symbol": symbol,
            "start_date": start.strftime("%Y-%m-%d"),
            "end_date": end.strftime("%Y-%m-%d"),
        }
        payload = await self._get_json("/api/fund/history_nav", params=params)
        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise self._bad_payload("NAV history")
        return self._nav_candles(rows, "date", "nav", start, end)
