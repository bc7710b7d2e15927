"""Tiantian (East Money) fund adapter — daily NAV history and intraday estimates."""

import json
from datetime import datetime, timedelta, timezone

from wolfquant.adapters.base import FundNavAdapter
from wolfquant.market.models import Candle, Product, Ticker, to_utc

_BASE_URL = "https://fundgz.1234567.com.cn"
_HISTORY_URL = "https://api.fund.eastmoney.com"
_HISTORY_PAGE_SIZE = 100
_CST = timezone(timedelta(hours=8))

_PRODUCTS = [
    ("000001", "华夏成长混合"),
    ("000002", "华夏优势增长混合"),
]


class TiantianFundAdapter(FundNavAdapter):
    """Fund source backed by ``fundgz.1234567.com.cn`` and ``api.fund.eastmoney.com``."""

    name = "tiantian"

    def __init__(
        self,
        base_url: str = _BASE_URL,
        history_url: str = _HISTORY_URL,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, timeout)
        self._history_url = history_url.rstrip("/")

    async def check_connection(self) -> bool:
        return await self._ping("/js/000001.js")

    async def get_products(self) -> list[Product]:
        # No public catalogue endpoint; serve the curated list.
        return [
            Product(symbol=code, name=name, asset_type=self.asset_type, source=self.name)
            for code, name in _PRODUCTS
        ]

    async def get_ticker(self, symbol: str) -> Ticker:
        """Parse the JSONP estimate feed (``jsonpgz({...});``)."""
        resp = await self._get(f"/js/{symbol}.js")
        text = resp.text
        left, right = text.find("{"), text.rfind("}")
        if left < 0 or right < left:
            raise self._bad_payload("ticker")
        try:
            data = json.loads(text[left:right + 1])
            price = float(data["gsz"])
            stamp = datetime.strptime(data["gztime"], "%Y-%m-%d %H:%M")
        except (KeyError, TypeError, ValueError) as exc:
            raise self._bad_payload("ticker", exc) from exc
        return Ticker(
            symbol=symbol,
            price=price,
            timestamp=stamp.replace(tzinfo=_CST).astimezone(timezone.utc),
        )

    async def get_candles(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> list[Candle]:
        """Daily NAV rows for ``[start, end)``.

        The history endpoint serves ``pageSize`` rows per page; pages are
        requested until ``TotalCount`` rows are collected or a short page
        arrives.
        """
        start, end = to_utc(start), to_utc(end)
        rows: list[dict] = []
        page_index = 1
        while True:
            params = {
                "fundCode": symbol,
                "pageIndex": page_index,
                "pageSize": _HISTORY_PAGE_SIZE,
                "startDate": start.strftime("%Y-%m-%d"),
                "endDate": end.strftime("%Y-%m-%d"),
            }
            payload = await self._get_json(
                "/f10/lsjz",
                params=params,
                headers={"Referer": "http://fundf10.eastmoney.com/"},
                base_url=self._history_url,
            )
            try:
                page = payload["Data"]["LSJZList"]
                total = int(payload.get("TotalCount") or 0)
            except (KeyError, TypeError, ValueError) as exc:
                raise self._bad_payload("NAV history", exc) from exc
            if not isinstance(page, list):
                raise self._bad_payload("NAV history")
            rows.extend(page)
            if len(page) < _HISTORY_PAGE_SIZE or (total and len(rows) >= total):
                break
            page_index += 1
        return self._dedupe(self._nav_candles(rows, "FSRQ", "DWJZ", start, end))
