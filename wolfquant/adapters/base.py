"""Market source adapter protocol and shared async HTTP plumbing.

Every adapter normalizes one vendor's payloads into ``Candle`` / ``Ticker``
/ ``Product``.  Any failure crosses the boundary as ``AdapterError``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

import httpx

from wolfquant.errors import AdapterError
from wolfquant.market.models import Candle, Product, Ticker, to_utc

logger = logging.getLogger("wolfquant.adapters")

_DEFAULT_TIMEOUT = 30.0


@runtime_checkable
class MarketAdapter(Protocol):
    """Interface that all market sources must satisfy."""

    name: str
    asset_type: str

    async def check_connection(self) -> bool:
        ...

    async def get_products(self) -> list[Product]:
        ...

    async def get_ticker(self, symbol: str) -> Ticker:
        ...

    async def get_candles(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> list[Candle]:
        """Return bars in ``[start, end)`` ordered oldest-first."""
        ...


class HttpAdapter:
    """Base class for adapters backed by a JSON-over-HTTP API.

    Args:
        base_url: Vendor API root.
        timeout: Per-request timeout in seconds.
    """

    name = ""
    asset_type = ""

    def __init__(self, base_url: str, timeout: float = _DEFAULT_TIMEOUT) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers: dict[str, str] = {"Accept": "application/json"}

    # ── HTTP helpers ─────────────────────────────────────────────────────

    async def _get(
        self,
        path: str,
        params: dict | None = None,
        headers: dict | None = None,
        base_url: str | None = None,
    ) -> httpx.Response:
        """GET *path* and return the response, raising ``AdapterError`` on failure."""
        url = f"{base_url or self._base_url}{path}"
        merged = {**self._headers, **(headers or {})}
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(
                    url,
                    headers=merged,
                    params=params,
                    timeout=self._timeout,
                )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AdapterError(
                f"{self.name}: GET {url} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AdapterError(f"{self.name}: GET {url} failed: {exc}") from exc
        return resp

    async def _get_json(self, path: str, **kwargs) -> Any:
        resp = await self._get(path, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise AdapterError(f"{self.name}: invalid JSON from {path}") from exc

    async def _ping(self, path: str) -> bool:
        await self._get(path)
        return True

    def _bad_payload(self, what: str, exc: Exception | None = None) -> AdapterError:
        detail = f" ({exc})" if exc is not None else ""
        logger.debug("%s: malformed %s%s", self.name, what, detail)
        return AdapterError(f"{self.name}: invalid {what} response format{detail}")

    @staticmethod
    def _dedupe(candles: list[Candle]) -> list[Candle]:
        """Drop repeated timestamps across pages, keeping the latest row."""
        return list({c.timestamp: c for c in candles}.values())

    @staticmethod
    def _in_range(candles: list[Candle], start: datetime, end: datetime) -> list[Candle]:
        rows = [c for c in candles if start <= c.timestamp < end]
        rows.sort(key=lambda c: c.timestamp)
        return rows


class FundNavAdapter(HttpAdapter):
    """Daily fund sources that publish one NAV per trading day.

    Funds carry no OHLC; each NAV becomes a flat bar with zero volume and
    the requested interval is ignored.
    """

    asset_type = "fund"

    def _nav_candles(
        self,
        rows: list[dict],
        date_key: str,
        nav_key: str,
        start: datetime,
        end: datetime,
    ) -> list[Candle]:
        candles: list[Candle] = []
        try:
            for row in rows:
                day = datetime.strptime(row[date_key], "%Y-%m-%d")
                nav = float(row[nav_key])
                candles.append(
                    Candle(
                        timestamp=to_utc(day),
                        open=nav,
                        high=nav,
                        low=nav,
                        close=nav,
                        volume=0.0,
                        interval="1d",
                    )
                )
        except (KeyError, TypeError, ValueError) as exc:
            raise self._bad_payload("NAV history", exc) from exc
        return self._in_range(candles, start, end)
