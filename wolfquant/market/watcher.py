"""Ticker watcher — polls live prices for a paper-trading session.

Each cycle fetches a ticker per symbol, publishes ``TICK``, and marks the
portfolio's position to the latest price.
"""

import asyncio
import logging
from typing import Optional

from wolfquant.adapters.base import MarketAdapter
from wolfquant.errors import AdapterError
from wolfquant.events.bus import EventBus, EventType
from wolfquant.market.models import Ticker
from wolfquant.trading.portfolio import Portfolio

logger = logging.getLogger("wolfquant.watcher")


class TickerWatcher:
    """Polling loop over ``adapter.get_ticker``.

    Args:
        adapter: Market source for the symbols.
        symbols: Symbols to poll every cycle.
        event_bus: Receives ``TICK`` and ``ERROR`` events.
        portfolio: Optional portfolio marked to each ticker price.
        poll_interval: Seconds between cycles.
    """

    def __init__(
        self,
        adapter: MarketAdapter,
        symbols: list[str],
        event_bus: EventBus,
        portfolio: Optional[Portfolio] = None,
        poll_interval: int = 60,
    ) -> None:
        self._adapter = adapter
        self._symbols = list(symbols)
        self._bus = event_bus
        self._portfolio = portfolio
        self._poll_interval = poll_interval
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Signal the watcher to stop after the current cycle."""
        self._running = False

    async def poll_once(self) -> list[Ticker]:
        """Fetch one ticker per symbol.  Source failures are logged and skipped."""
        tickers: list[Ticker] = []
        for symbol in self._symbols:
            try:
                ticker = await self._adapter.get_ticker(symbol)
            except AdapterError as exc:
                logger.warning("Ticker %s from %s failed: %s", symbol, self._adapter.name, exc)
                self._bus.publish(EventType.ERROR, f"Ticker {symbol} failed: {exc}")
                continue
            if self._portfolio is not None:
                self._portfolio.mark_price(ticker.symbol, ticker.price, ticker.timestamp)
            self._bus.publish(EventType.TICK, ticker)
            tickers.append(ticker)
        return tickers

    async def run(self, max_cycles: int = 0) -> int:
        """Poll until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            Number of completed cycles.
        """
        self._running = True
        cycle = 0
        logger.info(
            "Watching %s on %s every %ds",
            ", ".join(self._symbols), self._adapter.name, self._poll_interval,
        )
        while self._running:
            cycle += 1
            await self.poll_once()
            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep, checks the stop flag every second
            if self._poll_interval <= 0:
                await asyncio.sleep(0)
            for _ in range(self._poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        logger.info("Watcher stopped after %d cycle(s)", cycle)
        return cycle
