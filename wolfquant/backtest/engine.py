"""Backtest engine — replays historical candles through a strategy and portfolio.

Iterates candle data chronologically, turning strategy signals into
simulated fills.  No real orders are placed.
"""

import logging
from typing import Optional

from wolfquant.backtest.models import BacktestConfig, BacktestResult, EquityPoint
from wolfquant.backtest.stats import calculate_performance
from wolfquant.errors import ConfigError, StrategyError, ValidationError
from wolfquant.events.bus import EventBus, EventType
from wolfquant.market.models import Candle
from wolfquant.strategy.base import StrategyProtocol
from wolfquant.trading.models import OrderSide, OrderSignal
from wolfquant.trading.portfolio import Portfolio

logger = logging.getLogger("wolfquant.backtest")


class BacktestEngine:
    """Simulates trading on historical candle data.

    Args:
        config: Capital, fee, and slippage settings.
        event_bus: Optional bus receiving SIGNAL, ORDER, TRADE, ERROR and
                   CANDLE events during the replay.
    """

    def __init__(self, config: BacktestConfig, event_bus: Optional[EventBus] = None) -> None:
        self._config = config
        self._bus = event_bus

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, strategy: StrategyProtocol, candles: list[Candle]) -> BacktestResult:
        """Execute a full backtest.

        Args:
            strategy: Strategy driven once per candle.
            candles: Candles in non-decreasing timestamp order.

        Returns:
            ``BacktestResult`` with the trade ledger, metrics, and one
            equity point per candle.

        Raises:
            ConfigError: Settings are out of range or candles are unsorted.
            StrategyError: The strategy failed; the run is aborted.
        """
        self._config.validate()
        self._check_sorted(candles)

        name = getattr(strategy, "name", strategy.__class__.__name__)
        portfolio = Portfolio(self._config.initial_capital, self._config.fee_rate)
        equity_curve: list[EquityPoint] = []

        self._call_strategy(name, "init", strategy.init)
        logger.info("Backtest %s started: %d candles", name, len(candles))

        for candle in candles:
            # 1. Strategy state and signal
            self._call_strategy(name, "update", strategy.update, candle)
            signal = self._call_strategy(name, "check_signal", strategy.check_signal, candle)

            # 2. Execute
            if signal is not None and not self._execute(portfolio, signal, candle):
                rejected = getattr(strategy, "on_order_rejected", None)
                if rejected is not None:
                    self._call_strategy(name, "on_order_rejected", rejected, signal)

            # 3. Mark to market
            portfolio.update(candle)
            self._publish(EventType.CANDLE, candle)
            equity_curve.append(EquityPoint(candle.timestamp, portfolio.total_equity()))

        trades = portfolio.trades
        performance = calculate_performance(
            self._config.initial_capital,
            trades,
            equity_curve,
            candles[0].timestamp if candles else None,
            candles[-1].timestamp if candles else None,
        )
        logger.info(
            "Backtest %s finished: %d fills, return %.4f, max drawdown %.4f",
            name, len(trades), performance.total_return, performance.max_drawdown,
        )
        return BacktestResult(
            trades=trades,
            performance=performance,
            equity_curve=equity_curve,
            initial_capital=self._config.initial_capital,
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _execute(self, portfolio: Portfolio, signal: OrderSignal, candle: Candle) -> bool:
        """Fill *signal* at the candle close plus slippage; False if rejected."""
        price = signal.price
        if price is None:
            if signal.side is OrderSide.BUY:
                price = candle.close * (1 + self._config.slippage)
            else:
                price = candle.close * (1 - self._config.slippage)
        self._publish(EventType.SIGNAL, signal)

        order = signal.to_order(price)
        try:
            portfolio.process_order(order)
        except ValidationError as exc:
            logger.warning(
                "Order rejected at %s: %s %s %.8g @ %.8g: %s",
                candle.timestamp.isoformat(), order.side.value, order.symbol,
                order.quantity, price, exc,
            )
            self._publish(EventType.ERROR, f"Order rejected: {exc}")
            return False

        self._publish(EventType.ORDER, order)
        self._publish(EventType.TRADE, order)
        return True

    @staticmethod
    def _call_strategy(name: str, stage: str, fn, *args):
        try:
            return fn(*args)
        except StrategyError:
            raise
        except Exception as exc:
            logger.error("Strategy %s failed in %s: %s", name, stage, exc)
            raise StrategyError(f"Strategy {name} failed in {stage}: {exc}") from exc

    @staticmethod
    def _check_sorted(candles: list[Candle]) -> None:
        for prev, cur in zip(candles, candles[1:]):
            if cur.timestamp < prev.timestamp:
                raise ConfigError(
                    f"Candles must be in chronological order: "
                    f"{cur.timestamp.isoformat()} follows {prev.timestamp.isoformat()}"
                )

    def _publish(self, event_type: EventType, data) -> None:
        if self._bus is not None:
            self._bus.publish(event_type, data)


def run_backtest(
    strategy: StrategyProtocol,
    candles: list[Candle],
    config: BacktestConfig,
    event_bus: Optional[EventBus] = None,
) -> BacktestResult:
    """Run *strategy* over *candles* with a fresh portfolio."""
    return BacktestEngine(config, event_bus).run(strategy, candles)
