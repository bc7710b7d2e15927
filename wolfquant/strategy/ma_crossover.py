"""Moving-average crossover strategy.

Implements ``StrategyProtocol``.  Buys when the fast SMA crosses above the
slow SMA and sells the held quantity when it crosses back below.
"""

from collections import deque
from typing import Optional

from wolfquant.market.models import Candle
from wolfquant.strategy.indicators import sma
from wolfquant.trading.models import OrderSide, OrderSignal


class MaCrossoverStrategy:
    """Long-only SMA crossover.

    Holding state flips when a signal is emitted and rolls back through
    ``on_order_rejected`` if the entry is refused.

    Args:
        fast_period: Window of the fast moving average.
        slow_period: Window of the slow moving average (must exceed fast).
        quantity: Units bought on each entry.
    """

    name = "ma_crossover"

    def __init__(self, fast_period: int = 5, slow_period: int = 20, quantity: float = 1.0) -> None:
        if fast_period <= 0:
            raise ValueError(f"fast_period must be positive, got {fast_period}")
        if slow_period <= fast_period:
            raise ValueError(
                f"slow_period ({slow_period}) must be greater than fast_period ({fast_period})"
            )
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.quantity = quantity
        self.init()

    def init(self) -> None:
        self._closes: deque[float] = deque(maxlen=self.slow_period + 1)
        self._holding = False

    def update(self, candle: Candle) -> None:
        self._closes.append(candle.close)

    def check_signal(self, candle: Candle) -> Optional[OrderSignal]:
        if len(self._closes) < self.slow_period + 1:
            return None

        closes = list(self._closes)
        fast_prev, fast_now = sma(closes, self.fast_period)[-2:]
        slow_prev, slow_now = sma(closes, self.slow_period)[-2:]

        if not self._holding and fast_prev <= slow_prev and fast_now > slow_now:
            self._holding = True
            return OrderSignal.buy(
                candle.symbol, self.quantity,
                reason=f"SMA{self.fast_period} crossed above SMA{self.slow_period}",
                timestamp=candle.timestamp,
            )
        if self._holding and fast_prev >= slow_prev and fast_now < slow_now:
            self._holding = False
            return OrderSignal.sell(
                candle.symbol, self.quantity,
                reason=f"SMA{self.fast_period} crossed below SMA{self.slow_period}",
                timestamp=candle.timestamp,
            )
        return None

    def on_order_rejected(self, signal: OrderSignal) -> None:
        if signal.side is OrderSide.BUY:
            self._holding = False
