"""RSI mean-reversion strategy.

Implements ``StrategyProtocol``.  Buys when RSI drops below the oversold
level and exits when it rises above the overbought level.  RSI is kept
incrementally with Wilder smoothing so each candle costs O(1).
"""

from typing import Optional

from wolfquant.market.models import Candle
from wolfquant.strategy.indicators import rsi_from_averages
from wolfquant.trading.models import OrderSide, OrderSignal


class RsiReversionStrategy:
    """Long-only RSI reversion.

    Holding state flips when a signal is emitted and rolls back through
    ``on_order_rejected`` if the entry is refused.

    Args:
        period: RSI lookback.
        oversold: Entry threshold (RSI below this buys).
        overbought: Exit threshold (RSI above this sells).
        quantity: Units bought on each entry.
    """

    name = "rsi_reversion"

    def __init__(
        self,
        period: int = 14,
        oversold: float = 30.0,
        overbought: float = 70.0,
        quantity: float = 1.0,
    ) -> None:
        if period <= 1:
            raise ValueError(f"period must be greater than 1, got {period}")
        if not 0 <= oversold < overbought <= 100:
            raise ValueError(
                f"thresholds must satisfy 0 <= oversold < overbought <= 100, "
                f"got {oversold} / {overbought}"
            )
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")
        self.period = period
        self.oversold = oversold
        self.overbought = overbought
        self.quantity = quantity
        self.init()

    def init(self) -> None:
        self._prev_close: Optional[float] = None
        self._seed_gains: list[float] = []
        self._seed_losses: list[float] = []
        self._avg_gain: Optional[float] = None
        self._avg_loss: Optional[float] = None
        self._holding = False
        self.value: Optional[float] = None

    def update(self, candle: Candle) -> None:
        if self._prev_close is None:
            self._prev_close = candle.close
            return

        delta = candle.close - self._prev_close
        self._prev_close = candle.close
        gain, loss = max(delta, 0.0), max(-delta, 0.0)

        if self._avg_gain is None:
            self._seed_gains.append(gain)
            self._seed_losses.append(loss)
            if len(self._seed_gains) < self.period:
                return
            self._avg_gain = sum(self._seed_gains) / self.period
            self._avg_loss = sum(self._seed_losses) / self.period
        else:
            self._avg_gain = (self._avg_gain * (self.period - 1) + gain) / self.period
            self._avg_loss = (self._avg_loss * (self.period - 1) + loss) / self.period

        self.value = rsi_from_averages(self._avg_gain, self._avg_loss)

    def check_signal(self, candle: Candle) -> Optional[OrderSignal]:
        if self.value is None:
            return None
        if not self._holding and self.value < self.oversold:
            self._holding = True
            return OrderSignal.buy(
                candle.symbol, self.quantity,
                reason=f"RSI {self.value:.1f} below {self.oversold}",
                timestamp=candle.timestamp,
            )
        if self._holding and self.value > self.overbought:
            self._holding = False
            return OrderSignal.sell(
                candle.symbol, self.quantity,
                reason=f"RSI {self.value:.1f} above {self.overbought}",
                timestamp=candle.timestamp,
            )
        return None

    def on_order_rejected(self, signal: OrderSignal) -> None:
        if signal.side is OrderSide.BUY:
            self._holding = False
