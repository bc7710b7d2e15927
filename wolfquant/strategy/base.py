"""Strategy protocol.

Defines the interface the backtest engine drives once per candle.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from wolfquant.market.models import Candle
from wolfquant.trading.models import OrderSignal


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all trading strategies must satisfy.

    The engine calls ``init()`` once, then ``update(candle)`` followed by
    ``check_signal(candle)`` for every candle in order.  Any exception
    from these methods aborts the run.

    A strategy may also define ``on_order_rejected(signal)``; the engine
    calls it when the portfolio refuses the order built from *signal*, so
    position-tracking state can be rolled back.
    """

    name: str

    def init(self) -> None:
        """Reset internal state before a run."""
        ...

    def update(self, candle: Candle) -> None:
        """Feed the next candle into rolling indicator state."""
        ...

    def check_signal(self, candle: Candle) -> Optional[OrderSignal]:
        """Return an order signal for *candle*, or ``None``."""
        ...
