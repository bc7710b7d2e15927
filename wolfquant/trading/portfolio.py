"""Portfolio engine — the only owner of simulated cash, positions, and ledger.

Every public method takes the portfolio's own re-entrant lock, so one
instance can be shared between a market-data listener and manual
operations.  Callers never take the lock themselves.  Reads return copies.
"""

import copy
import itertools
import logging
import threading
from datetime import datetime
from typing import Optional

from wolfquant.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    MissingPriceError,
    NoPositionError,
)
from wolfquant.market.models import Candle
from wolfquant.trading.models import Order, OrderSide, OrderStatus, Position

logger = logging.getLogger("wolfquant.portfolio")

# Residual quantity below this is treated as a closed position.
_QTY_EPSILON = 1e-9


class Portfolio:
    """Cash account with long-only positions and an append-only trade ledger.

    Args:
        initial_capital: Starting cash (must be positive).
        fee_rate: Fraction of notional charged on every fill.
    """

    def __init__(self, initial_capital: float, fee_rate: float = 0.0) -> None:
        if initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {initial_capital}")
        if not 0 <= fee_rate < 1:
            raise ValueError(f"fee_rate must be in [0, 1), got {fee_rate}")
        self._lock = threading.RLock()
        self._initial_capital = initial_capital
        self._fee_rate = fee_rate
        self._cash = initial_capital
        self._positions: dict[str, Position] = {}
        self._trades: list[Order] = []
        self._realized_pnl = 0.0
        self._ids = itertools.count(1)

    # ── Orders ───────────────────────────────────────────────────────────

    def process_order(self, order: Order) -> Order:
        """Fill *order* in full at ``order.price`` and record it.

        Returns the filled order.  On rejection the order is marked
        ``rejected``, state is untouched, and a ``ValidationError``
        subclass is raised.
        """
        with self._lock:
            try:
                self._validate(order)
                fee = order.price * order.quantity * self._fee_rate
                if order.side is OrderSide.BUY:
                    self._apply_buy(order, fee)
                else:
                    self._apply_sell(order, fee)
            except (MissingPriceError, InvalidOrderError, InsufficientFundsError,
                    NoPositionError, InsufficientPositionError):
                order.status = OrderStatus.REJECTED
                raise

            order.id = order.id or str(next(self._ids))
            order.status = OrderStatus.FILLED
            order.average_price = order.price
            order.filled_quantity = order.quantity
            order.fee = fee
            self._trades.append(copy.copy(order))
            logger.debug(
                "Filled %s %s %.8g @ %.8g (fee %.8g), cash %.2f",
                order.side.value, order.symbol, order.quantity, order.price, fee, self._cash,
            )
            return order

    def _validate(self, order: Order) -> None:
        if order.price is None:
            raise MissingPriceError(f"Order for {order.symbol} has no price")
        if order.price <= 0:
            raise InvalidOrderError(f"Order price must be positive, got {order.price}")
        if order.quantity <= 0:
            raise InvalidOrderError(f"Order quantity must be positive, got {order.quantity}")

    def _apply_buy(self, order: Order, fee: float) -> None:
        cost = order.price * order.quantity
        if cost + fee > self._cash:
            raise InsufficientFundsError(
                f"Insufficient funds: need {cost + fee:.2f}, have {self._cash:.2f}"
            )
        self._cash = max(self._cash - cost - fee, 0.0)

        position = self._positions.get(order.symbol)
        if position is None:
            self._positions[order.symbol] = Position(
                symbol=order.symbol,
                quantity=order.quantity,
                average_cost=order.price,
                current_price=order.price,
                last_updated=order.timestamp,
            )
        else:
            position.add(order.quantity, order.price, order.timestamp)

    def _apply_sell(self, order: Order, fee: float) -> None:
        position = self._positions.get(order.symbol)
        if position is None:
            raise NoPositionError(f"No position in {order.symbol}")
        if position.quantity + _QTY_EPSILON < order.quantity:
            raise InsufficientPositionError(
                f"Insufficient position in {order.symbol}: "
                f"hold {position.quantity}, sell {order.quantity}"
            )

        quantity = min(order.quantity, position.quantity)
        self._realized_pnl += position.reduce(quantity, order.price, order.timestamp)
        self._cash += order.price * quantity - fee
        if position.quantity <= _QTY_EPSILON:
            del self._positions[order.symbol]

    # ── Mark to market ───────────────────────────────────────────────────

    def update(self, candle: Candle) -> None:
        """Revalue the position in ``candle.symbol`` at its close."""
        self.mark_price(candle.symbol, candle.close, candle.timestamp)

    def mark_price(self, symbol: str, price: float, at: Optional[datetime] = None) -> None:
        with self._lock:
            position = self._positions.get(symbol)
            if position is not None:
                position.mark(price, at)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def initial_capital(self) -> float:
        return self._initial_capital

    @property
    def fee_rate(self) -> float:
        return self._fee_rate

    @property
    def cash(self) -> float:
        with self._lock:
            return self._cash

    @property
    def realized_pnl(self) -> float:
        """Realized P&L across all symbols, including closed positions."""
        with self._lock:
            return self._realized_pnl

    @property
    def positions(self) -> dict[str, Position]:
        with self._lock:
            return {s: copy.copy(p) for s, p in self._positions.items()}

    @property
    def trades(self) -> list[Order]:
        with self._lock:
            return [copy.copy(t) for t in self._trades]

    def get_position(self, symbol: str) -> Optional[Position]:
        with self._lock:
            position = self._positions.get(symbol)
            return copy.copy(position) if position else None

    def total_equity(self) -> float:
        """Cash plus the marked value of every position."""
        with self._lock:
            return self._cash + sum(p.market_value for p in self._positions.values())

    def return_rate(self) -> float:
        return self.total_equity() / self._initial_capital - 1.0

    def snapshot(self) -> dict:
        """JSON-friendly view of the account."""
        with self._lock:
            return {
                "cash": self._cash,
                "equity": self.total_equity(),
                "initial_capital": self._initial_capital,
                "realized_pnl": self._realized_pnl,
                "return_rate": self.return_rate(),
                "positions": [
                    {
                        "symbol": p.symbol,
                        "quantity": p.quantity,
                        "average_cost": p.average_cost,
                        "current_price": p.current_price,
                        "unrealized_pnl": p.unrealized_pnl,
                        "realized_pnl": p.realized_pnl,
                    }
                    for p in self._positions.values()
                ],
                "trade_count": len(self._trades),
            }
