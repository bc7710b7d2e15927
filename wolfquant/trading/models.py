"""Trading data models — signals, orders, positions."""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class OrderSide(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, enum.Enum):
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(str, enum.Enum):
    CREATED = "created"
    FILLED = "filled"
    REJECTED = "rejected"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OrderSignal:
    """A strategy's request to trade.  ``price=None`` means market order."""

    symbol: str
    side: OrderSide
    quantity: float
    price: Optional[float] = None
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    @property
    def order_type(self) -> OrderType:
        return OrderType.MARKET if self.price is None else OrderType.LIMIT

    @classmethod
    def buy(cls, symbol: str, quantity: float, price: Optional[float] = None,
            reason: Optional[str] = None, timestamp: Optional[datetime] = None) -> "OrderSignal":
        return cls(symbol, OrderSide.BUY, quantity, price, reason, timestamp or _now())

    @classmethod
    def sell(cls, symbol: str, quantity: float, price: Optional[float] = None,
             reason: Optional[str] = None, timestamp: Optional[datetime] = None) -> "OrderSignal":
        return cls(symbol, OrderSide.SELL, quantity, price, reason, timestamp or _now())

    def to_order(self, price: Optional[float] = None) -> "Order":
        """Build an unfilled order, optionally overriding the price."""
        return Order(
            symbol=self.symbol,
            side=self.side,
            quantity=self.quantity,
            price=self.price if price is None else price,
            timestamp=self.timestamp,
        )


@dataclass
class Order:
    """An order and, once processed, its fill."""

    symbol: str
    side: OrderSide
    quantity: float
    price: Optional[float] = None
    id: Optional[str] = None
    average_price: Optional[float] = None
    filled_quantity: float = 0.0
    fee: float = 0.0
    status: OrderStatus = OrderStatus.CREATED
    timestamp: datetime = field(default_factory=_now)

    @property
    def is_filled(self) -> bool:
        return self.status is OrderStatus.FILLED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "price": self.price,
            "average_price": self.average_price,
            "filled_quantity": self.filled_quantity,
            "fee": self.fee,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Position:
    """Holdings in one symbol.

    ``unrealized_pnl`` always equals
    ``(current_price - average_cost) * quantity``.
    """

    symbol: str
    quantity: float
    average_cost: float
    current_price: float
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    last_updated: datetime = field(default_factory=_now)

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    def mark(self, price: float, at: Optional[datetime] = None) -> None:
        self.current_price = price
        self.unrealized_pnl = (price - self.average_cost) * self.quantity
        self.last_updated = at or _now()

    def add(self, quantity: float, price: float, at: Optional[datetime] = None) -> None:
        """Increase the position, re-weighting the average cost."""
        total = self.quantity + quantity
        self.average_cost = (self.average_cost * self.quantity + price * quantity) / total
        self.quantity = total
        self.mark(price, at)

    def reduce(self, quantity: float, price: float, at: Optional[datetime] = None) -> float:
        """Decrease the position and return the realized P&L."""
        pnl = (price - self.average_cost) * quantity
        self.realized_pnl += pnl
        self.quantity -= quantity
        if self.quantity <= 0:
            self.quantity = 0.0
        self.mark(price, at)
        return pnl
