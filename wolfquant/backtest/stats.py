"""Backtest statistics — pure functions over the trade ledger and equity curve."""

import math
from collections import defaultdict, deque
from datetime import datetime
from typing import Optional

from wolfquant.backtest.models import EquityPoint, PerformanceMetrics, RoundTrip
from wolfquant.trading.models import Order, OrderSide

# Periods per year used to annualise the Sharpe ratio
_TRADING_DAYS = 252

_QTY_EPSILON = 1e-9


def calculate_performance(
    initial_capital: float,
    trades: list[Order],
    equity_curve: list[EquityPoint],
    first_ts: Optional[datetime],
    last_ts: Optional[datetime],
) -> PerformanceMetrics:
    """Compute run metrics.

    Returns are measured from the equity curve, trade quality from FIFO
    round trips of the filled orders in *trades*.
    """
    final_equity = equity_curve[-1].equity if equity_curve else initial_capital
    total_return = final_equity / initial_capital - 1.0

    annual_return = 0.0
    if first_ts is not None and last_ts is not None:
        years = (last_ts - first_ts).days / 365
        if years > 0:
            annual_return = (1.0 + total_return) ** (1.0 / years) - 1.0

    equities = [p.equity for p in equity_curve]
    round_trips = match_round_trips(trades)
    pnls = [rt.pnl for rt in round_trips]
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p < 0]

    return PerformanceMetrics(
        total_return=total_return,
        annual_return=annual_return,
        sharpe_ratio=_sharpe(_step_returns(equities)),
        max_drawdown=_max_drawdown(equities),
        win_rate=len(winners) / len(pnls) if pnls else 0.0,
        profit_factor=_profit_factor(sum(winners), abs(sum(losers))),
        total_trades=len(round_trips),
        winning_trades=len(winners),
        losing_trades=len(losers),
    )


def match_round_trips(trades: list[Order]) -> list[RoundTrip]:
    """Pair sells with earlier buys per symbol, first in first out.

    A sell spanning several buy lots yields one round trip per lot.  Fees
    are apportioned per unit to both legs.  Unfilled orders and open lots
    are ignored.
    """
    lots: dict[str, deque] = defaultdict(deque)
    round_trips: list[RoundTrip] = []

    for order in trades:
        if not order.is_filled or order.filled_quantity <= 0:
            continue
        price = order.average_price if order.average_price is not None else order.price
        fee_per_unit = order.fee / order.filled_quantity

        if order.side is OrderSide.BUY:
            lots[order.symbol].append([order.filled_quantity, price, fee_per_unit, order.timestamp])
            continue

        remaining = order.filled_quantity
        queue = lots[order.symbol]
        while remaining > _QTY_EPSILON and queue:
            lot = queue[0]
            quantity = min(remaining, lot[0])
            entry_price, entry_fee, opened_at = lot[1], lot[2], lot[3]
            pnl = (price - entry_price) * quantity - (entry_fee + fee_per_unit) * quantity
            round_trips.append(RoundTrip(
                symbol=order.symbol,
                quantity=quantity,
                entry_price=entry_price,
                exit_price=price,
                pnl=pnl,
                opened_at=opened_at,
                closed_at=order.timestamp,
            ))
            lot[0] -= quantity
            remaining -= quantity
            if lot[0] <= _QTY_EPSILON:
                queue.popleft()

    return round_trips


# ── Helpers ──────────────────────────────────────────────────────────────


def _step_returns(equities: list[float]) -> list[float]:
    return [
        cur / prev - 1.0
        for prev, cur in zip(equities, equities[1:])
        if prev > 0
    ]


def _sharpe(returns: list[float]) -> float:
    """Annualised Sharpe ratio from per-step returns.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(returns)
    if n < 2:
        return 0.0
    mean = sum(returns) / n
    variance = sum((r - mean) ** 2 for r in returns) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(_TRADING_DAYS)


def _max_drawdown(equities: list[float]) -> float:
    """Largest peak-to-trough decline as a fraction of the peak, in [0, 1]."""
    peak = 0.0
    max_dd = 0.0
    for equity in equities:
        if equity > peak:
            peak = equity
        if peak <= 0:
            continue
        dd = (peak - equity) / peak
        if dd > max_dd:
            max_dd = dd
    return min(max_dd, 1.0)


def _profit_factor(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    return math.inf if gross_profit > 0 else 0.0
