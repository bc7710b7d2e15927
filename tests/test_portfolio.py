"""Tests for wolfquant.trading — order validation, fills, and mark-to-market."""

import threading
from datetime import datetime, timezone

import pytest

from wolfquant.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    MissingPriceError,
    NoPositionError,
    ValidationError,
)
from wolfquant.market.models import Candle
from wolfquant.trading.models import Order, OrderSide, OrderSignal, OrderStatus, OrderType
from wolfquant.trading.portfolio import Portfolio

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _buy(qty, price, symbol="BTC"):
    return Order(symbol=symbol, side=OrderSide.BUY, quantity=qty, price=price, timestamp=T0)


def _sell(qty, price, symbol="BTC"):
    return Order(symbol=symbol, side=OrderSide.SELL, quantity=qty, price=price, timestamp=T0)


def _candle(close, symbol="BTC"):
    return Candle(timestamp=T0, open=close, high=close, low=close, close=close, volume=1, symbol=symbol)


def _assert_equity_identity(p: Portfolio):
    marked = sum(pos.quantity * pos.current_price for pos in p.positions.values())
    assert p.total_equity() == pytest.approx(p.cash + marked)


# ── Scenarios ────────────────────────────────────────────────────────────


class TestBuyMarkSell:
    def test_buy_then_mark_up(self):
        p = Portfolio(10000)
        filled = p.process_order(_buy(1, 100))

        assert filled.status is OrderStatus.FILLED
        assert filled.average_price == 100
        assert filled.filled_quantity == 1
        assert p.cash == pytest.approx(9900)
        pos = p.get_position("BTC")
        assert pos.quantity == 1
        assert pos.average_cost == 100

        p.update(_candle(110))
        pos = p.get_position("BTC")
        assert pos.unrealized_pnl == pytest.approx(10)
        assert p.total_equity() == pytest.approx(10010)
        _assert_equity_identity(p)

    def test_sell_closes_position_and_realizes(self):
        p = Portfolio(10000)
        p.process_order(_buy(1, 100))
        p.update(_candle(110))
        p.process_order(_sell(1, 110))

        assert p.cash == pytest.approx(10010)
        assert p.get_position("BTC") is None
        assert p.realized_pnl == pytest.approx(10)
        assert len(p.trades) == 2
        assert p.return_rate() == pytest.approx(0.001)

    def test_round_trip_at_same_price_restores_cash(self):
        p = Portfolio(5000)
        p.process_order(_buy(3, 250))
        p.process_order(_sell(3, 250))
        assert p.cash == pytest.approx(5000)
        assert p.positions == {}

    def test_average_cost_is_weighted(self):
        p = Portfolio(10000)
        p.process_order(_buy(1, 100))
        p.process_order(_buy(3, 200))
        pos = p.get_position("BTC")
        assert pos.quantity == 4
        assert pos.average_cost == pytest.approx(175)

    def test_partial_sell_keeps_position(self):
        p = Portfolio(10000)
        p.process_order(_buy(4, 100))
        p.process_order(_sell(1, 120))
        pos = p.get_position("BTC")
        assert pos.quantity == 3
        assert pos.realized_pnl == pytest.approx(20)
        assert pos.average_cost == 100

    def test_spend_entire_cash(self):
        p = Portfolio(1000)
        p.process_order(_buy(10, 100))
        assert p.cash == 0

    def test_fees_charged_on_both_sides(self):
        p = Portfolio(10000, fee_rate=0.01)
        buy = p.process_order(_buy(10, 100))
        assert buy.fee == pytest.approx(10)
        assert p.cash == pytest.approx(10000 - 1000 - 10)
        sell = p.process_order(_sell(10, 100))
        assert sell.fee == pytest.approx(10)
        assert p.cash == pytest.approx(10000 - 20)

    def test_mark_price_for_ticker(self):
        p = Portfolio(10000)
        p.process_order(_buy(2, 100))
        p.mark_price("BTC", 90)
        assert p.get_position("BTC").unrealized_pnl == pytest.approx(-20)
        # Unknown symbols are ignored
        p.mark_price("ETH", 1)
        _assert_equity_identity(p)


# ── Rejections ───────────────────────────────────────────────────────────


class TestRejections:
    @pytest.mark.parametrize(
        "order, error",
        [
            (_buy(1, None), MissingPriceError),
            (_buy(0, 100), InvalidOrderError),
            (_buy(-1, 100), InvalidOrderError),
            (_buy(1, 0), InvalidOrderError),
            (_buy(1000, 100), InsufficientFundsError),
            (_sell(1, 100), NoPositionError),
        ],
    )
    def test_rejected_orders_leave_state_untouched(self, order, error):
        p = Portfolio(10000)
        with pytest.raises(error):
            p.process_order(order)
        assert order.status is OrderStatus.REJECTED
        assert p.cash == 10000
        assert p.positions == {}
        assert p.trades == []

    def test_oversell(self):
        p = Portfolio(10000)
        p.process_order(_buy(1, 100))
        with pytest.raises(InsufficientPositionError):
            p.process_order(_sell(2, 100))
        assert p.get_position("BTC").quantity == 1
        assert p.cash == pytest.approx(9900)
        assert len(p.trades) == 1

    def test_fee_counts_toward_funds(self):
        p = Portfolio(1000, fee_rate=0.01)
        with pytest.raises(InsufficientFundsError):
            p.process_order(_buy(10, 100))

    def test_all_rejections_are_validation_errors(self):
        for error in (MissingPriceError, InvalidOrderError, InsufficientFundsError,
                      NoPositionError, InsufficientPositionError):
            assert issubclass(error, ValidationError)
            assert error("x").kind == "validation"

    def test_constructor_validation(self):
        with pytest.raises(ValueError):
            Portfolio(0)
        with pytest.raises(ValueError):
            Portfolio(100, fee_rate=1.0)


# ── Snapshots and concurrency ────────────────────────────────────────────


class TestSnapshots:
    def test_positions_are_copies(self):
        p = Portfolio(10000)
        p.process_order(_buy(1, 100))
        p.positions["BTC"].quantity = 999
        assert p.get_position("BTC").quantity == 1

    def test_trades_are_copies(self):
        p = Portfolio(10000)
        order = _buy(1, 100)
        p.process_order(order)
        order.quantity = 50
        assert p.trades[0].quantity == 1

    def test_snapshot_dict(self):
        p = Portfolio(10000)
        p.process_order(_buy(1, 100))
        snap = p.snapshot()
        assert snap["cash"] == pytest.approx(9900)
        assert snap["equity"] == pytest.approx(10000)
        assert snap["trade_count"] == 1
        assert snap["positions"][0]["symbol"] == "BTC"

    def test_concurrent_orders_keep_invariants(self):
        p = Portfolio(1_000_000)

        def _worker():
            for _ in range(50):
                p.process_order(_buy(1, 10))
                p.mark_price("BTC", 11)
                p.process_order(_sell(1, 11))

        threads = [threading.Thread(target=_worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(p.trades) == 400
        assert p.positions == {}
        assert p.cash == pytest.approx(1_000_000 + 200)
        assert p.realized_pnl == pytest.approx(200)


class TestOrderSignal:
    def test_order_type_derived_from_price(self):
        assert OrderSignal.buy("BTC", 1).order_type is OrderType.MARKET
        assert OrderSignal.sell("BTC", 1, price=10).order_type is OrderType.LIMIT

    def test_to_order_overrides_price(self):
        signal = OrderSignal.buy("BTC", 2, timestamp=T0)
        order = signal.to_order(105.0)
        assert order.price == 105.0
        assert order.side is OrderSide.BUY
        assert order.timestamp == T0
        assert order.status is OrderStatus.CREATED
