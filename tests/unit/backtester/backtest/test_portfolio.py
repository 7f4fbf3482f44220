"""Tests for position, trade and portfolio accounting."""

from datetime import datetime, timedelta

import pytest

from backtester.backtest.portfolio import Portfolio, Position, Side
from backtester.data.bars import Bar
from backtester.exceptions import InsufficientFundsError, PortfolioError

T0 = datetime(2024, 1, 1)


def at(day: int) -> datetime:
    return T0 + timedelta(days=day)


def bar(close: float, day: int = 0) -> Bar:
    return Bar(at(day), close, close + 1.0, close - 1.0, close, 100.0)


class TestSide:
    def test_opposite_and_from_quantity(self):
        assert Side.LONG.opposite is Side.SHORT
        assert Side.SHORT.opposite is Side.LONG
        assert Side.from_quantity(5) is Side.LONG
        assert Side.from_quantity(-5) is Side.SHORT


class TestPosition:
    def test_rejects_non_positive_quantity(self):
        with pytest.raises(PortfolioError):
            Position("X", Side.LONG, 100.0, 0.0, T0, 0)

    def test_long_excursions(self):
        pos = Position("X", Side.LONG, 100.0, 2.0, T0, 0)
        for price in (105.0, 95.0, 102.0):
            pos.update_price(price)
        assert pos.unrealized_pnl == pytest.approx(4.0)
        assert pos.unrealized_pnl_percent == pytest.approx(2.0)
        assert pos.mfe == pytest.approx(10.0)
        assert pos.mae == pytest.approx(-10.0)
        assert pos.max_unrealized_profit == pytest.approx(10.0)
        assert pos.max_unrealized_loss == pytest.approx(-10.0)

    def test_short_excursions_and_market_value(self):
        pos = Position("X", Side.SHORT, 100.0, 2.0, T0, 0)
        pos.update_price(90.0)
        assert pos.unrealized_pnl == pytest.approx(20.0)
        assert pos.market_value == pytest.approx(220.0)
        pos.update_price(108.0)
        assert pos.mfe == pytest.approx(20.0)
        assert pos.mae == pytest.approx(-16.0)
        assert pos.signed_quantity == -2.0


class TestPortfolio:
    def test_open_debits_notional_and_commission(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 5.0, T0, 0, commission=2.0)
        assert pf.cash == pytest.approx(498.0)
        assert pf.equity == pytest.approx(998.0)
        assert pf.has_position

    def test_open_twice_raises(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 1.0, T0, 0, commission=0.0)
        with pytest.raises(PortfolioError, match="already open"):
            pf.open_position(Side.LONG, 100.0, 1.0, T0, 0, commission=0.0)

    def test_insufficient_funds(self):
        pf = Portfolio(100.0)
        with pytest.raises(InsufficientFundsError) as exc:
            pf.open_position(Side.LONG, 100.0, 1.0, T0, 0, commission=1.0)
        assert exc.value.required == pytest.approx(101.0)
        assert exc.value.available == 100.0
        assert pf.cash == 100.0 and not pf.has_position

    def test_close_without_position_raises(self):
        with pytest.raises(PortfolioError, match="No open position"):
            Portfolio(100.0).close_position(100.0, T0, 0, commission=0.0)

    def test_long_round_trip(self):
        pf = Portfolio(1_000.0, "X")
        pf.open_position(Side.LONG, 100.0, 5.0, at(0), 0, commission=1.0, slippage=0.5)
        trade = pf.close_position(110.0, at(3), 3, commission=1.5, slippage=0.25)

        assert trade.gross_pnl == pytest.approx(50.0)
        assert trade.commission == pytest.approx(2.5)
        assert trade.slippage == pytest.approx(0.75)
        assert trade.net_pnl == pytest.approx(47.5)
        assert trade.bars_held == 3
        assert trade.duration == timedelta(days=3)
        assert trade.is_win
        assert pf.cash == pytest.approx(1_047.5)
        assert pf.equity == pf.cash
        assert not pf.has_position

    def test_short_round_trip(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.SHORT, 100.0, 5.0, at(0), 0, commission=0.0)
        assert pf.cash == pytest.approx(500.0)
        trade = pf.close_position(90.0, at(1), 1, commission=0.0)
        assert trade.gross_pnl == pytest.approx(50.0)
        assert pf.cash == pytest.approx(1_050.0)

    def test_short_loss_reduces_equity(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.SHORT, 100.0, 5.0, at(0), 0, commission=0.0)
        pf.update(bar(120.0, 1))
        assert pf.equity == pytest.approx(900.0)

    def test_reduce_keeps_remainder_and_splits_entry_costs(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 4.0, at(0), 0, commission=4.0, slippage=2.0)
        trade = pf.reduce_position(1.0, 120.0, at(2), 2, commission=1.0)

        assert trade.quantity == 1.0
        assert trade.gross_pnl == pytest.approx(20.0)
        assert trade.commission == pytest.approx(1.0 + 1.0)
        assert trade.slippage == pytest.approx(0.5)
        assert pf.position.quantity == 3.0
        assert pf.position.entry_commission == pytest.approx(3.0)
        assert pf.position.entry_price == 100.0
        assert pf.cash == pytest.approx(1_000.0 - 404.0 + 100.0 + 20.0 - 1.0)

    def test_reduce_by_full_quantity_closes(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 2.0, at(0), 0, commission=0.0)
        pf.reduce_position(5.0, 100.0, at(1), 1, commission=0.0)
        assert not pf.has_position
        assert pf.trade_count == 1

    def test_update_records_one_point_per_bar_and_drawdown(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 5.0, at(0), 0, commission=0.0)
        pf.update(bar(100.0, 0))
        pf.update(bar(120.0, 1))
        point = pf.update(bar(90.0, 2))

        assert len(pf.equity_history) == 3
        assert pf.peak_equity == pytest.approx(1_100.0)
        assert point.drawdown == pytest.approx(150.0)
        assert point.drawdown_percent == pytest.approx(150.0 / 1_100.0 * 100.0)
        assert pf.max_drawdown_percent == pytest.approx(point.drawdown_percent)
        assert point.in_position
        assert pf.total_bars_in_market == 3

    def test_update_without_position_keeps_flat_equity(self):
        pf = Portfolio(1_000.0)
        point = pf.update(bar(50.0))
        assert point.equity == 1_000.0
        assert not point.in_position
        assert pf.total_bars_in_market == 0

    def test_reset(self):
        pf = Portfolio(1_000.0)
        pf.open_position(Side.LONG, 100.0, 1.0, T0, 0, commission=0.0)
        pf.update(bar(100.0))
        pf.reset()
        assert pf.cash == 1_000.0
        assert not pf.has_position
        assert pf.equity_history == ()
        assert pf.trades == ()
