from __future__ import annotations

import math

from backtester.backtest.context import ExecutionContext
from backtester.indicators import is_ready
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter

ATR_PERIOD = 14


class SmaCrossoverStrategy(Strategy):
    """Long on a fast/slow SMA golden cross with ATR stop and target.

    Stops and targets are checked against the bar's range and filled at the
    level itself; a cross back down exits at market.
    """

    name = "SMA Crossover"
    description = "Long on a fast/slow SMA cross with ATR-based stop and target."

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("fast_period", "Fast SMA period", 10, 5, 50),
            StrategyParameter.int_param("slow_period", "Slow SMA period", 20, 10, 200),
            StrategyParameter.float_param(
                "risk_percent", "Risk per trade (%)", 2.0, 0.5, 10.0, 0.5
            ),
            StrategyParameter.float_param(
                "stop_loss_atr", "Stop loss (ATR multiple)", 2.0, 0.5, 5.0, 0.5
            ),
            StrategyParameter.float_param(
                "take_profit_atr", "Take profit (ATR multiple)", 3.0, 1.0, 10.0, 0.5
            ),
        ]

    @property
    def warmup_bars(self) -> int:
        return max(self.int_param("slow_period"), ATR_PERIOD) + 1

    def on_initialize(self) -> None:
        self.stop_loss = 0.0
        self.take_profit = 0.0
        self.prev_fast = math.nan
        self.prev_slow = math.nan

    def on_bar(self, ctx: ExecutionContext) -> None:
        fast = ctx.sma(self.int_param("fast_period"))
        slow = ctx.sma(self.int_param("slow_period"))
        atr = ctx.atr(ATR_PERIOD)

        if not is_ready(fast, slow, atr):
            self.prev_fast, self.prev_slow = fast, slow
            return

        bar = ctx.current_bar
        have_prev = is_ready(self.prev_fast, self.prev_slow)
        crossed_up = have_prev and self.prev_fast <= self.prev_slow and fast > slow
        crossed_down = have_prev and self.prev_fast >= self.prev_slow and fast < slow

        if ctx.has_position:
            size = ctx.position_size
            if bar.low <= self.stop_loss:
                fill = ctx.close_position_at_price(self.stop_loss)
                if not math.isnan(fill):
                    ctx.log_trade("STOP LOSS", size, fill, f"SL hit at {self.stop_loss:.5f}")
            elif bar.high >= self.take_profit:
                fill = ctx.close_position_at_price(self.take_profit)
                if not math.isnan(fill):
                    ctx.log_trade("TAKE PROFIT", size, fill, f"TP hit at {self.take_profit:.5f}")
            elif crossed_down:
                fill = ctx.close_position()
                ctx.log_trade("EXIT", size, fill, "SMA cross down")
        elif crossed_up:
            stop_distance = atr * self.float_param("stop_loss_atr")
            quantity = ctx.quantity_for_risk(self.float_param("risk_percent"), stop_distance)
            if quantity > 0:
                fill = ctx.execute_market_order(quantity)
                if not math.isnan(fill):
                    self.stop_loss = fill - stop_distance
                    self.take_profit = fill + atr * self.float_param("take_profit_atr")
                    ctx.log_trade(
                        "ENTRY",
                        quantity,
                        fill,
                        f"SMA cross up, SL={self.stop_loss:.5f}, TP={self.take_profit:.5f}",
                    )

        self.prev_fast, self.prev_slow = fast, slow
