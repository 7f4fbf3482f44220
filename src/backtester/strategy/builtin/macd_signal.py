from __future__ import annotations

import math

from backtester.backtest.context import ExecutionContext
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter


class MacdSignalStrategy(Strategy):
    """Long while MACD is above its signal line; crosses trigger entries and exits."""

    name = "MACD Signal"
    description = "Buys when MACD crosses above the signal line, sells when it crosses below."

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("fast_period", "Fast EMA period", 12, 5, 30),
            StrategyParameter.int_param("slow_period", "Slow EMA period", 26, 15, 60),
            StrategyParameter.int_param("signal_period", "Signal line period", 9, 3, 20),
            StrategyParameter.float_param(
                "position_size", "Position size (% of cash)", 100.0, 10.0, 100.0, 10.0
            ),
        ]

    @property
    def warmup_bars(self) -> int:
        return self.int_param("slow_period") + self.int_param("signal_period") + 1

    def on_initialize(self) -> None:
        self.prev_macd = math.nan
        self.prev_signal = math.nan

    def on_bar(self, ctx: ExecutionContext) -> None:
        fast = self.int_param("fast_period")
        slow = self.int_param("slow_period")
        macd = ctx.macd(fast, slow)
        signal = ctx.macd_signal(fast, slow, self.int_param("signal_period"))
        if math.isnan(macd) or math.isnan(signal):
            return

        have_prev = not math.isnan(self.prev_macd) and not math.isnan(self.prev_signal)
        bullish = have_prev and self.prev_macd <= self.prev_signal and macd > signal
        bearish = have_prev and self.prev_macd >= self.prev_signal and macd < signal

        if bullish and not ctx.has_position:
            quantity = ctx.quantity_for_percentage(self.float_param("position_size"))
            if quantity > 0:
                ctx.execute_market_order(quantity)
        elif bearish and ctx.is_long:
            ctx.close_position()

        self.prev_macd = macd
        self.prev_signal = signal
