from __future__ import annotations

from backtester.backtest.context import ExecutionContext
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter


class DonchianBreakoutStrategy(Strategy):
    """Buy a break of the prior N-bar high, exit on a break of the prior M-bar low."""

    name = "Donchian Breakout"
    description = "Trend-following breakout using Donchian channels of previous bars."

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("entry_period", "Entry channel (highest high)", 20, 5, 100),
            StrategyParameter.int_param("exit_period", "Exit channel (lowest low)", 10, 3, 50),
            StrategyParameter.float_param(
                "position_size", "Position size (% of cash)", 100.0, 10.0, 100.0, 10.0
            ),
        ]

    @property
    def warmup_bars(self) -> int:
        return max(self.int_param("entry_period"), self.int_param("exit_period")) + 1

    def on_bar(self, ctx: ExecutionContext) -> None:
        entry_period = self.int_param("entry_period")
        prev_index = ctx.bar_index - 1
        if prev_index < entry_period:
            return

        # Channels exclude the current bar
        upper = ctx.data.highest_high(entry_period, prev_index)
        lower = ctx.data.lowest_low(self.int_param("exit_period"), prev_index)
        bar = ctx.current_bar

        if not ctx.has_position:
            if bar.high > upper:
                quantity = ctx.quantity_for_percentage(self.float_param("position_size"))
                if quantity > 0:
                    ctx.execute_market_order(quantity)
        elif ctx.is_long and bar.low < lower:
            ctx.close_position()
