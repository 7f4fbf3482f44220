from __future__ import annotations

import math

from backtester.backtest.context import ExecutionContext
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter


class RsiMeanReversionStrategy(Strategy):
    """Buy oversold RSI, exit when overbought."""

    name = "RSI Mean Reversion"
    description = "Mean reversion using RSI: buys when oversold, sells when overbought."

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("rsi_period", "RSI period", 14, 2, 50),
            StrategyParameter.float_param("oversold", "Oversold threshold", 30.0, 10.0, 40.0, 5.0),
            StrategyParameter.float_param(
                "overbought", "Overbought threshold", 70.0, 60.0, 90.0, 5.0
            ),
            StrategyParameter.float_param(
                "position_size", "Position size (% of cash)", 100.0, 10.0, 100.0, 10.0
            ),
        ]

    @property
    def warmup_bars(self) -> int:
        return self.int_param("rsi_period") + 1

    def on_bar(self, ctx: ExecutionContext) -> None:
        rsi = ctx.rsi(self.int_param("rsi_period"))
        if math.isnan(rsi):
            return

        if not ctx.has_position:
            if rsi < self.float_param("oversold"):
                quantity = ctx.quantity_for_percentage(self.float_param("position_size"))
                if quantity > 0:
                    ctx.execute_market_order(quantity)
        elif ctx.is_long and rsi > self.float_param("overbought"):
            ctx.close_position()
