"""
Test data factories.

Provides deterministic bar series and small scripted strategies.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import numpy as np

from backtester.backtest.context import ExecutionContext
from backtester.backtest.portfolio import Side, Trade
from backtester.data.bars import Bar
from backtester.data.series import TimeSeries
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter

START = datetime(2024, 1, 1)


class MarketDataFactory:
    """Factory for deterministic bar series."""

    @staticmethod
    def from_closes(
        closes: Sequence[float],
        symbol: str = "TEST",
        interval: timedelta = timedelta(days=1),
        spread: float = 1.0,
        volume: float = 1_000.0,
    ) -> TimeSeries:
        """Bars with open == close and high/low ``spread`` around it."""
        bars = [
            Bar(
                timestamp=START + interval * i,
                open=float(c),
                high=float(c) + spread,
                low=max(float(c) - spread, 0.01),
                close=float(c),
                volume=volume,
            )
            for i, c in enumerate(closes)
        ]
        return TimeSeries(symbol, bars)

    @staticmethod
    def flat(n: int, price: float = 100.0, **kwargs) -> TimeSeries:
        return MarketDataFactory.from_closes([price] * n, **kwargs)

    @staticmethod
    def linear(n: int, start: float = 100.0, step: float = 1.0, **kwargs) -> TimeSeries:
        return MarketDataFactory.from_closes([start + step * i for i in range(n)], **kwargs)

    @staticmethod
    def flat_then_ramp(
        flat_bars: int, ramp_bars: int, start: float = 100.0, end: float = 150.0
    ) -> TimeSeries:
        """``flat_bars`` at ``start``, then a straight line to ``end``."""
        ramp = np.linspace(start, end, ramp_bars + 1)[1:]
        return MarketDataFactory.from_closes([start] * flat_bars + list(ramp), spread=0.5)

    @staticmethod
    def random_walk(
        n: int,
        seed: int = 7,
        start: float = 100.0,
        drift: float = 0.0005,
        volatility: float = 0.01,
        symbol: str = "RW",
    ) -> TimeSeries:
        rng = np.random.default_rng(seed)
        returns = rng.normal(drift, volatility, n)
        closes = start * np.exp(np.cumsum(returns))
        opens = np.concatenate([[start], closes[:-1]])
        wiggle = np.abs(rng.normal(0, volatility / 2, n))
        bars = [
            Bar(
                timestamp=START + timedelta(days=i),
                open=float(opens[i]),
                high=float(max(opens[i], closes[i]) * (1 + wiggle[i])),
                low=float(min(opens[i], closes[i]) * (1 - wiggle[i])),
                close=float(closes[i]),
                volume=float(rng.integers(1_000, 10_000)),
            )
            for i in range(n)
        ]
        return TimeSeries(symbol, bars)


class TradeFactory:
    """Closed trades with a given net P&L."""

    @staticmethod
    def trade(net_pnl: float, index: int = 0, bars_held: int = 1) -> Trade:
        return Trade(
            symbol="TEST",
            side=Side.LONG,
            entry_time=START + timedelta(days=index),
            exit_time=START + timedelta(days=index + bars_held),
            entry_price=100.0,
            exit_price=100.0 + net_pnl,
            quantity=1.0,
            gross_pnl=net_pnl,
            commission=0.0,
            slippage=0.0,
            net_pnl=net_pnl,
            bars_held=bars_held,
            entry_index=index,
            exit_index=index + bars_held,
        )

    @staticmethod
    def trades(pnls: Sequence[float]) -> list[Trade]:
        return [TradeFactory.trade(p, index=i * 2) for i, p in enumerate(pnls)]


Script = Callable[[ExecutionContext], None]


class ScriptedStrategy(Strategy):
    """Runs ``actions[bar_index](ctx)`` when present; no warmup."""

    name = "Scripted"

    def __init__(self, actions: dict[int, Script] | None = None, warmup: int = 0) -> None:
        super().__init__()
        self.actions = actions or {}
        self.warmup = warmup
        self.seen: list[int] = []
        self.fills: list[float] = []
        self.ended = False

    def parameters(self) -> list[StrategyParameter]:
        return []

    @property
    def warmup_bars(self) -> int:
        return self.warmup

    def on_bar(self, ctx: ExecutionContext) -> None:
        self.seen.append(ctx.bar_index)
        action = self.actions.get(ctx.bar_index)
        if action is not None:
            action(ctx)

    def on_end(self, ctx: ExecutionContext) -> None:
        super().on_end(ctx)
        self.ended = True


class BuyAtBarStrategy(Strategy):
    """Buys ``quantity`` units at ``entry_bar`` and optionally sells at ``exit_bar``."""

    name = "Buy At Bar"

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("entry_bar", "Entry bar index", 0, 0, 10_000),
            StrategyParameter.int_param("exit_bar", "Exit bar index (0 = hold)", 0, 0, 10_000),
            StrategyParameter.float_param("quantity", "Units to buy", 1.0, 0.0, 1e9),
        ]

    @property
    def warmup_bars(self) -> int:
        return 0

    def on_bar(self, ctx: ExecutionContext) -> None:
        if ctx.bar_index == self.int_param("entry_bar") and not ctx.has_position:
            ctx.execute_market_order(self.float_param("quantity"))
        exit_bar = self.int_param("exit_bar")
        if exit_bar and ctx.bar_index == exit_bar and ctx.has_position:
            ctx.close_position()


class PeriodicStrategy(Strategy):
    """Alternates entering and exiting every ``hold`` bars; sized by ``size_percent``."""

    name = "Periodic"

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("hold", "Bars per leg", 5, 2, 20),
            StrategyParameter.float_param("size_percent", "Percent of cash", 50.0, 10.0, 100.0),
            StrategyParameter.bool_param("short", "Trade the short side", False),
        ]

    @property
    def warmup_bars(self) -> int:
        return 1

    def on_bar(self, ctx: ExecutionContext) -> None:
        hold = self.int_param("hold")
        if ctx.bar_index % hold != 0:
            return
        if ctx.has_position:
            ctx.close_position()
            return
        quantity = ctx.quantity_for_percentage(self.float_param("size_percent"))
        if quantity > 0:
            ctx.execute_market_order(-quantity if self.bool_param("short") else quantity)


class ExplodingStrategy(Strategy):
    """Raises from ``on_bar`` once ``fail_at`` is reached."""

    name = "Exploding"

    def parameters(self) -> list[StrategyParameter]:
        return [StrategyParameter.int_param("fail_at", "Bar to fail at", 0, 0, 10_000)]

    @property
    def warmup_bars(self) -> int:
        return 0

    def on_bar(self, ctx: ExecutionContext) -> None:
        if ctx.bar_index >= self.int_param("fail_at"):
            raise RuntimeError(f"boom at bar {ctx.bar_index}")
