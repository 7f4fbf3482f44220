from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import pandas as pd

from backtester.backtest.config import BacktestConfig
from backtester.backtest.context import ExecutionContext
from backtester.backtest.portfolio import EquityPoint, Portfolio, Trade
from backtester.data.series import DataInfo, TimeSeries
from backtester.exceptions import BacktesterError, StrategyExecutionError
from backtester.logging import get_logger

if TYPE_CHECKING:
    from backtester.strategy.base import Strategy

logger = get_logger("backtest")


@dataclass(frozen=True)
class BacktestResult:
    """Immutable output of a single simulation run."""

    strategy_name: str
    config: BacktestConfig
    data_info: DataInfo
    run_time: datetime
    initial_equity: float
    final_equity: float
    trades: tuple[Trade, ...]
    equity_history: tuple[EquityPoint, ...]
    buy_and_hold_return: float
    buy_and_hold_final_equity: float
    buy_and_hold_equity: tuple[float, ...] = field(default=())
    total_commission: float = 0.0
    total_slippage: float = 0.0
    total_spread: float = 0.0
    total_bars: int = 0
    bars_in_market: int = 0
    execution_time_ms: float = 0.0
    parameters: dict[str, object] = field(default_factory=dict)

    @property
    def net_profit(self) -> float:
        return self.final_equity - self.initial_equity

    @property
    def net_return_percent(self) -> float:
        if self.initial_equity == 0:
            return 0.0
        return self.net_profit / self.initial_equity * 100.0

    @property
    def total_costs(self) -> float:
        return self.total_commission + self.total_slippage + self.total_spread

    @property
    def alpha(self) -> float:
        return self.net_return_percent - self.buy_and_hold_return

    @property
    def time_in_market_percent(self) -> float:
        if self.total_bars == 0:
            return 0.0
        return self.bars_in_market / self.total_bars * 100.0

    @property
    def trade_count(self) -> int:
        return len(self.trades)

    @property
    def win_rate(self) -> float:
        if not self.trades:
            return 0.0
        return sum(1 for t in self.trades if t.is_win) / len(self.trades) * 100.0

    def equity_curve(self) -> pd.Series:
        """Equity per bar indexed by timestamp."""
        return pd.Series(
            [p.equity for p in self.equity_history],
            index=pd.DatetimeIndex([p.timestamp for p in self.equity_history]),
            name="equity",
            dtype=float,
        )


class BacktestEngine:
    """Sequential bar-loop simulator.

    Per bar: mark to market, call the strategy (after warmup), then hand the
    bar to the dynamic cost models as the new "previous bar". Any position
    still open at the end is flattened at the final close.
    """

    def __init__(self, config: BacktestConfig | None = None) -> None:
        self.config = config if config is not None else BacktestConfig.default()

    def run(self, strategy: Strategy, series: TimeSeries) -> BacktestResult:
        started = time.perf_counter()
        config = self.config

        portfolio = Portfolio(config.initial_capital, series.symbol)
        spread = config.spread.fresh()
        slippage = config.slippage.fresh()
        ctx = ExecutionContext(series, portfolio, config, config.commission, spread, slippage)

        strategy.initialize(ctx)
        warmup = max(config.warmup_bars, strategy.warmup_bars)
        logger.info(
            f"Backtesting {strategy.name} on {series.symbol or 'series'} "
            f"({len(series)} bars, warmup={warmup})"
        )

        for i, bar in enumerate(series):
            ctx.set_bar_index(i)
            portfolio.update(bar)
            if i >= warmup:
                _call_strategy(strategy, ctx)
            spread.update_previous_bar(bar)
            slippage.update_previous_bar(bar)

        if portfolio.has_position:
            fill = ctx.close_position()
            logger.debug(f"Flattened open position at end of data @ {fill:.5f}")

        strategy.on_end(ctx)

        bh_return, bh_curve = _buy_and_hold(series, config.initial_capital)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        result = BacktestResult(
            strategy_name=strategy.name,
            config=config,
            data_info=DataInfo.from_series(series),
            run_time=datetime.now(),
            initial_equity=config.initial_capital,
            final_equity=portfolio.equity,
            trades=portfolio.trades,
            equity_history=portfolio.equity_history,
            buy_and_hold_return=bh_return,
            buy_and_hold_final_equity=config.initial_capital * (1.0 + bh_return / 100.0),
            buy_and_hold_equity=bh_curve,
            total_commission=ctx.total_commission,
            total_slippage=ctx.total_slippage,
            total_spread=ctx.total_spread,
            total_bars=len(series),
            bars_in_market=portfolio.total_bars_in_market,
            execution_time_ms=elapsed_ms,
            parameters=strategy.get_parameter_values(),
        )
        logger.info(
            f"Backtest complete: {result.trade_count} trades | "
            f"net={result.net_return_percent:.2f}% | B&H={bh_return:.2f}% | "
            f"max DD={portfolio.max_drawdown_percent:.2f}% | {elapsed_ms:.0f} ms"
        )
        return result


def _call_strategy(strategy: Strategy, ctx: ExecutionContext) -> None:
    """Invoke ``on_bar``; foreign exceptions are re-raised with the failing bar attached."""
    try:
        strategy.on_bar(ctx)
    except BacktesterError:
        raise
    except Exception as e:
        raise StrategyExecutionError(
            f"{strategy.name} failed at bar {ctx.bar_index}: {e}",
            {"strategy": strategy.name, "bar_index": ctx.bar_index},
        ) from e


def _buy_and_hold(series: TimeSeries, initial_capital: float) -> tuple[float, tuple[float, ...]]:
    if series.is_empty:
        return 0.0, ()
    closes = series.closes
    first = closes[0]
    curve = tuple(float(initial_capital * c / first) for c in closes)
    return float((closes[-1] / first - 1.0) * 100.0), curve


def run_backtest(
    strategy: Strategy, series: TimeSeries, config: BacktestConfig | None = None
) -> BacktestResult:
    """Run ``strategy`` over ``series`` with ``config`` (defaults when omitted)."""
    return BacktestEngine(config).run(strategy, series)
