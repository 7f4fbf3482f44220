"""
Walk-forward analysis.

The series is cut into rolling ``train + test`` windows. For each window the
strategy's parameter grid is searched on the training slice, and the best
combination is then run once on the following out-of-sample slice.
"""

from __future__ import annotations

import itertools
import math
import random
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import numpy as np

from backtester.backtest.config import BacktestConfig
from backtester.backtest.engine import BacktestResult
from backtester.config import get_config
from backtester.data.series import TimeSeries
from backtester.exceptions import ConfigurationError, OptimizationError
from backtester.logging import get_logger
from backtester.metrics.statistics import BacktestStatistics, StatisticsCalculator
from backtester.optimization.parallel import run_parallel, simulate
from backtester.strategy.parameters import ParameterType, StrategyParameter
from backtester.strategy.registry import StrategyFactory

logger = get_logger("walk_forward")

Window = tuple[int, int, int, int]


@dataclass(frozen=True)
class WindowResult:
    """Outcome of one train/test window. ``error`` is set when it could not run."""

    index: int
    train_start: int
    train_end: int
    test_start: int
    test_end: int
    parameters: dict[str, Any] = field(default_factory=dict)
    in_sample_score: float = 0.0
    in_sample_return: float = 0.0
    oos_result: BacktestResult | None = None
    oos_stats: BacktestStatistics | None = None
    error: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None and self.oos_result is not None

    @property
    def oos_return(self) -> float:
        return self.oos_result.net_return_percent if self.oos_result is not None else 0.0


@dataclass(frozen=True)
class WalkForwardResult:
    windows: tuple[WindowResult, ...]
    train_bars: int
    test_bars: int
    step_bars: int
    total_return: float = 0.0
    average_return: float = 0.0
    total_trades: int = 0
    win_rate: float = 0.0
    max_drawdown: float = 0.0
    return_volatility: float = 0.0
    sharpe: float = 0.0
    efficiency: float = 0.0

    @property
    def window_count(self) -> int:
        return len(self.windows)

    @property
    def successful_windows(self) -> tuple[WindowResult, ...]:
        return tuple(w for w in self.windows if w.is_success)

    @property
    def failed_windows(self) -> tuple[WindowResult, ...]:
        return tuple(w for w in self.windows if not w.is_success)

    @classmethod
    def from_windows(
        cls, windows: list[WindowResult], train_bars: int, test_bars: int, step_bars: int
    ) -> WalkForwardResult:
        ok = [w for w in windows if w.is_success]
        if not ok:
            return cls(tuple(windows), train_bars, test_bars, step_bars)

        returns = np.array([w.oos_return for w in ok], dtype=float)
        total_trades = sum(w.oos_stats.total_trades for w in ok)
        total_wins = sum(w.oos_stats.winning_trades for w in ok)
        average = float(returns.mean())
        volatility = float(returns.std(ddof=1)) if returns.size > 1 else 0.0
        in_sample_avg = float(np.mean([w.in_sample_return for w in ok]))

        return cls(
            windows=tuple(windows),
            train_bars=train_bars,
            test_bars=test_bars,
            step_bars=step_bars,
            total_return=float(returns.sum()),
            average_return=average,
            total_trades=total_trades,
            win_rate=total_wins / total_trades * 100.0 if total_trades else 0.0,
            max_drawdown=max(w.oos_stats.max_drawdown_percent for w in ok),
            return_volatility=volatility,
            sharpe=average / volatility if volatility > 0 else 0.0,
            efficiency=average / in_sample_avg if in_sample_avg != 0 else 0.0,
        )

    def summary(self) -> str:
        lines = [
            f"Walk-forward: {self.window_count} windows "
            f"(train={self.train_bars}, test={self.test_bars}, step={self.step_bars}), "
            f"{len(self.failed_windows)} failed",
            f"  OOS return: total {self.total_return:.2f}%, average {self.average_return:.2f}%",
            f"  Trades: {self.total_trades} (win rate {self.win_rate:.1f}%)",
            f"  Worst drawdown: {self.max_drawdown:.2f}%",
            f"  Volatility: {self.return_volatility:.2f}% | Sharpe: {self.sharpe:.2f}",
            f"  Efficiency (OOS/IS): {self.efficiency:.2f}",
        ]
        return "\n".join(lines)


@dataclass(frozen=True)
class CandidateEvaluation:
    """One parameter set scored on a training slice."""

    parameters: dict[str, Any]
    result: BacktestResult
    stats: BacktestStatistics
    score: float


class WalkForwardAnalyzer:
    """Rolling out-of-sample validation of a strategy's parameter choice.

    Args:
        strategy_factory: Zero-argument callable returning a fresh strategy.
        config: Simulation settings used for every run.
        train_bars: Bars in each optimisation slice.
        test_bars: Bars in each out-of-sample slice.
        step_bars: Offset between consecutive windows.
        optimization_iterations: Max parameter combinations per window.
        seed: Seed for grid subsampling.
        max_workers: Worker pool size for the grid search.
        use_processes: Search the grid on a process pool. The strategy factory
            must then be picklable.
    """

    def __init__(
        self,
        strategy_factory: StrategyFactory,
        config: BacktestConfig | None = None,
        train_bars: int | None = None,
        test_bars: int | None = None,
        step_bars: int | None = None,
        optimization_iterations: int | None = None,
        seed: int | None = None,
        max_workers: int | None = None,
        use_processes: bool = False,
    ) -> None:
        defaults = get_config().robustness
        self.strategy_factory = strategy_factory
        self.config = config if config is not None else BacktestConfig.default()
        self.train_bars = train_bars or defaults.walk_forward_train_bars
        self.test_bars = test_bars or defaults.walk_forward_test_bars
        self.step_bars = step_bars or defaults.walk_forward_step_bars
        self.optimization_iterations = (
            optimization_iterations or defaults.walk_forward_iterations
        )
        self.seed = seed
        self.max_workers = max_workers
        self.use_processes = use_processes
        self._calculator = StatisticsCalculator(defaults.trading_periods_per_year)

        for name in ("train_bars", "test_bars", "step_bars", "optimization_iterations"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", {name: getattr(self, name)})

    def generate_windows(self, size: int) -> list[Window]:
        """``(train_start, train_end, test_start, test_end)`` for a series of ``size`` bars."""
        windows = []
        start = 0
        while start + self.train_bars + self.test_bars <= size:
            train_end = start + self.train_bars
            windows.append((start, train_end, train_end, train_end + self.test_bars))
            start += self.step_bars
        return windows

    def build_parameter_grid(
        self, parameters: list[StrategyParameter], rng: random.Random | None = None
    ) -> list[dict[str, Any]]:
        """Candidate parameter sets, capped at ``optimization_iterations``.

        When the full grid is larger it is randomly subsampled.
        """
        if not parameters:
            return [{}]

        names = [p.name for p in parameters]
        axes = [parameter_values(p) for p in parameters]
        total = math.prod(len(a) for a in axes)

        if total <= self.optimization_iterations:
            return [dict(zip(names, combo)) for combo in itertools.product(*axes)]

        rng = rng or random.Random(self.seed)
        picks = rng.sample(range(total), self.optimization_iterations)
        return [dict(zip(names, _decode(index, axes))) for index in sorted(picks)]

    def run(self, series: TimeSeries) -> WalkForwardResult:
        windows = self.generate_windows(len(series))
        if not windows:
            logger.warning(
                f"Series of {len(series)} bars is too short for one window "
                f"(train={self.train_bars}, test={self.test_bars})"
            )
            return WalkForwardResult((), self.train_bars, self.test_bars, self.step_bars)

        logger.info(
            f"Walk-forward on {series.symbol or 'series'}: {len(windows)} windows, "
            f"up to {self.optimization_iterations} combinations each"
        )
        rng = random.Random(self.seed)
        parameters = self.strategy_factory().parameters()

        results = []
        for index, window in enumerate(windows):
            window_result = self._run_window(index, window, series, parameters, rng)
            if window_result.is_success:
                logger.info(
                    f"Window {index + 1}/{len(windows)}: IS {window_result.in_sample_return:.2f}% "
                    f"-> OOS {window_result.oos_return:.2f}% with {window_result.parameters}"
                )
            else:
                logger.warning(f"Window {index + 1}/{len(windows)} failed: {window_result.error}")
            results.append(window_result)

        result = WalkForwardResult.from_windows(
            results, self.train_bars, self.test_bars, self.step_bars
        )
        logger.info(
            f"Walk-forward complete: OOS total {result.total_return:.2f}%, "
            f"efficiency {result.efficiency:.2f}"
        )
        return result

    def score(self, stats: BacktestStatistics) -> float:
        return score_statistics(stats)

    def optimize(self, train: TimeSeries, grid: list[dict[str, Any]]) -> CandidateEvaluation:
        """Best-scoring candidate of ``grid`` on ``train``.

        Raises:
            OptimizationError: If every combination failed.
        """
        worker = partial(
            evaluate_candidate, self.strategy_factory, self.config, self._calculator, train
        )
        evaluations = run_parallel(
            worker, grid, max_workers=self.max_workers, use_processes=self.use_processes
        )
        if not evaluations:
            raise OptimizationError(
                f"all {len(grid)} parameter combinations failed", {"symbol": train.symbol}
            )
        # first of equal scores wins, keeping the choice independent of completion order
        return max((e for _, e in evaluations), key=lambda e: e.score)

    # ----- internals -----

    def _run_window(
        self,
        index: int,
        window: Window,
        series: TimeSeries,
        parameters: list[StrategyParameter],
        rng: random.Random,
    ) -> WindowResult:
        train_start, train_end, test_start, test_end = window
        train = series.slice(train_start, train_end)
        test = series.slice(test_start, test_end)
        grid = self.build_parameter_grid(parameters, rng)

        try:
            best = self.optimize(train, grid)
        except OptimizationError as e:
            return WindowResult(
                index, train_start, train_end, test_start, test_end, error=e.message
            )

        try:
            oos = evaluate_candidate(
                self.strategy_factory, self.config, self._calculator, test, best.parameters
            )
        except Exception as e:
            return WindowResult(
                index, train_start, train_end, test_start, test_end,
                parameters=best.parameters,
                in_sample_score=best.score,
                in_sample_return=best.result.net_return_percent,
                error=f"out-of-sample run failed: {e}",
            )

        return WindowResult(
            index=index,
            train_start=train_start,
            train_end=train_end,
            test_start=test_start,
            test_end=test_end,
            parameters=best.parameters,
            in_sample_score=best.score,
            in_sample_return=best.result.net_return_percent,
            oos_result=oos.result,
            oos_stats=oos.stats,
        )


def score_statistics(stats: BacktestStatistics) -> float:
    """Sharpe, penalised for drawdowns beyond 20% and fewer than 10 trades."""
    dd = stats.max_drawdown_percent
    dd_penalty = (dd - 20.0) * 0.1 if dd > 20.0 else 0.0
    trade_penalty = 1.0 if stats.total_trades < 10 else 0.0
    return stats.sharpe - dd_penalty - trade_penalty


def evaluate_candidate(
    strategy_factory: StrategyFactory,
    config: BacktestConfig,
    calculator: StatisticsCalculator,
    series: TimeSeries,
    parameters: dict[str, Any],
) -> CandidateEvaluation:
    """Simulate one parameter set on ``series`` and score it (pool worker)."""
    result = simulate(strategy_factory, config, series, parameters)
    stats = calculator.calculate(result)
    return CandidateEvaluation(parameters, result, stats, score_statistics(stats))


def parameter_values(param: StrategyParameter) -> list[Any]:
    """Values tried for ``param`` in a walk-forward grid."""
    if param.type is ParameterType.BOOLEAN:
        return [True, False]
    if not param.is_numeric or param.min_value is None or param.max_value is None:
        return [param.default]
    if param.type is ParameterType.INTEGER:
        lo, hi = int(param.min_value), int(param.max_value)
        step = max(1, (hi - lo) // 5)
        return list(range(lo, hi + 1, step))
    lo, hi = float(param.min_value), float(param.max_value)
    if hi <= lo:
        return [lo]
    return [float(v) for v in np.linspace(lo, hi, 6)]


def _decode(index: int, axes: list[list[Any]]) -> tuple[Any, ...]:
    """Mixed-radix decode of a flat grid index (last axis varies fastest)."""
    values = []
    for axis in reversed(axes):
        index, pos = divmod(index, len(axis))
        values.append(axis[pos])
    return tuple(reversed(values))
