"""
Parameter sensitivity sweeps and heatmaps.

A flat region around the optimum (a "plateau") suggests the strategy does
not depend on one lucky parameter value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

import numpy as np

from backtester.backtest.config import BacktestConfig
from backtester.backtest.engine import BacktestResult
from backtester.config import get_config
from backtester.data.series import TimeSeries
from backtester.exceptions import ConfigurationError, InsufficientDataError
from backtester.logging import get_logger
from backtester.metrics.statistics import BacktestStatistics, StatisticsCalculator
from backtester.optimization.parallel import run_parallel, simulate
from backtester.strategy.parameters import ParameterType, StrategyParameter
from backtester.strategy.registry import StrategyFactory

logger = get_logger("sensitivity")

# Stand-in for an infinite profit factor so plateau arithmetic stays finite
_PROFIT_FACTOR_CAP = 1000.0


class SensitivityMetric(Enum):
    NET_RETURN = "Net Return %"
    SHARPE = "Sharpe Ratio"
    SORTINO = "Sortino Ratio"
    PROFIT_FACTOR = "Profit Factor"
    MAX_DRAWDOWN = "Max Drawdown %"
    WIN_RATE = "Win Rate %"
    CALMAR = "Calmar Ratio"
    EXPECTANCY = "Expectancy"

    @property
    def display_name(self) -> str:
        return self.value

    @property
    def minimize(self) -> bool:
        return self is SensitivityMetric.MAX_DRAWDOWN

    def extract(self, stats: BacktestStatistics, result: BacktestResult) -> float:
        if self is SensitivityMetric.NET_RETURN:
            return result.net_return_percent
        if self is SensitivityMetric.PROFIT_FACTOR:
            return min(stats.profit_factor, _PROFIT_FACTOR_CAP)
        attr = {
            SensitivityMetric.SHARPE: "sharpe",
            SensitivityMetric.SORTINO: "sortino",
            SensitivityMetric.MAX_DRAWDOWN: "max_drawdown_percent",
            SensitivityMetric.WIN_RATE: "win_rate",
            SensitivityMetric.CALMAR: "calmar",
            SensitivityMetric.EXPECTANCY: "expectancy",
        }[self]
        return float(getattr(stats, attr))


@dataclass(frozen=True)
class PlateauAnalysis:
    plateau_percent: float
    robustness: str
    sensitivity: float
    min_value: float
    max_value: float


@dataclass(frozen=True)
class SweepResult:
    parameter: str
    metric: SensitivityMetric
    values: list[Any]
    metric_values: np.ndarray
    optimal_index: int
    optimal_value: float
    plateau: PlateauAnalysis

    @property
    def optimal_parameter(self) -> Any:
        return self.values[self.optimal_index] if self.optimal_index >= 0 else None

    @property
    def plateau_percent(self) -> float:
        return self.plateau.plateau_percent

    @property
    def robustness(self) -> str:
        return self.plateau.robustness

    @property
    def sensitivity(self) -> float:
        return self.plateau.sensitivity


@dataclass(frozen=True)
class HeatmapResult:
    x_parameter: str
    y_parameter: str
    metric: SensitivityMetric
    x_values: list[Any]
    y_values: list[Any]
    matrix: np.ndarray
    optimal_i: int
    optimal_j: int
    optimal_value: float
    plateau: PlateauAnalysis

    @property
    def optimal_x(self) -> Any:
        return self.x_values[self.optimal_i] if self.optimal_i >= 0 else None

    @property
    def optimal_y(self) -> Any:
        return self.y_values[self.optimal_j] if self.optimal_j >= 0 else None

    @property
    def plateau_percent(self) -> float:
        return self.plateau.plateau_percent

    @property
    def robustness(self) -> str:
        return self.plateau.robustness

    @property
    def sensitivity(self) -> float:
        return self.plateau.sensitivity


class SensitivityAnalyzer:
    """Sweeps one or two parameters over an even grid and scores each cell.

    Cells run on a worker pool; with ``use_processes`` the strategy factory must
    be picklable.
    """

    def __init__(
        self,
        strategy_factory: StrategyFactory,
        config: BacktestConfig | None = None,
        grid_size: int | None = None,
        metric: SensitivityMetric = SensitivityMetric.SHARPE,
        max_workers: int | None = None,
        use_processes: bool = False,
    ) -> None:
        defaults = get_config().robustness
        self.strategy_factory = strategy_factory
        self.config = config if config is not None else BacktestConfig.default()
        self.grid_size = grid_size if grid_size is not None else defaults.sensitivity_grid_size
        self.metric = metric
        self.max_workers = max_workers
        self.use_processes = use_processes
        self.plateau_tolerance = defaults.plateau_tolerance
        self._calculator = StatisticsCalculator(defaults.trading_periods_per_year)
        if self.grid_size < 2:
            raise ConfigurationError("grid_size must be at least 2", {"grid_size": self.grid_size})

    def grid_values(self, param: StrategyParameter) -> list[Any]:
        """``grid_size`` evenly spaced values across the parameter's range."""
        if param.type is ParameterType.BOOLEAN:
            lo, hi = 0.0, 1.0
        elif param.is_numeric and param.min_value is not None and param.max_value is not None:
            lo, hi = float(param.min_value), float(param.max_value)
        else:
            raise ConfigurationError(
                f"Parameter {param.name} has no numeric range to sweep",
                {"type": param.type.value},
            )
        n = self.grid_size
        raw = [lo + (hi - lo) * i / (n - 1) for i in range(n)]
        if param.type is ParameterType.INTEGER:
            return [int(round(v)) for v in raw]
        if param.type is ParameterType.BOOLEAN:
            return [v > 0.5 for v in raw]
        return raw

    def analyze_1d(self, series: TimeSeries, parameter: str) -> SweepResult:
        _require_data(series)
        base, definitions = self._base_parameters()
        param = _lookup(definitions, parameter)
        values = self.grid_values(param)

        tasks = [(i, {**base, parameter: v}) for i, v in enumerate(values)]
        scores = np.full(len(values), np.nan)
        for (i, _), value in self._score_cells(tasks, series):
            scores[i] = value

        flat_index, optimum = self._optimum(scores)
        logger.info(
            f"Sweep {parameter}: best {self.metric.display_name}={optimum:.4f} "
            f"at {values[flat_index] if flat_index >= 0 else None}"
        )
        return SweepResult(
            parameter=parameter,
            metric=self.metric,
            values=values,
            metric_values=scores,
            optimal_index=flat_index,
            optimal_value=optimum,
            plateau=self.analyze_plateau(scores),
        )

    def analyze_2d(self, series: TimeSeries, x_parameter: str, y_parameter: str) -> HeatmapResult:
        _require_data(series)
        base, definitions = self._base_parameters()
        x_param = _lookup(definitions, x_parameter)
        y_param = _lookup(definitions, y_parameter)
        x_values = self.grid_values(x_param)
        y_values = self.grid_values(y_param)

        tasks = [
            ((i, j), {**base, x_parameter: xv, y_parameter: yv})
            for i, xv in enumerate(x_values)
            for j, yv in enumerate(y_values)
        ]
        matrix = np.full((len(x_values), len(y_values)), np.nan)
        for ((i, j), _), value in self._score_cells(tasks, series):
            matrix[i, j] = value

        flat_index, optimum = self._optimum(matrix.ravel())
        if flat_index >= 0:
            opt_i, opt_j = (int(k) for k in np.unravel_index(flat_index, matrix.shape))
        else:
            opt_i = opt_j = -1
        logger.info(
            f"Heatmap {x_parameter} x {y_parameter}: best {self.metric.display_name}="
            f"{optimum:.4f} at ({opt_i}, {opt_j})"
        )
        return HeatmapResult(
            x_parameter=x_parameter,
            y_parameter=y_parameter,
            metric=self.metric,
            x_values=x_values,
            y_values=y_values,
            matrix=matrix,
            optimal_i=opt_i,
            optimal_j=opt_j,
            optimal_value=optimum,
            plateau=self.analyze_plateau(matrix),
        )

    def analyze_plateau(self, values: np.ndarray) -> PlateauAnalysis:
        """Share of cells within ``plateau_tolerance`` of the optimum (NaN cells ignored)."""
        finite = values[~np.isnan(values)]
        if finite.size == 0:
            return PlateauAnalysis(0.0, "Low", 0.0, 0.0, 0.0)

        optimum = float(finite.min() if self.metric.minimize else finite.max())
        threshold = abs(optimum * self.plateau_tolerance)
        cells = int(np.count_nonzero(np.abs(finite - optimum) <= threshold))
        plateau_percent = cells / finite.size * 100.0
        lo, hi = float(finite.min()), float(finite.max())

        if plateau_percent > 30.0:
            robustness = "High"
        elif plateau_percent > 15.0:
            robustness = "Medium"
        else:
            robustness = "Low"
        return PlateauAnalysis(
            plateau_percent=plateau_percent,
            robustness=robustness,
            sensitivity=(hi - lo) / abs(optimum + 1e-4),
            min_value=lo,
            max_value=hi,
        )

    # ----- internals -----

    def _base_parameters(self) -> tuple[dict[str, Any], dict[str, StrategyParameter]]:
        template = self.strategy_factory()
        return template.get_parameter_values(), template.parameter_definitions()

    def _score_cells(self, tasks: list[tuple[Any, dict[str, Any]]], series: TimeSeries):
        worker = partial(
            score_cell, self.strategy_factory, self.config, self._calculator, self.metric, series
        )
        return run_parallel(
            worker, tasks, max_workers=self.max_workers, use_processes=self.use_processes
        )

    def _optimum(self, values: np.ndarray) -> tuple[int, float]:
        if np.all(np.isnan(values)):
            return -1, float("nan")
        index = int(np.nanargmin(values) if self.metric.minimize else np.nanargmax(values))
        return index, float(values[index])


def score_cell(
    strategy_factory: StrategyFactory,
    config: BacktestConfig,
    calculator: StatisticsCalculator,
    metric: SensitivityMetric,
    series: TimeSeries,
    task: tuple[Any, dict[str, Any]],
) -> float:
    """Metric value of one grid cell; ``task`` is ``(cell, parameters)``."""
    _, parameters = task
    result = simulate(strategy_factory, config, series, parameters)
    return metric.extract(calculator.calculate(result), result)


def _lookup(definitions: dict[str, StrategyParameter], name: str) -> StrategyParameter:
    try:
        return definitions[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown parameter: {name}", {"available": sorted(definitions)}
        ) from None


def _require_data(series: TimeSeries) -> None:
    if series.is_empty:
        raise InsufficientDataError("Sensitivity analysis needs a non-empty series")
