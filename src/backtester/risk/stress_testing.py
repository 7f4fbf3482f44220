"""
Stress testing.

Re-runs a strategy under a fixed battery of adverse conditions (higher
costs, rescaled volatility, crashes, gaps, a flat market and a trend
reversal) and grades how it holds up.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

import numpy as np

from backtester.backtest.config import BacktestConfig
from backtester.config import get_config
from backtester.data.bars import Bar
from backtester.data.series import TimeSeries
from backtester.exceptions import InsufficientDataError
from backtester.logging import get_logger
from backtester.metrics.statistics import StatisticsCalculator
from backtester.optimization.parallel import run_parallel, simulate
from backtester.strategy.registry import StrategyFactory

logger = get_logger("stress")

GAP_SEED = 42
GAP_PROBABILITY = 1 / 50


class ScenarioStatus(Enum):
    PASS = "PASS"
    MARGINAL = "MARGINAL"
    FAIL = "FAIL"
    FAILED = "FAILED"


@dataclass(frozen=True)
class StressScenarioResult:
    name: str
    description: str
    status: ScenarioStatus
    net_return: float = 0.0
    sharpe: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0
    trades: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is not ScenarioStatus.FAILED

    @property
    def is_profitable(self) -> bool:
        return self.net_return > 0


@dataclass(frozen=True)
class StressTestReport:
    scenarios: tuple[StressScenarioResult, ...]

    def _count(self, status: ScenarioStatus) -> int:
        return sum(1 for s in self.scenarios if s.status is status)

    @property
    def pass_count(self) -> int:
        return self._count(ScenarioStatus.PASS)

    @property
    def marginal_count(self) -> int:
        return self._count(ScenarioStatus.MARGINAL)

    @property
    def fail_count(self) -> int:
        return self._count(ScenarioStatus.FAIL)

    @property
    def failed_count(self) -> int:
        return self._count(ScenarioStatus.FAILED)

    @property
    def pass_rate(self) -> float:
        return self.pass_count / len(self.scenarios) if self.scenarios else 0.0

    @property
    def average_return(self) -> float:
        returns = [s.net_return for s in self.scenarios if s.success]
        return sum(returns) / len(returns) if returns else 0.0

    @property
    def worst_return(self) -> float:
        return min((s.net_return for s in self.scenarios if s.success), default=0.0)

    @property
    def rating(self) -> str:
        rate = self.pass_rate
        if rate > 0.8:
            return "Excellent"
        if rate > 0.6:
            return "Good"
        if rate > 0.4:
            return "Moderate"
        return "Poor"

    @property
    def baseline(self) -> StressScenarioResult | None:
        return self.get("Baseline")

    def get(self, name: str) -> StressScenarioResult | None:
        return next((s for s in self.scenarios if s.name == name), None)

    def summary(self) -> str:
        lines = [
            f"Stress test: {self.rating} ({self.pass_count}/{len(self.scenarios)} passed, "
            f"{self.marginal_count} marginal, {self.fail_count} failed, "
            f"{self.failed_count} errors)",
            f"  Average return {self.average_return:.2f}%, worst {self.worst_return:.2f}%",
        ]
        for s in self.scenarios:
            detail = s.error if s.error else (
                f"return {s.net_return:.2f}%, max DD {s.max_drawdown:.2f}%, {s.trades} trades"
            )
            lines.append(f"  [{s.status.value:<8}] {s.name}: {detail}")
        return "\n".join(lines)


@dataclass(frozen=True)
class StressScenario:
    name: str
    description: str
    config: BacktestConfig
    transform: Callable[[TimeSeries], TimeSeries] | None = None

    def apply(self, series: TimeSeries) -> TimeSeries:
        return self.transform(series) if self.transform is not None else series


class StressTester:
    """Runs the standard stress battery for one strategy.

    Args:
        strategy_factory: Zero-argument callable returning a fresh strategy.
        config: Baseline simulation settings; cost scenarios scale these.
        max_workers: Worker pool size for running scenarios.
        use_processes: Run scenarios in worker processes; ``strategy_factory``
            must then be picklable.
    """

    def __init__(
        self,
        strategy_factory: StrategyFactory,
        config: BacktestConfig | None = None,
        max_workers: int | None = None,
        use_processes: bool = False,
    ) -> None:
        defaults = get_config().robustness
        self.strategy_factory = strategy_factory
        self.config = config if config is not None else BacktestConfig.default()
        self.max_workers = max_workers
        self.use_processes = use_processes
        self.pass_max_drawdown = defaults.stress_pass_max_drawdown
        self._calculator = StatisticsCalculator(defaults.trading_periods_per_year)

    def scenarios(self) -> list[StressScenario]:
        base = self.config

        def cost_scenario(name: str, c: float, sl: float, sp: float) -> StressScenario:
            config = base.with_costs(
                commission=base.commission.scaled(c),
                slippage=base.slippage.scaled(sl),
                spread=base.spread.scaled(sp),
            )
            description = f"Commission {c:.1f}x, Slippage {sl:.1f}x, Spread {sp:.1f}x"
            return StressScenario(name, description, config)

        return [
            StressScenario("Baseline", "Normal conditions", base),
            cost_scenario("2x Commission", 2.0, 1.0, 1.0),
            cost_scenario("3x Commission", 3.0, 1.0, 1.0),
            cost_scenario("2x Slippage", 1.0, 2.0, 1.0),
            cost_scenario("2x Spread", 1.0, 1.0, 2.0),
            cost_scenario("All Costs 2x", 2.0, 2.0, 2.0),
            *(
                StressScenario(
                    f"{mult:g}x Volatility",
                    f"Volatility multiplied by {mult:g}x",
                    base,
                    partial(scale_volatility, multiplier=mult),
                )
                for mult in (1.5, 2.0, 0.5)
            ),
            *(
                StressScenario(
                    name,
                    f"{pct:.0%} crash injected mid-period",
                    base,
                    partial(inject_crash, crash_percent=pct),
                )
                for name, pct in (
                    ("10% Flash Crash", 0.10),
                    ("20% Market Crash", 0.20),
                    ("30% Bear Market", 0.30),
                )
            ),
            StressScenario(
                "Daily Gaps (+/-2%)", "+/-2% gaps injected", base,
                partial(inject_gaps, max_gap=0.02),
            ),
            StressScenario(
                "Weekly Gaps (+/-5%)", "+/-5% gaps injected", base,
                partial(inject_gaps, max_gap=0.05),
            ),
            StressScenario(
                "Extended Sideways",
                "30% of data converted to sideways",
                base,
                partial(inject_sideways, portion=0.3),
            ),
            StressScenario(
                "Trend Reversal", "Major trend reversal mid-period", base, inject_trend_reversal
            ),
        ]

    def run(self, series: TimeSeries) -> StressTestReport:
        if series.is_empty:
            raise InsufficientDataError("Stress testing needs a non-empty series")
        scenarios = self.scenarios()
        logger.info(f"Running {len(scenarios)} stress scenarios on {series.symbol or 'series'}")
        worker = partial(
            run_stress_scenario,
            self.strategy_factory,
            self._calculator,
            self.pass_max_drawdown,
            series,
        )
        outcomes = run_parallel(
            worker, scenarios, max_workers=self.max_workers, use_processes=self.use_processes
        )
        report = StressTestReport(tuple(result for _, result in outcomes))
        logger.info(
            f"Stress test complete: {report.rating} "
            f"({report.pass_count}/{len(report.scenarios)} passed)"
        )
        return report

    def run_scenario(self, scenario: StressScenario, series: TimeSeries) -> StressScenarioResult:
        """Run one scenario; errors are captured as a FAILED result."""
        return run_stress_scenario(
            self.strategy_factory, self._calculator, self.pass_max_drawdown, series, scenario
        )

    def classify(self, net_return: float, max_drawdown: float) -> ScenarioStatus:
        return classify_outcome(net_return, max_drawdown, self.pass_max_drawdown)


def run_stress_scenario(
    strategy_factory: StrategyFactory,
    calculator: StatisticsCalculator,
    pass_max_drawdown: float,
    series: TimeSeries,
    scenario: StressScenario,
) -> StressScenarioResult:
    try:
        result = simulate(strategy_factory, scenario.config, scenario.apply(series))
        stats = calculator.calculate(result)
    except Exception as e:
        logger.warning(f"Stress scenario '{scenario.name}' failed: {e}")
        return StressScenarioResult(
            scenario.name, scenario.description, ScenarioStatus.FAILED, error=str(e)
        )

    return StressScenarioResult(
        name=scenario.name,
        description=scenario.description,
        status=classify_outcome(
            result.net_return_percent, stats.max_drawdown_percent, pass_max_drawdown
        ),
        net_return=result.net_return_percent,
        sharpe=stats.sharpe,
        max_drawdown=stats.max_drawdown_percent,
        win_rate=stats.win_rate,
        trades=stats.total_trades,
    )


def classify_outcome(
    net_return: float, max_drawdown: float, pass_max_drawdown: float
) -> ScenarioStatus:
    if net_return > 0 and max_drawdown < pass_max_drawdown:
        return ScenarioStatus.PASS
    if net_return > 0:
        return ScenarioStatus.MARGINAL
    return ScenarioStatus.FAIL


# ----- series transforms -----


def _scaled(bar: Bar, factor: float) -> Bar:
    return bar.with_prices(
        bar.open * factor, bar.high * factor, bar.low * factor, bar.close * factor
    )


def scale_volatility(series: TimeSeries, multiplier: float) -> TimeSeries:
    """Stretch each bar around ``(open + close) / 2`` by ``multiplier``.

    High and low are clamped so they still bound open and close.
    """
    bars = []
    for bar in series:
        mid = (bar.open + bar.close) / 2.0
        o = mid + (bar.open - mid) * multiplier
        h = mid + (bar.high - mid) * multiplier
        low = mid + (bar.low - mid) * multiplier
        c = mid + (bar.close - mid) * multiplier
        bars.append(bar.with_prices(o, max(h, o, c), min(low, o, c), c))
    return TimeSeries(f"{series.symbol}_VOL{multiplier:g}", bars, series.timeframe)


def inject_crash(series: TimeSeries, crash_percent: float) -> TimeSeries:
    """Multiplicative decline of ``crash_percent`` spread over a window from mid-series."""
    n = len(series)
    start = n // 2
    duration = max(1, min(50, n // 10))
    per_bar = crash_percent / duration
    factor = 1.0
    bars = []
    for i, bar in enumerate(series):
        if start <= i < start + duration:
            factor *= 1.0 - per_bar
        bars.append(_scaled(bar, factor))
    return TimeSeries(f"{series.symbol}_CRASH", bars, series.timeframe)


def inject_gaps(series: TimeSeries, max_gap: float, seed: int = GAP_SEED) -> TimeSeries:
    """Random persistent gaps of up to ``+/-max_gap``, about one per 50 bars."""
    rng = np.random.default_rng(seed)
    factor = 1.0
    bars = []
    for i, bar in enumerate(series):
        if i > 0 and rng.random() < GAP_PROBABILITY:
            factor *= 1.0 + (rng.random() * 2.0 - 1.0) * max_gap
        bars.append(_scaled(bar, factor))
    return TimeSeries(f"{series.symbol}_GAPS", bars, series.timeframe)


def inject_sideways(series: TimeSeries, portion: float) -> TimeSeries:
    """Flatten ``portion`` of the series, starting a third of the way in."""
    n = len(series)
    if n == 0:
        return series
    start = n // 3
    end = start + int(n * portion)
    flat = series[start].close
    bars = []
    for i, bar in enumerate(series):
        if start <= i < end:
            half_range = bar.range * 0.3 / 2.0
            bars.append(bar.with_prices(flat, flat + half_range, flat - half_range, flat))
        else:
            bars.append(bar)
    return TimeSeries(f"{series.symbol}_SIDEWAYS", bars, series.timeframe)


def inject_trend_reversal(series: TimeSeries) -> TimeSeries:
    """Past the midpoint, divide prices by the mirrored bar's close ratio."""
    n = len(series)
    if n == 0:
        return series
    pivot = n // 2
    base = series[pivot].close
    bars = []
    for i, bar in enumerate(series):
        mirror = 2 * pivot - i
        if i > pivot and mirror >= 0:
            ratio = series[mirror].close / base
            bars.append(_scaled(bar, 1.0 / ratio))
        else:
            bars.append(bar)
    return TimeSeries(f"{series.symbol}_REVERSAL", bars, series.timeframe)
