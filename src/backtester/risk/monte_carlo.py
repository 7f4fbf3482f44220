"""
Monte Carlo resampling of closed-trade P&L.

Each simulation replays the trade P&L sequence, either reordered (shuffle)
or drawn with replacement (bootstrap), onto the initial equity and records
the final equity and the worst peak-to-trough drawdown.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from backtester.backtest.engine import BacktestResult
from backtester.backtest.portfolio import Trade
from backtester.config import get_config
from backtester.exceptions import ConfigurationError, raise_if_out_of_range
from backtester.logging import get_logger

logger = get_logger("monte_carlo")

# Simulations replayed per vectorised batch
_CHUNK = 1000


class ResamplingMode(Enum):
    SHUFFLE = "shuffle"
    BOOTSTRAP = "bootstrap"


@dataclass(frozen=True)
class MonteCarloResult:
    simulations: int = 0
    initial_equity: float = 0.0
    mode: ResamplingMode = ResamplingMode.SHUFFLE

    equity_p5: float = 0.0
    equity_p25: float = 0.0
    equity_p50: float = 0.0
    equity_p75: float = 0.0
    equity_p95: float = 0.0
    equity_mean: float = 0.0
    equity_std: float = 0.0

    drawdown_p5: float = 0.0
    drawdown_p50: float = 0.0
    drawdown_p95: float = 0.0
    drawdown_mean: float = 0.0

    ruin_probability: float = 0.0

    original_final_equity: float = 0.0
    original_max_drawdown: float = 0.0

    final_equities: np.ndarray = field(default_factory=lambda: np.empty(0))
    max_drawdowns: np.ndarray = field(default_factory=lambda: np.empty(0))
    equity_curves: tuple[np.ndarray, ...] = ()

    @classmethod
    def empty(cls, initial_equity: float = 0.0) -> MonteCarloResult:
        return cls(initial_equity=initial_equity)

    @property
    def is_empty(self) -> bool:
        return self.simulations == 0

    def _pct(self, equity: float) -> float:
        if self.initial_equity == 0:
            return 0.0
        return (equity - self.initial_equity) / self.initial_equity * 100.0

    def return_range(self) -> str:
        """5th to 95th percentile return, e.g. ``"-4.2% to 18.9%"``."""
        return f"{self._pct(self.equity_p5):.1f}% to {self._pct(self.equity_p95):.1f}%"

    def drawdown_range(self) -> str:
        return f"{self.drawdown_p5:.1f}% to {self.drawdown_p95:.1f}%"

    def summary(self) -> str:
        return (
            f"Monte Carlo ({self.simulations} x {self.mode.value}): "
            f"median equity {self.equity_p50:,.2f}, returns {self.return_range()}, "
            f"drawdowns {self.drawdown_range()}, ruin {self.ruin_probability:.2f}%"
        )


class MonteCarloSimulator:
    """Resamples trade P&L to estimate the spread of outcomes.

    Args:
        simulations: Number of resampled sequences.
        mode: ``SHUFFLE`` reorders the trades; ``BOOTSTRAP`` draws with
            replacement.
        seed: RNG seed; identical seeds give identical results.
        stored_curves: Number of full equity curves kept for plotting.
        ruin_threshold: Final equity below ``ruin_threshold * initial``
            counts as ruin.
    """

    def __init__(
        self,
        simulations: int | None = None,
        mode: ResamplingMode = ResamplingMode.SHUFFLE,
        seed: int | None = None,
        stored_curves: int | None = None,
        ruin_threshold: float | None = None,
    ) -> None:
        defaults = get_config().robustness
        self.simulations = (
            simulations if simulations is not None else defaults.monte_carlo_simulations
        )
        self.mode = mode
        self.seed = seed
        self.stored_curves = (
            stored_curves if stored_curves is not None else defaults.monte_carlo_stored_curves
        )
        self.ruin_threshold = (
            ruin_threshold if ruin_threshold is not None else defaults.ruin_threshold
        )
        if self.simulations <= 0:
            raise ConfigurationError("simulations must be positive", {"value": self.simulations})
        raise_if_out_of_range(self.ruin_threshold, 0.0, 1.0, "ruin_threshold")

    def run(
        self, trades: Sequence[Trade] | Sequence[float], initial_equity: float
    ) -> MonteCarloResult:
        pnls = np.array(
            [t.net_pnl if isinstance(t, Trade) else float(t) for t in trades], dtype=float
        )
        if pnls.size == 0:
            logger.debug("No trades to resample")
            return MonteCarloResult.empty(initial_equity)

        rng = np.random.default_rng(self.seed)
        n_sims = self.simulations
        finals = np.empty(n_sims)
        drawdowns = np.empty(n_sims)
        curves: list[np.ndarray] = []

        for start in range(0, n_sims, _CHUNK):
            size = min(_CHUNK, n_sims - start)
            if self.mode is ResamplingMode.BOOTSTRAP:
                samples = rng.choice(pnls, size=(size, pnls.size), replace=True)
            else:
                samples = rng.permuted(np.tile(pnls, (size, 1)), axis=1)
            equity = _equity_paths(samples, initial_equity)
            finals[start : start + size] = equity[:, -1]
            drawdowns[start : start + size] = _max_drawdown_percent(equity)

            keep = self.stored_curves - len(curves)
            if keep > 0:
                curves.extend(row.copy() for row in equity[:keep])

        original = _equity_paths(pnls[np.newaxis, :], initial_equity)
        finals_sorted = np.sort(finals)
        drawdowns_sorted = np.sort(drawdowns)
        ruined = int(np.count_nonzero(finals < initial_equity * self.ruin_threshold))

        result = MonteCarloResult(
            simulations=n_sims,
            initial_equity=initial_equity,
            mode=self.mode,
            equity_p5=percentile(finals_sorted, 5),
            equity_p25=percentile(finals_sorted, 25),
            equity_p50=percentile(finals_sorted, 50),
            equity_p75=percentile(finals_sorted, 75),
            equity_p95=percentile(finals_sorted, 95),
            equity_mean=float(finals.mean()),
            equity_std=float(finals.std(ddof=1)) if n_sims > 1 else 0.0,
            drawdown_p5=percentile(drawdowns_sorted, 5),
            drawdown_p50=percentile(drawdowns_sorted, 50),
            drawdown_p95=percentile(drawdowns_sorted, 95),
            drawdown_mean=float(drawdowns.mean()),
            ruin_probability=ruined / n_sims * 100.0,
            original_final_equity=float(original[0, -1]),
            original_max_drawdown=float(_max_drawdown_percent(original)[0]),
            final_equities=finals_sorted,
            max_drawdowns=drawdowns_sorted,
            equity_curves=tuple(curves),
        )
        logger.debug(result.summary())
        return result

    def run_result(self, result: BacktestResult) -> MonteCarloResult:
        """Resample the closed trades of a finished backtest."""
        return self.run(result.trades, result.initial_equity)


def percentile(sorted_values: np.ndarray, p: float) -> float:
    """Nearest-rank percentile of an ascending array."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    index = math.ceil(p / 100.0 * n) - 1
    return float(sorted_values[max(0, min(index, n - 1))])


def _equity_paths(samples: np.ndarray, initial_equity: float) -> np.ndarray:
    """Equity after each trade, with the initial equity as column 0."""
    start = np.full((samples.shape[0], 1), initial_equity, dtype=float)
    return np.hstack([start, initial_equity + np.cumsum(samples, axis=1)])


def _max_drawdown_percent(equity: np.ndarray) -> np.ndarray:
    peaks = np.maximum.accumulate(equity, axis=1)
    drawdown = np.divide(
        peaks - equity, peaks, out=np.zeros_like(equity), where=peaks > 0
    )
    return drawdown.max(axis=1) * 100.0
