"""
Backtester - bar-driven strategy simulation and robustness analysis

Replays a strategy over historical OHLCV bars with realistic execution costs,
then measures how much of the result survives resampling, walk-forward
validation, parameter sweeps and stress scenarios.

Key Features:
- Sequential, causal bar loop with commission, spread and slippage models
- Long/short portfolio accounting with per-trade MFE/MAE
- Strategy contract with typed parameters and a registry of built-ins
- Performance statistics (Sharpe, Sortino, Calmar, drawdown, expectancy)
- Monte Carlo, walk-forward, sensitivity and stress testing
"""

from .backtest import BacktestConfig, BacktestEngine, BacktestResult, run_backtest
from .config import get_config
from .data import Bar, TimeFrame, TimeSeries
from .exceptions import BacktesterError
from .metrics import BacktestStatistics, StatisticsCalculator
from .strategy import Strategy, StrategyParameter, StrategyRegistry

__version__ = "1.0.0"

__all__ = [
    "BacktestConfig",
    "BacktestEngine",
    "BacktestResult",
    "BacktestStatistics",
    "BacktesterError",
    "Bar",
    "StatisticsCalculator",
    "Strategy",
    "StrategyParameter",
    "StrategyRegistry",
    "TimeFrame",
    "TimeSeries",
    "__version__",
    "get_config",
    "run_backtest",
]
