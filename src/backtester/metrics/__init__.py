"""Performance statistics for backtest results."""

from .statistics import BacktestStatistics, StatisticsCalculator, calculate_statistics

__all__ = ["BacktestStatistics", "StatisticsCalculator", "calculate_statistics"]
