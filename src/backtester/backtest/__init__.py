"""Bar-driven simulation: cost models, portfolio, execution context and engine."""

from .config import BacktestConfig
from .context import ExecutionContext
from .costs import (
    CommissionModel,
    CommissionType,
    SlippageModel,
    SlippageType,
    SpreadModel,
    SpreadType,
)
from .engine import BacktestEngine, BacktestResult, run_backtest
from .portfolio import EquityPoint, Portfolio, Position, Side, Trade

__all__ = [
    "BacktestConfig",
    "BacktestEngine",
    "BacktestResult",
    "CommissionModel",
    "CommissionType",
    "EquityPoint",
    "ExecutionContext",
    "Portfolio",
    "Position",
    "Side",
    "SlippageModel",
    "SlippageType",
    "SpreadModel",
    "SpreadType",
    "Trade",
    "run_backtest",
]
