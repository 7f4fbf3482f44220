"""Built-in strategies."""

from .donchian_breakout import DonchianBreakoutStrategy
from .macd_signal import MacdSignalStrategy
from .prediction import PredictionStrategy
from .rsi_reversion import RsiMeanReversionStrategy
from .sma_crossover import SmaCrossoverStrategy

# Strategies constructible without arguments, registered by StrategyRegistry.with_builtins()
BUILTIN_STRATEGIES = (
    SmaCrossoverStrategy,
    RsiMeanReversionStrategy,
    MacdSignalStrategy,
    DonchianBreakoutStrategy,
)

__all__ = [
    "BUILTIN_STRATEGIES",
    "DonchianBreakoutStrategy",
    "MacdSignalStrategy",
    "PredictionStrategy",
    "RsiMeanReversionStrategy",
    "SmaCrossoverStrategy",
]
