"""Strategy contract, parameters, registry and built-ins."""

from .base import Strategy
from .parameters import ParameterType, StrategyParameter
from .plugins import Predictor, StrategyLoader
from .registry import StrategyFactory, StrategyRegistry

__all__ = [
    "ParameterType",
    "Predictor",
    "Strategy",
    "StrategyFactory",
    "StrategyLoader",
    "StrategyParameter",
    "StrategyRegistry",
]
