"""Technical indicators evaluated at a bar index."""

from .calculator import IndicatorCalculator, is_ready

__all__ = ["IndicatorCalculator", "is_ready"]
