"""
Capability interfaces for externally supplied strategy logic.

Compiling user code and running ML models are handled by collaborators
outside this package; the simulator only sees the objects they return.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from backtester.strategy.base import Strategy


@runtime_checkable
class StrategyLoader(Protocol):
    def load(self, source: str) -> Strategy:
        """Build a strategy from ``source`` (a path, module name or code string)."""
        ...


@runtime_checkable
class Predictor(Protocol):
    def predict(self, features: np.ndarray) -> float | np.ndarray:
        """Return a score for ``features``; positive means bullish."""
        ...
