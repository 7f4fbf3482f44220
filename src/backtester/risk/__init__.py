"""Monte Carlo resampling and stress testing."""

from .monte_carlo import MonteCarloResult, MonteCarloSimulator, ResamplingMode
from .stress_testing import (
    ScenarioStatus,
    StressScenario,
    StressScenarioResult,
    StressTester,
    StressTestReport,
)

__all__ = [
    "MonteCarloResult",
    "MonteCarloSimulator",
    "ResamplingMode",
    "ScenarioStatus",
    "StressScenario",
    "StressScenarioResult",
    "StressTestReport",
    "StressTester",
]
