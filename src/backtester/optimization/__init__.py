"""Parameter search and robustness analysis over many backtest runs."""

from .parallel import run_parallel, simulate
from .sensitivity import (
    HeatmapResult,
    PlateauAnalysis,
    SensitivityAnalyzer,
    SensitivityMetric,
    SweepResult,
)
from .walk_forward import (
    CandidateEvaluation,
    WalkForwardAnalyzer,
    WalkForwardResult,
    WindowResult,
)

__all__ = [
    "CandidateEvaluation",
    "HeatmapResult",
    "PlateauAnalysis",
    "SensitivityAnalyzer",
    "SensitivityMetric",
    "SweepResult",
    "WalkForwardAnalyzer",
    "WalkForwardResult",
    "WindowResult",
    "run_parallel",
    "simulate",
]
