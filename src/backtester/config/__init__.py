"""Configuration module for the backtester."""

from .settings import (
    BacktesterConfig,
    LoggingConfig,
    RobustnessDefaults,
    SimulationDefaults,
    get_config,
    set_config,
)

__all__ = [
    "BacktesterConfig",
    "LoggingConfig",
    "RobustnessDefaults",
    "SimulationDefaults",
    "get_config",
    "set_config",
]
