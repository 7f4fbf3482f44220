"""Unified configuration for the backtester.

Defaults for simulation costs, the robustness suite and logging live here so
that engines and analyzers never hardcode them. Values can be overridden with
``BACKTESTER_*`` environment variables or by installing a config with
``set_config``.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")

    log_trades: bool = Field(default=True, description="Log strategy trade messages")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class SimulationDefaults(BaseModel):
    """Defaults used by ``BacktestConfig.default()``."""

    initial_capital: float = Field(default=100_000.0, description="Starting cash", gt=0)

    commission_percent: float = Field(
        default=0.1, description="Commission as percent of notional", ge=0
    )

    spread_percent: float = Field(default=0.01, description="Half spread as percent of price", ge=0)

    slippage_percent: float = Field(default=0.05, description="Slippage as percent of price", ge=0)

    allow_shorts: bool = Field(default=True, description="Allow opening short positions")

    max_position_size_percent: float = Field(
        default=100.0, description="Cap for sizing helpers as percent of equity", gt=0, le=100
    )

    warmup_bars: int = Field(default=0, description="Bars without strategy callbacks", ge=0)


class RobustnessDefaults(BaseModel):
    """Defaults for Monte Carlo, walk-forward, sensitivity and stress testing."""

    monte_carlo_simulations: int = Field(default=10_000, gt=0)
    monte_carlo_stored_curves: int = Field(default=100, ge=0)
    ruin_threshold: float = Field(
        default=0.5, description="Fraction of initial equity counted as ruin", gt=0, lt=1
    )

    walk_forward_train_bars: int = Field(default=5000, gt=0)
    walk_forward_test_bars: int = Field(default=1000, gt=0)
    walk_forward_step_bars: int = Field(default=500, gt=0)
    walk_forward_iterations: int = Field(default=50, gt=0)

    sensitivity_grid_size: int = Field(default=10, ge=2)
    plateau_tolerance: float = Field(default=0.10, gt=0, lt=1)

    stress_pass_max_drawdown: float = Field(
        default=30.0, description="Max drawdown percent for a PASS scenario", gt=0
    )

    trading_periods_per_year: int = Field(default=252, gt=0)

    max_workers: int | None = Field(
        default=None, description="Worker pool size (None = cpu count)", gt=0
    )


class BacktesterConfig(BaseModel):
    """Top-level configuration object."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    simulation: SimulationDefaults = Field(default_factory=SimulationDefaults)
    robustness: RobustnessDefaults = Field(default_factory=RobustnessDefaults)

    @classmethod
    def load(cls) -> BacktesterConfig:
        """Build configuration from defaults plus environment overrides."""
        return cls.model_validate(cls._load_from_env())

    @staticmethod
    def _load_from_env() -> dict[str, Any]:
        """Collect ``BACKTESTER_<SECTION>__<FIELD>`` overrides.

        Example: ``BACKTESTER_SIMULATION__INITIAL_CAPITAL=50000``.
        """
        config: dict[str, dict[str, str]] = {}
        prefix = "BACKTESTER_"
        for key, value in os.environ.items():
            if not key.startswith(prefix) or "__" not in key:
                continue
            section, _, field = key[len(prefix) :].lower().partition("__")
            if section in BacktesterConfig.model_fields:
                config.setdefault(section, {})[field] = value
        return config


# Singleton instance
_config: BacktesterConfig | None = None


def get_config() -> BacktesterConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = BacktesterConfig.load()
    return _config


def set_config(config: BacktesterConfig | None) -> None:
    """Set the global configuration instance (None resets to lazy loading)."""
    global _config
    _config = config
