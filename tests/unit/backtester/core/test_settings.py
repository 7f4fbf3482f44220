"""Tests for the global configuration."""

import pytest
from pydantic import ValidationError

from backtester.config import (
    BacktesterConfig,
    LoggingConfig,
    RobustnessDefaults,
    get_config,
    set_config,
)


class TestBacktesterConfig:
    def test_defaults(self):
        config = BacktesterConfig()
        assert config.logging.level == "INFO"
        assert config.simulation.initial_capital == 100_000.0
        assert config.robustness.monte_carlo_simulations == 10_000
        assert config.robustness.max_workers is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BACKTESTER_SIMULATION__INITIAL_CAPITAL", "50000")
        monkeypatch.setenv("BACKTESTER_ROBUSTNESS__SENSITIVITY_GRID_SIZE", "7")
        monkeypatch.setenv("BACKTESTER_LOGGING__LOG_TRADES", "false")
        config = BacktesterConfig.load()
        assert config.simulation.initial_capital == 50_000.0
        assert config.robustness.sensitivity_grid_size == 7
        assert config.logging.log_trades is False

    def test_unrelated_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("BACKTESTER_UNKNOWN__VALUE", "1")
        monkeypatch.setenv("BACKTESTER_NOSECTION", "1")
        assert BacktesterConfig.load() == BacktesterConfig()

    def test_invalid_environment_value(self, monkeypatch):
        monkeypatch.setenv("BACKTESTER_ROBUSTNESS__MONTE_CARLO_SIMULATIONS", "0")
        with pytest.raises(ValidationError):
            BacktesterConfig.load()

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="LOUD")

    def test_ruin_threshold_bounds(self):
        with pytest.raises(ValidationError):
            RobustnessDefaults(ruin_threshold=1.5)


class TestGlobalConfig:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_config(self):
        custom = BacktesterConfig(logging=LoggingConfig(level="ERROR"))
        set_config(custom)
        assert get_config() is custom

    def test_reset_reloads_environment(self, monkeypatch):
        assert get_config().simulation.warmup_bars == 0
        monkeypatch.setenv("BACKTESTER_SIMULATION__WARMUP_BARS", "25")
        assert get_config().simulation.warmup_bars == 0
        set_config(None)
        assert get_config().simulation.warmup_bars == 25
