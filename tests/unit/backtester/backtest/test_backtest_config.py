"""Tests for BacktestConfig construction."""

import pytest
from pydantic import ValidationError

from backtester.backtest.config import BacktestConfig
from backtester.backtest.costs import CommissionModel, CommissionType, SpreadType
from backtester.exceptions import ConfigurationError


class TestBacktestConfig:
    def test_zero_cost(self):
        config = BacktestConfig.zero_cost(5_000.0)
        assert config.initial_capital == 5_000.0
        assert config.commission.calculate(100.0, 10) == 0.0
        assert config.spread.half_spread(100.0) == 0.0
        assert config.slippage.calculate(100.0, 10) == 0.0

    def test_default_reads_global_settings(self, monkeypatch):
        monkeypatch.setenv("BACKTESTER_SIMULATION__INITIAL_CAPITAL", "25000")
        monkeypatch.setenv("BACKTESTER_SIMULATION__COMMISSION_PERCENT", "0.2")
        config = BacktestConfig.default()
        assert config.initial_capital == 25_000.0
        assert config.commission.type is CommissionType.PERCENTAGE
        assert config.commission.value == pytest.approx(0.2)
        assert config.spread.type is SpreadType.PERCENTAGE

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_capital": 0.0},
            {"max_position_size_percent": 150.0},
            {"warmup_bars": -1},
        ],
    )
    def test_invalid_values_raise_configuration_error(self, kwargs):
        with pytest.raises(ConfigurationError, match="Invalid backtest configuration"):
            BacktestConfig.create(**kwargs)

    def test_with_costs_replaces_only_given_models(self):
        base = BacktestConfig.default()
        updated = base.with_costs(commission=CommissionModel.fixed(1.0))
        assert updated.commission.type is CommissionType.FIXED
        assert updated.spread == base.spread
        assert base.commission.type is CommissionType.PERCENTAGE

    def test_frozen(self):
        with pytest.raises(ValidationError):
            BacktestConfig.zero_cost().initial_capital = 1.0
