"""Tests for StrategyParameter."""

import pytest

from backtester.exceptions import ConfigurationError
from backtester.strategy.parameters import ParameterType, StrategyParameter


@pytest.fixture
def period():
    return StrategyParameter.int_param("period", "Lookback", 14, 2, 50)


class TestStrategyParameter:
    def test_factories_set_types(self, period):
        assert period.type is ParameterType.INTEGER
        assert StrategyParameter.float_param("x", "", 1.0, 0.0, 2.0).type is ParameterType.DOUBLE
        assert StrategyParameter.bool_param("b", "", True).type is ParameterType.BOOLEAN
        assert StrategyParameter.str_param("s", "", "a").type is ParameterType.STRING

    def test_is_numeric(self, period):
        assert period.is_numeric
        assert not StrategyParameter.bool_param("b", "", True).is_numeric

    def test_effective_step_defaults(self):
        bare_int = StrategyParameter(name="n", type=ParameterType.INTEGER)
        bare_float = StrategyParameter(name="f", type=ParameterType.DOUBLE)
        assert bare_int.effective_step == 1
        assert bare_float.effective_step == 0.1

    @pytest.mark.parametrize(
        "ptype,raw,expected",
        [
            (ParameterType.INTEGER, "7", 7),
            (ParameterType.INTEGER, 6.6, 7),
            (ParameterType.DOUBLE, "1.5", 1.5),
            (ParameterType.BOOLEAN, "yes", True),
            (ParameterType.BOOLEAN, "off", False),
            (ParameterType.BOOLEAN, 0, False),
            (ParameterType.STRING, 12, "12"),
        ],
    )
    def test_convert(self, ptype, raw, expected):
        assert StrategyParameter(name="p", type=ptype).convert(raw) == expected

    def test_validate_range(self, period):
        assert period.validate_value(20) == 20
        with pytest.raises(ConfigurationError, match="below minimum"):
            period.validate_value(1)
        with pytest.raises(ConfigurationError, match="above maximum"):
            period.validate_value(51)

    def test_validate_bad_type(self, period):
        with pytest.raises(ConfigurationError, match="Invalid value for period"):
            period.validate_value("abc")

    def test_is_valid(self, period):
        assert period.is_valid(2)
        assert not period.is_valid(100)

    def test_str(self, period):
        assert str(period) == "period (int) = 14 [2 to 50]"
