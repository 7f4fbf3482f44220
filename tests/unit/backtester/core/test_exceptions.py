"""Tests for the exception hierarchy and raise helpers."""

import pytest

from backtester.exceptions import (
    BacktesterError,
    ConfigurationError,
    DataError,
    InsufficientDataError,
    InsufficientFundsError,
    InvalidBarError,
    OptimizationError,
    PortfolioError,
    StrategyError,
    StrategyExecutionError,
    StrategyNotFoundError,
    raise_if_invalid_data,
    raise_if_out_of_range,
)


class TestBacktesterError:
    def test_message_only(self):
        error = BacktesterError("something broke")
        assert str(error) == "something broke"
        assert error.details == {}

    def test_details_rendered(self):
        error = BacktesterError("bad bar", {"index": 3, "symbol": "EURUSD"})
        assert str(error) == "bad bar (Details: index=3, symbol=EURUSD)"
        assert error.message == "bad bar"

    @pytest.mark.parametrize(
        "subclass,parent",
        [
            (ConfigurationError, BacktesterError),
            (InsufficientDataError, DataError),
            (InvalidBarError, DataError),
            (StrategyNotFoundError, StrategyError),
            (StrategyExecutionError, StrategyError),
            (InsufficientFundsError, PortfolioError),
            (OptimizationError, BacktesterError),
        ],
    )
    def test_hierarchy(self, subclass, parent):
        assert issubclass(subclass, parent)
        assert issubclass(subclass, BacktesterError)


class TestInsufficientFundsError:
    def test_attributes(self):
        error = InsufficientFundsError(required=1500.0, available=1000.0)
        assert error.required == 1500.0
        assert error.available == 1000.0
        assert "Required: 1500.00, Available: 1000.00" in str(error)


class TestRaiseHelpers:
    def test_invalid_data(self):
        with pytest.raises(DataError, match="Invalid data: NaNs") as exc_info:
            raise_if_invalid_data(True, "NaNs", count=2)
        assert exc_info.value.details == {"count": 2}

    def test_valid_data_passes(self):
        raise_if_invalid_data(False, "unused")

    def test_out_of_range(self):
        with pytest.raises(ConfigurationError, match="ruin_threshold") as exc_info:
            raise_if_out_of_range(1.2, 0.0, 1.0, "ruin_threshold")
        assert exc_info.value.details["value"] == 1.2

    def test_bounds_are_inclusive(self):
        raise_if_out_of_range(0.0, 0.0, 1.0, "x")
        raise_if_out_of_range(1.0, 0.0, 1.0, "x")
