"""
Shared fixtures.
"""

import pytest

from backtester.backtest.config import BacktestConfig
from backtester.config import set_config
from tests.factories import MarketDataFactory, TradeFactory


@pytest.fixture(autouse=True)
def reset_global_config():
    """Each test starts from defaults plus whatever the test patches into the environment."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def zero_cost_config():
    return BacktestConfig.zero_cost(initial_capital=10_000.0)


@pytest.fixture
def flat_series():
    return MarketDataFactory.flat(30)


@pytest.fixture
def rising_series():
    return MarketDataFactory.linear(60, start=100.0, step=1.0)


@pytest.fixture
def random_walk_series():
    return MarketDataFactory.random_walk(400)


@pytest.fixture
def sample_trades():
    return TradeFactory.trades([100.0, -50.0, 200.0, -25.0, 75.0, -150.0, 60.0, 40.0])
