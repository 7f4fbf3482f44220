"""Tests for point-in-time indicators."""

import math

import numpy as np
import pandas as pd
import pytest

from backtester.indicators.calculator import IndicatorCalculator, is_ready
from tests.factories import MarketDataFactory

CLOSES = [44.0, 44.5, 43.5, 44.0, 45.0, 46.0, 45.5, 46.5, 47.0, 46.0, 47.5, 48.0]


@pytest.fixture
def calc():
    return IndicatorCalculator(MarketDataFactory.from_closes(CLOSES, spread=0.5))


class TestMovingAverages:
    def test_sma_matches_rolling_mean(self, calc):
        expected = pd.Series(CLOSES).rolling(5).mean()
        for i in range(4, len(CLOSES)):
            assert calc.sma(i, 5) == pytest.approx(expected[i])

    def test_sma_needs_full_window(self, calc):
        assert math.isnan(calc.sma(3, 5))
        assert math.isnan(calc.sma(3, 0))

    def test_ema_seeded_with_sma(self, calc):
        k = 2.0 / 4.0
        value = np.mean(CLOSES[:3])
        for price in CLOSES[3:8]:
            value = (price - value) * k + value
        assert calc.ema(2, 3) == pytest.approx(np.mean(CLOSES[:3]))
        assert calc.ema(7, 3) == pytest.approx(value)

    def test_std_dev_is_population(self, calc):
        assert calc.std_dev(4, 5) == pytest.approx(np.std(CLOSES[:5], ddof=0))

    def test_bollinger_bands_are_symmetric(self, calc):
        upper = calc.bollinger_upper(9, 5, 2.0)
        lower = calc.bollinger_lower(9, 5, 2.0)
        assert (upper + lower) / 2 == pytest.approx(calc.sma(9, 5))
        assert upper - lower == pytest.approx(4.0 * calc.std_dev(9, 5))


class TestOscillators:
    def test_rsi_all_gains_is_100(self):
        calc = IndicatorCalculator(MarketDataFactory.linear(20))
        assert calc.rsi(15, 14) == 100.0

    def test_rsi_simple_average(self, calc):
        changes = np.diff(CLOSES[:6])
        gain = changes[changes > 0].sum() / 5
        loss = -changes[changes < 0].sum() / 5
        assert calc.rsi(5, 5) == pytest.approx(100 - 100 / (1 + gain / loss))

    def test_rsi_needs_period_plus_one_bars(self, calc):
        assert math.isnan(calc.rsi(4, 5))

    def test_momentum_and_roc(self, calc):
        assert calc.momentum(5, 5) == pytest.approx(46.0 - 44.0)
        assert calc.roc(5, 5) == pytest.approx((46.0 / 44.0 - 1) * 100)
        assert math.isnan(calc.roc(2, 5))

    def test_macd_is_ema_difference(self, calc):
        assert calc.macd(8, 3, 6) == pytest.approx(calc.ema(8, 3) - calc.ema(8, 6))
        assert math.isnan(calc.macd(4, 3, 6))

    def test_macd_signal_warmup(self, calc):
        assert math.isnan(calc.macd_signal(7, 3, 6, 3))
        assert is_ready(calc.macd_signal(8, 3, 6, 3))

    def test_stochastics_bounds(self, calc):
        for i in range(4, len(CLOSES)):
            assert 0.0 <= calc.stoch_k(i, 5) <= 100.0
            assert -100.0 <= calc.williams_r(i, 5) <= 0.0
        assert calc.stoch_d(6, 5, 3) == pytest.approx(
            np.mean([calc.stoch_k(i, 5) for i in (4, 5, 6)])
        )

    def test_flat_prices_give_neutral_readings(self):
        calc = IndicatorCalculator(MarketDataFactory.from_closes([10.0] * 10, spread=0.0))
        assert calc.stoch_k(9, 5) == 50.0
        assert calc.williams_r(9, 5) == -50.0
        assert calc.cci(9, 5) == 0.0


def reference_ema(closes, index, period):
    value = float(np.mean(closes[:period]))
    for price in closes[period : index + 1]:
        value = (price - value) * (2.0 / (period + 1)) + value
    return value


def reference_signal(closes, index, fast, slow, signal):
    def macd(i):
        return reference_ema(closes, i, fast) - reference_ema(closes, i, slow)

    value = macd(slow + signal - 2)
    for i in range(slow + signal - 1, index + 1):
        value = (macd(i) - value) * (2.0 / (signal + 1)) + value
    return value


class TestCachedSeries:
    @pytest.fixture
    def walk(self):
        return MarketDataFactory.random_walk(120, seed=3)

    def test_ema_matches_recursive_reference(self, walk):
        calc = IndicatorCalculator(walk)
        closes = walk.closes
        for i in (9, 10, 50, 119):
            assert calc.ema(i, 10) == pytest.approx(reference_ema(closes, i, 10), rel=1e-12)

    def test_macd_signal_matches_recursive_reference(self, walk):
        calc = IndicatorCalculator(walk)
        closes = walk.closes
        for i in (34, 35, 80, 119):
            expected = reference_signal(closes, i, 12, 26, 9)
            assert calc.macd_signal(i, 12, 26, 9) == pytest.approx(expected, rel=1e-12)
        assert math.isnan(calc.macd_signal(33, 12, 26, 9))

    def test_series_computed_once_per_key(self, walk):
        calc = IndicatorCalculator(walk)
        assert calc.ema_series(10) is calc.ema_series(10)
        assert calc.macd_signal_series(12, 26, 9) is calc.macd_signal_series(12, 26, 9)

    def test_period_longer_than_series(self):
        calc = IndicatorCalculator(MarketDataFactory.flat(5))
        assert np.isnan(calc.ema_series(10)).all()
        assert math.isnan(calc.macd_signal(4, 3, 10, 2))

class TestRangeIndicators:
    def test_highest_lowest_clamp_to_available_history(self, calc):
        assert calc.highest(2, 10) == max(CLOSES[:3]) + 0.5
        assert calc.lowest(2, 10) == min(CLOSES[:3]) - 0.5

    def test_atr_of_constant_range(self):
        calc = IndicatorCalculator(MarketDataFactory.from_closes([50.0] * 10, spread=1.0))
        assert calc.atr(5, 5) == pytest.approx(2.0)
        assert math.isnan(calc.atr(4, 5))

    def test_true_range_includes_gap(self):
        calc = IndicatorCalculator(MarketDataFactory.from_closes([50.0, 60.0], spread=1.0))
        assert calc.true_range(1) == pytest.approx(11.0)

    def test_adx_strong_trend(self):
        calc = IndicatorCalculator(MarketDataFactory.linear(40, step=2.0))
        assert calc.adx(30, 10) == pytest.approx(100.0)
        assert math.isnan(calc.adx(15, 10))


class TestNoLookahead:
    def test_value_unchanged_by_future_bars(self):
        series = MarketDataFactory.random_walk(200)
        full = IndicatorCalculator(series)
        truncated = IndicatorCalculator(series.slice(0, 101))
        for method in ("sma", "ema", "rsi", "atr", "cci"):
            assert getattr(full, method)(100, 14) == pytest.approx(
                getattr(truncated, method)(100, 14)
            )
