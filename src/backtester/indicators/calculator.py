"""
Point-in-time technical indicators.

Every method takes the bar index it is evaluated at and only reads data up
to and including that index. Insufficient history yields ``nan``.
"""

from __future__ import annotations

import math

import numpy as np

from backtester.data.series import TimeSeries

NAN = float("nan")


class IndicatorCalculator:
    def __init__(self, series: TimeSeries) -> None:
        self.series = series
        self.opens = series.opens
        self.highs = series.highs
        self.lows = series.lows
        self.closes = series.closes
        self._ema_cache: dict[int, np.ndarray] = {}
        self._signal_cache: dict[tuple[int, int, int], np.ndarray] = {}

    # --- moving averages / dispersion ---

    def sma(self, index: int, period: int) -> float:
        if period <= 0 or index < period - 1:
            return NAN
        return float(self.closes[index - period + 1 : index + 1].mean())

    def ema(self, index: int, period: int) -> float:
        if period <= 0 or index < period - 1:
            return NAN
        return float(self.ema_series(period)[index])

    def ema_series(self, period: int) -> np.ndarray:
        """EMA over the whole series, seeded with the SMA of the first ``period`` closes.

        Entry ``i`` depends only on closes up to ``i``. Computed once per period.
        """
        cached = self._ema_cache.get(period)
        if cached is not None:
            return cached

        n = len(self.closes)
        values = np.full(n, np.nan)
        if 0 < period <= n:
            multiplier = 2.0 / (period + 1)
            value = float(self.closes[:period].mean())
            values[period - 1] = value
            for i in range(period, n):
                value = (self.closes[i] - value) * multiplier + value
                values[i] = value
        self._ema_cache[period] = values
        return values

    def std_dev(self, index: int, period: int) -> float:
        """Population standard deviation of closes."""
        if period <= 0 or index < period - 1:
            return NAN
        return float(self.closes[index - period + 1 : index + 1].std(ddof=0))

    def bollinger_upper(self, index: int, period: int, num_std: float) -> float:
        return self.sma(index, period) + num_std * self.std_dev(index, period)

    def bollinger_lower(self, index: int, period: int, num_std: float) -> float:
        return self.sma(index, period) - num_std * self.std_dev(index, period)

    # --- oscillators ---

    def rsi(self, index: int, period: int) -> float:
        if period <= 0 or index < period:
            return NAN
        changes = np.diff(self.closes[index - period : index + 1])
        avg_gain = changes[changes > 0].sum() / period
        avg_loss = -changes[changes < 0].sum() / period
        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return float(100.0 - 100.0 / (1.0 + rs))

    def momentum(self, index: int, period: int) -> float:
        if period <= 0 or index < period:
            return NAN
        return float(self.closes[index] - self.closes[index - period])

    def roc(self, index: int, period: int) -> float:
        if period <= 0 or index < period:
            return NAN
        base = self.closes[index - period]
        if base == 0:
            return NAN
        return float((self.closes[index] / base - 1.0) * 100.0)

    def macd(self, index: int, fast: int, slow: int) -> float:
        return self.ema(index, fast) - self.ema(index, slow)

    def macd_series(self, fast: int, slow: int) -> np.ndarray:
        return self.ema_series(fast) - self.ema_series(slow)

    def macd_signal(self, index: int, fast: int, slow: int, signal: int) -> float:
        if signal <= 0 or index < slow + signal - 1:
            return NAN
        return float(self.macd_signal_series(fast, slow, signal)[index])

    def macd_signal_series(self, fast: int, slow: int, signal: int) -> np.ndarray:
        """Signal line: EMA of the MACD seeded with the MACD at ``slow + signal - 2``."""
        key = (fast, slow, signal)
        cached = self._signal_cache.get(key)
        if cached is not None:
            return cached

        macd = self.macd_series(fast, slow)
        n = len(macd)
        values = np.full(n, np.nan)
        seed = slow + signal - 2
        if signal > 0 and 0 <= seed < n:
            multiplier = 2.0 / (signal + 1)
            value = macd[seed]
            for i in range(seed + 1, n):
                value = (macd[i] - value) * multiplier + value
                values[i] = value
        self._signal_cache[key] = values
        return values

    def cci(self, index: int, period: int) -> float:
        if period <= 0 or index < period - 1:
            return NAN
        window = slice(index - period + 1, index + 1)
        typical = (self.highs[window] + self.lows[window] + self.closes[window]) / 3.0
        mean_tp = typical.mean()
        mean_dev = np.abs(typical - mean_tp).mean()
        if mean_dev == 0:
            return 0.0
        return float((typical[-1] - mean_tp) / (0.015 * mean_dev))

    def williams_r(self, index: int, period: int) -> float:
        if period <= 0 or index < period - 1:
            return NAN
        hh = self.highest(index, period)
        ll = self.lowest(index, period)
        if hh == ll:
            return -50.0
        return float((hh - self.closes[index]) / (hh - ll) * -100.0)

    def stoch_k(self, index: int, period: int) -> float:
        if period <= 0 or index < period - 1:
            return NAN
        hh = self.highest(index, period)
        ll = self.lowest(index, period)
        if hh == ll:
            return 50.0
        return float((self.closes[index] - ll) / (hh - ll) * 100.0)

    def stoch_d(self, index: int, period: int, smoothing: int) -> float:
        if smoothing <= 0 or index < period + smoothing - 2:
            return NAN
        values = [self.stoch_k(i, period) for i in range(index - smoothing + 1, index + 1)]
        return float(sum(values) / smoothing)

    # --- range / trend ---

    def highest(self, index: int, period: int) -> float:
        if period <= 0 or index < 0:
            return NAN
        return float(self.highs[max(0, index - period + 1) : index + 1].max())

    def lowest(self, index: int, period: int) -> float:
        if period <= 0 or index < 0:
            return NAN
        return float(self.lows[max(0, index - period + 1) : index + 1].min())

    def true_range(self, index: int) -> float:
        prev_close = self.closes[index - 1] if index > 0 else self.opens[index]
        high, low = self.highs[index], self.lows[index]
        return float(max(high - low, abs(high - prev_close), abs(low - prev_close)))

    def atr(self, index: int, period: int) -> float:
        if period <= 0 or index < period:
            return NAN
        return sum(self.true_range(i) for i in range(index - period + 1, index + 1)) / period

    def adx(self, index: int, period: int) -> float:
        """Average of single-bar DX readings over ``period`` bars."""
        if period <= 0 or index < period * 2:
            return NAN
        dx_sum = 0.0
        for i in range(index - period + 1, index + 1):
            plus_dm = max(self.highs[i] - self.highs[i - 1], 0.0)
            minus_dm = max(self.lows[i - 1] - self.lows[i], 0.0)
            if plus_dm > minus_dm:
                minus_dm = 0.0
            else:
                plus_dm = 0.0
            tr = self.true_range(i)
            if tr == 0:
                continue
            plus_di = 100.0 * plus_dm / tr
            minus_di = 100.0 * minus_dm / tr
            di_sum = plus_di + minus_di
            if di_sum > 0:
                dx_sum += 100.0 * abs(plus_di - minus_di) / di_sum
        return dx_sum / period


def is_ready(*values: float) -> bool:
    """True when none of the indicator readings is nan."""
    return not any(math.isnan(v) for v in values)
