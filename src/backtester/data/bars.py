"""
Bar and timeframe primitives.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class TimeFrame(Enum):
    """Bar interval, with its length in milliseconds."""

    M1 = ("1 Minute", 60_000)
    M5 = ("5 Minutes", 300_000)
    M15 = ("15 Minutes", 900_000)
    M30 = ("30 Minutes", 1_800_000)
    H1 = ("1 Hour", 3_600_000)
    H4 = ("4 Hours", 14_400_000)
    D1 = ("Daily", 86_400_000)
    W1 = ("Weekly", 604_800_000)
    UNKNOWN = ("Unknown", 0)

    def __init__(self, label: str, milliseconds: int) -> None:
        self.label = label
        self.milliseconds = milliseconds

    @property
    def bars_per_year(self) -> int:
        """Bars per trading year, assuming 252 trading days."""
        return _BARS_PER_YEAR[self.name]

    @classmethod
    def from_milliseconds(cls, milliseconds: float) -> TimeFrame:
        """Match an observed interval to a timeframe within 20% tolerance."""
        for tf in cls:
            if tf is cls.UNKNOWN:
                continue
            if abs(milliseconds - tf.milliseconds) <= tf.milliseconds * 0.2:
                return tf
        return cls.UNKNOWN

    @classmethod
    def detect(cls, bars: Sequence[Bar]) -> TimeFrame:
        """Detect the timeframe from the gap between the first two bars."""
        if len(bars) < 2:
            return cls.UNKNOWN
        delta = bars[1].timestamp - bars[0].timestamp
        return cls.from_milliseconds(delta.total_seconds() * 1000)


_BARS_PER_YEAR = {
    "M1": 252 * 24 * 60,
    "M5": 252 * 288,
    "M15": 252 * 96,
    "M30": 252 * 48,
    "H1": 252 * 24,
    "H4": 252 * 6,
    "D1": 252,
    "W1": 52,
    "UNKNOWN": 252,
}


@dataclass(frozen=True, slots=True)
class Bar:
    """Immutable OHLCV sample."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    index: int = 0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body_size(self) -> float:
        return abs(self.close - self.open)

    @property
    def mid_price(self) -> float:
        return (self.high + self.low) / 2.0

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def true_range(self, prev_close: float) -> float:
        return max(self.high - self.low, abs(self.high - prev_close), abs(self.low - prev_close))

    def is_valid(self) -> bool:
        """Check positive prices, non-negative volume and OHLC ordering."""
        if min(self.open, self.high, self.low, self.close) <= 0 or self.volume < 0:
            return False
        return self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high

    def with_index(self, index: int) -> Bar:
        return replace(self, index=index)

    def with_prices(self, open: float, high: float, low: float, close: float) -> Bar:
        return replace(self, open=open, high=high, low=low, close=close)
