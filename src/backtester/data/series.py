from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np
import pandas as pd

from backtester.data.bars import Bar, TimeFrame
from backtester.exceptions import DataError, InvalidBarError, raise_if_invalid_data
from backtester.logging import get_logger

logger = get_logger("data")

_COLUMN_ALIASES = {
    "open": "Open",
    "high": "High",
    "low": "Low",
    "close": "Close",
    "volume": "Volume",
}


@dataclass(frozen=True)
class DataQuality:
    total_bars: int
    invalid_bars: int
    gaps: int
    coverage_percent: float

    @property
    def is_good(self) -> bool:
        return self.invalid_bars == 0 and self.coverage_percent >= 95.0


class TimeSeries:
    """Ordered, index-addressable bars for one symbol.

    Bars are re-indexed to their position on construction; timestamps must be
    strictly ascending. Instances are never mutated, slicing returns a new
    series.
    """

    def __init__(
        self, symbol: str, bars: Sequence[Bar], timeframe: TimeFrame | None = None
    ) -> None:
        reindexed = tuple(
            bar if bar.index == i else bar.with_index(i) for i, bar in enumerate(bars)
        )
        for prev, cur in zip(reindexed, reindexed[1:]):
            if cur.timestamp <= prev.timestamp:
                raise DataError(
                    f"{symbol}: timestamps must be strictly ascending",
                    {"index": cur.index, "timestamp": cur.timestamp},
                )
        self._symbol = symbol
        self._bars = reindexed
        self._timeframe = timeframe if timeframe is not None else TimeFrame.detect(reindexed)
        self._closes: np.ndarray | None = None

    # --- sequence protocol ---

    def __len__(self) -> int:
        return len(self._bars)

    def __getitem__(self, index: int) -> Bar:
        return self._bars[index]

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return (
            f"TimeSeries(symbol={self._symbol!r}, bars={len(self)}, "
            f"timeframe={self._timeframe.name})"
        )

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def timeframe(self) -> TimeFrame:
        return self._timeframe

    @property
    def bars(self) -> tuple[Bar, ...]:
        return self._bars

    @property
    def is_empty(self) -> bool:
        return not self._bars

    @property
    def first(self) -> Bar | None:
        return self._bars[0] if self._bars else None

    @property
    def last(self) -> Bar | None:
        return self._bars[-1] if self._bars else None

    @property
    def start(self) -> datetime | None:
        return self._bars[0].timestamp if self._bars else None

    @property
    def end(self) -> datetime | None:
        return self._bars[-1].timestamp if self._bars else None

    # --- slicing ---

    def slice(self, start: int, end: int) -> TimeSeries:
        """Return bars ``[start, end)`` as a new re-indexed series."""
        if start < 0 or end > len(self) or start >= end:
            raise DataError(
                f"Invalid slice range [{start}, {end}) for series of {len(self)} bars",
                {"start": start, "end": end, "size": len(self)},
            )
        return TimeSeries(self._symbol, self._bars[start:end], self._timeframe)

    def slice_from_start(self, count: int) -> TimeSeries:
        return self.slice(0, min(count, len(self)))

    def slice_from_end(self, count: int) -> TimeSeries:
        return self.slice(max(0, len(self) - count), len(self))

    def with_bars(self, bars: Sequence[Bar]) -> TimeSeries:
        """Same symbol and timeframe, different bars."""
        return TimeSeries(self._symbol, bars, self._timeframe)

    # --- arrays ---

    @property
    def opens(self) -> np.ndarray:
        return np.array([b.open for b in self._bars], dtype=float)

    @property
    def highs(self) -> np.ndarray:
        return np.array([b.high for b in self._bars], dtype=float)

    @property
    def lows(self) -> np.ndarray:
        return np.array([b.low for b in self._bars], dtype=float)

    @property
    def closes(self) -> np.ndarray:
        if self._closes is None:
            self._closes = np.array([b.close for b in self._bars], dtype=float)
            self._closes.flags.writeable = False
        return self._closes

    @property
    def volumes(self) -> np.ndarray:
        return np.array([b.volume for b in self._bars], dtype=float)

    def highest_high(self, period: int, end_index: int) -> float:
        start = max(0, end_index - period + 1)
        return max(b.high for b in self._bars[start : end_index + 1])

    def lowest_low(self, period: int, end_index: int) -> float:
        start = max(0, end_index - period + 1)
        return min(b.low for b in self._bars[start : end_index + 1])

    # --- quality ---

    def data_quality(self) -> DataQuality:
        if not self._bars:
            return DataQuality(0, 0, 0, 0.0)

        invalid = sum(1 for b in self._bars if not b.is_valid())
        gaps = 0
        expected_ms = self._timeframe.milliseconds
        if expected_ms > 0:
            for prev, cur in zip(self._bars, self._bars[1:]):
                actual_ms = (cur.timestamp - prev.timestamp).total_seconds() * 1000
                if actual_ms > expected_ms * 1.5:
                    gaps += 1

        coverage = (len(self._bars) - gaps) / len(self._bars) * 100.0
        return DataQuality(len(self._bars), invalid, gaps, coverage)

    # --- pandas adapters ---

    @classmethod
    def from_dataframe(
        cls, df: pd.DataFrame, symbol: str, timeframe: TimeFrame | None = None
    ) -> TimeSeries:
        """Build a series from an OHLC(V) frame.

        Accepts ``Open/High/Low/Close[/Volume]`` columns in either case, on a
        DatetimeIndex or with a ``timestamp`` column.
        """
        frame = df.rename(columns={c: _COLUMN_ALIASES.get(str(c).lower(), c) for c in df.columns})
        if "timestamp" in frame.columns:
            frame = frame.set_index(pd.DatetimeIndex(frame["timestamp"])).drop(columns="timestamp")
        frame = validate_ohlc(frame, symbol)

        volumes = frame["Volume"].astype(float) if "Volume" in frame.columns else None
        bars = [
            Bar(
                timestamp=ts.to_pydatetime(),
                open=float(row.Open),
                high=float(row.High),
                low=float(row.Low),
                close=float(row.Close),
                volume=float(volumes.iloc[i]) if volumes is not None else 0.0,
                index=i,
            )
            for i, (ts, row) in enumerate(zip(frame.index, frame.itertuples(index=False)))
        ]
        logger.debug(f"{symbol}: loaded {len(bars)} bars from DataFrame")
        return cls(symbol, bars, timeframe)

    def to_dataframe(self) -> pd.DataFrame:
        index = pd.DatetimeIndex([b.timestamp for b in self._bars], name="timestamp")
        return pd.DataFrame(
            {
                "Open": self.opens,
                "High": self.highs,
                "Low": self.lows,
                "Close": self.closes,
                "Volume": self.volumes,
            },
            index=index,
        )


def validate_ohlc(df: pd.DataFrame, symbol: str) -> pd.DataFrame:
    if df.empty:
        raise DataError(f"{symbol}: empty DataFrame")

    if not isinstance(df.index, pd.DatetimeIndex):
        raise DataError(f"{symbol}: index must be DatetimeIndex, got {type(df.index).__name__}")
    if not df.index.is_monotonic_increasing or df.index.has_duplicates:
        raise DataError(f"{symbol}: DatetimeIndex is not strictly ascending")

    required = ["Open", "High", "Low", "Close"]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise DataError(f"{symbol}: missing required columns: {missing}")

    nan_ct = int(df[required].isna().sum().sum())
    raise_if_invalid_data(nan_ct > 0, f"{symbol}: NaNs in OHLC", count=nan_ct)

    o = df["Open"].astype(float).values
    h = df["High"].astype(float).values
    low = df["Low"].astype(float).values
    c = df["Close"].astype(float).values
    if bool((h < np.maximum(o, c)).any()) or bool((low > np.minimum(o, c)).any()):
        raise InvalidBarError(f"{symbol}: invalid OHLC bounds")

    if bool((df[required] <= 0).any().any()):
        raise InvalidBarError(f"{symbol}: non-positive prices found")
    if "Volume" in df.columns and (df["Volume"] < 0).any():
        logger.warning(f"{symbol}: negative Volume values found")

    return df


@dataclass(frozen=True)
class DataInfo:
    """Descriptive summary of the series a run was executed on."""

    symbol: str
    timeframe: TimeFrame
    start: datetime | None
    end: datetime | None
    bar_count: int
    first_price: float
    last_price: float
    highest_price: float
    lowest_price: float
    total_volume: float
    quality: DataQuality

    @property
    def price_change_percent(self) -> float:
        if self.first_price == 0:
            return 0.0
        return (self.last_price - self.first_price) / self.first_price * 100.0

    @property
    def price_range_percent(self) -> float:
        if self.lowest_price == 0:
            return 0.0
        return (self.highest_price - self.lowest_price) / self.lowest_price * 100.0

    @property
    def duration_days(self) -> int:
        if self.start is None or self.end is None:
            return 0
        return (self.end - self.start).days

    @classmethod
    def from_series(cls, series: TimeSeries) -> DataInfo:
        if series.is_empty:
            return cls(
                series.symbol, series.timeframe, None, None, 0, 0.0, 0.0, 0.0, 0.0, 0.0,
                DataQuality(0, 0, 0, 0.0),
            )
        return cls(
            symbol=series.symbol,
            timeframe=series.timeframe,
            start=series.start,
            end=series.end,
            bar_count=len(series),
            first_price=series[0].close,
            last_price=series[-1].close,
            highest_price=float(series.highs.max()),
            lowest_price=float(series.lows.min()),
            total_volume=float(series.volumes.sum()),
            quality=series.data_quality(),
        )
