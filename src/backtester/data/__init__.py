"""Market data primitives: bars, timeframes and series."""

from .bars import Bar, TimeFrame
from .series import DataInfo, DataQuality, TimeSeries, validate_ohlc

__all__ = ["Bar", "DataInfo", "DataQuality", "TimeFrame", "TimeSeries", "validate_ohlc"]
