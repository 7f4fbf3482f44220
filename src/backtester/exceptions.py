"""
Centralized exception definitions for the backtester.

Configuration problems surface immediately, insufficient funds are fatal to
a single run, and optimization task failures are recovered by the analyzers.
"""

from typing import Any


class BacktesterError(Exception):
    """Base exception for all backtester errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} (Details: {detail_str})"


class ConfigurationError(BacktesterError):
    """Raised for invalid cost-model, engine or analyzer configuration."""

    pass


class DataError(BacktesterError):
    """Raised when there's an issue with the bar data."""

    pass


class InsufficientDataError(DataError):
    """Raised when there is not enough data for the requested operation."""

    pass


class InvalidBarError(DataError):
    """Raised when a bar violates the OHLC invariants."""

    pass


class StrategyError(BacktesterError):
    """Raised when there's an issue with strategy setup or execution."""

    pass


class StrategyNotFoundError(StrategyError):
    """Raised when a strategy name is not registered."""

    pass


class StrategyExecutionError(StrategyError):
    """Raised when a strategy fails during a simulation."""

    pass


class PortfolioError(BacktesterError):
    """Raised on an invalid portfolio state transition."""

    pass


class InsufficientFundsError(PortfolioError):
    """Raised when opening a position costs more than the available cash."""

    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            f"Insufficient cash. Required: {required:.2f}, Available: {available:.2f}",
            {"required": required, "available": available},
        )
        self.required = required
        self.available = available


class OptimizationError(BacktesterError):
    """Raised when an optimization produces no usable candidate."""

    pass


def raise_if_invalid_data(condition: bool, message: str, **details: Any) -> None:
    """Raise DataError if condition is true."""
    if condition:
        raise DataError(f"Invalid data: {message}", details or None)


def raise_if_out_of_range(value: float, min_val: float, max_val: float, field_name: str) -> None:
    """Raise ConfigurationError if value is out of range."""
    if not min_val <= value <= max_val:
        raise ConfigurationError(
            f"Value out of range for {field_name}: {value} (expected {min_val} to {max_val})",
            {"field": field_name, "value": value},
        )
