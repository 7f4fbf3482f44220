"""
Typed strategy parameter definitions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backtester.exceptions import ConfigurationError


class ParameterType(str, Enum):
    INTEGER = "int"
    DOUBLE = "float"
    BOOLEAN = "bool"
    STRING = "str"


class StrategyParameter(BaseModel):
    """Definition of a single tunable strategy parameter."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Parameter name")
    type: ParameterType = Field(..., description="Parameter type")
    default: Any = Field(None, description="Default value")
    min_value: int | float | None = Field(None, description="Minimum value")
    max_value: int | float | None = Field(None, description="Maximum value")
    step: int | float | None = Field(None, description="Step size for grids")
    description: str = Field("", description="Parameter description")

    @property
    def is_numeric(self) -> bool:
        return self.type in (ParameterType.INTEGER, ParameterType.DOUBLE)

    @property
    def effective_step(self) -> int | float:
        if self.step is not None:
            return self.step
        return 1 if self.type is ParameterType.INTEGER else 0.1

    def convert(self, value: Any) -> Any:
        """Convert ``value`` to this parameter's type (no range check)."""
        if self.type is ParameterType.INTEGER:
            return int(round(float(value)))
        if self.type is ParameterType.DOUBLE:
            return float(value)
        if self.type is ParameterType.BOOLEAN:
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        return str(value)

    def validate_value(self, value: Any) -> Any:
        """Convert and range-check ``value``; raise ConfigurationError if invalid."""
        try:
            converted = self.convert(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid value for {self.name}: {value!r}", {"type": self.type.value}
            ) from e

        if self.is_numeric:
            if self.min_value is not None and converted < self.min_value:
                raise ConfigurationError(
                    f"Value for {self.name} below minimum: {converted} < {self.min_value}"
                )
            if self.max_value is not None and converted > self.max_value:
                raise ConfigurationError(
                    f"Value for {self.name} above maximum: {converted} > {self.max_value}"
                )
        return converted

    def is_valid(self, value: Any) -> bool:
        try:
            self.validate_value(value)
        except ConfigurationError:
            return False
        return True

    def __str__(self) -> str:
        return (
            f"{self.name} ({self.type.value}) = {self.default} "
            f"[{self.min_value} to {self.max_value}]"
        )

    # --- factories ---

    @classmethod
    def int_param(
        cls,
        name: str,
        description: str,
        default: int,
        min_value: int,
        max_value: int,
        step: int = 1,
    ) -> StrategyParameter:
        return cls(
            name=name,
            type=ParameterType.INTEGER,
            default=default,
            min_value=min_value,
            max_value=max_value,
            step=step,
            description=description,
        )

    @classmethod
    def float_param(
        cls,
        name: str,
        description: str,
        default: float,
        min_value: float,
        max_value: float,
        step: float = 0.1,
    ) -> StrategyParameter:
        return cls(
            name=name,
            type=ParameterType.DOUBLE,
            default=default,
            min_value=min_value,
            max_value=max_value,
            step=step,
            description=description,
        )

    @classmethod
    def bool_param(cls, name: str, description: str, default: bool) -> StrategyParameter:
        return cls(name=name, type=ParameterType.BOOLEAN, default=default, description=description)

    @classmethod
    def str_param(cls, name: str, description: str, default: str) -> StrategyParameter:
        return cls(name=name, type=ParameterType.STRING, default=default, description=description)
