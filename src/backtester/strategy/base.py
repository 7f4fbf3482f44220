from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from backtester.exceptions import ConfigurationError
from backtester.strategy.parameters import StrategyParameter

if TYPE_CHECKING:
    from backtester.backtest.context import ExecutionContext


class Strategy(ABC):
    """Bar-callback strategy.

    The engine calls ``initialize`` once, ``on_bar`` for every bar after the
    warmup period and ``on_end`` once after the final bar. All trading goes
    through the ``ExecutionContext`` passed to those callbacks.
    """

    name: str = "Strategy"
    description: str = ""

    def __init__(self, **parameters: Any) -> None:
        self._parameter_values: dict[str, Any] = {}
        self.ctx: ExecutionContext | None = None
        if parameters:
            self.set_parameters(parameters)

    # ----- contract -----

    @abstractmethod
    def parameters(self) -> list[StrategyParameter]:
        """Declared tunable parameters."""

    @abstractmethod
    def on_bar(self, ctx: ExecutionContext) -> None:
        """Handle the current bar (``ctx.current_bar``)."""

    @property
    def warmup_bars(self) -> int:
        return 50

    def initialize(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx
        for param in self.parameters():
            self._parameter_values.setdefault(param.name, param.default)
        self.on_initialize()

    def on_initialize(self) -> None:
        """Hook for resetting per-run state."""

    def on_end(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    # ----- parameters -----

    def parameter_definitions(self) -> dict[str, StrategyParameter]:
        return {p.name: p for p in self.parameters()}

    def set_parameters(self, values: dict[str, Any]) -> None:
        definitions = self.parameter_definitions()
        for name, value in values.items():
            if name not in definitions:
                raise ConfigurationError(
                    f"Unknown parameter: {name}", {"strategy": self.name}
                )
            self._parameter_values[name] = definitions[name].validate_value(value)

    def get_parameter_values(self) -> dict[str, Any]:
        values = {p.name: p.default for p in self.parameters()}
        values.update(self._parameter_values)
        return values

    def _param(self, name: str) -> Any:
        if name in self._parameter_values:
            return self._parameter_values[name]
        definition = self.parameter_definitions().get(name)
        return definition.default if definition is not None else None

    def int_param(self, name: str) -> int:
        value = self._param(name)
        return int(value) if isinstance(value, (int, float)) else 0

    def float_param(self, name: str) -> float:
        value = self._param(name)
        return float(value) if isinstance(value, (int, float)) else 0.0

    def bool_param(self, name: str) -> bool:
        value = self._param(name)
        return value if isinstance(value, bool) else False

    def str_param(self, name: str) -> str:
        value = self._param(name)
        return str(value) if value is not None else ""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_parameter_values()})"
