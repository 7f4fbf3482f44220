"""
Strategy registry.

A plain object mapping display names to factories. Callers build one at
startup (``StrategyRegistry.with_builtins()``) and pass it where needed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from backtester.exceptions import StrategyError, StrategyNotFoundError
from backtester.strategy.base import Strategy

StrategyFactory = Callable[[], Strategy]


class StrategyRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, StrategyFactory] = {}

    def register(self, name: str, factory: StrategyFactory) -> None:
        self._factories[name] = factory

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)

    def names(self) -> list[str]:
        return list(self._factories)

    def is_registered(self, name: str) -> bool:
        return name in self._factories

    def factory(self, name: str) -> StrategyFactory:
        try:
            return self._factories[name]
        except KeyError:
            raise StrategyNotFoundError(
                f"Unknown strategy: {name}", {"available": self.names()}
            ) from None

    def create(self, name: str, parameters: dict[str, Any] | None = None) -> Strategy:
        factory = self.factory(name)
        try:
            strategy = factory()
        except Exception as e:
            raise StrategyError(f"Failed to create strategy: {name}") from e
        if parameters:
            strategy.set_parameters(parameters)
        return strategy

    def __len__(self) -> int:
        return len(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    @classmethod
    def with_builtins(cls) -> StrategyRegistry:
        from backtester.strategy.builtin import BUILTIN_STRATEGIES

        registry = cls()
        for strategy_cls in BUILTIN_STRATEGIES:
            registry.register(strategy_cls.name, strategy_cls)
        return registry
