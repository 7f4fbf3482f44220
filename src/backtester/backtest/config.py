from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from backtester.backtest.costs import CommissionModel, SlippageModel, SpreadModel
from backtester.config import get_config
from backtester.exceptions import ConfigurationError


class BacktestConfig(BaseModel):
    """Immutable per-run simulation settings.

    The cost models held here are templates; the engine works on fresh copies
    so that parallel runs sharing one config never share previous-bar state.
    """

    model_config = ConfigDict(frozen=True)

    initial_capital: float = Field(default=100_000.0, gt=0, description="Starting cash")
    commission: CommissionModel = Field(default_factory=CommissionModel.zero)
    spread: SpreadModel = Field(default_factory=SpreadModel.none)
    slippage: SlippageModel = Field(default_factory=SlippageModel.none)
    allow_shorts: bool = Field(default=True, description="Allow opening short positions")
    max_position_size_percent: float = Field(
        default=100.0, gt=0, le=100, description="Cap for sizing helpers as percent of equity"
    )
    warmup_bars: int = Field(default=0, ge=0, description="Bars without strategy callbacks")
    integer_quantity_only: bool = Field(
        default=False, description="Truncate order quantities toward zero"
    )

    @classmethod
    def create(cls, **kwargs: Any) -> BacktestConfig:
        """Construct, converting validation failures to ConfigurationError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid backtest configuration: {e}") from e

    @classmethod
    def default(cls) -> BacktestConfig:
        """Realistic costs taken from the global configuration."""
        sim = get_config().simulation
        return cls.create(
            initial_capital=sim.initial_capital,
            commission=CommissionModel.percentage(sim.commission_percent),
            spread=SpreadModel.percentage(sim.spread_percent),
            slippage=SlippageModel.fixed_percent(sim.slippage_percent),
            allow_shorts=sim.allow_shorts,
            max_position_size_percent=sim.max_position_size_percent,
            warmup_bars=sim.warmup_bars,
        )

    @classmethod
    def zero_cost(cls, initial_capital: float = 100_000.0) -> BacktestConfig:
        return cls.create(initial_capital=initial_capital)

    def with_costs(
        self,
        commission: CommissionModel | None = None,
        spread: SpreadModel | None = None,
        slippage: SlippageModel | None = None,
    ) -> BacktestConfig:
        update: dict[str, Any] = {}
        if commission is not None:
            update["commission"] = commission
        if spread is not None:
            update["spread"] = spread
        if slippage is not None:
            update["slippage"] = slippage
        return self.model_copy(update=update)
