"""
Transaction cost models: commission, spread and slippage.

Spread and slippage may depend on the previous completed bar. That bar is
recorded explicitly by the engine after the strategy callback, so a fill on
bar ``i`` only ever sees bar ``i-1`` or earlier.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypeVar

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from backtester.data.bars import Bar
from backtester.exceptions import ConfigurationError

M = TypeVar("M", bound=BaseModel)


def _build(model: type[M], **kwargs: Any) -> M:
    try:
        return model(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {model.__name__} parameters: {e.errors()[0]['msg']}", kwargs
        ) from e


class CommissionType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PER_SHARE = "per_share"


class SpreadType(str, Enum):
    NONE = "none"
    FIXED_PIPS = "fixed_pips"
    FIXED_POINTS = "fixed_points"
    PERCENTAGE = "percentage"
    DYNAMIC = "dynamic"


class SlippageType(str, Enum):
    NONE = "none"
    FIXED_PERCENT = "fixed_percent"
    FIXED_POINTS = "fixed_points"
    RANDOM_PERCENT = "random_percent"
    VOLUME_BASED = "volume_based"


class CommissionModel(BaseModel):
    """Per-fill commission: fixed, percent of notional or per unit, with a floor."""

    model_config = ConfigDict(frozen=True)

    type: CommissionType = Field(default=CommissionType.PERCENTAGE)
    value: float = Field(default=0.0, ge=0, description="Amount, percent or per-unit fee")
    minimum: float = Field(default=0.0, ge=0, description="Minimum fee per fill")

    def calculate(self, price: float, quantity: float) -> float:
        quantity = abs(quantity)
        if self.type is CommissionType.FIXED:
            commission = self.value
        elif self.type is CommissionType.PERCENTAGE:
            commission = price * quantity * self.value / 100.0
        else:
            commission = quantity * self.value
        return max(commission, self.minimum)

    def scaled(self, factor: float) -> CommissionModel:
        return _build(
            CommissionModel,
            type=self.type,
            value=self.value * factor,
            minimum=self.minimum * factor,
        )

    @classmethod
    def zero(cls) -> CommissionModel:
        return cls(type=CommissionType.FIXED, value=0.0)

    @classmethod
    def fixed(cls, amount: float) -> CommissionModel:
        return _build(cls, type=CommissionType.FIXED, value=amount)

    @classmethod
    def percentage(cls, percent: float, minimum: float = 0.0) -> CommissionModel:
        return _build(cls, type=CommissionType.PERCENTAGE, value=percent, minimum=minimum)

    @classmethod
    def per_share(cls, amount: float, minimum: float = 0.0) -> CommissionModel:
        return _build(cls, type=CommissionType.PER_SHARE, value=amount, minimum=minimum)

    @classmethod
    def interactive_brokers(cls) -> CommissionModel:
        """IB fixed pricing: $0.005 per share, $1.00 minimum."""
        return cls.per_share(0.005, minimum=1.0)


class _PreviousBarModel(BaseModel):
    """Shared state handling for models that look at the previous bar."""

    _previous_bar: Bar | None = PrivateAttr(default=None)

    @property
    def previous_bar(self) -> Bar | None:
        return self._previous_bar

    def update_previous_bar(self, bar: Bar) -> None:
        self._previous_bar = bar

    def reset(self) -> None:
        self._previous_bar = None

    def fresh(self):
        """Copy with the same parameters and no carried state."""
        clone = self.model_copy()
        clone.reset()
        return clone


class SpreadModel(_PreviousBarModel):
    """Half-spread added to buys and subtracted from sells."""

    type: SpreadType = Field(default=SpreadType.NONE)
    value: float = Field(default=0.0, ge=0)

    def half_spread(self, price: float) -> float:
        if self.type is SpreadType.NONE:
            return 0.0
        if self.type is SpreadType.FIXED_PIPS:
            return self.value * 0.0001
        if self.type is SpreadType.FIXED_POINTS:
            return self.value
        base = price * self.value / 100.0
        if self.type is SpreadType.PERCENTAGE:
            return base
        # DYNAMIC: widen by a tenth of the previous bar's range
        if self._previous_bar is None:
            return base
        return base + self._previous_bar.range * 0.1

    def bid(self, mid: float) -> float:
        return mid - self.half_spread(mid)

    def ask(self, mid: float) -> float:
        return mid + self.half_spread(mid)

    def scaled(self, factor: float) -> SpreadModel:
        return _build(SpreadModel, type=self.type, value=self.value * factor)

    @classmethod
    def none(cls) -> SpreadModel:
        return cls()

    @classmethod
    def fixed_pips(cls, pips: float) -> SpreadModel:
        return _build(cls, type=SpreadType.FIXED_PIPS, value=pips)

    @classmethod
    def fixed_points(cls, points: float) -> SpreadModel:
        return _build(cls, type=SpreadType.FIXED_POINTS, value=points)

    @classmethod
    def percentage(cls, percent: float) -> SpreadModel:
        return _build(cls, type=SpreadType.PERCENTAGE, value=percent)

    @classmethod
    def dynamic(cls, base_percent: float) -> SpreadModel:
        return _build(cls, type=SpreadType.DYNAMIC, value=base_percent)


class SlippageModel(_PreviousBarModel):
    """Absolute price adjustment applied in the direction of the trade."""

    type: SlippageType = Field(default=SlippageType.NONE)
    value: float = Field(default=0.0, ge=0)
    seed: int | None = Field(default=None, description="Seed for RANDOM_PERCENT")

    _rng: np.random.Generator | None = PrivateAttr(default=None)

    def model_post_init(self, context: Any, /) -> None:
        self._rng = np.random.default_rng(self.seed)

    def calculate(self, price: float, quantity: float) -> float:
        if self.type is SlippageType.NONE:
            return 0.0
        if self.type is SlippageType.FIXED_PERCENT:
            return price * self.value / 100.0
        if self.type is SlippageType.FIXED_POINTS:
            return self.value
        if self.type is SlippageType.RANDOM_PERCENT:
            return price * float(self._rng.random()) * self.value / 100.0

        # VOLUME_BASED: half the base rate plus market impact vs previous bar's traded value
        slippage = price * self.value / 100.0 * 0.5
        prev = self._previous_bar
        if prev is not None and prev.volume > 0:
            volume_ratio = abs(quantity) * price / (prev.volume * prev.typical_price)
            slippage += price * volume_ratio * 0.01
        return slippage

    def estimate(self, price: float, quantity: float) -> float:
        """Upper-bound slippage for sizing; never draws from the RNG."""
        if self.type is SlippageType.RANDOM_PERCENT:
            return price * self.value / 100.0
        return self.calculate(price, quantity)

    def reset(self) -> None:
        super().reset()
        self._rng = np.random.default_rng(self.seed)

    def scaled(self, factor: float) -> SlippageModel:
        return _build(SlippageModel, type=self.type, value=self.value * factor, seed=self.seed)

    @classmethod
    def none(cls) -> SlippageModel:
        return cls()

    @classmethod
    def fixed_percent(cls, percent: float) -> SlippageModel:
        return _build(cls, type=SlippageType.FIXED_PERCENT, value=percent)

    @classmethod
    def fixed_points(cls, points: float) -> SlippageModel:
        return _build(cls, type=SlippageType.FIXED_POINTS, value=points)

    @classmethod
    def random_percent(cls, max_percent: float, seed: int | None = None) -> SlippageModel:
        return _build(cls, type=SlippageType.RANDOM_PERCENT, value=max_percent, seed=seed)

    @classmethod
    def volume_based(cls, base_percent: float) -> SlippageModel:
        return _build(cls, type=SlippageType.VOLUME_BASED, value=base_percent)
