from __future__ import annotations

import numpy as np

from backtester.backtest.context import ExecutionContext
from backtester.strategy.base import Strategy
from backtester.strategy.parameters import StrategyParameter
from backtester.strategy.plugins import Predictor


class PredictionStrategy(Strategy):
    """Trade on the output of an injected ``Predictor``.

    Features are the last ``lookback`` closes divided by the current close,
    minus one. A prediction above ``threshold`` opens a long; below
    ``-threshold`` closes it.
    """

    name = "Prediction Model"
    description = "Long/flat strategy driven by an external prediction model."

    def __init__(self, predictor: Predictor, **parameters) -> None:
        super().__init__(**parameters)
        self.predictor = predictor

    def parameters(self) -> list[StrategyParameter]:
        return [
            StrategyParameter.int_param("lookback", "Feature window (bars)", 20, 5, 200),
            StrategyParameter.float_param("threshold", "Signal threshold", 0.0, 0.0, 1.0, 0.05),
            StrategyParameter.float_param(
                "position_size", "Position size (% of cash)", 100.0, 10.0, 100.0, 10.0
            ),
        ]

    @property
    def warmup_bars(self) -> int:
        return self.int_param("lookback")

    def features(self, ctx: ExecutionContext) -> np.ndarray:
        closes = ctx.closes(self.int_param("lookback"))
        return closes / closes[-1] - 1.0

    def on_bar(self, ctx: ExecutionContext) -> None:
        if ctx.bar_index + 1 < self.int_param("lookback"):
            return
        prediction = float(np.asarray(self.predictor.predict(self.features(ctx))).ravel()[0])
        threshold = self.float_param("threshold")

        if not ctx.has_position and prediction > threshold:
            quantity = ctx.quantity_for_percentage(self.float_param("position_size"))
            if quantity > 0:
                ctx.execute_market_order(quantity)
        elif ctx.is_long and prediction < -threshold:
            ctx.close_position()
