"""
Strategy-facing execution API.

The context is the only way a strategy can change portfolio state. Fills
happen at the current bar's close (market) or at a caller-named price within
the bar's range (limit-style). Each run owns its own context, portfolio and
cost-model copies.
"""

from __future__ import annotations

import math

import numpy as np

from backtester.backtest.config import BacktestConfig
from backtester.backtest.costs import CommissionModel, SlippageModel, SpreadModel
from backtester.backtest.portfolio import Portfolio, Position, Side
from backtester.config import get_config
from backtester.data.bars import Bar
from backtester.data.series import TimeSeries
from backtester.exceptions import InsufficientFundsError
from backtester.indicators.calculator import IndicatorCalculator
from backtester.logging import get_logger

logger = get_logger("backtest.context")
strategy_logger = get_logger("strategy")

NAN = float("nan")


class ExecutionContext:
    def __init__(
        self,
        series: TimeSeries,
        portfolio: Portfolio,
        config: BacktestConfig,
        commission: CommissionModel | None = None,
        spread: SpreadModel | None = None,
        slippage: SlippageModel | None = None,
    ) -> None:
        self._series = series
        self._portfolio = portfolio
        self.config = config
        self.commission = commission if commission is not None else config.commission
        self.spread = spread if spread is not None else config.spread.fresh()
        self.slippage = slippage if slippage is not None else config.slippage.fresh()
        self._indicators = IndicatorCalculator(series)
        self._bar_index = 0

        self.total_commission = 0.0
        self.total_slippage = 0.0
        self.total_spread = 0.0
        self.fill_count = 0

    def set_bar_index(self, index: int) -> None:
        self._bar_index = index

    # ===== Market data =====

    @property
    def data(self) -> TimeSeries:
        return self._series

    @property
    def current_bar(self) -> Bar:
        return self._series[self._bar_index]

    @property
    def bar_index(self) -> int:
        return self._bar_index

    def get_bar(self, index: int) -> Bar | None:
        """Bar at ``index``; None if out of range or not yet closed."""
        if index < 0 or index >= len(self._series) or index > self._bar_index:
            return None
        return self._series[index]

    def previous_bars(self, count: int) -> list[Bar]:
        """The last ``count`` bars, current bar included, oldest first."""
        start = max(0, self._bar_index - count + 1)
        return list(self._series.bars[start : self._bar_index + 1])

    def closes(self, count: int) -> np.ndarray:
        start = max(0, self._bar_index - count + 1)
        return self._series.closes[start : self._bar_index + 1].copy()

    def ohlcv(self, count: int) -> np.ndarray:
        """Array of shape (n, 5): open, high, low, close, volume."""
        bars = self.previous_bars(count)
        return np.array([[b.open, b.high, b.low, b.close, b.volume] for b in bars], dtype=float)

    # ===== Account state =====

    @property
    def portfolio(self) -> Portfolio:
        return self._portfolio

    @property
    def equity(self) -> float:
        return self._portfolio.equity

    @property
    def cash(self) -> float:
        return self._portfolio.cash

    @property
    def position(self) -> Position | None:
        return self._portfolio.position

    @property
    def position_size(self) -> float:
        """Signed quantity: positive long, negative short, 0 flat."""
        position = self._portfolio.position
        return position.signed_quantity if position is not None else 0.0

    @property
    def position_entry_price(self) -> float:
        position = self._portfolio.position
        return position.entry_price if position is not None else 0.0

    @property
    def has_position(self) -> bool:
        return self._portfolio.has_position

    @property
    def is_long(self) -> bool:
        position = self._portfolio.position
        return position is not None and position.is_long

    @property
    def is_short(self) -> bool:
        position = self._portfolio.position
        return position is not None and position.is_short

    @property
    def unrealized_pnl(self) -> float:
        position = self._portfolio.position
        return position.unrealized_pnl if position is not None else 0.0

    # ===== Order execution =====

    def execute_market_order(self, quantity: float) -> float:
        """Fill at the current close adjusted for spread and slippage.

        Returns the fill price, or nan if nothing was executed.
        """
        quantity = self._normalize_quantity(quantity)
        if quantity == 0:
            return NAN

        price = self.current_bar.close
        half_spread = self.spread.half_spread(price)
        buying = quantity > 0
        quoted = price + half_spread if buying else price - half_spread
        slippage = self.slippage.calculate(quoted, quantity)
        fill_price = quoted + slippage if buying else quoted - slippage
        commission = self.commission.calculate(fill_price, quantity)

        executed, charged = self._execute_trade(quantity, fill_price, commission, slippage)
        if executed == 0:
            return NAN

        self.total_commission += charged
        self.total_slippage += slippage * executed
        self.total_spread += half_spread * executed
        logger.debug(
            f"Market {'BUY' if buying else 'SELL'} {executed:g} @ {fill_price:.5f} "
            f"(spread={half_spread:.5f}, slippage={slippage:.5f}, commission={charged:.2f})"
        )
        return fill_price

    def execute_at_price(self, quantity: float, price: float) -> float:
        """Fill at ``price`` if the current bar traded through it.

        Only commission is applied. Returns nan when the price is unreachable.
        """
        quantity = self._normalize_quantity(quantity)
        bar = self.current_bar
        if quantity == 0 or not bar.low <= price <= bar.high:
            return NAN

        commission = self.commission.calculate(price, quantity)
        executed, charged = self._execute_trade(quantity, price, commission, 0.0)
        if executed == 0:
            return NAN

        self.total_commission += charged
        logger.debug(f"Limit {'BUY' if quantity > 0 else 'SELL'} {executed:g} @ {price:.5f}")
        return price

    def close_position(self) -> float:
        position = self._portfolio.position
        if position is None:
            return NAN
        return self.execute_market_order(-position.signed_quantity)

    def close_position_at_price(self, price: float) -> float:
        position = self._portfolio.position
        if position is None:
            return NAN
        return self.execute_at_price(-position.signed_quantity, price)

    def _normalize_quantity(self, quantity: float) -> float:
        if quantity is None or math.isnan(quantity):
            return 0.0
        if self.config.integer_quantity_only:
            return float(math.trunc(quantity))
        return float(quantity)

    def _execute_trade(
        self, quantity: float, price: float, commission: float, slippage: float
    ) -> tuple[float, float]:
        """Apply a fill to the portfolio.

        Returns ``(executed_quantity, commission_charged)``.
        """
        bar = self.current_bar
        index = self._bar_index
        side = Side.from_quantity(quantity)
        size = abs(quantity)
        portfolio = self._portfolio
        position = portfolio.position

        if position is None:
            if side is Side.SHORT and not self.config.allow_shorts:
                logger.warning(f"Short entry refused at bar {index}: shorts are disabled")
                return 0.0, 0.0
            portfolio.open_position(
                side, price, size, bar.timestamp, index, commission, slippage * size
            )
            self.fill_count += 1
            return size, commission

        if position.side is not side:
            close_size = min(size, position.quantity)
            close_commission = commission * close_size / size
            portfolio.reduce_position(
                close_size, price, bar.timestamp, index, close_commission, slippage * close_size
            )
            self.fill_count += 1

            excess = size - close_size
            if excess <= 0:
                return close_size, close_commission
            if side is Side.SHORT and not self.config.allow_shorts:
                logger.warning(f"Reversal to short refused at bar {index}: shorts are disabled")
                return close_size, close_commission
            open_commission = commission - close_commission
            portfolio.open_position(
                side, price, excess, bar.timestamp, index, open_commission, slippage * excess
            )
            return size, commission

        # Funds are checked before the close so a refused add leaves the position intact
        required = price * size + commission
        if required > portfolio.cash:
            raise InsufficientFundsError(required=required, available=portfolio.cash)

        # Adding to the position: close at entry (zero P&L) and reopen at the
        # quantity-weighted average price so only one position ever exists.
        new_quantity = position.quantity + size
        avg_price = (position.entry_price * position.quantity + price * size) / new_quantity
        portfolio.close_position(position.entry_price, bar.timestamp, index, 0.0)
        portfolio.open_position(
            side, avg_price, new_quantity, bar.timestamp, index, commission, slippage * size
        )
        self.fill_count += 1
        return size, commission

    # ===== Position sizing =====

    def quantity_for_dollars(self, dollars: float) -> float:
        """Whole units affordable with ``dollars`` including spread, slippage and commission."""
        if dollars <= 0:
            return 0.0
        price = self.current_bar.close
        ask = price + self.spread.half_spread(price)
        effective = ask + self.slippage.estimate(ask, 1.0)

        estimate = dollars / effective
        commission = self.commission.calculate(effective, estimate)
        quantity = math.floor(max(0.0, dollars - commission) / effective)
        return self._cap_quantity(quantity, ask)

    def quantity_for_percentage(self, percent: float) -> float:
        """Size from a percentage of available cash, not equity."""
        return self.quantity_for_dollars(self.cash * percent / 100.0)

    def quantity_for_risk(self, risk_percent: float, stop_distance: float) -> float:
        """Risk ``risk_percent`` of equity over ``stop_distance``, bounded by cash."""
        if stop_distance <= 0:
            return 0.0
        risk_quantity = self.equity * risk_percent / 100.0 / stop_distance

        price = self.current_bar.close
        ask = price + self.spread.half_spread(price)
        affordable = math.floor(self.cash / ask * 0.99)
        quantity = math.floor(min(risk_quantity, affordable))
        return self._cap_quantity(max(0, quantity), ask)

    def _cap_quantity(self, quantity: float, price: float) -> float:
        limit_percent = self.config.max_position_size_percent
        if limit_percent >= 100.0 or price <= 0:
            return float(quantity)
        max_quantity = math.floor(self.equity * limit_percent / 100.0 / price)
        return float(min(quantity, max_quantity))

    # ===== Indicators =====

    def sma(self, period: int) -> float:
        return self._indicators.sma(self._bar_index, period)

    def ema(self, period: int) -> float:
        return self._indicators.ema(self._bar_index, period)

    def rsi(self, period: int) -> float:
        return self._indicators.rsi(self._bar_index, period)

    def atr(self, period: int) -> float:
        return self._indicators.atr(self._bar_index, period)

    def highest(self, period: int) -> float:
        return self._indicators.highest(self._bar_index, period)

    def lowest(self, period: int) -> float:
        return self._indicators.lowest(self._bar_index, period)

    def std_dev(self, period: int) -> float:
        return self._indicators.std_dev(self._bar_index, period)

    def macd(self, fast: int, slow: int) -> float:
        return self._indicators.macd(self._bar_index, fast, slow)

    def macd_signal(self, fast: int, slow: int, signal: int) -> float:
        return self._indicators.macd_signal(self._bar_index, fast, slow, signal)

    def bollinger_upper(self, period: int, num_std: float) -> float:
        return self._indicators.bollinger_upper(self._bar_index, period, num_std)

    def bollinger_middle(self, period: int) -> float:
        return self._indicators.sma(self._bar_index, period)

    def bollinger_lower(self, period: int, num_std: float) -> float:
        return self._indicators.bollinger_lower(self._bar_index, period, num_std)

    def momentum(self, period: int) -> float:
        return self._indicators.momentum(self._bar_index, period)

    def roc(self, period: int) -> float:
        return self._indicators.roc(self._bar_index, period)

    def adx(self, period: int) -> float:
        return self._indicators.adx(self._bar_index, period)

    def cci(self, period: int) -> float:
        return self._indicators.cci(self._bar_index, period)

    def williams_r(self, period: int) -> float:
        return self._indicators.williams_r(self._bar_index, period)

    def stoch_k(self, period: int) -> float:
        return self._indicators.stoch_k(self._bar_index, period)

    def stoch_d(self, period: int, smoothing: int) -> float:
        return self._indicators.stoch_d(self._bar_index, period, smoothing)

    # ===== Logging =====

    def log(self, message: str) -> None:
        strategy_logger.info(f"[{self.current_bar.timestamp}] {message}")

    def log_trade(self, action: str, quantity: float, price: float, reason: str = "") -> None:
        if not get_config().logging.log_trades:
            return
        strategy_logger.info(
            f"[{self.current_bar.timestamp}] {action} {quantity:.4f} @ {price:.5f} ({reason})"
        )
