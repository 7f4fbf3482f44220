"""
Portfolio accounting for a single instrument.

The portfolio owns cash, at most one open ``Position``, the closed ``Trade``
ledger and one ``EquityPoint`` per processed bar.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from backtester.data.bars import Bar
from backtester.exceptions import InsufficientFundsError, PortfolioError


class Side(Enum):
    LONG = 1
    SHORT = -1

    @property
    def opposite(self) -> Side:
        return Side.SHORT if self is Side.LONG else Side.LONG

    @classmethod
    def from_quantity(cls, quantity: float) -> Side:
        return cls.LONG if quantity > 0 else cls.SHORT


@dataclass
class Position:
    """Open-trade state, marked to market once per bar."""

    symbol: str
    side: Side
    entry_price: float
    quantity: float
    entry_time: datetime
    entry_index: int
    entry_commission: float = 0.0
    entry_slippage: float = 0.0

    current_price: float = field(init=False)
    max_price: float = field(init=False)
    min_price: float = field(init=False)
    unrealized_pnl: float = field(init=False, default=0.0)
    unrealized_pnl_percent: float = field(init=False, default=0.0)
    max_unrealized_profit: float = field(init=False, default=0.0)
    max_unrealized_loss: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise PortfolioError(f"Position quantity must be positive, got {self.quantity}")
        self.current_price = self.entry_price
        self.max_price = self.entry_price
        self.min_price = self.entry_price

    def update_price(self, price: float) -> None:
        self.current_price = price
        self.max_price = max(self.max_price, price)
        self.min_price = min(self.min_price, price)
        self.unrealized_pnl = (price - self.entry_price) * self.quantity * self.side.value
        self.unrealized_pnl_percent = self.unrealized_pnl / self.entry_value * 100.0
        self.max_unrealized_profit = max(self.max_unrealized_profit, self.unrealized_pnl)
        self.max_unrealized_loss = min(self.max_unrealized_loss, self.unrealized_pnl)

    @property
    def is_long(self) -> bool:
        return self.side is Side.LONG

    @property
    def is_short(self) -> bool:
        return self.side is Side.SHORT

    @property
    def signed_quantity(self) -> float:
        return self.quantity * self.side.value

    @property
    def entry_value(self) -> float:
        return self.entry_price * self.quantity

    @property
    def market_value(self) -> float:
        # Valid for both sides: the posted entry value plus whatever the move has earned
        return self.entry_value + self.unrealized_pnl

    @property
    def mae(self) -> float:
        """Maximum adverse excursion (<= 0)."""
        if self.is_long:
            return (self.min_price - self.entry_price) * self.quantity
        return (self.entry_price - self.max_price) * self.quantity

    @property
    def mfe(self) -> float:
        """Maximum favorable excursion (>= 0)."""
        if self.is_long:
            return (self.max_price - self.entry_price) * self.quantity
        return (self.entry_price - self.min_price) * self.quantity


@dataclass(frozen=True)
class Trade:
    """Closed round trip. ``commission`` covers both legs."""

    symbol: str
    side: Side
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    quantity: float
    gross_pnl: float
    commission: float
    slippage: float
    net_pnl: float
    bars_held: int
    entry_index: int
    exit_index: int
    mfe: float = 0.0
    mae: float = 0.0

    @property
    def entry_value(self) -> float:
        return self.entry_price * self.quantity

    @property
    def exit_value(self) -> float:
        return self.exit_price * self.quantity

    @property
    def return_percent(self) -> float:
        if self.entry_value == 0:
            return 0.0
        return self.net_pnl / self.entry_value * 100.0

    @property
    def gross_return_percent(self) -> float:
        if self.entry_value == 0:
            return 0.0
        return self.gross_pnl / self.entry_value * 100.0

    @property
    def is_win(self) -> bool:
        return self.net_pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.net_pnl < 0

    @property
    def is_breakeven(self) -> bool:
        return abs(self.net_pnl) < 0.01

    @property
    def total_costs(self) -> float:
        return self.commission + self.slippage

    @property
    def r_multiple(self) -> float:
        if self.mae == 0:
            return 0.0
        return self.net_pnl / abs(self.mae)

    @property
    def duration(self) -> timedelta:
        return self.exit_time - self.entry_time


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: float
    drawdown: float
    drawdown_percent: float
    in_position: bool


class Portfolio:
    """Cash, the single open position, the trade ledger and equity history."""

    def __init__(self, initial_cash: float, symbol: str = "") -> None:
        self.initial_cash = float(initial_cash)
        self.symbol = symbol
        self.reset()

    def reset(self) -> None:
        self.cash = self.initial_cash
        self.position: Position | None = None
        self._trades: list[Trade] = []
        self._equity_history: list[EquityPoint] = []
        self.peak_equity = self.initial_cash
        self.current_drawdown = 0.0
        self.current_drawdown_percent = 0.0
        self.max_drawdown = 0.0
        self.max_drawdown_percent = 0.0
        self.total_bars_in_market = 0
        self.max_position_value = 0.0

    @property
    def has_position(self) -> bool:
        return self.position is not None

    @property
    def equity(self) -> float:
        if self.position is None:
            return self.cash
        return self.cash + self.position.market_value

    @property
    def trades(self) -> tuple[Trade, ...]:
        return tuple(self._trades)

    @property
    def trade_count(self) -> int:
        return len(self._trades)

    @property
    def equity_history(self) -> tuple[EquityPoint, ...]:
        return tuple(self._equity_history)

    def open_position(
        self,
        side: Side,
        price: float,
        quantity: float,
        time: datetime,
        bar_index: int,
        commission: float,
        slippage: float = 0.0,
    ) -> Position:
        if self.position is not None:
            raise PortfolioError(
                "Position already open; close it before opening another",
                {"side": self.position.side.name, "quantity": self.position.quantity},
            )

        required = price * quantity + commission
        if required > self.cash:
            raise InsufficientFundsError(required=required, available=self.cash)

        self.cash -= required
        self.position = Position(
            symbol=self.symbol,
            side=side,
            entry_price=price,
            quantity=quantity,
            entry_time=time,
            entry_index=bar_index,
            entry_commission=commission,
            entry_slippage=slippage,
        )
        self.max_position_value = max(self.max_position_value, price * quantity)
        return self.position

    def close_position(
        self,
        price: float,
        time: datetime,
        bar_index: int,
        commission: float,
        slippage: float = 0.0,
    ) -> Trade:
        position = self.position
        if position is None:
            raise PortfolioError("No open position to close")

        trade = self._settle(
            position, position.quantity, price, time, bar_index, commission, slippage
        )
        self.position = None
        return trade

    def reduce_position(
        self,
        quantity: float,
        price: float,
        time: datetime,
        bar_index: int,
        commission: float,
        slippage: float = 0.0,
    ) -> Trade:
        """Close ``quantity`` units and keep the remainder open at the same entry."""
        position = self.position
        if position is None:
            raise PortfolioError("No open position to reduce")
        if quantity >= position.quantity:
            return self.close_position(price, time, bar_index, commission, slippage)

        trade = self._settle(position, quantity, price, time, bar_index, commission, slippage)
        fraction = quantity / position.quantity
        position.entry_commission -= position.entry_commission * fraction
        position.entry_slippage -= position.entry_slippage * fraction
        position.quantity -= quantity
        position.update_price(position.current_price)
        return trade

    def _settle(
        self,
        position: Position,
        quantity: float,
        price: float,
        time: datetime,
        bar_index: int,
        commission: float,
        slippage: float,
    ) -> Trade:
        """Book the exit of ``quantity`` units and append the resulting trade."""
        position.update_price(price)
        fraction = quantity / position.quantity
        gross_pnl = (price - position.entry_price) * quantity * position.side.value
        self.cash += position.entry_price * quantity + gross_pnl - commission

        total_commission = position.entry_commission * fraction + commission
        trade = Trade(
            symbol=position.symbol,
            side=position.side,
            entry_time=position.entry_time,
            exit_time=time,
            entry_price=position.entry_price,
            exit_price=price,
            quantity=quantity,
            gross_pnl=gross_pnl,
            commission=total_commission,
            slippage=position.entry_slippage * fraction + slippage,
            net_pnl=gross_pnl - total_commission,
            bars_held=bar_index - position.entry_index,
            entry_index=position.entry_index,
            exit_index=bar_index,
            mfe=position.mfe * fraction,
            mae=position.mae * fraction,
        )
        self._trades.append(trade)
        return trade

    def update(self, bar: Bar) -> EquityPoint:
        """Mark to market on ``bar`` and record exactly one equity point."""
        if self.position is not None:
            self.position.update_price(bar.close)
            self.total_bars_in_market += 1
            self.max_position_value = max(self.max_position_value, abs(self.position.market_value))

        equity = self.equity
        self.peak_equity = max(self.peak_equity, equity)
        self.current_drawdown = self.peak_equity - equity
        self.current_drawdown_percent = (
            self.current_drawdown / self.peak_equity * 100.0 if self.peak_equity > 0 else 0.0
        )
        self.max_drawdown = max(self.max_drawdown, self.current_drawdown)
        self.max_drawdown_percent = max(self.max_drawdown_percent, self.current_drawdown_percent)

        point = EquityPoint(
            timestamp=bar.timestamp,
            equity=equity,
            drawdown=self.current_drawdown,
            drawdown_percent=self.current_drawdown_percent,
            in_position=self.position is not None,
        )
        self._equity_history.append(point)
        return point
