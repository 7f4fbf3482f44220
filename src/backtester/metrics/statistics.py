"""
Performance statistics for a completed backtest.

All ratios fall back to 0 when their denominator is 0; profit factor and
payoff ratio are the exception and report +inf when there are gains and no
losses.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
from scipy import stats as sps

from backtester.backtest.engine import BacktestResult
from backtester.backtest.portfolio import EquityPoint, Trade
from backtester.logging import get_logger

logger = get_logger("metrics")


@dataclass(frozen=True)
class BacktestStatistics:
    # returns
    net_profit: float = 0.0
    net_return_percent: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    profit_factor: float = 0.0
    buy_and_hold_return: float = 0.0
    alpha: float = 0.0
    max_run_up: float = 0.0
    max_run_up_percent: float = 0.0

    # risk
    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0
    max_drawdown_duration: int = 0
    sharpe: float = 0.0
    sortino: float = 0.0
    calmar: float = 0.0
    cagr: float = 0.0
    recovery_factor: float = 0.0
    volatility: float = 0.0
    downside_deviation: float = 0.0
    return_skewness: float = 0.0
    return_kurtosis: float = 0.0

    # trades
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0
    win_rate: float = 0.0
    avg_trade: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    payoff_ratio: float = 0.0
    expectancy: float = 0.0
    expectancy_percent: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    avg_bars_held: float = 0.0
    avg_mfe: float = 0.0
    avg_mae: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    # exposure
    total_bars: int = 0
    bars_in_market: int = 0
    time_in_market_percent: float = 0.0
    turnover: float = 0.0
    trades_per_year: int = 0

    # costs
    total_commission: float = 0.0
    total_slippage: float = 0.0
    total_spread: float = 0.0
    total_costs: float = 0.0
    pnl_before_costs: float = 0.0
    cost_impact_percent: float = 0.0

    @property
    def is_profitable(self) -> bool:
        return self.net_profit > 0

    @property
    def beats_market(self) -> bool:
        return self.alpha > 0

    def summary(self) -> str:
        pf = "inf" if math.isinf(self.profit_factor) else f"{self.profit_factor:.2f}"
        return "\n".join(
            [
                f"Net profit:     {self.net_profit:,.2f} ({self.net_return_percent:.2f}%)",
                f"Buy & hold:     {self.buy_and_hold_return:.2f}% (alpha {self.alpha:+.2f}%)",
                f"CAGR:           {self.cagr:.2f}%",
                f"Max drawdown:   {self.max_drawdown:,.2f} ({self.max_drawdown_percent:.2f}%, "
                f"{self.max_drawdown_duration} bars)",
                f"Sharpe/Sortino: {self.sharpe:.2f} / {self.sortino:.2f} "
                f"(Calmar {self.calmar:.2f})",
                f"Trades:         {self.total_trades} (win rate {self.win_rate:.1f}%, "
                f"profit factor {pf})",
                f"Expectancy:     {self.expectancy:,.2f} per trade",
                f"Time in market: {self.time_in_market_percent:.1f}%",
                f"Costs:          {self.total_costs:,.2f} "
                f"({self.cost_impact_percent:.1f}% of pre-cost P&L)",
            ]
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StatisticsCalculator:
    """Computes ``BacktestStatistics`` from a ``BacktestResult``.

    Per-bar returns are taken from consecutive equity points and annualised
    with ``trading_periods_per_year``.
    """

    def __init__(self, trading_periods_per_year: int = 252, risk_free_rate: float = 0.0) -> None:
        self.periods = trading_periods_per_year
        self.risk_free_rate = risk_free_rate

    def calculate(self, result: BacktestResult) -> BacktestStatistics:
        trades = result.trades
        history = result.equity_history
        initial = result.initial_equity
        final = result.final_equity

        returns = _period_returns(history)
        net_profit = final - initial
        net_return_percent = net_profit / initial * 100.0 if initial else 0.0

        wins = [t for t in trades if t.is_win]
        losses = [t for t in trades if t.is_loss]
        gross_profit = sum(t.net_pnl for t in wins)
        gross_loss = abs(sum(t.net_pnl for t in losses))
        profit_factor = _ratio_or_inf(gross_profit, gross_loss)

        run_up, run_up_percent = _max_run_up(history)
        max_dd, max_dd_percent, dd_duration = _drawdown(history)

        std = _sample_std(returns)
        negatives = returns[returns < 0]
        downside_std = _sample_std(negatives)
        mean_excess = (
            float(returns.mean()) - self.risk_free_rate / self.periods if returns.size else 0.0
        )
        sqrt_p = math.sqrt(self.periods)
        sharpe = sqrt_p * mean_excess / std if std > 0 and returns.size >= 2 else 0.0
        sortino = sqrt_p * mean_excess / downside_std if downside_std > 0 else 0.0

        bars_per_year = result.data_info.timeframe.bars_per_year
        years = result.total_bars / bars_per_year if bars_per_year > 0 else 0.0
        cagr = _cagr(initial, final, years)
        calmar = cagr / max_dd_percent if max_dd_percent != 0 else 0.0
        recovery = net_profit / max_dd if max_dd != 0 else 0.0
        skewness, kurtosis = _shape(returns)

        total_trades = len(trades)
        avg_win = gross_profit / len(wins) if wins else 0.0
        avg_loss = gross_loss / len(losses) if losses else 0.0
        max_wins, max_losses = _streaks(trades)

        equities = np.array([p.equity for p in history], dtype=float)
        avg_equity = float(equities.mean()) if equities.size else initial
        total_traded = sum(t.entry_value * 2.0 for t in trades)

        total_costs = result.total_costs
        pnl_before_costs = net_profit + total_costs

        stats = BacktestStatistics(
            net_profit=net_profit,
            net_return_percent=net_return_percent,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            profit_factor=profit_factor,
            buy_and_hold_return=result.buy_and_hold_return,
            alpha=net_return_percent - result.buy_and_hold_return,
            max_run_up=run_up,
            max_run_up_percent=run_up_percent,
            max_drawdown=max_dd,
            max_drawdown_percent=max_dd_percent,
            max_drawdown_duration=dd_duration,
            sharpe=sharpe,
            sortino=sortino,
            calmar=calmar,
            cagr=cagr,
            recovery_factor=recovery,
            volatility=std * sqrt_p * 100.0,
            downside_deviation=downside_std * sqrt_p * 100.0,
            return_skewness=skewness,
            return_kurtosis=kurtosis,
            total_trades=total_trades,
            winning_trades=len(wins),
            losing_trades=len(losses),
            breakeven_trades=sum(1 for t in trades if t.is_breakeven),
            win_rate=len(wins) / total_trades * 100.0 if total_trades else 0.0,
            avg_trade=net_profit / total_trades if total_trades else 0.0,
            avg_win=avg_win,
            avg_loss=avg_loss,
            payoff_ratio=_ratio_or_inf(avg_win, avg_loss),
            expectancy=net_profit / total_trades if total_trades else 0.0,
            expectancy_percent=_mean(t.return_percent for t in trades),
            largest_win=max((t.net_pnl for t in trades), default=0.0),
            largest_loss=min((t.net_pnl for t in trades), default=0.0),
            avg_bars_held=_mean(t.bars_held for t in trades),
            avg_mfe=_mean(t.mfe for t in trades),
            avg_mae=_mean(t.mae for t in trades),
            max_consecutive_wins=max_wins,
            max_consecutive_losses=max_losses,
            total_bars=result.total_bars,
            bars_in_market=result.bars_in_market,
            time_in_market_percent=result.time_in_market_percent,
            turnover=total_traded / avg_equity if avg_equity > 0 else 0.0,
            trades_per_year=int(total_trades / years) if years > 0 else total_trades,
            total_commission=result.total_commission,
            total_slippage=result.total_slippage,
            total_spread=result.total_spread,
            total_costs=total_costs,
            pnl_before_costs=pnl_before_costs,
            cost_impact_percent=(
                total_costs / abs(pnl_before_costs) * 100.0 if pnl_before_costs != 0 else 0.0
            ),
        )
        logger.debug(
            f"{result.strategy_name}: sharpe={sharpe:.2f} maxDD={max_dd_percent:.2f}% "
            f"trades={total_trades}"
        )
        return stats


def calculate_statistics(result: BacktestResult, **kwargs: Any) -> BacktestStatistics:
    """Shortcut for ``StatisticsCalculator(**kwargs).calculate(result)``."""
    return StatisticsCalculator(**kwargs).calculate(result)


def _period_returns(history: tuple[EquityPoint, ...]) -> np.ndarray:
    if len(history) < 2:
        return np.empty(0, dtype=float)
    equity = np.array([p.equity for p in history], dtype=float)
    prev = equity[:-1]
    delta = np.diff(equity)
    return np.divide(delta, prev, out=np.zeros_like(delta), where=prev > 0)


def _sample_std(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def _mean(values) -> float:
    arr = np.fromiter(values, dtype=float)
    return float(arr.mean()) if arr.size else 0.0


def _ratio_or_inf(numerator: float, denominator: float) -> float:
    if denominator > 0:
        return numerator / denominator
    return math.inf if numerator > 0 else 0.0


def _max_run_up(history: tuple[EquityPoint, ...]) -> tuple[float, float]:
    """Largest rise of equity above its running trough (absolute, percent)."""
    if not history:
        return 0.0, 0.0
    trough = history[0].equity
    best = 0.0
    best_percent = 0.0
    for point in history:
        trough = min(trough, point.equity)
        run_up = point.equity - trough
        if run_up > best:
            best = run_up
            best_percent = run_up / trough * 100.0 if trough > 0 else 0.0
    return best, best_percent


def _drawdown(history: tuple[EquityPoint, ...]) -> tuple[float, float, int]:
    if not history:
        return 0.0, 0.0, 0
    peak = history[0].equity
    max_dd = max_dd_percent = 0.0
    duration = longest = 0
    for point in history:
        equity = point.equity
        if equity >= peak:
            peak = equity
            duration = 0
            continue
        drawdown = peak - equity
        duration += 1
        longest = max(longest, duration)
        if drawdown > max_dd:
            max_dd = drawdown
            max_dd_percent = drawdown / peak * 100.0 if peak > 0 else 0.0
    return max_dd, max_dd_percent, longest


def _cagr(initial: float, final: float, years: float) -> float:
    if years <= 0 or initial <= 0 or final <= 0:
        return 0.0
    return ((final / initial) ** (1.0 / years) - 1.0) * 100.0


def _shape(returns: np.ndarray) -> tuple[float, float]:
    if returns.size < 3 or float(np.ptp(returns)) == 0.0:
        return 0.0, 0.0
    return float(sps.skew(returns, bias=False)), float(sps.kurtosis(returns, bias=False))


def _streaks(trades: tuple[Trade, ...]) -> tuple[int, int]:
    max_wins = max_losses = 0
    wins = losses = 0
    for trade in trades:
        if trade.is_win:
            wins += 1
            losses = 0
            max_wins = max(max_wins, wins)
        elif trade.is_loss:
            losses += 1
            wins = 0
            max_losses = max(max_losses, losses)
    return max_wins, max_losses
