"""
Performance Metrics for Backtesting

This module calculates performance metrics for evaluating a completed
simulation. Every function is pure: the same trades and equity curve
always produce the same numbers.

Key Metrics:
- Return metrics: Total return, annualized return, volatility
- Risk metrics: Sharpe, Sortino, Calmar ratios, historical VaR / CVaR
- Drawdown analysis: Max drawdown, duration, average drawdown
- Trade metrics: Win rate, profit factor, expectancy, streaks
- Benchmark comparison: Buy-and-hold return, excess return, beta,
  tracking error, information ratio
- Calendar-month returns and rolling-window drawdown

Conventions:
- Returns and drawdowns are fractions (0.05 == 5%), never percentages
- Win rate is count(pnl > 0) / count(trades); 0 with no trades
- Profit factor is +inf with profits and no losses, 0 with no profits
- Sharpe and Sortino are 0 when their denominator is 0 or undefined
- Sortino with no downside observations is +inf if the mean excess
  return is positive, else 0
"""

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from stratsim.lib.constants import (
    DEFAULT_PERIODS_PER_YEAR,
    DEFAULT_RISK_FREE_RATE,
    DEFAULT_ROLLING_DRAWDOWN_WINDOW,
    DEFAULT_VAR_ALPHA,
    HIGH_CONFIDENCE_THRESHOLD,
)
from stratsim.backtest.trade_logger import EquityCurve, TradeRecord
from stratsim.signals.strategies import Direction


@dataclass
class PerformanceMetrics:
    """
    Performance metrics for one simulation run.

    Per-period statistics refer to the bar frequency of the equity curve
    (daily bars by default) and are annualized with `periods_per_year`.
    """

    # Period info
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    n_periods: int = 0
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR

    # Return metrics
    total_return: float = 0.0
    total_return_dollars: float = 0.0
    annualized_return: float = 0.0
    return_mean: float = 0.0
    return_std: float = 0.0
    volatility: float = 0.0

    # Risk metrics
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    value_at_risk: float = 0.0
    conditional_var: float = 0.0
    var_alpha: float = DEFAULT_VAR_ALPHA

    # Drawdown metrics
    max_drawdown: float = 0.0
    max_drawdown_dollars: float = 0.0
    max_drawdown_duration_bars: int = 0
    avg_drawdown: float = 0.0
    recovery_factor: float = 0.0
    max_rolling_drawdown: float = 0.0
    rolling_drawdown_window: int = DEFAULT_ROLLING_DRAWDOWN_WINDOW

    # Benchmark comparison (information ratio is against zero without one)
    benchmark_symbol: Optional[str] = None
    benchmark_return: float = 0.0
    excess_return: float = 0.0
    beta: float = 0.0
    tracking_error: float = 0.0
    information_ratio: float = 0.0

    # Trade metrics
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    long_trades: int = 0
    short_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    avg_trade_pnl: float = 0.0
    avg_trade_return: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    payoff_ratio: float = 0.0
    expectancy: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_trade_duration_bars: float = 0.0

    # Signal quality
    avg_confidence: float = 0.0
    high_confidence_trades: int = 0
    high_confidence_win_rate: float = 0.0

    # Cost metrics
    total_commission: float = 0.0
    total_slippage: float = 0.0
    cost_per_trade: float = 0.0

    # Capital
    initial_capital: float = 0.0
    final_capital: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0

    # Calendar-month returns keyed "YYYY-MM"
    monthly_returns: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to a grouped dictionary for JSON serialization."""
        def _to_native(val, digits=None):
            if hasattr(val, 'item'):  # numpy scalar
                val = val.item()
            if digits is not None and isinstance(val, float) and math.isfinite(val):
                return round(val, digits)
            return val

        def _date(val):
            if val is None:
                return None
            try:
                return val.isoformat()
            except AttributeError:
                return str(val)

        return {
            "period": {
                "start_date": _date(self.start_date),
                "end_date": _date(self.end_date),
                "n_periods": int(self.n_periods),
                "periods_per_year": int(self.periods_per_year),
            },
            "returns": {
                "total_return": _to_native(self.total_return, 6),
                "total_return_dollars": _to_native(self.total_return_dollars, 2),
                "annualized_return": _to_native(self.annualized_return, 6),
                "return_mean": _to_native(self.return_mean, 8),
                "return_std": _to_native(self.return_std, 8),
                "volatility": _to_native(self.volatility, 6),
            },
            "risk": {
                "sharpe_ratio": _to_native(self.sharpe_ratio, 4),
                "sortino_ratio": _to_native(self.sortino_ratio, 4),
                "calmar_ratio": _to_native(self.calmar_ratio, 4),
                "value_at_risk": _to_native(self.value_at_risk, 6),
                "conditional_var": _to_native(self.conditional_var, 6),
                "var_alpha": _to_native(self.var_alpha),
            },
            "drawdown": {
                "max_drawdown": _to_native(self.max_drawdown, 6),
                "max_drawdown_dollars": _to_native(self.max_drawdown_dollars, 2),
                "max_drawdown_duration_bars": int(self.max_drawdown_duration_bars),
                "avg_drawdown": _to_native(self.avg_drawdown, 6),
                "recovery_factor": _to_native(self.recovery_factor, 4),
                "max_rolling_drawdown": _to_native(self.max_rolling_drawdown, 6),
                "rolling_drawdown_window": int(self.rolling_drawdown_window),
            },
            "benchmark": {
                "symbol": self.benchmark_symbol,
                "benchmark_return": _to_native(self.benchmark_return, 6),
                "excess_return": _to_native(self.excess_return, 6),
                "beta": _to_native(self.beta, 4),
                "tracking_error": _to_native(self.tracking_error, 6),
                "information_ratio": _to_native(self.information_ratio, 4),
            },
            "trades": {
                "total_trades": int(self.total_trades),
                "winning_trades": int(self.winning_trades),
                "losing_trades": int(self.losing_trades),
                "long_trades": int(self.long_trades),
                "short_trades": int(self.short_trades),
                "win_rate": _to_native(self.win_rate, 4),
                "profit_factor": _to_native(self.profit_factor, 4),
                "avg_trade_pnl": _to_native(self.avg_trade_pnl, 2),
                "avg_trade_return": _to_native(self.avg_trade_return, 6),
                "avg_win": _to_native(self.avg_win, 2),
                "avg_loss": _to_native(self.avg_loss, 2),
                "largest_win": _to_native(self.largest_win, 2),
                "largest_loss": _to_native(self.largest_loss, 2),
                "payoff_ratio": _to_native(self.payoff_ratio, 4),
                "expectancy": _to_native(self.expectancy, 2),
                "max_consecutive_wins": int(self.max_consecutive_wins),
                "max_consecutive_losses": int(self.max_consecutive_losses),
                "avg_trade_duration_bars": _to_native(self.avg_trade_duration_bars, 2),
            },
            "signals": {
                "avg_confidence": _to_native(self.avg_confidence, 4),
                "high_confidence_trades": int(self.high_confidence_trades),
                "high_confidence_win_rate": _to_native(self.high_confidence_win_rate, 4),
            },
            "costs": {
                "total_commission": _to_native(self.total_commission, 2),
                "total_slippage": _to_native(self.total_slippage, 2),
                "cost_per_trade": _to_native(self.cost_per_trade, 2),
            },
            "capital": {
                "initial": _to_native(self.initial_capital, 2),
                "final": _to_native(self.final_capital, 2),
                "gross_profit": _to_native(self.gross_profit, 2),
                "gross_loss": _to_native(self.gross_loss, 2),
                "net_profit": _to_native(self.net_profit, 2),
            },
            "monthly_returns": {
                month: _to_native(value, 6) for month, value in self.monthly_returns.items()
            },
        }

    def to_flat_dict(self) -> Dict[str, float]:
        """Numeric metrics keyed by field name, for optimizer objectives."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if isinstance(getattr(self, f.name), (int, float))
        }

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            "=" * 60,
            "PERFORMANCE SUMMARY",
            "=" * 60,
            f"Capital:        ${self.initial_capital:,.2f} -> ${self.final_capital:,.2f}",
            f"Total Return:   {self.total_return:.2%} (annualized {self.annualized_return:.2%})",
            f"Sharpe:         {self.sharpe_ratio:.3f}",
            f"Sortino:        {self.sortino_ratio:.3f}",
            f"Calmar:         {self.calmar_ratio:.3f}",
            f"Max Drawdown:   {self.max_drawdown:.2%} (${self.max_drawdown_dollars:,.2f})",
            f"VaR/CVaR ({self.var_alpha:.0%}): {self.value_at_risk:.2%} / {self.conditional_var:.2%}",
            f"Info Ratio:     {self.information_ratio:.3f}",
            "-" * 60,
            f"Trades:         {self.total_trades} ({self.long_trades} long, {self.short_trades} short)",
            f"Win Rate:       {self.win_rate:.1%}",
            f"Profit Factor:  {self.profit_factor:.3f}",
            f"Expectancy:     ${self.expectancy:,.2f}",
            f"Streaks:        {self.max_consecutive_wins} wins / {self.max_consecutive_losses} losses",
            f"Commission:     ${self.total_commission:,.2f}",
            "=" * 60,
        ]
        if self.benchmark_symbol:
            lines[-1:-1] = [
                "-" * 60,
                f"Benchmark:      {self.benchmark_symbol} {self.benchmark_return:.2%} "
                f"(excess {self.excess_return:+.2%}, beta {self.beta:.2f})",
            ]
        return "\n".join(lines)


# =============================================================================
# Return-Based Ratios
# =============================================================================

def calculate_returns(equity_curve: Sequence[float]) -> np.ndarray:
    """
    Period-over-period simple returns of an equity curve.

    Non-finite returns (from a zero equity reading) are dropped.
    """
    equity = np.asarray(equity_curve, dtype=float)
    if len(equity) < 2:
        return np.array([], dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(equity) / equity[:-1]
    return returns[np.isfinite(returns)]


def calculate_sharpe_ratio(
    returns: np.ndarray,
    risk_free_rate: float = 0.0,
    annualization_factor: float = np.sqrt(252),
) -> float:
    """
    Calculate Sharpe ratio from period returns.

    Sharpe Ratio = mean(excess) / std(excess) * sqrt(periods per year)

    Args:
        returns: Array of period returns (typically daily)
        risk_free_rate: Risk-free rate per period (default 0)
        annualization_factor: Factor to annualize (sqrt(252) for daily)

    Returns:
        Annualized Sharpe ratio; 0 if the standard deviation is 0 or undefined
    """
    if len(returns) == 0:
        return 0.0

    excess_returns = np.asarray(returns, dtype=float) - risk_free_rate

    mean_return = np.mean(excess_returns)
    std_return = np.std(excess_returns, ddof=1) if len(excess_returns) > 1 else 0.0

    if std_return == 0 or np.isnan(std_return):
        return 0.0

    return float((mean_return / std_return) * annualization_factor)


def calculate_sortino_ratio(
    returns: np.ndarray,
    risk_free_rate: float = 0.0,
    annualization_factor: float = np.sqrt(252),
) -> float:
    """
    Calculate Sortino ratio from period returns.

    Same numerator as Sharpe; the denominator is the standard deviation of
    the negative excess returns only.

    Args:
        returns: Array of period returns
        risk_free_rate: Risk-free rate per period
        annualization_factor: Factor to annualize

    Returns:
        Annualized Sortino ratio. +inf when there are no negative excess
        returns and the mean is positive; 0 when the downside deviation is
        0 or undefined.
    """
    if len(returns) == 0:
        return 0.0

    excess_returns = np.asarray(returns, dtype=float) - risk_free_rate
    mean_return = np.mean(excess_returns)

    downside_returns = excess_returns[excess_returns < 0]

    if len(downside_returns) == 0:
        return float('inf') if mean_return > 0 else 0.0

    downside_std = np.std(downside_returns, ddof=1) if len(downside_returns) > 1 else 0.0

    if downside_std == 0 or np.isnan(downside_std):
        return 0.0

    return float((mean_return / downside_std) * annualization_factor)


def calculate_annualized_return(
    total_return: float,
    n_periods: int,
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
) -> float:
    """
    Compound annual growth rate.

    Args:
        total_return: Total return as a fraction
        n_periods: Number of return periods covered
        periods_per_year: Periods in one year

    Returns:
        Annualized return; -1.0 if everything was lost
    """
    if n_periods <= 0:
        return 0.0
    if total_return <= -1:
        return -1.0
    years = n_periods / periods_per_year
    return (1 + total_return) ** (1 / years) - 1


def calculate_calmar_ratio(
    annualized_return: float,
    max_drawdown: float,
) -> float:
    """
    Calculate Calmar ratio.

    Calmar Ratio = Annualized Return / |Max Drawdown|

    Args:
        annualized_return: Annualized return as a fraction
        max_drawdown: Maximum drawdown as a fraction

    Returns:
        Calmar ratio; 0 without a drawdown
    """
    if max_drawdown == 0:
        return 0.0
    return annualized_return / abs(max_drawdown)


# =============================================================================
# Drawdown
# =============================================================================

def calculate_max_drawdown(
    equity_curve: Sequence[float],
) -> Tuple[float, float, int, int, int]:
    """
    Calculate maximum drawdown and related metrics.

    Drawdown = (Peak - Equity) / Peak, with Peak the running maximum.

    Args:
        equity_curve: Array of equity values over time

    Returns:
        Tuple of (max_dd_pct, max_dd_dollars, peak_idx, trough_idx, duration_bars)
    """
    if len(equity_curve) == 0:
        return 0.0, 0.0, 0, 0, 0

    drawdowns, drawdown_dollars = calculate_drawdown_series(equity_curve)
    equity = np.asarray(equity_curve, dtype=float)

    max_dd_idx = int(np.argmax(drawdowns))
    max_dd_pct = float(drawdowns[max_dd_idx])
    max_dd_dollars = float(np.max(drawdown_dollars))

    peak_idx = int(np.argmax(equity[:max_dd_idx + 1])) if max_dd_idx > 0 else 0
    duration = max_dd_idx - peak_idx

    return max_dd_pct, max_dd_dollars, peak_idx, max_dd_idx, duration


def calculate_drawdown_series(
    equity_curve: Sequence[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Calculate the drawdown at every point of an equity curve.

    Args:
        equity_curve: Array of equity values

    Returns:
        Tuple of (drawdown_pct_series, drawdown_dollar_series)
    """
    if len(equity_curve) == 0:
        return np.array([]), np.array([])

    equity = np.asarray(equity_curve, dtype=float)
    running_max = np.maximum.accumulate(equity)

    drawdown_dollars = running_max - equity
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown_pct = np.where(running_max > 0, drawdown_dollars / running_max, 0.0)

    return drawdown_pct, drawdown_dollars


def calculate_rolling_drawdown(
    equity_curve: Sequence[float],
    window: int = DEFAULT_ROLLING_DRAWDOWN_WINDOW,
) -> np.ndarray:
    """
    Drawdown from the highest equity within a trailing window.

    One value per point from the first full window on: the drawdown of
    point i from the maximum of points [i - window + 1, i]. A peak that has
    left the window no longer counts.

    Args:
        equity_curve: Array of equity values
        window: Number of points in the trailing window

    Returns:
        Drawdown fractions; empty when the curve is shorter than the window

    Raises:
        ValueError: If window is below 1
    """
    if window < 1:
        raise ValueError(f"window must be at least 1, got {window}")

    equity = pd.Series(np.asarray(equity_curve, dtype=float))
    if len(equity) < window:
        return np.array([], dtype=float)

    peak = equity.rolling(window).max().to_numpy()[window - 1:]
    values = equity.to_numpy()[window - 1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(peak > 0, (peak - values) / peak, 0.0)


# =============================================================================
# Benchmark & Calendar Analysis
# =============================================================================

@dataclass
class BenchmarkComparison:
    """Strategy against buying and holding a benchmark over the same bars."""
    benchmark_return: float = 0.0
    strategy_return: float = 0.0
    excess_return: float = 0.0
    beta: float = 0.0
    tracking_error: float = 0.0
    information_ratio: float = 0.0


def calculate_tracking_error(
    returns: Sequence[float],
    benchmark_returns: Optional[Sequence[float]] = None,
    annualization_factor: float = np.sqrt(252),
) -> float:
    """
    Annualized root-mean-square of the active returns.

    Active return = return - benchmark return, period by period. Without a
    benchmark the active returns are the returns themselves.
    """
    active = _active_returns(returns, benchmark_returns)
    if len(active) == 0:
        return 0.0
    return float(np.sqrt(np.mean(active ** 2)) * annualization_factor)


def calculate_information_ratio(
    returns: Sequence[float],
    benchmark_returns: Optional[Sequence[float]] = None,
    annualization_factor: float = np.sqrt(252),
) -> float:
    """
    Calculate the information ratio.

    Information Ratio = mean(active) / rms(active) * sqrt(periods per year)

    The root-mean-square of the active returns is the (unannualized)
    tracking error.

    Args:
        returns: Strategy period returns
        benchmark_returns: Benchmark returns for the same periods (zero if
            not given)
        annualization_factor: Factor to annualize

    Returns:
        Annualized information ratio; 0 when the tracking error is 0

    Raises:
        ValueError: If the two series differ in length
    """
    active = _active_returns(returns, benchmark_returns)
    if len(active) == 0:
        return 0.0

    tracking = np.sqrt(np.mean(active ** 2))
    if tracking == 0:
        return 0.0
    return float(np.mean(active) / tracking * annualization_factor)


def _active_returns(returns, benchmark_returns) -> np.ndarray:
    returns = np.asarray(returns, dtype=float)
    if benchmark_returns is None:
        return returns
    benchmark_returns = np.asarray(benchmark_returns, dtype=float)
    if len(benchmark_returns) != len(returns):
        raise ValueError(
            f"returns ({len(returns)}) and benchmark_returns ({len(benchmark_returns)}) differ in length"
        )
    return returns - benchmark_returns


def calculate_beta(returns: Sequence[float], benchmark_returns: Sequence[float]) -> float:
    """Sample covariance with the benchmark over benchmark variance; 0 if undefined."""
    returns = np.asarray(returns, dtype=float)
    benchmark_returns = np.asarray(benchmark_returns, dtype=float)
    if len(returns) < 2 or len(returns) != len(benchmark_returns):
        return 0.0

    variance = np.var(benchmark_returns, ddof=1)
    if variance == 0 or np.isnan(variance):
        return 0.0
    return float(np.cov(returns, benchmark_returns, ddof=1)[0, 1] / variance)


def calculate_monthly_returns(
    equity: pd.Series,
    initial_value: Optional[float] = None,
) -> Dict[str, float]:
    """
    Calendar-month returns of a timestamp-indexed equity series.

    Each month compares its last reading with the last reading of the
    previous month. The first month starts from `initial_value`, or from
    the first reading when not given.

    Args:
        equity: Equity values with a DatetimeIndex
        initial_value: Balance before the first reading

    Returns:
        Month ('YYYY-MM') -> return, in calendar order
    """
    if len(equity) == 0:
        return {}

    index = pd.DatetimeIndex(equity.index)
    if index.tz is not None:
        index = index.tz_localize(None)
    values = pd.Series(np.asarray(equity, dtype=float), index=index)

    month_end = values.groupby(index.to_period("M")).last()
    previous = month_end.shift(1)
    previous.iloc[0] = values.iloc[0] if initial_value is None else initial_value

    with np.errstate(divide="ignore", invalid="ignore"):
        returns = month_end / previous - 1
    return {str(month): float(r) for month, r in returns.items() if np.isfinite(r)}


def compare_to_benchmark(
    equity: pd.Series,
    benchmark_prices: pd.Series,
    annualization_factor: float = np.sqrt(252),
) -> BenchmarkComparison:
    """
    Compare a strategy's equity with buying and holding a benchmark.

    The benchmark closes are carried forward onto the equity timestamps, so
    a missing benchmark bar does not drop a strategy period. Timestamps
    before the first benchmark close are ignored.

    Args:
        equity: Strategy equity with a DatetimeIndex
        benchmark_prices: Benchmark closes with a DatetimeIndex
        annualization_factor: Factor to annualize tracking error and
            information ratio

    Returns:
        BenchmarkComparison; all zero with fewer than two aligned readings
    """
    equity = equity[~equity.index.duplicated(keep="last")].sort_index()
    benchmark = benchmark_prices.sort_index()
    benchmark = benchmark[~benchmark.index.duplicated(keep="last")]

    aligned = pd.DataFrame({
        "strategy": np.asarray(equity, dtype=float),
        "benchmark": benchmark.reindex(equity.index, method="ffill").to_numpy(dtype=float),
    }, index=equity.index).dropna()
    if len(aligned) < 2:
        return BenchmarkComparison()

    values = aligned.to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        period_returns = values[1:] / values[:-1] - 1
    period_returns = period_returns[np.all(np.isfinite(period_returns), axis=1)]
    strategy_returns, benchmark_returns = period_returns[:, 0], period_returns[:, 1]

    strategy_return = float(values[-1, 0] / values[0, 0] - 1)
    benchmark_return = float(values[-1, 1] / values[0, 1] - 1)

    return BenchmarkComparison(
        benchmark_return=benchmark_return,
        strategy_return=strategy_return,
        excess_return=strategy_return - benchmark_return,
        beta=calculate_beta(strategy_returns, benchmark_returns),
        tracking_error=calculate_tracking_error(
            strategy_returns, benchmark_returns, annualization_factor
        ),
        information_ratio=calculate_information_ratio(
            strategy_returns, benchmark_returns, annualization_factor
        ),
    )


# =============================================================================
# Trade Statistics
# =============================================================================

def calculate_win_rate(wins: int, total: int) -> float:
    """Win rate as a fraction; 0 with no trades."""
    if total == 0:
        return 0.0
    return wins / total


def calculate_profit_factor(gross_profit: float, gross_loss: float) -> float:
    """
    Calculate profit factor.

    Profit Factor = Gross Profit / |Gross Loss|

    Args:
        gross_profit: Sum of all winning trades (positive)
        gross_loss: Sum of all losing trades (sign ignored)

    Returns:
        Profit factor; +inf with profits and no losses, 0 with no profits
    """
    if gross_profit <= 0:
        return 0.0
    if gross_loss == 0:
        return float('inf')
    return gross_profit / abs(gross_loss)


def calculate_expectancy(
    win_rate: float,
    avg_win: float,
    avg_loss: float,
) -> float:
    """
    Calculate expectancy per trade.

    Expectancy = (Win Rate * Avg Win) - (Loss Rate * Avg Loss)

    Args:
        win_rate: Win rate as decimal (0-1)
        avg_win: Average winning trade (positive)
        avg_loss: Average losing trade (sign ignored)

    Returns:
        Expected value per trade in currency
    """
    loss_rate = 1 - win_rate
    return (win_rate * avg_win) - (loss_rate * abs(avg_loss))


def calculate_consecutive_streaks(
    trade_results: List[float],
) -> Tuple[int, int]:
    """
    Calculate maximum consecutive wins and losses.

    Args:
        trade_results: Trade P&Ls in chronological order

    Returns:
        Tuple of (max_consecutive_wins, max_consecutive_losses)
    """
    if not trade_results:
        return 0, 0

    max_wins = 0
    max_losses = 0
    current_wins = 0
    current_losses = 0

    for pnl in trade_results:
        if pnl > 0:
            current_wins += 1
            current_losses = 0
            max_wins = max(max_wins, current_wins)
        elif pnl < 0:
            current_losses += 1
            current_wins = 0
            max_losses = max(max_losses, current_losses)
        # pnl == 0: breakeven, reset both
        else:
            current_wins = 0
            current_losses = 0

    return max_wins, max_losses


def calculate_historical_var(
    returns: Sequence[float],
    alpha: float = DEFAULT_VAR_ALPHA,
) -> float:
    """
    Historical Value at Risk.

    The alpha-quantile of the return distribution, taken as the observation
    at index floor(alpha * n) of the sorted returns. Reported as a return
    (negative for a loss), not as a positive loss amount.

    Args:
        returns: Per-trade (or per-period) returns
        alpha: Tail probability (0.05 for 95% VaR)

    Returns:
        VaR as a return; 0 with no observations
    """
    if len(returns) == 0:
        return 0.0

    ordered = np.sort(np.asarray(returns, dtype=float))
    idx = min(int(math.floor(alpha * len(ordered))), len(ordered) - 1)
    return float(ordered[idx])


def calculate_conditional_var(
    returns: Sequence[float],
    alpha: float = DEFAULT_VAR_ALPHA,
) -> float:
    """
    Conditional Value at Risk (expected shortfall).

    Mean of all returns at or below the historical VaR.

    Returns:
        CVaR as a return; 0 with no observations
    """
    if len(returns) == 0:
        return 0.0

    arr = np.asarray(returns, dtype=float)
    var = calculate_historical_var(arr, alpha)
    return float(np.mean(arr[arr <= var]))


# =============================================================================
# Main Entry Point
# =============================================================================

def calculate_metrics(
    trades: List[TradeRecord],
    equity_curve: Union[EquityCurve, pd.Series, Sequence[float]],
    initial_capital: float,
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    var_alpha: float = DEFAULT_VAR_ALPHA,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    benchmark_prices: Optional[pd.Series] = None,
    benchmark_symbol: Optional[str] = None,
    rolling_window: int = DEFAULT_ROLLING_DRAWDOWN_WINDOW,
) -> PerformanceMetrics:
    """
    Calculate performance metrics from closed trades and an equity curve.

    This is the main function to call after a backtest completes. An
    EquityCurve contributes its opening balance as the first reading.
    Calendar-month returns and the benchmark comparison need timestamps, so
    they are only computed for an EquityCurve or a Series with a
    DatetimeIndex.

    Args:
        trades: Closed trades in the order they closed
        equity_curve: EquityCurve, timestamped Series or equity values
        initial_capital: Starting capital
        periods_per_year: Annualization factor (252 for daily bars)
        risk_free_rate: Annual risk-free rate
        var_alpha: Tail probability for VaR / CVaR
        start_date: Start of the simulated period
        end_date: End of the simulated period
        benchmark_prices: Benchmark closes with a DatetimeIndex
        benchmark_symbol: Name reported for the benchmark
        rolling_window: Points in the rolling drawdown window

    Returns:
        PerformanceMetrics with all calculated values

    Raises:
        ValueError: If benchmark prices are given for an untimestamped curve
    """
    equity_series = None
    monthly_start = None
    if isinstance(equity_curve, EquityCurve):
        equity = np.asarray(equity_curve.get_equity_values(include_initial=True), dtype=float)
        equity_series = equity_curve.get_equity_series()
        monthly_start = equity_curve.initial_equity
    elif isinstance(equity_curve, pd.Series) and isinstance(equity_curve.index, pd.DatetimeIndex):
        equity = equity_curve.to_numpy(dtype=float)
        equity_series = equity_curve
    else:
        equity = np.asarray(equity_curve, dtype=float)

    if benchmark_prices is not None and equity_series is None:
        raise ValueError("Benchmark comparison needs a timestamped equity curve")

    metrics = PerformanceMetrics(
        start_date=start_date,
        end_date=end_date,
        periods_per_year=periods_per_year,
        initial_capital=initial_capital,
        var_alpha=var_alpha,
        rolling_drawdown_window=rolling_window,
    )

    # Return metrics
    metrics.final_capital = float(equity[-1]) if len(equity) > 0 else initial_capital
    metrics.total_return_dollars = metrics.final_capital - initial_capital
    metrics.total_return = (
        metrics.total_return_dollars / initial_capital if initial_capital > 0 else 0.0
    )

    returns = calculate_returns(equity)
    metrics.n_periods = len(returns)
    metrics.annualized_return = calculate_annualized_return(
        metrics.total_return, metrics.n_periods, periods_per_year
    )

    annualization = np.sqrt(periods_per_year)
    rf_per_period = risk_free_rate / periods_per_year

    if len(returns) > 0:
        metrics.return_mean = float(np.mean(returns))
        metrics.return_std = float(np.std(returns, ddof=1)) if len(returns) > 1 else 0.0
        metrics.volatility = metrics.return_std * annualization
        metrics.sharpe_ratio = calculate_sharpe_ratio(returns, rf_per_period, annualization)
        metrics.sortino_ratio = calculate_sortino_ratio(returns, rf_per_period, annualization)

    # Drawdown metrics
    max_dd_pct, max_dd_dollars, _, _, duration = calculate_max_drawdown(equity)
    metrics.max_drawdown = max_dd_pct
    metrics.max_drawdown_dollars = max_dd_dollars
    metrics.max_drawdown_duration_bars = duration

    dd_pct_series, _ = calculate_drawdown_series(equity)
    metrics.avg_drawdown = float(np.mean(dd_pct_series)) if len(dd_pct_series) > 0 else 0.0

    metrics.calmar_ratio = calculate_calmar_ratio(metrics.annualized_return, metrics.max_drawdown)

    if metrics.max_drawdown_dollars > 0:
        metrics.recovery_factor = metrics.total_return_dollars / metrics.max_drawdown_dollars

    rolling = calculate_rolling_drawdown(equity, rolling_window)
    metrics.max_rolling_drawdown = float(np.max(rolling)) if len(rolling) > 0 else 0.0

    # Benchmark & calendar
    metrics.tracking_error = calculate_tracking_error(returns, None, annualization)
    metrics.information_ratio = calculate_information_ratio(returns, None, annualization)

    if equity_series is not None:
        metrics.monthly_returns = calculate_monthly_returns(equity_series, monthly_start)

    if benchmark_prices is not None:
        comparison = compare_to_benchmark(equity_series, benchmark_prices, annualization)
        metrics.benchmark_symbol = benchmark_symbol or "benchmark"
        metrics.benchmark_return = comparison.benchmark_return
        metrics.excess_return = comparison.excess_return
        metrics.beta = comparison.beta
        metrics.tracking_error = comparison.tracking_error
        metrics.information_ratio = comparison.information_ratio

    if not trades:
        return metrics

    # Trade metrics
    pnls = np.array([t.net_pnl for t in trades], dtype=float)
    trade_returns = np.array([t.trade_return for t in trades], dtype=float)

    metrics.total_trades = len(trades)
    metrics.winning_trades = int(np.sum(pnls > 0))
    metrics.losing_trades = int(np.sum(pnls < 0))
    metrics.long_trades = sum(1 for t in trades if t.direction is Direction.LONG)
    metrics.short_trades = metrics.total_trades - metrics.long_trades
    metrics.win_rate = calculate_win_rate(metrics.winning_trades, metrics.total_trades)

    winning_pnls = pnls[pnls > 0]
    losing_pnls = pnls[pnls < 0]

    metrics.gross_profit = float(np.sum(winning_pnls))
    metrics.gross_loss = float(np.abs(np.sum(losing_pnls)))
    metrics.net_profit = metrics.gross_profit - metrics.gross_loss
    metrics.profit_factor = calculate_profit_factor(metrics.gross_profit, metrics.gross_loss)

    metrics.avg_trade_pnl = float(np.mean(pnls))
    metrics.avg_trade_return = float(np.mean(trade_returns))
    metrics.avg_win = float(np.mean(winning_pnls)) if len(winning_pnls) > 0 else 0.0
    metrics.avg_loss = float(np.abs(np.mean(losing_pnls))) if len(losing_pnls) > 0 else 0.0
    metrics.largest_win = float(np.max(winning_pnls)) if len(winning_pnls) > 0 else 0.0
    metrics.largest_loss = float(np.abs(np.min(losing_pnls))) if len(losing_pnls) > 0 else 0.0
    metrics.payoff_ratio = metrics.avg_win / metrics.avg_loss if metrics.avg_loss > 0 else 0.0
    metrics.expectancy = calculate_expectancy(metrics.win_rate, metrics.avg_win, metrics.avg_loss)

    max_wins, max_losses = calculate_consecutive_streaks(list(pnls))
    metrics.max_consecutive_wins = max_wins
    metrics.max_consecutive_losses = max_losses
    metrics.avg_trade_duration_bars = float(np.mean([t.bars_held for t in trades]))

    metrics.value_at_risk = calculate_historical_var(trade_returns, var_alpha)
    metrics.conditional_var = calculate_conditional_var(trade_returns, var_alpha)

    # Signal quality
    metrics.avg_confidence = float(np.mean([t.confidence for t in trades]))
    high_conf = [t for t in trades if t.confidence > HIGH_CONFIDENCE_THRESHOLD]
    metrics.high_confidence_trades = len(high_conf)
    metrics.high_confidence_win_rate = calculate_win_rate(
        sum(1 for t in high_conf if t.is_winner), len(high_conf)
    )

    # Cost metrics
    metrics.total_commission = float(sum(t.commission for t in trades))
    metrics.total_slippage = float(sum(t.slippage for t in trades))
    metrics.cost_per_trade = metrics.total_commission / metrics.total_trades

    return metrics
