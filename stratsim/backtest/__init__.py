"""
Backtesting Engine Module

This module provides event-driven backtesting capabilities with:
- Proportional commission and adverse slippage on every fill
- Stop-loss / take-profit exits and position sizing policies
- Equity curve and drawdown tracking
- Comprehensive performance metrics
- Monte Carlo resampling of realized trade returns

The backtesting engine is the black box the walk-forward optimizer and
the Monte Carlo resampler run repeatedly; every run owns its own state.
"""

from stratsim.backtest.costs import CommissionConfig, TransactionCostModel
from stratsim.backtest.slippage import BUY, SELL, SlippageConfig, SlippageModel
from stratsim.backtest.sizing import (
    PositionSizer,
    fixed_fraction_size,
    kelly_size,
    percentage_size,
)
from stratsim.backtest.metrics import (
    PerformanceMetrics,
    calculate_metrics,
    calculate_returns,
    calculate_sharpe_ratio,
    calculate_sortino_ratio,
    calculate_calmar_ratio,
    calculate_max_drawdown,
    calculate_drawdown_series,
    calculate_historical_var,
    calculate_conditional_var,
    calculate_rolling_drawdown,
    calculate_information_ratio,
    calculate_monthly_returns,
    compare_to_benchmark,
    BenchmarkComparison,
)
from stratsim.backtest.trade_logger import (
    ExitReason,
    Position,
    TradeLog,
    TradeRecord,
    EquityCurve,
    EquityPoint,
    BacktestReport,
)
from stratsim.backtest.engine import (
    BacktestEngine,
    BacktestConfig,
    BacktestResult,
    SimulationState,
)
from stratsim.backtest.monte_carlo import (
    ConfidenceInterval,
    MonteCarloConfig,
    MonteCarloResult,
    MonteCarloSimulator,
    SimulationRun,
    run_monte_carlo_from_csv,
)

__all__ = [
    # Costs
    "CommissionConfig",
    "TransactionCostModel",
    "BUY",
    "SELL",
    "SlippageConfig",
    "SlippageModel",
    # Sizing
    "PositionSizer",
    "fixed_fraction_size",
    "percentage_size",
    "kelly_size",
    # Metrics
    "PerformanceMetrics",
    "calculate_metrics",
    "calculate_returns",
    "calculate_sharpe_ratio",
    "calculate_sortino_ratio",
    "calculate_calmar_ratio",
    "calculate_max_drawdown",
    "calculate_drawdown_series",
    "calculate_historical_var",
    "calculate_conditional_var",
    "calculate_rolling_drawdown",
    "calculate_information_ratio",
    "calculate_monthly_returns",
    "compare_to_benchmark",
    "BenchmarkComparison",
    # Trade logging
    "ExitReason",
    "Position",
    "TradeLog",
    "TradeRecord",
    "EquityCurve",
    "EquityPoint",
    "BacktestReport",
    # Engine
    "BacktestEngine",
    "BacktestConfig",
    "BacktestResult",
    "SimulationState",
    # Monte Carlo
    "ConfidenceInterval",
    "MonteCarloConfig",
    "MonteCarloResult",
    "MonteCarloSimulator",
    "SimulationRun",
    "run_monte_carlo_from_csv",
]
