"""
Event-Driven Backtesting Engine

This module implements a bar-by-bar simulation engine for validating
prediction-driven strategies across a universe of symbols before they are
trusted with capital.

Key Features:
- Chronological processing over the union of all symbol timestamps
- Stop-loss / take-profit exits checked against each bar's high and low
- Proportional commission and adverse slippage on every fill
- Fixed, percentage and Kelly position sizing, or a caller-supplied hook
- Equity curve with incremental peak and drawdown tracking
- Diagnostics instead of exceptions for data problems inside the loop
- Cooperative cancellation through a threading.Event

The engine processes data chronologically and only ever hands the signal
generator bars strictly before the current one, so there is no lookahead.

Usage:
    engine = BacktestEngine(config=BacktestConfig())
    result = engine.run(
        data={"AAPL": aapl_df, "MSFT": msft_df},
        signal_generator=SignalGenerator(predictor),
    )
    result.report.export_all("./results")
"""

import hashlib
import json
import logging
import math
import time
from dataclasses import dataclass, field, fields
from threading import Event
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from stratsim.lib import diagnostics as diag
from stratsim.lib.config import BacktestSettings, ConfigValidationError, SimulationConfig
from stratsim.lib.constants import (
    DEFAULT_COMMISSION_RATE,
    DEFAULT_FIXED_FRACTION,
    DEFAULT_INITIAL_CAPITAL,
    DEFAULT_MAX_OPEN_POSITIONS,
    DEFAULT_PERIODS_PER_YEAR,
    DEFAULT_POSITION_SIZING,
    DEFAULT_RISK_FREE_RATE,
    DEFAULT_RISK_PER_TRADE,
    DEFAULT_SLIPPAGE_RATE,
    DEFAULT_STOP_LOSS_FRACTION,
    DEFAULT_TAKE_PROFIT_FRACTION,
    DEFAULT_VAR_ALPHA,
    POSITION_SIZING_METHODS,
)
from stratsim.lib.diagnostics import SimulationDiagnostics
from stratsim.lib.logging_utils import BacktestLogger
from stratsim.signals.strategies import Direction
from stratsim.backtest.costs import CommissionConfig, TransactionCostModel
from stratsim.backtest.metrics import PerformanceMetrics, calculate_metrics
from stratsim.backtest.sizing import PositionSizer, SizingHook
from stratsim.backtest.slippage import BUY, SELL, SlippageConfig, SlippageModel
from stratsim.backtest.trade_logger import (
    BacktestReport,
    EquityCurve,
    ExitReason,
    Position,
    TradeLog,
    TradeRecord,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("open", "high", "low", "close")


@dataclass
class BacktestConfig:
    """
    Configuration for the backtest engine.

    Attributes:
        initial_capital: Starting account balance
        commission_rate: Fraction of notional charged per side
        slippage_rate: Adverse fraction of price on every fill
        max_open_positions: Simultaneous open positions allowed
        stop_loss_fraction: Stop distance from entry as a fraction
        take_profit_fraction: Target distance from entry as a fraction
        position_sizing: 'fixed', 'percentage' or 'kelly'
        fixed_fraction: Capital share per trade for 'fixed'
        risk_per_trade: Base risk for 'percentage' and 'kelly'
        risk_free_rate: Annual risk-free rate for Sharpe / Sortino
        periods_per_year: Bars per year for annualization
        var_alpha: Tail probability for VaR / CVaR
        benchmark_symbol: Symbol in the data whose buy-and-hold return the
            run is compared against (None for no comparison)
    """
    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    commission_rate: float = DEFAULT_COMMISSION_RATE
    slippage_rate: float = DEFAULT_SLIPPAGE_RATE
    max_open_positions: int = DEFAULT_MAX_OPEN_POSITIONS
    stop_loss_fraction: float = DEFAULT_STOP_LOSS_FRACTION
    take_profit_fraction: float = DEFAULT_TAKE_PROFIT_FRACTION
    position_sizing: str = DEFAULT_POSITION_SIZING
    fixed_fraction: float = DEFAULT_FIXED_FRACTION
    risk_per_trade: float = DEFAULT_RISK_PER_TRADE
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR
    var_alpha: float = DEFAULT_VAR_ALPHA
    benchmark_symbol: Optional[str] = None

    def __post_init__(self):
        errors = []
        if not self.initial_capital > 0:
            errors.append(f"initial_capital must be positive, got {self.initial_capital}")
        if self.commission_rate < 0:
            errors.append(f"commission_rate cannot be negative, got {self.commission_rate}")
        if not 0 <= self.slippage_rate < 1:
            errors.append(f"slippage_rate must be in [0, 1), got {self.slippage_rate}")
        if self.max_open_positions < 1:
            errors.append(f"max_open_positions must be at least 1, got {self.max_open_positions}")
        if not 0 < self.stop_loss_fraction < 1:
            errors.append(f"stop_loss_fraction must be in (0, 1), got {self.stop_loss_fraction}")
        if not 0 < self.take_profit_fraction < 1:
            errors.append(f"take_profit_fraction must be in (0, 1), got {self.take_profit_fraction}")
        if self.position_sizing not in POSITION_SIZING_METHODS:
            errors.append(
                f"position_sizing must be one of {POSITION_SIZING_METHODS}, got '{self.position_sizing}'"
            )
        if self.periods_per_year <= 0:
            errors.append(f"periods_per_year must be positive, got {self.periods_per_year}")
        if not 0 < self.var_alpha < 1:
            errors.append(f"var_alpha must be in (0, 1), got {self.var_alpha}")
        if errors:
            raise ConfigValidationError("; ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_settings(cls, settings) -> 'BacktestConfig':
        """
        Build an engine config from a loaded SimulationConfig or its
        BacktestSettings section.
        """
        if isinstance(settings, SimulationConfig):
            settings = settings.backtest
        if not isinstance(settings, BacktestSettings):
            raise TypeError(f"Expected SimulationConfig or BacktestSettings, got {type(settings).__name__}")

        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in vars(settings).items() if k in names})


@dataclass
class SimulationState:
    """
    Mutable state of one simulation run.

    Owned by a single run; never shared between runs or threads.
    Open positions are keyed by position id and always visited in
    (symbol, position_id) order.
    """
    capital: float
    equity_curve: EquityCurve
    trade_log: TradeLog = field(default_factory=TradeLog)
    open_positions: Dict[int, Position] = field(default_factory=dict)
    last_close: Dict[str, float] = field(default_factory=dict)
    last_bar_time: Dict[str, pd.Timestamp] = field(default_factory=dict)
    next_position_id: int = 1
    bar_index: int = -1

    def equity(self) -> float:
        """Cash plus open positions marked at their symbol's last close."""
        return self.capital + sum(
            p.market_value(self.last_close[p.symbol]) for p in self.open_positions.values()
        )


@dataclass(frozen=True)
class BacktestResult:
    """
    Complete results from a backtest run.

    Attributes:
        report: Trade log, equity curve and metrics
        config: Configuration used for this run
        symbols: Symbols simulated
        initial_capital: Starting capital
        final_capital: Capital after every position was closed
        diagnostics: Skips and rejections counted during the run
        execution_time_seconds: How long the backtest took
    """
    report: BacktestReport
    config: Dict[str, Any]
    symbols: Tuple[str, ...]
    initial_capital: float
    final_capital: float
    diagnostics: SimulationDiagnostics
    execution_time_seconds: float = 0.0

    @property
    def trades(self) -> List[TradeRecord]:
        return self.report.trade_log.get_trades()

    @property
    def equity_curve(self) -> EquityCurve:
        return self.report.equity_curve

    @property
    def metrics(self) -> PerformanceMetrics:
        return self.report.metrics

    @property
    def total_return(self) -> float:
        return (self.final_capital - self.initial_capital) / self.initial_capital

    @property
    def cancelled(self) -> bool:
        return self.diagnostics.cancelled

    def fingerprint(self) -> str:
        """Stable hash of the trade sequence, equal for identical runs."""
        payload = json.dumps([t.to_dict() for t in self.trades], sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        data = self.report.to_dict()
        data.update({
            "symbols": list(self.symbols),
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "diagnostics": self.diagnostics.to_dict(),
            "execution_time_seconds": self.execution_time_seconds,
            "fingerprint": self.fingerprint(),
        })
        return data


def _is_degenerate(o: float, h: float, l: float, c: float) -> bool:
    prices = (o, h, l, c)
    if not all(math.isfinite(p) and p > 0 for p in prices):
        return True
    return h < l


def _align_timestamp(value: Any, index: pd.DatetimeIndex) -> Optional[pd.Timestamp]:
    """Parse a date and match the timezone awareness of `index`."""
    if value is None:
        return None
    ts = pd.Timestamp(value)
    if index.tz is not None and ts.tzinfo is None:
        ts = ts.tz_localize(index.tz)
    elif index.tz is None and ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


class BacktestEngine:
    """
    Event-driven backtesting engine for a multi-symbol universe.

    The main loop, once per timestamp of the unified timeline:
    1. Check stop/target exits on open positions against the bar
    2. Generate signals from the bars strictly before this one
    3. Admit trades subject to position, sizing and capital limits
    4. Mark open positions at the close and snapshot equity

    Within a timestamp, symbols are handled in lexicographic order, so two
    runs over identical inputs produce identical trade sequences.

    Example:
        engine = BacktestEngine(BacktestConfig(initial_capital=50_000))
        result = engine.run(data, SignalGenerator(model, "naive_bayes"))
        print(f"Total return: {result.metrics.total_return:.2%}")
    """

    def __init__(
        self,
        config: Optional[BacktestConfig] = None,
        sizing_hook: Optional[SizingHook] = None,
    ):
        """
        Initialize the backtest engine.

        Args:
            config: Backtest configuration. Uses defaults if not provided.
            sizing_hook: Optional size_position(capital, price, confidence)
                overriding the configured sizing policy
        """
        self.config = config or BacktestConfig()

        self._cost_model = TransactionCostModel(
            CommissionConfig(commission_rate=self.config.commission_rate)
        )
        self._slippage_model = SlippageModel(
            SlippageConfig(slippage_rate=self.config.slippage_rate)
        )
        self._sizer = PositionSizer(
            method=self.config.position_sizing,
            fixed_fraction=self.config.fixed_fraction,
            risk_per_trade=self.config.risk_per_trade,
            hook=sizing_hook,
        )
        self._log = BacktestLogger()

    # =========================================================================
    # Public API
    # =========================================================================

    def run(
        self,
        data: Dict[str, pd.DataFrame],
        signal_generator,
        symbols: Optional[Sequence[str]] = None,
        start_date: Any = None,
        end_date: Any = None,
        cancel_event: Optional[Event] = None,
    ) -> BacktestResult:
        """
        Run a complete backtest on the provided data.

        Args:
            data: Symbol -> OHLCV DataFrame with a datetime index
            signal_generator: Object exposing generate_signals(windows,
                timestamp, reference_prices, diagnostics), or a callable
                with that signature
            symbols: Symbols to trade (default: every key of `data`)
            start_date: First tradable timestamp; earlier bars are history only
            end_date: Last timestamp considered (inclusive)
            cancel_event: Checked once per bar; when set the run stops early

        Returns:
            BacktestResult with trades, equity curve, metrics and diagnostics

        Raises:
            ConfigValidationError: If symbols, data or dates are invalid
        """
        started = time.perf_counter()

        symbols = sorted(symbols if symbols is not None else data.keys())
        frames = self._prepare_data(data, symbols)
        benchmark = self._benchmark_prices(data)
        timeline, start_ts, end_ts = self._build_timeline(frames, start_date, end_date)
        generate = getattr(signal_generator, "generate_signals", signal_generator)

        self._cost_model.reset()
        self._slippage_model.reset()
        diagnostics = SimulationDiagnostics()
        state = SimulationState(
            capital=self.config.initial_capital,
            equity_curve=EquityCurve(self.config.initial_capital),
        )
        cursors = {symbol: 0 for symbol in symbols}

        n_trading = int(np.sum(timeline >= start_ts))
        self._log.run_start(self.config.initial_capital, symbols, n_trading)

        first_trading_ts = None
        last_ts = None
        for ts in timeline:
            bars = self._advance(frames, cursors, ts)

            if ts < start_ts:
                for symbol, (_, bar) in bars.items():
                    if not _is_degenerate(*bar):
                        state.last_close[symbol] = bar[3]
                        state.last_bar_time[symbol] = ts
                continue

            if cancel_event is not None and cancel_event.is_set():
                diagnostics.cancelled = True
                self._log.warning(f"Backtest cancelled at {ts}")
                break

            if first_trading_ts is None:
                first_trading_ts = ts

            state.bar_index += 1
            valid = self._screen_bars(symbols, bars, ts, state, diagnostics)

            self._check_exits(valid, ts, state)

            windows = {s: frames[s].iloc[:pos] for s, (pos, _) in valid.items()}
            prices = {s: bar[3] for s, (_, bar) in valid.items()}
            if windows:
                signals = generate(windows, ts, prices, diagnostics)
                for signal in signals:
                    self._admit(signal, ts, state, diagnostics)

            state.equity_curve.add_point(
                ts, state.equity(), state.capital, len(state.open_positions)
            )
            last_ts = ts

        if state.open_positions:
            self._close_all(state)
            # Settled balance supersedes the marked reading of the last bar
            state.equity_curve.add_point(last_ts, state.capital, state.capital, 0)

        trades = state.trade_log.get_trades()
        metrics = calculate_metrics(
            trades,
            state.equity_curve,
            self.config.initial_capital,
            periods_per_year=self.config.periods_per_year,
            risk_free_rate=self.config.risk_free_rate,
            var_alpha=self.config.var_alpha,
            start_date=first_trading_ts,
            end_date=last_ts,
            benchmark_prices=benchmark,
            benchmark_symbol=self.config.benchmark_symbol,
        )

        report = BacktestReport(
            trade_log=state.trade_log,
            equity_curve=state.equity_curve,
            metrics=metrics,
            config=self.config.to_dict(),
            start_date=first_trading_ts,
            end_date=last_ts,
        )

        self._log.run_end(len(trades), state.capital, metrics.total_return)

        return BacktestResult(
            report=report,
            config=self.config.to_dict(),
            symbols=tuple(symbols),
            initial_capital=self.config.initial_capital,
            final_capital=state.capital,
            diagnostics=diagnostics,
            execution_time_seconds=time.perf_counter() - started,
        )

    # =========================================================================
    # Validation & Timeline
    # =========================================================================

    def _prepare_data(
        self,
        data: Dict[str, pd.DataFrame],
        symbols: List[str],
    ) -> Dict[str, pd.DataFrame]:
        if not symbols:
            raise ConfigValidationError("No symbols to simulate")

        missing = [s for s in symbols if s not in data]
        if missing:
            raise ConfigValidationError(f"Symbols missing from data: {missing}")

        frames = {}
        for symbol in symbols:
            df = data[symbol]
            absent = [c for c in REQUIRED_COLUMNS if c not in df.columns]
            if absent:
                raise ConfigValidationError(f"{symbol}: missing columns {absent}")

            if not isinstance(df.index, pd.DatetimeIndex):
                df = df.set_axis(pd.to_datetime(df.index))
            duplicated = df.index.duplicated(keep="last")
            if duplicated.any():
                logger.warning(f"{symbol}: dropping {int(duplicated.sum())} duplicate timestamps")
                df = df[~duplicated]
            frames[symbol] = df.sort_index()

        return frames

    def _benchmark_prices(self, data: Dict[str, pd.DataFrame]) -> Optional[pd.Series]:
        """Closes of the configured benchmark, which need not be traded."""
        symbol = self.config.benchmark_symbol
        if symbol is None:
            return None
        if symbol not in data or "close" not in data[symbol].columns:
            raise ConfigValidationError(f"Benchmark '{symbol}' has no close prices in the data")

        closes = data[symbol]["close"].astype(float)
        if not isinstance(closes.index, pd.DatetimeIndex):
            closes = closes.set_axis(pd.to_datetime(closes.index))
        return closes[closes > 0].dropna()

    def _build_timeline(
        self,
        frames: Dict[str, pd.DataFrame],
        start_date: Any,
        end_date: Any,
    ) -> Tuple[pd.DatetimeIndex, pd.Timestamp, pd.Timestamp]:
        timeline = pd.DatetimeIndex([])
        for df in frames.values():
            timeline = timeline.union(df.index) if len(timeline) else df.index
        timeline = timeline.sort_values()

        if len(timeline) == 0:
            raise ConfigValidationError("No bars in data")

        start_ts = _align_timestamp(start_date, timeline)
        end_ts = _align_timestamp(end_date, timeline)

        if start_ts is not None and end_ts is not None and end_ts < start_ts:
            raise ConfigValidationError(f"end_date {end_ts} is before start_date {start_ts}")

        if end_ts is not None:
            timeline = timeline[timeline <= end_ts]
        if start_ts is None:
            start_ts = timeline[0] if len(timeline) else None

        if len(timeline) == 0 or start_ts is None or not (timeline >= start_ts).any():
            raise ConfigValidationError(
                f"No bars between {start_date} and {end_date}"
            )

        return timeline, start_ts, timeline[-1]

    @staticmethod
    def _advance(
        frames: Dict[str, pd.DataFrame],
        cursors: Dict[str, int],
        ts: pd.Timestamp,
    ) -> Dict[str, Tuple[int, Tuple[float, float, float, float]]]:
        """Bars present at `ts`, keyed by symbol, with their row position."""
        bars = {}
        for symbol, df in frames.items():
            pos = cursors[symbol]
            if pos < len(df) and df.index[pos] == ts:
                row = df.iloc[pos]
                bars[symbol] = (pos, (
                    float(row["open"]), float(row["high"]),
                    float(row["low"]), float(row["close"]),
                ))
                cursors[symbol] = pos + 1
        return bars

    def _screen_bars(
        self,
        symbols: List[str],
        bars: Dict[str, Tuple[int, Tuple[float, float, float, float]]],
        ts: pd.Timestamp,
        state: SimulationState,
        diagnostics: SimulationDiagnostics,
    ) -> Dict[str, Tuple[int, Tuple[float, float, float, float]]]:
        valid = {}
        for symbol in symbols:
            if symbol not in bars:
                diagnostics.record(diag.MISSING_BAR, f"{symbol} @ {ts}")
                continue

            pos, bar = bars[symbol]
            if _is_degenerate(*bar):
                diagnostics.record(diag.DEGENERATE_BAR, f"{symbol} @ {ts}: ohlc={bar}")
                continue

            state.last_close[symbol] = bar[3]
            state.last_bar_time[symbol] = ts
            valid[symbol] = (pos, bar)
        return valid

    # =========================================================================
    # Exits
    # =========================================================================

    def _check_exits(
        self,
        valid: Dict[str, Tuple[int, Tuple[float, float, float, float]]],
        ts: pd.Timestamp,
        state: SimulationState,
    ) -> None:
        for position in sorted(state.open_positions.values(), key=lambda p: (p.symbol, p.position_id)):
            if position.symbol not in valid:
                continue

            _, (_, high, low, _) = valid[position.symbol]
            trigger = self._exit_trigger(position, high, low)
            if trigger is not None:
                price, reason = trigger
                self._execute_exit(position, price, reason, ts, state)

    @staticmethod
    def _exit_trigger(
        position: Position,
        high: float,
        low: float,
    ) -> Optional[Tuple[float, ExitReason]]:
        """Stop is checked before target, so a bar touching both stops out."""
        if position.direction is Direction.LONG:
            if low <= position.stop_loss_price:
                return position.stop_loss_price, ExitReason.STOP_LOSS
            if high >= position.take_profit_price:
                return position.take_profit_price, ExitReason.TAKE_PROFIT
        else:
            if high >= position.stop_loss_price:
                return position.stop_loss_price, ExitReason.STOP_LOSS
            if low <= position.take_profit_price:
                return position.take_profit_price, ExitReason.TAKE_PROFIT
        return None

    def _execute_exit(
        self,
        position: Position,
        base_price: float,
        reason: ExitReason,
        ts: pd.Timestamp,
        state: SimulationState,
    ) -> TradeRecord:
        side = SELL if position.direction is Direction.LONG else BUY
        exit_price = self._slippage_model.apply_slippage(base_price, side, position.quantity)
        exit_commission = self._cost_model.calculate_exit_cost(position.quantity * exit_price)
        self._cost_model.record(exit_commission)

        trade = position.close(
            exit_price=exit_price,
            exit_time=ts,
            exit_reason=reason,
            exit_commission=exit_commission,
            exit_slippage=abs(exit_price - base_price) * position.quantity,
            exit_bar=state.bar_index,
        )

        state.capital += position.cost_basis + trade.gross_pnl - exit_commission
        del state.open_positions[position.position_id]
        state.trade_log.add_trade(trade)

        self._log.trade_exit(
            symbol=trade.symbol,
            direction=trade.direction.name,
            quantity=trade.quantity,
            entry_price=trade.entry_price,
            exit_price=trade.exit_price,
            pnl=trade.net_pnl,
            exit_reason=reason.value,
        )
        return trade

    def _close_all(self, state: SimulationState) -> None:
        """Close every open position at its symbol's last available close."""
        for position in sorted(state.open_positions.values(), key=lambda p: (p.symbol, p.position_id)):
            self._execute_exit(
                position,
                state.last_close[position.symbol],
                ExitReason.END_OF_BACKTEST,
                state.last_bar_time[position.symbol],
                state,
            )

    # =========================================================================
    # Entries
    # =========================================================================

    def _admit(
        self,
        signal,
        ts: pd.Timestamp,
        state: SimulationState,
        diagnostics: SimulationDiagnostics,
    ) -> Optional[Position]:
        symbol = signal.symbol

        if len(state.open_positions) >= self.config.max_open_positions:
            diagnostics.record(
                diag.REJECTED_MAX_POSITIONS,
                f"{symbol} @ {ts}: {len(state.open_positions)} open",
                symbol=symbol,
            )
            return None

        quantity = self._sizer.size(state.capital, signal.reference_price, signal.confidence)
        if quantity <= 0:
            diagnostics.record(diag.REJECTED_ZERO_QUANTITY, f"{symbol} @ {ts}", symbol=symbol)
            return None

        side = BUY if signal.direction is Direction.LONG else SELL
        entry_price = self._slippage_model.apply_slippage(
            signal.reference_price, side, quantity, record=False
        )
        notional = quantity * entry_price
        commission = self._cost_model.calculate_entry_cost(notional)

        if notional + commission > state.capital:
            diagnostics.record(
                diag.REJECTED_INSUFFICIENT_CAPITAL,
                f"{symbol} @ {ts}: needs {notional + commission:.2f}, has {state.capital:.2f}",
                symbol=symbol,
            )
            return None

        # Only fills that happen count towards slippage totals
        self._slippage_model.apply_slippage(signal.reference_price, side, quantity)
        self._cost_model.record(commission)

        sign = signal.direction.sign
        position = Position(
            position_id=state.next_position_id,
            symbol=symbol,
            direction=signal.direction,
            entry_price=entry_price,
            quantity=quantity,
            stop_loss_price=entry_price * (1 - sign * self.config.stop_loss_fraction),
            take_profit_price=entry_price * (1 + sign * self.config.take_profit_fraction),
            entry_time=ts,
            entry_commission=commission,
            entry_slippage=abs(entry_price - signal.reference_price) * quantity,
            confidence=signal.confidence,
            entry_bar=state.bar_index,
        )
        state.next_position_id += 1
        state.capital -= notional + commission
        state.open_positions[position.position_id] = position

        self._log.trade_entry(
            symbol=symbol,
            direction=signal.direction.name,
            quantity=quantity,
            entry_price=entry_price,
            stop_price=position.stop_loss_price,
            target_price=position.take_profit_price,
            confidence=signal.confidence,
        )
        return position

    # =========================================================================
    # Run Totals
    # =========================================================================

    def get_total_commission(self) -> float:
        """Commission charged during the most recent run."""
        return self._cost_model.get_total_commission()

    def get_total_slippage(self) -> float:
        """Slippage cost incurred during the most recent run."""
        return self._slippage_model.get_total_slippage_cost()
