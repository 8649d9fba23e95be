"""
Positions, Trades and Equity Logging for Backtesting

A position lives in exactly one of two forms:
- Position: open, mutable only by the simulator that created it
- TradeRecord: closed, frozen, carrying exit price, reason and realized P&L

The only way to obtain a TradeRecord is Position.close(), so a closed trade
without an exit price cannot be constructed by the engine.

This module also keeps the equity curve, whose running peak and maximum
drawdown are maintained incrementally as points are appended.

Output Formats:
- Trade Log: CSV / JSON with all trade details
- Equity Curve: CSV with timestamp, equity, drawdown
- Summary Report: JSON with aggregated metrics
"""

import csv
import json
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from stratsim.signals.strategies import Direction


class ExitReason(Enum):
    """Reasons for closing a position."""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    END_OF_BACKTEST = "end_of_backtest"


def _timestamp_str(ts: Any) -> str:
    return pd.Timestamp(ts).isoformat()


# =============================================================================
# Position Lifecycle
# =============================================================================

@dataclass
class Position:
    """
    An open position.

    Attributes:
        position_id: Unique identifier within the run
        symbol: Instrument symbol
        direction: LONG or SHORT
        entry_price: Fill price after slippage
        quantity: Units held (always positive)
        stop_loss_price: Price at which the stop triggers
        take_profit_price: Price at which the target triggers
        entry_time: Timestamp of the entry bar
        entry_commission: Commission paid on entry
        entry_slippage: Currency cost of entry slippage
        confidence: Signal confidence at entry
        entry_bar: Index of the entry bar on the run's timeline
    """
    position_id: int
    symbol: str
    direction: Direction
    entry_price: float
    quantity: int
    stop_loss_price: float
    take_profit_price: float
    entry_time: pd.Timestamp
    entry_commission: float
    entry_slippage: float = 0.0
    confidence: float = 0.0
    entry_bar: int = 0

    @property
    def cost_basis(self) -> float:
        """Capital committed to the position (quantity x entry price)."""
        return self.quantity * self.entry_price

    def unrealized_pnl(self, price: float) -> float:
        """Gross P&L if the position were marked at `price`."""
        return self.direction.sign * (price - self.entry_price) * self.quantity

    def market_value(self, price: float) -> float:
        """Cost basis plus unrealized P&L at `price`."""
        return self.cost_basis + self.unrealized_pnl(price)

    def close(
        self,
        exit_price: float,
        exit_time: pd.Timestamp,
        exit_reason: ExitReason,
        exit_commission: float,
        exit_slippage: float = 0.0,
        exit_bar: int = 0,
    ) -> 'TradeRecord':
        """
        Close the position and freeze its outcome.

        Args:
            exit_price: Fill price after slippage
            exit_time: Timestamp of the exit bar
            exit_reason: Why the position closed
            exit_commission: Commission paid on exit
            exit_slippage: Currency cost of exit slippage
            exit_bar: Index of the exit bar on the run's timeline

        Returns:
            Immutable TradeRecord
        """
        gross_pnl = self.unrealized_pnl(exit_price)
        return TradeRecord(
            trade_id=self.position_id,
            symbol=self.symbol,
            direction=self.direction,
            entry_time=self.entry_time,
            exit_time=exit_time,
            entry_price=self.entry_price,
            exit_price=exit_price,
            quantity=self.quantity,
            stop_loss_price=self.stop_loss_price,
            take_profit_price=self.take_profit_price,
            entry_commission=self.entry_commission,
            exit_commission=exit_commission,
            entry_slippage=self.entry_slippage,
            exit_slippage=exit_slippage,
            gross_pnl=gross_pnl,
            net_pnl=gross_pnl - self.entry_commission - exit_commission,
            exit_reason=exit_reason,
            confidence=self.confidence,
            bars_held=exit_bar - self.entry_bar,
        )


@dataclass(frozen=True)
class TradeRecord:
    """
    Complete, immutable record of a closed position.

    Attributes:
        trade_id: Identifier of the position this trade closed
        symbol: Instrument symbol
        direction: LONG or SHORT
        entry_time: Timestamp of entry
        exit_time: Timestamp of exit
        entry_price: Entry fill price
        exit_price: Exit fill price
        quantity: Units traded
        stop_loss_price: Stop price set at entry
        take_profit_price: Target price set at entry
        entry_commission: Commission paid on entry
        exit_commission: Commission paid on exit
        entry_slippage: Slippage cost on entry
        exit_slippage: Slippage cost on exit
        gross_pnl: (exit - entry) x quantity x direction sign
        net_pnl: gross_pnl minus both commissions
        exit_reason: Why the trade was closed
        confidence: Signal confidence at entry
        bars_held: Bars between entry and exit on the run's timeline
    """
    trade_id: int
    symbol: str
    direction: Direction
    entry_time: pd.Timestamp
    exit_time: pd.Timestamp
    entry_price: float
    exit_price: float
    quantity: int
    stop_loss_price: float
    take_profit_price: float
    entry_commission: float
    exit_commission: float
    entry_slippage: float
    exit_slippage: float
    gross_pnl: float
    net_pnl: float
    exit_reason: ExitReason
    confidence: float = 0.0
    bars_held: int = 0

    @property
    def is_winner(self) -> bool:
        """Was this a winning trade?"""
        return self.net_pnl > 0

    @property
    def commission(self) -> float:
        """Total commission across both sides."""
        return self.entry_commission + self.exit_commission

    @property
    def slippage(self) -> float:
        """Total slippage cost across both sides."""
        return self.entry_slippage + self.exit_slippage

    @property
    def trade_return(self) -> float:
        """Net P&L as a fraction of the capital committed at entry."""
        basis = self.quantity * self.entry_price
        if basis == 0:
            return 0.0
        return self.net_pnl / basis

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (full float precision)."""
        return {
            "trade_id": self.trade_id,
            "symbol": self.symbol,
            "direction": self.direction.name,
            "entry_time": _timestamp_str(self.entry_time),
            "exit_time": _timestamp_str(self.exit_time),
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "stop_loss_price": self.stop_loss_price,
            "take_profit_price": self.take_profit_price,
            "entry_commission": self.entry_commission,
            "exit_commission": self.exit_commission,
            "entry_slippage": self.entry_slippage,
            "exit_slippage": self.exit_slippage,
            "gross_pnl": self.gross_pnl,
            "net_pnl": self.net_pnl,
            "exit_reason": self.exit_reason.value,
            "confidence": self.confidence,
            "bars_held": self.bars_held,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TradeRecord':
        """Create TradeRecord from dictionary (accepts CSV string values)."""
        return cls(
            trade_id=int(data["trade_id"]),
            symbol=str(data["symbol"]),
            direction=Direction[data["direction"]],
            entry_time=pd.Timestamp(data["entry_time"]),
            exit_time=pd.Timestamp(data["exit_time"]),
            entry_price=float(data["entry_price"]),
            exit_price=float(data["exit_price"]),
            quantity=int(float(data["quantity"])),
            stop_loss_price=float(data.get("stop_loss_price", 0.0)),
            take_profit_price=float(data.get("take_profit_price", 0.0)),
            entry_commission=float(data.get("entry_commission", 0.0)),
            exit_commission=float(data.get("exit_commission", 0.0)),
            entry_slippage=float(data.get("entry_slippage", 0.0)),
            exit_slippage=float(data.get("exit_slippage", 0.0)),
            gross_pnl=float(data["gross_pnl"]),
            net_pnl=float(data["net_pnl"]),
            exit_reason=ExitReason(data["exit_reason"]),
            confidence=float(data.get("confidence", 0.0)),
            bars_held=int(float(data.get("bars_held", 0))),
        )


# =============================================================================
# Trade Log
# =============================================================================

TRADE_COLUMNS = [
    "trade_id", "symbol", "direction", "entry_time", "exit_time",
    "entry_price", "exit_price", "quantity", "stop_loss_price",
    "take_profit_price", "entry_commission", "exit_commission",
    "entry_slippage", "exit_slippage", "gross_pnl", "net_pnl",
    "exit_reason", "confidence", "bars_held",
]


class TradeLog:
    """
    Ordered record of closed trades.

    Trades are kept in the order they closed, which is the chronological
    order used for streak statistics.

    Usage:
        log = TradeLog()
        log.add_trade(position.close(...))
        log.export_csv("trades.csv")
    """

    def __init__(self, trades: Optional[List[TradeRecord]] = None):
        self._trades: List[TradeRecord] = list(trades or [])

    def add_trade(self, trade: TradeRecord) -> TradeRecord:
        """Append a closed trade."""
        self._trades.append(trade)
        return trade

    def get_trades(self) -> List[TradeRecord]:
        """Get all trade records."""
        return self._trades.copy()

    def get_trade_pnls(self) -> List[float]:
        """Get list of net P&Ls for all trades."""
        return [t.net_pnl for t in self._trades]

    def get_trade_returns(self) -> List[float]:
        """Get per-trade net returns on committed capital."""
        return [t.trade_return for t in self._trades]

    def get_trade_count(self) -> int:
        """Get total number of trades."""
        return len(self._trades)

    def get_winning_trades(self) -> List[TradeRecord]:
        """Get all winning trades."""
        return [t for t in self._trades if t.is_winner]

    def get_losing_trades(self) -> List[TradeRecord]:
        """Get all trades with net P&L below zero."""
        return [t for t in self._trades if t.net_pnl < 0]

    def get_trades_by_symbol(self, symbol: str) -> List[TradeRecord]:
        """Get trades for one symbol."""
        return [t for t in self._trades if t.symbol == symbol]

    def get_trades_by_exit_reason(self, reason: ExitReason) -> List[TradeRecord]:
        """Get trades filtered by exit reason."""
        return [t for t in self._trades if t.exit_reason == reason]

    def to_dataframe(self) -> pd.DataFrame:
        """Trades as a DataFrame, one row per trade."""
        return pd.DataFrame([t.to_dict() for t in self._trades], columns=TRADE_COLUMNS)

    def export_csv(self, filepath: str) -> None:
        """
        Export trade log to CSV file.

        Args:
            filepath: Path to output CSV file
        """
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=TRADE_COLUMNS)
            writer.writeheader()
            for trade in self._trades:
                writer.writerow(trade.to_dict())

    def export_json(self, filepath: str) -> None:
        """Export trade log to JSON file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump([t.to_dict() for t in self._trades], f, indent=2)

    @classmethod
    def from_csv(cls, filepath: str) -> 'TradeLog':
        """Load a trade log written by export_csv."""
        with open(filepath, newline='') as f:
            return cls([TradeRecord.from_dict(row) for row in csv.DictReader(f)])

    def __len__(self) -> int:
        return len(self._trades)

    def __iter__(self):
        return iter(self._trades)


# =============================================================================
# Equity Curve
# =============================================================================

@dataclass(frozen=True)
class EquityPoint:
    """
    Single point on the equity curve.

    Attributes:
        timestamp: Time of this equity reading
        equity: Cash plus marked value of open positions
        cash: Uninvested capital
        drawdown: Distance below running peak in currency
        drawdown_pct: Distance below running peak as a fraction
        open_positions: Number of open positions
    """
    timestamp: pd.Timestamp
    equity: float
    cash: float
    drawdown: float = 0.0
    drawdown_pct: float = 0.0
    open_positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["timestamp"] = _timestamp_str(self.timestamp)
        return data


class EquityCurve:
    """
    Equity curve with incremental peak and drawdown tracking.

    The opening balance is the implicit first reading: the running peak
    starts at `initial_equity`, and the running `max_drawdown` always equals
    metrics.calculate_max_drawdown over get_equity_values(include_initial=True).
    The curve holds at most one point per timestamp; a later reading at the
    timestamp of the last point replaces it.

    Usage:
        curve = EquityCurve(initial_equity=100_000.0)
        curve.add_point(timestamp, equity=101_500.0, cash=50_000.0)
        curve.max_drawdown
    """

    def __init__(self, initial_equity: float):
        self._points: List[EquityPoint] = []
        self._initial_equity = initial_equity
        self._peak_equity = initial_equity
        self._max_drawdown = 0.0
        self._max_drawdown_dollars = 0.0

    def add_point(
        self,
        timestamp: pd.Timestamp,
        equity: float,
        cash: Optional[float] = None,
        open_positions: int = 0,
    ) -> EquityPoint:
        """
        Add a point to the equity curve.

        Updates the running peak and maximum drawdown. When `timestamp`
        equals the last point's timestamp, that point is replaced and the
        running statistics are rebuilt without it.

        Args:
            timestamp: Time of this reading
            equity: Current total equity
            cash: Uninvested capital (defaults to equity)
            open_positions: Number of open positions

        Returns:
            The created EquityPoint
        """
        if self._points and self._points[-1].timestamp == timestamp:
            self._points.pop()
            self._rebuild_stats()

        point = self._track(timestamp, equity, cash, open_positions)
        self._points.append(point)
        return point

    def _track(
        self,
        timestamp: pd.Timestamp,
        equity: float,
        cash: Optional[float],
        open_positions: int,
    ) -> EquityPoint:
        if equity > self._peak_equity:
            self._peak_equity = equity

        drawdown = self._peak_equity - equity
        drawdown_pct = drawdown / self._peak_equity if self._peak_equity > 0 else 0.0
        self._max_drawdown = max(self._max_drawdown, drawdown_pct)
        self._max_drawdown_dollars = max(self._max_drawdown_dollars, drawdown)

        return EquityPoint(
            timestamp=timestamp,
            equity=equity,
            cash=equity if cash is None else cash,
            drawdown=drawdown,
            drawdown_pct=drawdown_pct,
            open_positions=open_positions,
        )

    def _rebuild_stats(self) -> None:
        points = self._points
        self._points = []
        self._peak_equity = self._initial_equity
        self._max_drawdown = 0.0
        self._max_drawdown_dollars = 0.0
        for p in points:
            self._points.append(self._track(p.timestamp, p.equity, p.cash, p.open_positions))

    @property
    def initial_equity(self) -> float:
        return self._initial_equity

    @property
    def peak_equity(self) -> float:
        return self._peak_equity

    @property
    def max_drawdown(self) -> float:
        """Largest peak-to-trough decline seen so far, as a fraction."""
        return self._max_drawdown

    @property
    def max_drawdown_dollars(self) -> float:
        return self._max_drawdown_dollars

    def get_points(self) -> List[EquityPoint]:
        """Get all equity points."""
        return self._points.copy()

    def get_equity_values(self, include_initial: bool = False) -> List[float]:
        """
        Get list of equity values only.

        Args:
            include_initial: Prepend the opening balance
        """
        values = [p.equity for p in self._points]
        if include_initial:
            values.insert(0, self._initial_equity)
        return values

    def get_final_equity(self) -> float:
        """Get final equity value."""
        if self._points:
            return self._points[-1].equity
        return self._initial_equity

    def to_dataframe(self) -> pd.DataFrame:
        """Curve as a DataFrame with one row per point."""
        return pd.DataFrame(
            [asdict(p) for p in self._points],
            columns=["timestamp", "equity", "cash", "drawdown", "drawdown_pct", "open_positions"],
        )

    def get_equity_series(self) -> pd.Series:
        """Equity indexed by timestamp."""
        df = self.to_dataframe()
        return pd.Series(df["equity"].to_numpy(), index=pd.DatetimeIndex(df["timestamp"]), name="equity")

    def get_drawdown_series(self) -> pd.Series:
        """Drawdown fractions from the running peak, indexed by timestamp."""
        df = self.to_dataframe()
        return pd.Series(
            df["drawdown_pct"].to_numpy(), index=pd.DatetimeIndex(df["timestamp"]), name="drawdown_pct"
        )

    def export_csv(self, filepath: str) -> None:
        """
        Export equity curve to CSV file.

        Args:
            filepath: Path to output CSV file
        """
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow([
                "timestamp", "equity", "cash", "drawdown", "drawdown_pct", "open_positions"
            ])
            for point in self._points:
                writer.writerow([
                    _timestamp_str(point.timestamp),
                    f"{point.equity:.2f}",
                    f"{point.cash:.2f}",
                    f"{point.drawdown:.2f}",
                    f"{point.drawdown_pct:.6f}",
                    point.open_positions,
                ])

    def __len__(self) -> int:
        return len(self._points)


# =============================================================================
# Report
# =============================================================================

@dataclass
class BacktestReport:
    """
    Trade log, equity curve and metrics of one run, ready for export.
    """
    trade_log: TradeLog
    equity_curve: EquityCurve
    metrics: Optional[Any] = None  # PerformanceMetrics
    config: Optional[Dict[str, Any]] = None
    start_date: Optional[pd.Timestamp] = None
    end_date: Optional[pd.Timestamp] = None
    window_id: Optional[int] = None  # For walk-forward

    def export_all(self, output_dir: str, prefix: str = "") -> Dict[str, str]:
        """
        Export all report components to files.

        Args:
            output_dir: Directory for output files
            prefix: Optional prefix for filenames

        Returns:
            Dictionary mapping output type to filepath
        """
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        prefix_str = f"{prefix}_" if prefix else ""
        files = {}

        trades_path = output_path / f"{prefix_str}trades.csv"
        self.trade_log.export_csv(str(trades_path))
        files["trades_csv"] = str(trades_path)

        equity_path = output_path / f"{prefix_str}equity.csv"
        self.equity_curve.export_csv(str(equity_path))
        files["equity_csv"] = str(equity_path)

        if self.metrics is not None:
            summary_path = output_path / f"{prefix_str}summary.json"
            with open(summary_path, 'w') as f:
                json.dump(self._summary(), f, indent=2)
            files["summary_json"] = str(summary_path)

        return files

    def _summary(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict() if hasattr(self.metrics, 'to_dict') else {},
            "config": self.config or {},
            "period": {
                "start": _timestamp_str(self.start_date) if self.start_date is not None else None,
                "end": _timestamp_str(self.end_date) if self.end_date is not None else None,
            },
            "window_id": self.window_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary."""
        data = self._summary()
        data["trades"] = [t.to_dict() for t in self.trade_log]
        data["equity"] = [p.to_dict() for p in self.equity_curve.get_points()]
        return data
