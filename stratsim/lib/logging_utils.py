"""
Structured logging utilities for simulation runs.

This module provides:
- Configured logging with rotation and formatting
- A simulation-specific log formatter
- Trade and diagnostic logging with structured output

Log Format:
    YYYY-MM-DD HH:MM:SS.mmm [LEVEL] module - message

Example usage:
    from stratsim.lib.logging_utils import setup_logging, get_logger

    # Setup logging at application start
    setup_logging(level="INFO", log_dir="./logs")

    # Get logger in modules
    logger = get_logger(__name__)
    logger.info("Backtest finished", extra={"trades": 42})
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from stratsim.lib.constants import UTC_TIMEZONE


# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


# =============================================================================
# Log Formatting
# =============================================================================

class SimulationFormatter(logging.Formatter):
    """
    Custom formatter for simulation logs.

    Features:
    - Millisecond precision timestamps
    - Local time by default, UTC on request
    - Colored output for terminal (optional)
    - Structured `extra` fields appended as key=value pairs
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        use_colors: bool = False,
        use_utc: bool = False,
        include_extras: bool = True
    ):
        """
        Initialize formatter.

        Args:
            use_colors: Enable ANSI colors for terminal output
            use_utc: Stamp records in UTC instead of local time
            include_extras: Include extra fields in output
        """
        self.use_colors = use_colors
        self.use_utc = use_utc
        self.include_extras = include_extras

        fmt = "[%(levelname)-8s] %(name)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with timestamp and optional colors."""
        tz = UTC_TIMEZONE if self.use_utc else None
        timestamp = datetime.fromtimestamp(record.created, tz).strftime(
            "%Y-%m-%d %H:%M:%S.%f"
        )[:-3]

        message = super().format(record)

        if self.include_extras:
            extras = {
                k: v for k, v in record.__dict__.items()
                if k not in _RESERVED_ATTRS and not k.startswith("_")
            }
            if extras:
                extras_str = " ".join(f"{k}={v}" for k, v in extras.items())
                message = f"{message} [{extras_str}]"

        full_message = f"{timestamp} {message}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{full_message}{self.RESET}"

        return full_message


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    log_file: Optional[str] = None,
    use_colors: bool = True,
    use_utc: bool = False,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Setup application-wide logging configuration.

    Creates handlers for:
    - Console output (with colors if terminal)
    - File output with rotation (if log_dir provided)

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (optional)
        log_file: Specific log file name (default: stratsim_YYYY-MM-DD.log)
        use_colors: Enable colored console output
        use_utc: Stamp records in UTC
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        Root logger
    """
    root_logger = logging.getLogger()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        SimulationFormatter(use_colors=use_colors, use_utc=use_utc)
    )
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        if not log_file:
            today = datetime.now().strftime("%Y-%m-%d")
            log_file = f"stratsim_{today}.log"

        file_handler = RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(SimulationFormatter(use_colors=False, use_utc=use_utc))
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


# =============================================================================
# Backtest Logger
# =============================================================================

class BacktestLogger:
    """
    Specialized logger for simulation runs.

    Provides methods for logging:
    - Run start and end
    - Trade entries and exits
    - Rejected signals
    - Data diagnostics

    Per-trade events go out at DEBUG so multi-year runs stay quiet at INFO.
    All methods accept extra fields as kwargs for structured logging.
    """

    def __init__(self, name: str = "stratsim.backtest"):
        """
        Initialize backtest logger.

        Args:
            name: Logger name
        """
        self._logger = logging.getLogger(name)

    def run_start(
        self,
        capital: float,
        symbols: list,
        n_bars: int,
        **kwargs: Any
    ) -> None:
        """
        Log the start of a simulation run.

        Args:
            capital: Initial capital
            symbols: Symbols being simulated
            n_bars: Number of tradable timestamps
            **kwargs: Additional fields
        """
        self._logger.info(
            f"RUN START: capital=${capital:,.2f}, symbols={len(symbols)}, bars={n_bars}",
            extra={"capital": capital, "n_symbols": len(symbols), "n_bars": n_bars, **kwargs}
        )

    def run_end(
        self,
        trades: int,
        final_capital: float,
        total_return: float,
        **kwargs: Any
    ) -> None:
        """
        Log the end of a simulation run with summary.

        Args:
            trades: Number of closed trades
            final_capital: Capital after all positions closed
            total_return: Total return as a fraction
            **kwargs: Additional fields
        """
        self._logger.info(
            f"RUN END: {trades} trades, final=${final_capital:,.2f}, "
            f"return={total_return:.2%}",
            extra={"trades": trades, "final_capital": final_capital,
                   "total_return": total_return, **kwargs}
        )

    def trade_entry(
        self,
        symbol: str,
        direction: str,
        quantity: int,
        entry_price: float,
        stop_price: float,
        target_price: float,
        confidence: float,
        **kwargs: Any
    ) -> None:
        """
        Log a trade entry with full details.

        Args:
            symbol: Instrument symbol
            direction: Trade direction (LONG, SHORT)
            quantity: Position size
            entry_price: Entry fill price
            stop_price: Stop loss price
            target_price: Take profit price
            confidence: Entry signal confidence
            **kwargs: Additional fields
        """
        self._logger.debug(
            f"ENTRY: {symbol} {direction} {quantity} @ {entry_price:.4f} "
            f"stop={stop_price:.4f} target={target_price:.4f} conf={confidence:.2f}",
            extra={"symbol": symbol, "direction": direction, "quantity": quantity,
                   "entry_price": entry_price, **kwargs}
        )

    def trade_exit(
        self,
        symbol: str,
        direction: str,
        quantity: int,
        entry_price: float,
        exit_price: float,
        pnl: float,
        exit_reason: str,
        **kwargs: Any
    ) -> None:
        """
        Log a trade exit with P&L.

        Args:
            symbol: Instrument symbol
            direction: Trade direction
            quantity: Position size
            entry_price: Entry price
            exit_price: Exit price
            pnl: Net P&L in dollars
            exit_reason: Reason for exit (stop_loss, take_profit, end_of_backtest)
            **kwargs: Additional fields
        """
        pnl_str = f"+${pnl:.2f}" if pnl >= 0 else f"-${abs(pnl):.2f}"
        self._logger.debug(
            f"EXIT: {symbol} {direction} {quantity} @ {exit_price:.4f} "
            f"entry={entry_price:.4f} P&L={pnl_str} reason={exit_reason}",
            extra={"symbol": symbol, "exit_price": exit_price, "pnl": pnl,
                   "exit_reason": exit_reason, **kwargs}
        )

    def rejection(self, symbol: str, reason: str, **kwargs: Any) -> None:
        """
        Log a signal the simulator declined to trade.

        Args:
            symbol: Instrument symbol
            reason: Rejection reason (max_positions, insufficient_capital, ...)
            **kwargs: Additional fields
        """
        self._logger.debug(
            f"REJECT: {symbol} - {reason}",
            extra={"symbol": symbol, "reason": reason, **kwargs}
        )

    def diagnostic(self, kind: str, details: str, **kwargs: Any) -> None:
        """
        Log a data diagnostic (missing bar, degenerate price, predictor error).

        Args:
            kind: Diagnostic category
            details: Human-readable description
            **kwargs: Additional fields
        """
        self._logger.debug(
            f"DIAG: {kind} - {details}",
            extra={"kind": kind, **kwargs}
        )

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning."""
        self._logger.warning(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(message, extra=kwargs)
