"""
OHLCV bar files.

The simulator consumes `Dict[str, pd.DataFrame]`: one frame per symbol with
a DatetimeIndex and open/high/low/close/volume columns. This module builds
that mapping from a long-format CSV:

    symbol,timestamp,open,high,low,close,volume
    AAPL,2024-01-02,185.6,188.4,183.9,185.6,82488700
    MSFT,2024-01-02,373.9,375.9,366.8,370.9,25258600

and reports data quality problems without modifying the data. Degenerate
rows stay in place; the engine skips them bar by bar.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


@dataclass
class GapInfo:
    """A stretch between two consecutive bars longer than expected."""

    start: datetime
    end: datetime
    duration: pd.Timedelta
    missing_bars: int


@dataclass
class BarValidationResult:
    """Result of data quality validation for one symbol."""

    symbol: str
    is_valid: bool
    row_count: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    issues: List[str] = field(default_factory=list)
    gaps: List[GapInfo] = field(default_factory=list)
    invalid_ohlc_rows: int = 0
    non_positive_rows: int = 0
    missing_volume_rows: int = 0
    duplicate_rows: int = 0


def split_by_symbol(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """
    Split a long-format bar table into one frame per symbol.

    Args:
        df: Bars with 'symbol' and 'timestamp' columns

    Returns:
        Symbol -> OHLCV frame indexed by timestamp, sorted chronologically
    """
    missing = [c for c in ["symbol", "timestamp"] + OHLCV_COLUMNS[:4] if c not in df.columns]
    if missing:
        raise ValueError(f"Bar table missing columns: {missing}")

    frames = {}
    for symbol, group in df.groupby("symbol", sort=True):
        columns = [c for c in OHLCV_COLUMNS if c in group.columns]
        bars = group.set_index("timestamp")[columns].sort_index()
        bars.index.name = "timestamp"
        frames[str(symbol)] = bars
    return frames


def load_bars_csv(
    file_path: Union[str, Path],
    symbols: Optional[Sequence[str]] = None,
    validate: bool = True,
) -> Dict[str, pd.DataFrame]:
    """
    Load long-format OHLCV bars from a CSV file.

    Args:
        file_path: Path to CSV with symbol,timestamp,open,high,low,close,volume
        symbols: Keep only these symbols (default: all)
        validate: Log data quality issues per symbol

    Returns:
        Symbol -> OHLCV DataFrame with a DatetimeIndex

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required columns are missing or no bars remain
    """
    file_path = Path(file_path)
    logger.info(f"Loading bars from {file_path}")

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(file_path)
    df.columns = [c.strip().lower() for c in df.columns]
    if "timestamp" not in df.columns and "date" in df.columns:
        df = df.rename(columns={"date": "timestamp"})

    df["timestamp"] = pd.to_datetime(df["timestamp"])
    for col in OHLCV_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").astype(np.float64)

    if symbols is not None:
        df = df[df["symbol"].isin(symbols)]

    frames = split_by_symbol(df)
    if not frames:
        raise ValueError(f"No bars found in {file_path}")

    logger.info(f"Loaded {len(df):,} bars for {len(frames)} symbols")

    if validate:
        for symbol, bars in frames.items():
            result = validate_bars(bars, symbol)
            for issue in result.issues:
                logger.warning(f"{symbol}: {issue}")

    return frames


def validate_bars(
    bars: pd.DataFrame,
    symbol: str = "",
    expected_interval: Optional[pd.Timedelta] = None,
    max_gap_multiplier: int = 5,
) -> BarValidationResult:
    """
    Validate data quality of one symbol's bars.

    Checks:
        - OHLC relationship: low <= open, close <= high
        - Prices finite and positive
        - No missing volume
        - No duplicate timestamps
        - Gaps longer than max_gap_multiplier x the expected interval

    Args:
        bars: OHLCV frame indexed by timestamp
        symbol: Symbol name for reporting
        expected_interval: Bar spacing (default: median spacing)
        max_gap_multiplier: Gap threshold as multiple of the interval

    Returns:
        BarValidationResult with validation status and issues
    """
    issues = []
    row_count = len(bars)

    if row_count == 0:
        return BarValidationResult(
            symbol=symbol,
            is_valid=False,
            row_count=0,
            start_time=None,
            end_time=None,
            issues=["No bars"],
        )

    invalid_ohlc = 0
    non_positive = 0
    if all(col in bars.columns for col in ["open", "high", "low", "close"]):
        prices = bars[["open", "high", "low", "close"]]
        bad_prices = ~np.isfinite(prices).all(axis=1) | (prices <= 0).any(axis=1)
        non_positive = int(bad_prices.sum())
        if non_positive > 0:
            issues.append(f"Non-finite or non-positive prices: {non_positive} rows")

        invalid_low = (bars["low"] > bars["open"]) | (bars["low"] > bars["close"])
        invalid_high = (bars["high"] < bars["open"]) | (bars["high"] < bars["close"])
        invalid_ohlc = int((invalid_low | invalid_high).sum())
        if invalid_ohlc > 0:
            issues.append(f"Invalid OHLC relationships: {invalid_ohlc} rows")
    else:
        issues.append("Missing OHLC columns")

    missing_volume = 0
    if "volume" in bars.columns:
        missing_volume = int(bars["volume"].isna().sum())
        if missing_volume > 0:
            issues.append(f"Missing volume: {missing_volume} rows")

    duplicate_count = int(bars.index.duplicated().sum())
    if duplicate_count > 0:
        issues.append(f"Duplicate timestamps: {duplicate_count} rows")

    gaps = _detect_gaps(bars.index, expected_interval, max_gap_multiplier)
    if gaps:
        issues.append(f"Detected {len(gaps)} data gaps")

    return BarValidationResult(
        symbol=symbol,
        is_valid=len(issues) == 0,
        row_count=row_count,
        start_time=bars.index.min(),
        end_time=bars.index.max(),
        issues=issues,
        gaps=gaps,
        invalid_ohlc_rows=invalid_ohlc,
        non_positive_rows=non_positive,
        missing_volume_rows=missing_volume,
        duplicate_rows=duplicate_count,
    )


def _detect_gaps(
    index: pd.DatetimeIndex,
    expected_interval: Optional[pd.Timedelta],
    max_gap_multiplier: int,
) -> List[GapInfo]:
    if len(index) < 2:
        return []

    unique = index.unique().sort_values()
    diffs = unique.to_series().diff().iloc[1:]
    if len(diffs) == 0:
        return []

    interval = expected_interval if expected_interval is not None else diffs.median()
    if interval <= pd.Timedelta(0):
        return []

    gaps = []
    for end, duration in diffs[diffs > interval * max_gap_multiplier].items():
        gaps.append(GapInfo(
            start=(end - duration).to_pydatetime(),
            end=end.to_pydatetime(),
            duration=duration,
            missing_bars=int(duration / interval) - 1,
        ))
    return gaps
