"""
Technical indicator library.

Pure functions over price and volume windows. Every function accepts any
sequence convertible to a 1-D float array, never mutates its input, and
returns a plain float so results can be dropped straight into a feature
vector.

Short windows degrade gracefully instead of raising:
- Moving averages fall back to the mean of whatever is available
- RSI returns the neutral 50 until enough changes exist
- Bollinger position returns the band midpoint (0.5) for a flat window

Example:
    from stratsim.signals.indicators import sma, rsi, macd

    closes = df["close"].to_numpy()
    trend = sma(closes, 5) - sma(closes, 20)
    momentum = rsi(closes, 14)
"""

from typing import Sequence, Tuple, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=float).ravel()


# =============================================================================
# Moving Averages
# =============================================================================

def sma(prices: ArrayLike, period: int) -> float:
    """
    Simple moving average of the last `period` values.

    Args:
        prices: Price series, oldest first
        period: Averaging window

    Returns:
        Mean of the last `period` prices (all prices if fewer), 0.0 if empty
    """
    arr = _as_array(prices)
    if len(arr) == 0:
        return 0.0
    return float(np.mean(arr[-period:]))


def ema(prices: ArrayLike, period: int) -> float:
    """
    Exponential moving average seeded with the SMA of the first `period` values.

    Args:
        prices: Price series, oldest first
        period: EMA span; smoothing factor is 2 / (period + 1)

    Returns:
        EMA at the last price. Falls back to `sma` when fewer than `period`
        values are available.
    """
    arr = _as_array(prices)
    if len(arr) < period:
        return sma(arr, period)

    k = 2.0 / (period + 1)
    value = float(np.mean(arr[:period]))
    for price in arr[period:]:
        value = price * k + value * (1 - k)
    return value


# =============================================================================
# Oscillators
# =============================================================================

def rsi(prices: ArrayLike, period: int = 14) -> float:
    """
    Relative Strength Index using simple averages of gains and losses.

    Args:
        prices: Price series, oldest first
        period: Number of price changes to average

    Returns:
        RSI in [0, 100]. 50.0 when fewer than period + 1 prices exist,
        100.0 when there were no losses in the window, 50.0 when the
        window is flat (no gains and no losses).
    """
    arr = _as_array(prices)
    if len(arr) < period + 1:
        return 50.0

    changes = np.diff(arr[-(period + 1):])
    avg_gain = float(np.sum(changes[changes > 0])) / period
    avg_loss = float(-np.sum(changes[changes < 0])) / period

    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def macd(prices: ArrayLike, fast: int = 12, slow: int = 26) -> float:
    """MACD line: fast EMA minus slow EMA."""
    return ema(prices, fast) - ema(prices, slow)


# =============================================================================
# Bands & Volatility
# =============================================================================

def bollinger_bands(
    prices: ArrayLike,
    period: int = 20,
    num_std: float = 2.0,
) -> Tuple[float, float, float]:
    """
    Bollinger Bands over the last `period` prices.

    Uses the population standard deviation.

    Args:
        prices: Price series, oldest first
        period: Window length
        num_std: Band width in standard deviations

    Returns:
        Tuple of (upper, middle, lower)
    """
    window = _as_array(prices)[-period:]
    if len(window) == 0:
        return 0.0, 0.0, 0.0

    middle = float(np.mean(window))
    std = float(np.std(window))
    return middle + num_std * std, middle, middle - num_std * std


def bollinger_position(
    prices: ArrayLike,
    period: int = 20,
    num_std: float = 2.0,
) -> float:
    """
    Position of the last price within its Bollinger Bands.

    Returns:
        (price - lower) / (upper - lower); 0.5 for a zero-width band
    """
    arr = _as_array(prices)
    if len(arr) == 0:
        return 0.5

    upper, _, lower = bollinger_bands(arr, period, num_std)
    width = upper - lower
    if width <= 0:
        return 0.5
    return float((arr[-1] - lower) / width)


def simple_returns(prices: ArrayLike) -> np.ndarray:
    """
    Bar-to-bar simple returns.

    Changes from a zero price are dropped rather than producing inf.
    """
    arr = _as_array(prices)
    if len(arr) < 2:
        return np.array([], dtype=float)

    prev = arr[:-1]
    valid = prev != 0
    return (arr[1:][valid] - prev[valid]) / prev[valid]


def volatility(prices: ArrayLike, period: int = 10) -> float:
    """
    Root-mean-square of the last `period` simple returns.

    Returns:
        RMS return (not annualized), 0.0 if there are no returns
    """
    rets = simple_returns(prices)[-period:]
    if len(rets) == 0:
        return 0.0
    return float(np.sqrt(np.mean(rets ** 2)))


def mean_return(prices: ArrayLike, period: int = 5) -> float:
    """Average of the last `period` simple returns."""
    rets = simple_returns(prices)[-period:]
    if len(rets) == 0:
        return 0.0
    return float(np.mean(rets))


def momentum(prices: ArrayLike, period: int = 20) -> float:
    """Return over the last `period` bars: p[-1] / p[-period] - 1."""
    arr = _as_array(prices)
    if len(arr) < period or arr[-period] == 0:
        return 0.0
    return float(arr[-1] / arr[-period] - 1.0)


def volume_ratio(volumes: ArrayLike, period: int = 5) -> float:
    """
    Recent volume relative to the window average.

    Returns:
        mean(last `period` volumes) / mean(all volumes); 1.0 when the
        overall mean is zero
    """
    arr = _as_array(volumes)
    if len(arr) == 0:
        return 1.0

    overall = float(np.mean(arr))
    if overall == 0:
        return 1.0
    return float(np.mean(arr[-period:]) / overall)
