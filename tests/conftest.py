"""
Pytest fixtures for stratsim tests.

This module provides:
- Synthetic OHLCV bar builders (trending, falling, random walk)
- Stub predictors and feature functions with known outputs
- Common configuration fixtures
"""

import numpy as np
import pandas as pd
import pytest

from stratsim.backtest import BacktestConfig
from stratsim.signals import SignalGenerator, TrendFollowingPredictor


# =============================================================================
# Bar Builders
# =============================================================================

def make_bars(
    closes,
    start: str = "2024-01-01",
    freq: str = "D",
    wick: float = 0.01,
    volume: float = 1_000_000.0,
) -> pd.DataFrame:
    """
    Build OHLCV bars around a close series.

    Each bar opens at the previous close; the high and low extend `wick`
    beyond the larger and smaller of open and close.
    """
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    highs = np.maximum(opens, closes) * (1 + wick)
    lows = np.minimum(opens, closes) * (1 - wick)
    index = pd.date_range(start=start, periods=len(closes), freq=freq, name="timestamp")

    return pd.DataFrame({
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": np.full(len(closes), volume),
    }, index=index)


def geometric_closes(n_bars: int, growth: float, start_price: float = 100.0) -> np.ndarray:
    """Closes compounding by `growth` per bar."""
    return start_price * (1 + growth) ** np.arange(n_bars)


# =============================================================================
# Stub Predictors
# =============================================================================

class EveryNthBarPredictor:
    """
    Predicts `value` when the feature (a bar count) is a multiple of `n`,
    and 0 otherwise.
    """

    def __init__(self, n: int = 10, value: float = 0.03):
        self.n = n
        self.value = value

    def predict(self, features):
        return self.value if int(features[0]) % self.n == 0 else 0.0


class ConstantPredictor:
    """Always predicts the same value."""

    def __init__(self, value: float):
        self.value = value

    def predict(self, features):
        return self.value


class RaisingPredictor:
    def predict(self, features):
        raise RuntimeError("model crashed")


def bar_count_features(window: pd.DataFrame) -> np.ndarray:
    """Single feature: the number of prior bars."""
    return np.array([float(len(window))])


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def trending_data():
    """Two symbols, 100 daily bars, closes rising 2% per bar."""
    closes = geometric_closes(100, 0.02)
    return {
        "AAA": make_bars(closes),
        "BBB": make_bars(closes * 0.5),
    }


@pytest.fixture
def falling_data():
    """One symbol, 40 daily bars, closes falling 2% per bar."""
    return {"AAA": make_bars(geometric_closes(40, -0.02))}


@pytest.fixture
def random_walk_data():
    """
    Three symbols, 250 daily bars of a drifting random walk.

    Seeded so every test sees the same prices.
    """
    rng = np.random.default_rng(42)
    data = {}
    for i, symbol in enumerate(["AAA", "BBB", "CCC"]):
        returns = 0.001 + rng.normal(0, 0.015, 250)
        closes = (50.0 + 25.0 * i) * np.cumprod(1 + returns)
        bars = make_bars(closes)
        bars["volume"] = rng.integers(100_000, 1_000_000, 250).astype(float)
        data[symbol] = bars
    return data


@pytest.fixture
def every_tenth_bar_generator():
    """Regression generator signalling +3% on every 10th bar."""
    return SignalGenerator(
        EveryNthBarPredictor(n=10, value=0.03),
        algorithm_type="linear_regression",
        feature_extractor=bar_count_features,
        min_history=0,
    )


@pytest.fixture
def always_long_generator():
    """Regression generator signalling +5% on every bar."""
    return SignalGenerator(
        ConstantPredictor(0.05),
        algorithm_type="linear_regression",
        feature_extractor=bar_count_features,
        min_history=0,
    )


@pytest.fixture
def trend_generator():
    """Default-feature trend follower with a permissive floor."""
    return SignalGenerator(
        TrendFollowingPredictor(),
        algorithm_type="technical_indicators",
        confidence_floor=0.3,
    )


@pytest.fixture
def base_config():
    """Engine config matching the documented defaults."""
    return BacktestConfig(
        initial_capital=100_000.0,
        commission_rate=0.001,
        stop_loss_fraction=0.05,
        take_profit_fraction=0.10,
    )
