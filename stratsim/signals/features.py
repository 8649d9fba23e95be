"""
Feature extraction for signal generation.

Turns a rolling window of one symbol's OHLCV bars into a fixed-length
numeric vector that is handed to the predictor. The window contains only
bars strictly before the bar being traded, so no feature can see the
close it will be filled at.

Feature layout (FEATURE_NAMES order):
    0  sma_5            Simple moving average, 5 bars
    1  sma_10           Simple moving average, 10 bars
    2  sma_20           Simple moving average, 20 bars
    3  ema_12           Exponential moving average, 12 bars
    4  ema_26           Exponential moving average, 26 bars
    5  rsi_14           Relative Strength Index, 14 bars
    6  macd             EMA12 - EMA26
    7  bb_position      Position within 20-bar Bollinger Bands
    8  mean_return_5    Average of the last 5 simple returns
    9  volume_ratio     Last-5 volume mean over window volume mean
    10 momentum_20      20-bar return
    11 volatility_10    RMS of the last 10 returns
"""

from typing import Optional

import numpy as np
import pandas as pd

from stratsim.lib.constants import DEFAULT_FEATURE_LOOKBACK, DEFAULT_MIN_FEATURE_BARS
from stratsim.signals import indicators


FEATURE_NAMES = (
    "sma_5",
    "sma_10",
    "sma_20",
    "ema_12",
    "ema_26",
    "rsi_14",
    "macd",
    "bb_position",
    "mean_return_5",
    "volume_ratio",
    "momentum_20",
    "volatility_10",
)


class NumericDegeneracyError(ValueError):
    """Raised when a price window cannot produce finite features."""
    pass


class FeatureExtractor:
    """
    Builds the 12-element feature vector for one symbol at one timestep.

    Attributes:
        lookback: Maximum number of prior bars used
        min_bars: Minimum number of prior bars needed to produce features
    """

    def __init__(
        self,
        lookback: int = DEFAULT_FEATURE_LOOKBACK,
        min_bars: int = DEFAULT_MIN_FEATURE_BARS,
    ):
        if min_bars < 1 or lookback < min_bars:
            raise ValueError(
                f"Need 1 <= min_bars <= lookback, got min_bars={min_bars}, lookback={lookback}"
            )
        self.lookback = lookback
        self.min_bars = min_bars

    @property
    def n_features(self) -> int:
        return len(FEATURE_NAMES)

    def extract(self, window: pd.DataFrame) -> Optional[np.ndarray]:
        """
        Extract features from a window of prior bars.

        Args:
            window: DataFrame with at least a 'close' column, oldest bar
                first; a missing 'volume' column counts as zero volume

        Returns:
            Feature vector of length 12, or None if the window is shorter
            than `min_bars`

        Raises:
            NumericDegeneracyError: If the window holds non-positive or
                non-finite closes, or a feature evaluates to non-finite
        """
        if len(window) < self.min_bars:
            return None

        window = window.iloc[-self.lookback:]
        closes = window["close"].to_numpy(dtype=float)
        if "volume" in window.columns:
            volumes = window["volume"].to_numpy(dtype=float)
        else:
            volumes = np.zeros(len(window))

        if not np.all(np.isfinite(closes)) or np.any(closes <= 0):
            raise NumericDegeneracyError("window contains non-positive or non-finite closes")

        # Missing volume is treated as no volume
        volumes = np.nan_to_num(volumes, nan=0.0, posinf=0.0, neginf=0.0)

        features = np.array([
            indicators.sma(closes, 5),
            indicators.sma(closes, 10),
            indicators.sma(closes, 20),
            indicators.ema(closes, 12),
            indicators.ema(closes, 26),
            indicators.rsi(closes, 14),
            indicators.macd(closes, 12, 26),
            indicators.bollinger_position(closes, 20, 2.0),
            indicators.mean_return(closes, 5),
            indicators.volume_ratio(volumes, 5),
            indicators.momentum(closes, 20),
            indicators.volatility(closes, 10),
        ], dtype=float)

        if not np.all(np.isfinite(features)):
            bad = [FEATURE_NAMES[i] for i in np.flatnonzero(~np.isfinite(features))]
            raise NumericDegeneracyError(f"non-finite features: {bad}")

        return features

    def __call__(self, window: pd.DataFrame) -> Optional[np.ndarray]:
        return self.extract(window)

    def __repr__(self) -> str:
        return f"FeatureExtractor(lookback={self.lookback}, min_bars={self.min_bars})"
