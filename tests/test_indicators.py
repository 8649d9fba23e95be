"""
Unit Tests for Technical Indicators and Feature Extraction

Tests cover:
1. Moving averages (SMA, EMA) including short-history fallbacks
2. Oscillators (RSI, MACD)
3. Bollinger Bands and band position
4. Return statistics (returns, volatility, momentum, volume ratio)
5. FeatureExtractor layout, lookback trimming and degeneracy handling
"""

import math

import numpy as np
import pandas as pd
import pytest

from stratsim.signals import indicators
from stratsim.signals.features import FEATURE_NAMES, FeatureExtractor, NumericDegeneracyError

from conftest import geometric_closes, make_bars


# =============================================================================
# Moving Averages
# =============================================================================

class TestMovingAverages:
    """Tests for SMA and EMA."""

    def test_sma_uses_last_period_values(self):
        assert indicators.sma([1, 2, 3, 4, 5], 3) == pytest.approx(4.0)

    def test_sma_short_history_averages_everything(self):
        assert indicators.sma([1, 2], 5) == pytest.approx(1.5)

    def test_sma_empty(self):
        assert indicators.sma([], 5) == 0.0

    def test_ema_seeded_with_sma(self):
        # Seed mean(1, 2, 3) = 2, k = 0.5: 4 -> 3.0, 5 -> 4.0
        assert indicators.ema([1, 2, 3, 4, 5], 3) == pytest.approx(4.0)

    def test_ema_falls_back_to_sma(self):
        assert indicators.ema([1, 2], 5) == pytest.approx(indicators.sma([1, 2], 5))

    def test_ema_constant_series(self):
        assert indicators.ema([7.0] * 40, 12) == pytest.approx(7.0)


# =============================================================================
# Oscillators
# =============================================================================

class TestOscillators:
    """Tests for RSI and MACD."""

    def test_rsi_neutral_without_history(self):
        assert indicators.rsi([100, 101, 102], 14) == 50.0

    def test_rsi_no_losses(self):
        assert indicators.rsi(np.arange(1, 30), 14) == 100.0

    def test_rsi_flat_prices(self):
        assert indicators.rsi(np.full(30, 100.0), 14) == 50.0

    def test_rsi_no_gains(self):
        assert indicators.rsi(np.arange(30, 1, -1), 14) == pytest.approx(0.0)

    def test_rsi_balanced_moves(self):
        prices = [1, 2] * 8  # 15 changes, equal gains and losses in the last 14
        assert indicators.rsi(prices, 14) == pytest.approx(50.0)

    def test_rsi_bounded(self):
        rng = np.random.default_rng(0)
        prices = 100 * np.cumprod(1 + rng.normal(0, 0.02, 200))
        value = indicators.rsi(prices, 14)
        assert 0.0 <= value <= 100.0

    def test_macd_flat_prices(self):
        assert indicators.macd([50.0] * 60) == pytest.approx(0.0)

    def test_macd_positive_in_uptrend(self):
        assert indicators.macd(geometric_closes(60, 0.01)) > 0


# =============================================================================
# Bands
# =============================================================================

class TestBollinger:
    """Tests for Bollinger Bands and band position."""

    def test_bands_use_population_std(self):
        upper, middle, lower = indicators.bollinger_bands([1, 2, 3, 4, 5], period=5, num_std=2.0)
        assert middle == pytest.approx(3.0)
        assert upper == pytest.approx(3.0 + 2 * math.sqrt(2))
        assert lower == pytest.approx(3.0 - 2 * math.sqrt(2))

    def test_position_within_band(self):
        position = indicators.bollinger_position([1, 2, 3, 4, 5], period=5)
        expected = (5 - (3 - 2 * math.sqrt(2))) / (4 * math.sqrt(2))
        assert position == pytest.approx(expected)

    def test_position_flat_window(self):
        assert indicators.bollinger_position([10.0] * 25) == 0.5

    def test_position_empty(self):
        assert indicators.bollinger_position([]) == 0.5


# =============================================================================
# Return Statistics
# =============================================================================

class TestReturnStatistics:
    """Tests for returns, volatility, momentum and volume ratio."""

    def test_simple_returns(self):
        np.testing.assert_allclose(indicators.simple_returns([100, 110, 99]), [0.1, -0.1])

    def test_simple_returns_skip_zero_prices(self):
        assert len(indicators.simple_returns([0.0, 10.0, 11.0])) == 1

    def test_volatility_is_rms(self):
        assert indicators.volatility([100, 110, 99], 10) == pytest.approx(0.1)

    def test_volatility_without_returns(self):
        assert indicators.volatility([100], 10) == 0.0

    def test_mean_return(self):
        assert indicators.mean_return([100, 110, 99], 5) == pytest.approx(0.0)

    def test_momentum(self):
        assert indicators.momentum(np.arange(1, 21), 20) == pytest.approx(19.0)

    def test_momentum_short_history(self):
        assert indicators.momentum([1, 2, 3], 20) == 0.0

    def test_volume_ratio(self):
        volumes = [1, 1, 1, 1, 1, 2, 2, 2, 2, 2]
        assert indicators.volume_ratio(volumes, 5) == pytest.approx(2 / 1.5)

    def test_volume_ratio_degenerate(self):
        assert indicators.volume_ratio([], 5) == 1.0
        assert indicators.volume_ratio([0, 0, 0], 5) == 1.0


# =============================================================================
# Feature Extraction
# =============================================================================

class TestFeatureExtractor:
    """Tests for the 12-feature vector."""

    def test_feature_layout(self):
        extractor = FeatureExtractor()
        assert extractor.n_features == 12
        assert len(FEATURE_NAMES) == 12
        assert FEATURE_NAMES[0] == "sma_5"
        assert FEATURE_NAMES[5] == "rsi_14"

    def test_too_few_bars_returns_none(self):
        window = make_bars(geometric_closes(19, 0.01))
        assert FeatureExtractor(min_bars=20).extract(window) is None

    def test_features_match_indicators(self):
        window = make_bars(geometric_closes(60, 0.01))
        features = FeatureExtractor(lookback=50).extract(window)
        closes = window["close"].to_numpy()[-50:]

        assert features.shape == (12,)
        assert np.all(np.isfinite(features))
        assert features[0] == pytest.approx(indicators.sma(closes, 5))
        assert features[5] == pytest.approx(indicators.rsi(closes, 14))
        assert features[10] == pytest.approx(indicators.momentum(closes, 20))

    def test_lookback_trims_window(self):
        window = make_bars(geometric_closes(100, 0.005))
        extractor = FeatureExtractor(lookback=30)
        np.testing.assert_allclose(extractor(window), extractor(window.iloc[-30:]))

    def test_non_positive_close_raises(self):
        window = make_bars(geometric_closes(30, 0.01))
        window.iloc[10, window.columns.get_loc("close")] = 0.0
        with pytest.raises(NumericDegeneracyError):
            FeatureExtractor().extract(window)

    def test_missing_volume_treated_as_zero(self):
        window = make_bars(geometric_closes(30, 0.01))
        window["volume"] = np.nan
        features = FeatureExtractor().extract(window)
        assert features[FEATURE_NAMES.index("volume_ratio")] == 1.0

    def test_volume_column_absent(self):
        window = make_bars(geometric_closes(30, 0.01)).drop(columns=["volume"])
        features = FeatureExtractor().extract(window)
        assert np.all(np.isfinite(features))
        assert features[FEATURE_NAMES.index("volume_ratio")] == 1.0

    def test_flat_window_rsi_neutral(self):
        window = make_bars(np.full(30, 100.0))
        features = FeatureExtractor().extract(window)
        assert features[FEATURE_NAMES.index("rsi_14")] == 50.0

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            FeatureExtractor(lookback=10, min_bars=20)
        with pytest.raises(ValueError):
            FeatureExtractor(min_bars=0)

    def test_deterministic(self):
        window = make_bars(geometric_closes(40, 0.003))
        extractor = FeatureExtractor()
        np.testing.assert_array_equal(extractor(window), extractor(window.copy()))
