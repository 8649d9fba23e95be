"""
Unit Tests for Signal Generation

Tests cover:
1. Algorithm-family strategies (regression, classification, technical)
2. SignalGenerator filtering, ordering and diagnostics
3. The module-level generate_signals convenience function
4. ModelRegistry lookups
5. Reference predictors and the signal generator factory
"""

import numpy as np
import pandas as pd
import pytest

from stratsim.lib import diagnostics as diag
from stratsim.lib.config import ConfigValidationError, SignalSettings
from stratsim.lib.diagnostics import SimulationDiagnostics
from stratsim.signals import (
    FEATURE_NAMES,
    ClassificationSignalStrategy,
    FeatureExtractor,
    Direction,
    MeanReversionPredictor,
    ModelRegistry,
    RegressionSignalStrategy,
    SignalGenerator,
    TechnicalSignalStrategy,
    TrendFollowingPredictor,
    create_reference_predictor,
    create_signal_generator_factory,
    generate_signals,
    get_signal_strategy,
)

from conftest import (
    ConstantPredictor,
    RaisingPredictor,
    bar_count_features,
    geometric_closes,
    make_bars,
)


def _features(**values) -> np.ndarray:
    features = np.zeros(len(FEATURE_NAMES))
    for name, value in values.items():
        features[FEATURE_NAMES.index(name)] = value
    return features


def _windows(n_bars: int, symbols=("AAA",)):
    bars = make_bars(geometric_closes(n_bars, 0.01))
    return {s: bars for s in symbols}


# =============================================================================
# Family Strategies
# =============================================================================

class TestRegressionStrategy:
    """Expected fractional change -> signal."""

    def test_long_above_threshold(self):
        direction, confidence = RegressionSignalStrategy().prediction_to_signal(0.03)
        assert direction is Direction.LONG
        assert confidence == pytest.approx(0.75)

    def test_short_confidence_capped(self):
        direction, confidence = RegressionSignalStrategy().prediction_to_signal(-0.05)
        assert direction is Direction.SHORT
        assert confidence == 1.0

    def test_inside_threshold_is_no_trade(self):
        strategy = RegressionSignalStrategy()
        assert strategy.prediction_to_signal(0.01) is None
        assert strategy.prediction_to_signal(0.02) is None
        assert strategy.prediction_to_signal(-0.02) is None

    def test_non_finite_is_no_trade(self):
        assert RegressionSignalStrategy().prediction_to_signal(float("nan")) is None

    def test_invalid_thresholds(self):
        with pytest.raises(ConfigValidationError):
            RegressionSignalStrategy(full_confidence_change=0)


class TestClassificationStrategy:
    """Signed class probability -> signal."""

    def test_long(self):
        assert ClassificationSignalStrategy().prediction_to_signal(0.7) == (Direction.LONG, 0.7)

    def test_short(self):
        direction, confidence = ClassificationSignalStrategy().prediction_to_signal(-0.9)
        assert direction is Direction.SHORT
        assert confidence == pytest.approx(0.9)

    def test_threshold_is_exclusive(self):
        assert ClassificationSignalStrategy().prediction_to_signal(0.5) is None


class TestTechnicalStrategy:
    """Combined indicator score -> signal."""

    def test_long(self):
        assert TechnicalSignalStrategy().prediction_to_signal(0.2) == (Direction.LONG, 0.2)

    def test_weak_score(self):
        assert TechnicalSignalStrategy().prediction_to_signal(-0.05) is None

    def test_confidence_capped(self):
        assert TechnicalSignalStrategy().prediction_to_signal(1.5) == (Direction.LONG, 1.0)


class TestFamilyRegistry:
    """Algorithm type -> family resolution."""

    @pytest.mark.parametrize("algorithm_type,expected", [
        ("linear_regression", RegressionSignalStrategy),
        ("polynomial_regression", RegressionSignalStrategy),
        ("moving_average", RegressionSignalStrategy),
        ("naive_bayes", ClassificationSignalStrategy),
        ("random_forest", ClassificationSignalStrategy),
        ("technical_indicators", TechnicalSignalStrategy),
    ])
    def test_known_types(self, algorithm_type, expected):
        assert isinstance(get_signal_strategy(algorithm_type), expected)

    def test_unknown_type(self):
        with pytest.raises(ConfigValidationError, match="Unknown algorithm type"):
            get_signal_strategy("quantum_oracle")

    def test_direction_helpers(self):
        assert Direction.LONG.sign == 1
        assert Direction.SHORT.sign == -1
        assert Direction.SHORT.label == "short"


# =============================================================================
# Signal Generator
# =============================================================================

class TestSignalGenerator:
    """Tests for per-timestep signal generation."""

    def _generator(self, predictor, **kwargs):
        kwargs.setdefault("algorithm_type", "linear_regression")
        kwargs.setdefault("feature_extractor", bar_count_features)
        kwargs.setdefault("min_history", 0)
        return SignalGenerator(predictor, **kwargs)

    def test_emits_signal(self):
        generator = self._generator(ConstantPredictor(0.03))
        windows = _windows(10)
        ts = pd.Timestamp("2024-02-01")

        signals = generator.generate_signals(windows, ts, {"AAA": 123.0})

        assert len(signals) == 1
        signal = signals[0]
        assert signal.symbol == "AAA"
        assert signal.direction is Direction.LONG
        assert signal.confidence == pytest.approx(0.75)
        assert signal.reference_price == 123.0
        assert signal.timestamp == ts
        assert signal.raw_prediction == pytest.approx(0.03)

    def test_confidence_floor_filters(self):
        generator = self._generator(ConstantPredictor(0.021))  # confidence 0.525
        signals = generator.generate_signals(_windows(10), pd.Timestamp("2024-02-01"), {"AAA": 1.0})
        assert signals == []

    def test_signals_in_symbol_order(self):
        generator = self._generator(ConstantPredictor(0.05))
        windows = _windows(10, symbols=("ZZZ", "AAA", "MMM"))
        prices = {s: 1.0 for s in windows}

        signals = generator.generate_signals(windows, pd.Timestamp("2024-02-01"), prices)

        assert [s.symbol for s in signals] == ["AAA", "MMM", "ZZZ"]

    def test_insufficient_history_recorded(self):
        generator = self._generator(ConstantPredictor(0.05), min_history=30)
        diagnostics = SimulationDiagnostics()

        signals = generator.generate_signals(
            _windows(10), pd.Timestamp("2024-02-01"), {"AAA": 1.0}, diagnostics
        )

        assert signals == []
        assert diagnostics.count(diag.INSUFFICIENT_HISTORY) == 1

    def test_extractor_needing_more_bars_recorded(self):
        generator = SignalGenerator(ConstantPredictor(0.5), min_history=5)
        diagnostics = SimulationDiagnostics()

        generator.generate_signals(_windows(10), pd.Timestamp("2024-02-01"), {"AAA": 1.0}, diagnostics)

        assert diagnostics.count(diag.INSUFFICIENT_HISTORY) == 1

    def test_predictor_error_recorded(self):
        generator = self._generator(RaisingPredictor())
        diagnostics = SimulationDiagnostics()

        signals = generator.generate_signals(
            _windows(10), pd.Timestamp("2024-02-01"), {"AAA": 1.0}, diagnostics
        )

        assert signals == []
        assert diagnostics.count(diag.PREDICTOR_ERROR) == 1

    def test_non_finite_prediction_recorded(self):
        generator = self._generator(ConstantPredictor(float("inf")))
        diagnostics = SimulationDiagnostics()

        generator.generate_signals(_windows(10), pd.Timestamp("2024-02-01"), {"AAA": 1.0}, diagnostics)

        assert diagnostics.count(diag.INVALID_PREDICTION) == 1

    def test_degenerate_features_recorded(self):
        generator = SignalGenerator(ConstantPredictor(0.5), min_history=0)
        window = make_bars(geometric_closes(30, 0.01))
        window.iloc[-1, window.columns.get_loc("close")] = -1.0
        diagnostics = SimulationDiagnostics()

        signals = generator.generate_signals(
            {"AAA": window}, pd.Timestamp("2024-02-01"), {"AAA": 1.0}, diagnostics
        )

        assert signals == []
        assert diagnostics.count(diag.DEGENERATE_FEATURES) == 1

    def test_predictor_without_predict(self):
        with pytest.raises(ConfigValidationError):
            SignalGenerator(object())

    def test_unknown_algorithm_type(self):
        with pytest.raises(ConfigValidationError):
            SignalGenerator(ConstantPredictor(0.1), algorithm_type="magic")

    def test_invalid_floor_and_history(self):
        with pytest.raises(ConfigValidationError):
            SignalGenerator(ConstantPredictor(0.1), confidence_floor=1.5)
        with pytest.raises(ConfigValidationError):
            SignalGenerator(ConstantPredictor(0.1), min_history=-1)

    def test_explicit_strategy_overrides_family(self):
        generator = self._generator(
            ConstantPredictor(0.015),
            strategy=RegressionSignalStrategy(change_threshold=0.01, full_confidence_change=0.02),
        )
        signals = generator.generate_signals(_windows(5), pd.Timestamp("2024-02-01"), {"AAA": 1.0})
        assert signals[0].confidence == pytest.approx(0.75)


class TestGenerateSignalsFunction:
    """Tests for the convenience function."""

    def test_last_bar_is_current(self):
        bars = make_bars(geometric_closes(40, 0.01))
        signals = generate_signals(
            ConstantPredictor(0.8),
            {"AAA": bars},
            ["AAA", "MISSING"],
            algorithm_type="technical_indicators",
            min_history=30,
        )

        assert len(signals) == 1
        assert signals[0].reference_price == pytest.approx(bars["close"].iloc[-1])
        assert signals[0].timestamp == bars.index[-1]


class TestModelRegistry:
    """Tests for caller-owned model lookup."""

    def test_register_and_create(self):
        registry = ModelRegistry()
        registry.register("rf-1", ConstantPredictor(0.9), "random_forest")

        assert "rf-1" in registry
        assert len(registry) == 1

        generator = registry.create_generator("rf-1", min_history=0)
        assert isinstance(generator.strategy, ClassificationSignalStrategy)
        assert generator.min_history == 0

    def test_unknown_model_id(self):
        with pytest.raises(ConfigValidationError, match="Unknown model id"):
            ModelRegistry().get("missing")

    def test_register_unknown_family(self):
        with pytest.raises(ConfigValidationError):
            ModelRegistry().register("x", ConstantPredictor(0.1), "astrology")

    def test_registries_are_independent(self):
        first = ModelRegistry()
        second = ModelRegistry()
        first.register("m", ConstantPredictor(0.1), "naive_bayes")
        assert "m" not in second


# =============================================================================
# Reference Predictors
# =============================================================================

class TestReferencePredictors:
    """Tests for the rule-based predictors."""

    def test_trend_following_clipped(self):
        predictor = TrendFollowingPredictor()
        assert predictor.predict(_features(sma_5=102.0, sma_20=100.0)) == 1.0
        assert predictor.predict(_features(sma_5=101.0, sma_20=100.0)) == pytest.approx(0.5)
        assert predictor.predict(_features(sma_5=99.0, sma_20=100.0)) == pytest.approx(-0.5)

    def test_trend_following_zero_slow(self):
        assert TrendFollowingPredictor().predict(_features(sma_5=1.0)) == 0.0

    def test_trend_following_unknown_feature(self):
        with pytest.raises(ValueError):
            TrendFollowingPredictor(fast="sma_7")

    def test_mean_reversion_scores(self):
        predictor = MeanReversionPredictor()
        assert predictor.predict(_features(rsi_14=15.0)) == pytest.approx(0.8)
        assert predictor.predict(_features(rsi_14=85.0)) == pytest.approx(-0.8)
        assert predictor.predict(_features(rsi_14=50.0)) == 0.0
        assert predictor.predict(_features(rsi_14=30.0)) == 0.0

    def test_mean_reversion_silent_on_flat_prices(self):
        features = FeatureExtractor().extract(make_bars(np.full(40, 100.0)))
        assert MeanReversionPredictor().predict(features) == 0.0

    def test_mean_reversion_invalid_band(self):
        with pytest.raises(ValueError):
            MeanReversionPredictor(oversold=70, overbought=30)

    def test_create_ignores_unrelated_params(self):
        predictor = create_reference_predictor(
            "mean_reversion", oversold=25, stop_loss_fraction=0.05
        )
        assert predictor.oversold == 25

    def test_create_unknown(self):
        with pytest.raises(ValueError):
            create_reference_predictor("coin_flip")

    def test_factory_uses_settings_and_params(self):
        factory = create_signal_generator_factory(SignalSettings(predictor="mean_reversion"))

        generator = factory({"oversold": 25, "confidence_floor": 0.7})
        assert isinstance(generator.predictor, MeanReversionPredictor)
        assert generator.predictor.oversold == 25
        assert generator.confidence_floor == 0.7

        generator = factory({"predictor": "trend_following", "sensitivity": 100.0})
        assert isinstance(generator.predictor, TrendFollowingPredictor)
        assert generator.predictor.sensitivity == 100.0
