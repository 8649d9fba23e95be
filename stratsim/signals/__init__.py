"""
Signal generation: indicators, features and prediction-to-signal mapping.

Components:
    - indicators: Pure SMA/EMA/RSI/MACD/Bollinger/volatility functions
    - FeatureExtractor: 12-feature vector from a window of prior bars
    - SignalStrategy: Per-family mapping from predictions to signals
    - SignalGenerator: Predictor + features + family -> filtered signals
    - ModelRegistry: Caller-owned model id lookup
    - Reference predictors for scripts and tests
"""

from stratsim.signals.features import FEATURE_NAMES, FeatureExtractor, NumericDegeneracyError
from stratsim.signals.strategies import (
    ALGORITHM_FAMILIES,
    ClassificationSignalStrategy,
    Direction,
    RegressionSignalStrategy,
    SignalStrategy,
    TechnicalSignalStrategy,
    get_signal_strategy,
)
from stratsim.signals.generator import (
    ModelRegistry,
    Predictor,
    RegisteredModel,
    Signal,
    SignalGenerator,
    generate_signals,
)
from stratsim.signals.predictors import (
    MeanReversionPredictor,
    TrendFollowingPredictor,
    create_reference_predictor,
    create_signal_generator_factory,
)

__all__ = [
    # Features
    "FEATURE_NAMES",
    "FeatureExtractor",
    "NumericDegeneracyError",
    # Families
    "ALGORITHM_FAMILIES",
    "Direction",
    "SignalStrategy",
    "RegressionSignalStrategy",
    "ClassificationSignalStrategy",
    "TechnicalSignalStrategy",
    "get_signal_strategy",
    # Generation
    "Predictor",
    "Signal",
    "SignalGenerator",
    "generate_signals",
    "ModelRegistry",
    "RegisteredModel",
    # Reference predictors
    "TrendFollowingPredictor",
    "MeanReversionPredictor",
    "create_reference_predictor",
    "create_signal_generator_factory",
]
