"""
Reference predictors.

Two small rule-based predictors that speak the technical-indicator family's
language (a score in [-1, 1]). They exist so the command-line scripts and
tests have a deterministic model to run without an external ML service,
and their parameters are simple enough to tune with walk-forward grid search.

Both read the FeatureExtractor layout (see features.FEATURE_NAMES).
"""

import inspect
from typing import Any, Callable, Dict, Optional

import numpy as np

from stratsim.lib.config import SignalSettings
from stratsim.signals.features import FEATURE_NAMES, FeatureExtractor
from stratsim.signals.generator import SignalGenerator

_IDX = {name: i for i, name in enumerate(FEATURE_NAMES)}


class TrendFollowingPredictor:
    """
    Moving-average spread scored as a trend signal.

    score = clip((fast_sma - slow_sma) / slow_sma * sensitivity, -1, 1)

    Args:
        fast: Feature name of the fast average ('sma_5' or 'sma_10')
        slow: Feature name of the slow average ('sma_20', 'ema_26', ...)
        sensitivity: Multiplier turning a fractional spread into a score
    """

    def __init__(self, fast: str = "sma_5", slow: str = "sma_20", sensitivity: float = 50.0):
        if fast not in _IDX or slow not in _IDX:
            raise ValueError(f"Unknown feature name: {fast!r} / {slow!r}")
        self.fast = fast
        self.slow = slow
        self.sensitivity = sensitivity

    def predict(self, features: np.ndarray) -> float:
        fast = features[_IDX[self.fast]]
        slow = features[_IDX[self.slow]]
        if slow == 0:
            return 0.0
        return float(np.clip((fast - slow) / slow * self.sensitivity, -1.0, 1.0))

    def __repr__(self) -> str:
        return (
            f"TrendFollowingPredictor(fast={self.fast}, slow={self.slow}, "
            f"sensitivity={self.sensitivity})"
        )


class MeanReversionPredictor:
    """
    RSI extremes scored as a reversal signal.

    Below `oversold` the score is positive (expect a bounce), above
    `overbought` negative. A threshold crossing scores `base_score`, rising
    linearly to 1.0 at RSI 0 / 100. Inside the band the score is 0.

    Args:
        oversold: RSI level below which longs are signalled
        overbought: RSI level above which shorts are signalled
        base_score: Score at the threshold itself
    """

    def __init__(self, oversold: float = 30.0, overbought: float = 70.0, base_score: float = 0.6):
        if not 0 < oversold < overbought < 100:
            raise ValueError(f"Need 0 < oversold < overbought < 100, got {oversold}, {overbought}")
        self.oversold = oversold
        self.overbought = overbought
        self.base_score = base_score

    def predict(self, features: np.ndarray) -> float:
        rsi = features[_IDX["rsi_14"]]
        span = 1.0 - self.base_score

        if rsi < self.oversold:
            return self.base_score + span * (self.oversold - rsi) / self.oversold
        if rsi > self.overbought:
            return -(self.base_score + span * (rsi - self.overbought) / (100.0 - self.overbought))
        return 0.0

    def __repr__(self) -> str:
        return f"MeanReversionPredictor(oversold={self.oversold}, overbought={self.overbought})"


REFERENCE_PREDICTORS = {
    "trend_following": TrendFollowingPredictor,
    "mean_reversion": MeanReversionPredictor,
}


def create_reference_predictor(name: str, **params):
    """
    Build a reference predictor by name.

    Unknown keyword parameters are ignored so a walk-forward parameter set
    can be passed straight through.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        cls = REFERENCE_PREDICTORS[name]
    except KeyError:
        raise ValueError(
            f"Unknown reference predictor '{name}'. Known: {sorted(REFERENCE_PREDICTORS)}"
        ) from None

    accepted = inspect.signature(cls).parameters
    return cls(**{k: v for k, v in params.items() if k in accepted})


def create_signal_generator_factory(
    settings: Optional[SignalSettings] = None,
) -> Callable[[Dict[str, Any]], SignalGenerator]:
    """
    Factory turning a parameter set into a SignalGenerator.

    The reference predictor named in `settings.predictor` (or a 'predictor'
    entry of the parameter set) receives every parameter it accepts;
    a 'confidence_floor' entry overrides the configured floor. Used by the
    scripts and as the walk-forward signal generator factory.
    """
    settings = settings or SignalSettings()

    def factory(params: Dict[str, Any]) -> SignalGenerator:
        name = params.get("predictor", settings.predictor)
        predictor = create_reference_predictor(name, **params)
        return SignalGenerator(
            predictor,
            algorithm_type=settings.algorithm_type,
            feature_extractor=FeatureExtractor(lookback=settings.lookback),
            confidence_floor=params.get("confidence_floor", settings.confidence_floor),
            min_history=settings.min_history,
        )

    return factory
