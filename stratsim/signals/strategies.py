"""
Prediction-to-signal mapping per algorithm family.

A predictor returns a bare number whose meaning depends on the kind of
model behind it. Each family below interprets that number and decides
whether it is a trade, in which direction, and how confident:

- Regression (linear/polynomial regression, moving average models):
  the prediction is an expected fractional price change `r`.
  LONG if r > change_threshold, SHORT if r < -change_threshold.
  confidence = min(|r| / full_confidence_change, 1.0)

- Classification (naive Bayes, random forest): the prediction is a signed
  class probability `p` in [-1, 1].
  LONG if p > threshold, SHORT if p < -threshold. confidence = min(|p|, 1.0)

- Technical indicators: the prediction is a combined indicator score `s`.
  LONG if s > threshold, SHORT if s < -threshold. confidence = min(|s|, 1.0)

Families only map; the confidence floor is applied by the signal generator.

Example:
    strategy = get_signal_strategy("linear_regression")
    strategy.prediction_to_signal(0.03)  # (Direction.LONG, 0.75)
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional, Tuple, Type

import numpy as np

from stratsim.lib.config import ConfigValidationError
from stratsim.lib.constants import (
    REGRESSION_CHANGE_THRESHOLD,
    REGRESSION_FULL_CONFIDENCE_CHANGE,
    CLASSIFICATION_THRESHOLD,
    TECHNICAL_THRESHOLD,
)


class Direction(Enum):
    """Trade direction; the value is the P&L sign."""
    LONG = 1
    SHORT = -1

    @property
    def sign(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return self.name.lower()


SignalDecision = Optional[Tuple[Direction, float]]


# =============================================================================
# Strategy Interface
# =============================================================================

class SignalStrategy(ABC):
    """Maps a raw prediction to an optional (direction, confidence) pair."""

    family: str = ""

    @abstractmethod
    def prediction_to_signal(self, prediction: float) -> SignalDecision:
        """
        Interpret a raw prediction.

        Args:
            prediction: Predictor output

        Returns:
            (Direction, confidence in [0, 1]) or None for no trade
        """
        pass

    @staticmethod
    def _is_usable(prediction: float) -> bool:
        return prediction is not None and bool(np.isfinite(prediction))


class RegressionSignalStrategy(SignalStrategy):
    """Expected fractional change -> trade when it clears the threshold."""

    family = "regression"

    def __init__(
        self,
        change_threshold: float = REGRESSION_CHANGE_THRESHOLD,
        full_confidence_change: float = REGRESSION_FULL_CONFIDENCE_CHANGE,
    ):
        if change_threshold < 0 or full_confidence_change <= 0:
            raise ConfigValidationError(
                "change_threshold must be >= 0 and full_confidence_change > 0"
            )
        self.change_threshold = change_threshold
        self.full_confidence_change = full_confidence_change

    def prediction_to_signal(self, prediction: float) -> SignalDecision:
        if not self._is_usable(prediction):
            return None

        if prediction > self.change_threshold:
            direction = Direction.LONG
        elif prediction < -self.change_threshold:
            direction = Direction.SHORT
        else:
            return None

        confidence = min(abs(prediction) / self.full_confidence_change, 1.0)
        return direction, float(confidence)


class ClassificationSignalStrategy(SignalStrategy):
    """Signed class probability -> trade when it clears +/- threshold."""

    family = "classification"

    def __init__(self, threshold: float = CLASSIFICATION_THRESHOLD):
        self.threshold = threshold

    def prediction_to_signal(self, prediction: float) -> SignalDecision:
        if not self._is_usable(prediction):
            return None

        if prediction > self.threshold:
            direction = Direction.LONG
        elif prediction < -self.threshold:
            direction = Direction.SHORT
        else:
            return None

        return direction, float(min(abs(prediction), 1.0))


class TechnicalSignalStrategy(SignalStrategy):
    """Combined indicator score -> trade when it clears +/- threshold."""

    family = "technical"

    def __init__(self, threshold: float = TECHNICAL_THRESHOLD):
        self.threshold = threshold

    def prediction_to_signal(self, prediction: float) -> SignalDecision:
        if not self._is_usable(prediction):
            return None

        if prediction > self.threshold:
            direction = Direction.LONG
        elif prediction < -self.threshold:
            direction = Direction.SHORT
        else:
            return None

        return direction, float(min(abs(prediction), 1.0))


# =============================================================================
# Family Registry
# =============================================================================

ALGORITHM_FAMILIES: Dict[str, Type[SignalStrategy]] = {
    "regression": RegressionSignalStrategy,
    "linear_regression": RegressionSignalStrategy,
    "polynomial_regression": RegressionSignalStrategy,
    "moving_average": RegressionSignalStrategy,
    "classification": ClassificationSignalStrategy,
    "naive_bayes": ClassificationSignalStrategy,
    "random_forest": ClassificationSignalStrategy,
    "technical_indicators": TechnicalSignalStrategy,
}


def get_signal_strategy(algorithm_type: str, **kwargs) -> SignalStrategy:
    """
    Resolve an algorithm type to its signal-mapping strategy.

    Args:
        algorithm_type: Model algorithm name (e.g. 'linear_regression')
        **kwargs: Threshold overrides passed to the strategy constructor

    Returns:
        SignalStrategy instance

    Raises:
        ConfigValidationError: If the algorithm type is unknown
    """
    try:
        strategy_cls = ALGORITHM_FAMILIES[algorithm_type]
    except KeyError:
        raise ConfigValidationError(
            f"Unknown algorithm type '{algorithm_type}'. "
            f"Known types: {sorted(ALGORITHM_FAMILIES)}"
        ) from None
    return strategy_cls(**kwargs)
