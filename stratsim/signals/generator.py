"""
Signal generation.

Combines a feature extractor, an external predictor and an algorithm
family's prediction mapping into directional trade signals. The predictor
is treated as opaque: anything with `predict(features) -> float` works,
as long as it is a deterministic function of its input.

Per symbol and timestep the generator:
1. Skips the symbol if fewer than `min_history` prior bars exist
2. Extracts features from the prior bars
3. Calls the predictor
4. Maps the prediction through the family strategy
5. Emits the signal only if confidence >= confidence_floor

Every skip is recorded on the run's diagnostics; none of them raise.

Example:
    generator = SignalGenerator(
        predictor=my_model,
        algorithm_type="linear_regression",
    )
    signals = generator.generate_signals(windows, timestamp, closes)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

import numpy as np
import pandas as pd

from stratsim.lib import diagnostics as diag
from stratsim.lib.config import ConfigValidationError
from stratsim.lib.constants import DEFAULT_CONFIDENCE_FLOOR, DEFAULT_MIN_HISTORY
from stratsim.lib.diagnostics import SimulationDiagnostics
from stratsim.signals.features import FeatureExtractor, NumericDegeneracyError
from stratsim.signals.strategies import Direction, SignalStrategy, get_signal_strategy

logger = logging.getLogger(__name__)


class Predictor(Protocol):
    """Anything that turns a feature vector into a scalar prediction."""

    def predict(self, features: np.ndarray) -> float:
        ...


FeatureFn = Callable[[pd.DataFrame], Optional[np.ndarray]]


@dataclass(frozen=True)
class Signal:
    """
    A directional trade signal for one symbol at one timestep.

    Attributes:
        symbol: Instrument symbol
        direction: LONG or SHORT
        confidence: Confidence in [0, 1]
        reference_price: Close of the bar the signal was generated on
        timestamp: Bar timestamp
        raw_prediction: Predictor output the signal was derived from
    """
    symbol: str
    direction: Direction
    confidence: float
    reference_price: float
    timestamp: pd.Timestamp
    raw_prediction: float = 0.0


class SignalGenerator:
    """
    Turns predictor output into confidence-filtered signals.

    Attributes:
        predictor: External model exposing predict(features)
        strategy: Algorithm-family mapping from prediction to signal
        feature_extractor: Callable building features from prior bars
        confidence_floor: Minimum confidence for a signal to be emitted
        min_history: Minimum prior bars before a symbol may signal
    """

    def __init__(
        self,
        predictor: Predictor,
        algorithm_type: str = "technical_indicators",
        strategy: Optional[SignalStrategy] = None,
        feature_extractor: Optional[FeatureFn] = None,
        confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR,
        min_history: int = DEFAULT_MIN_HISTORY,
    ):
        """
        Initialize the generator.

        Args:
            predictor: External model exposing predict(features)
            algorithm_type: Family used to interpret predictions; ignored
                when `strategy` is given
            strategy: Explicit SignalStrategy instance (custom thresholds)
            feature_extractor: Features from a window of prior bars
                (default: FeatureExtractor())
            confidence_floor: Minimum confidence to emit
            min_history: Minimum prior bars per symbol

        Raises:
            ConfigValidationError: If the algorithm type is unknown or the
                floor/history settings are out of range
        """
        if not hasattr(predictor, "predict"):
            raise ConfigValidationError("predictor must expose predict(features)")
        if not 0 <= confidence_floor <= 1:
            raise ConfigValidationError(f"confidence_floor must be in [0, 1], got {confidence_floor}")
        if min_history < 0:
            raise ConfigValidationError(f"min_history cannot be negative, got {min_history}")

        self.predictor = predictor
        self.strategy = strategy or get_signal_strategy(algorithm_type)
        self.feature_extractor = feature_extractor or FeatureExtractor()
        self.confidence_floor = confidence_floor
        self.min_history = min_history

    def generate_signals(
        self,
        windows: Dict[str, pd.DataFrame],
        timestamp: pd.Timestamp,
        reference_prices: Dict[str, float],
        diagnostics: Optional[SimulationDiagnostics] = None,
    ) -> List[Signal]:
        """
        Generate signals for every symbol with a window at this timestep.

        Args:
            windows: Symbol -> prior bars (oldest first, current bar excluded)
            timestamp: Current bar timestamp
            reference_prices: Symbol -> current bar close
            diagnostics: Run diagnostics to record skips on

        Returns:
            Signals in lexicographic symbol order
        """
        if diagnostics is None:
            diagnostics = SimulationDiagnostics()

        signals = []
        for symbol in sorted(windows):
            window = windows[symbol]

            if len(window) < self.min_history:
                diagnostics.record(
                    diag.INSUFFICIENT_HISTORY,
                    f"{symbol} @ {timestamp}: {len(window)} < {self.min_history} bars",
                )
                continue

            signal = self._signal_for_symbol(
                symbol, window, timestamp, reference_prices[symbol], diagnostics
            )
            if signal is not None:
                signals.append(signal)

        return signals

    def _signal_for_symbol(
        self,
        symbol: str,
        window: pd.DataFrame,
        timestamp: pd.Timestamp,
        reference_price: float,
        diagnostics: SimulationDiagnostics,
    ) -> Optional[Signal]:
        try:
            features = self.feature_extractor(window)
        except NumericDegeneracyError as e:
            diagnostics.record(diag.DEGENERATE_FEATURES, f"{symbol} @ {timestamp}: {e}")
            return None

        if features is None:
            diagnostics.record(
                diag.INSUFFICIENT_HISTORY,
                f"{symbol} @ {timestamp}: feature extractor needs more bars",
            )
            return None

        try:
            prediction = float(self.predictor.predict(features))
        except Exception as e:
            diagnostics.record(diag.PREDICTOR_ERROR, f"{symbol} @ {timestamp}: {e!r}")
            return None

        if not np.isfinite(prediction):
            diagnostics.record(diag.INVALID_PREDICTION, f"{symbol} @ {timestamp}: {prediction}")
            return None

        decision = self.strategy.prediction_to_signal(prediction)
        if decision is None:
            return None

        direction, confidence = decision
        if confidence < self.confidence_floor:
            return None

        return Signal(
            symbol=symbol,
            direction=direction,
            confidence=confidence,
            reference_price=reference_price,
            timestamp=timestamp,
            raw_prediction=prediction,
        )


def generate_signals(
    predictor: Predictor,
    bar_windows: Dict[str, pd.DataFrame],
    symbols: List[str],
    algorithm_type: str = "technical_indicators",
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR,
    min_history: int = DEFAULT_MIN_HISTORY,
) -> List[Signal]:
    """
    Convenience function to generate signals from the latest bar windows.

    The last row of each window is treated as the current bar: it supplies
    the timestamp and reference price, and the rows before it are the
    history handed to the feature extractor.

    Args:
        predictor: External model exposing predict(features)
        bar_windows: Symbol -> bars ending at the current bar
        symbols: Symbols to consider
        algorithm_type: Family used to interpret predictions
        confidence_floor: Minimum confidence to emit
        min_history: Minimum prior bars per symbol

    Returns:
        List of Signals
    """
    generator = SignalGenerator(
        predictor,
        algorithm_type=algorithm_type,
        confidence_floor=confidence_floor,
        min_history=min_history,
    )

    windows = {}
    prices = {}
    timestamp = None
    for symbol in symbols:
        bars = bar_windows.get(symbol)
        if bars is None or len(bars) == 0:
            continue
        windows[symbol] = bars.iloc[:-1]
        prices[symbol] = float(bars["close"].iloc[-1])
        timestamp = bars.index[-1] if timestamp is None else max(timestamp, bars.index[-1])

    return generator.generate_signals(windows, timestamp, prices)


# =============================================================================
# Model Registry
# =============================================================================

@dataclass(frozen=True)
class RegisteredModel:
    """A predictor and the algorithm family that interprets its output."""
    model_id: str
    predictor: Any
    algorithm_type: str


class ModelRegistry:
    """
    Caller-owned lookup of predictors by model id.

    Each simulation context builds its own registry; nothing here is
    process-wide.
    """

    def __init__(self):
        self._models: Dict[str, RegisteredModel] = {}

    def register(self, model_id: str, predictor: Predictor, algorithm_type: str) -> None:
        """
        Register a predictor.

        Raises:
            ConfigValidationError: If the algorithm type is unknown
        """
        get_signal_strategy(algorithm_type)
        self._models[model_id] = RegisteredModel(model_id, predictor, algorithm_type)
        logger.debug(f"Registered model {model_id} ({algorithm_type})")

    def get(self, model_id: str) -> RegisteredModel:
        """
        Look up a model.

        Raises:
            ConfigValidationError: If no model is registered under the id
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise ConfigValidationError(f"Unknown model id '{model_id}'") from None

    def create_generator(self, model_id: str, **kwargs) -> SignalGenerator:
        """Build a SignalGenerator for a registered model."""
        model = self.get(model_id)
        return SignalGenerator(model.predictor, algorithm_type=model.algorithm_type, **kwargs)

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)
