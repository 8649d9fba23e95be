"""
Simulation constants and documented defaults.

This module defines the default values used throughout the simulator:
- Account and execution frictions (capital, commission, slippage)
- Position limits and stop/target offsets
- Signal generation thresholds per algorithm family
- Walk-forward and Monte Carlo settings

Every configuration dataclass draws its defaults from here so that the
engine, the YAML loader and the scripts agree on a single set of values.
"""

from zoneinfo import ZoneInfo


# =============================================================================
# Timezone
# =============================================================================

UTC_TIMEZONE = ZoneInfo("UTC")


# =============================================================================
# Account & Execution Defaults
# =============================================================================

DEFAULT_INITIAL_CAPITAL = 100_000.0
DEFAULT_COMMISSION_RATE = 0.001  # Fraction of notional per side
DEFAULT_SLIPPAGE_RATE = 0.0005  # Fraction of price, always adverse
DEFAULT_MAX_OPEN_POSITIONS = 5
DEFAULT_STOP_LOSS_FRACTION = 0.05
DEFAULT_TAKE_PROFIT_FRACTION = 0.10


# =============================================================================
# Position Sizing
# =============================================================================

POSITION_SIZING_METHODS = ("fixed", "percentage", "kelly")
DEFAULT_POSITION_SIZING = "fixed"
DEFAULT_FIXED_FRACTION = 0.10  # Share of capital per trade for 'fixed'
DEFAULT_RISK_PER_TRADE = 0.02
MAX_PERCENTAGE_ALLOCATION = 0.20
MAX_KELLY_ALLOCATION = 0.25


# =============================================================================
# Signal Generation
# =============================================================================

DEFAULT_CONFIDENCE_FLOOR = 0.6
DEFAULT_MIN_HISTORY = 30  # Prior bars required before a symbol can signal
DEFAULT_FEATURE_LOOKBACK = 50  # Bars handed to the feature extractor
DEFAULT_MIN_FEATURE_BARS = 20

# Regression family: predicted fractional price change
REGRESSION_CHANGE_THRESHOLD = 0.02
REGRESSION_FULL_CONFIDENCE_CHANGE = 0.04  # |r| at which confidence reaches 1.0

# Classification family: signed class probability in [-1, 1]
CLASSIFICATION_THRESHOLD = 0.5

# Technical family: combined indicator score
TECHNICAL_THRESHOLD = 0.1

HIGH_CONFIDENCE_THRESHOLD = 0.7


# =============================================================================
# Performance Analysis
# =============================================================================

DEFAULT_RISK_FREE_RATE = 0.0
DEFAULT_PERIODS_PER_YEAR = 252  # Daily bars
DEFAULT_VAR_ALPHA = 0.05
DEFAULT_ROLLING_DRAWDOWN_WINDOW = 252  # One year of daily bars


# =============================================================================
# Walk-Forward Defaults
# =============================================================================

DEFAULT_TRAINING_WINDOW = 252  # Bars
DEFAULT_TESTING_WINDOW = 63
DEFAULT_STEP_SIZE = 21
DEFAULT_OPTIMIZATION_METRIC = "sharpe_ratio"

# Metrics ranked ascending when no direction is given
LOWER_IS_BETTER_METRICS = frozenset({
    "max_drawdown",
    "max_rolling_drawdown",
    "volatility",
    "tracking_error",
})


# =============================================================================
# Monte Carlo Defaults
# =============================================================================

DEFAULT_MONTE_CARLO_TRIALS = 1000
DEFAULT_CONFIDENCE_LEVEL = 0.95
DEFAULT_MONTE_CARLO_BATCH_SIZE = 250  # Trials per RNG stream
