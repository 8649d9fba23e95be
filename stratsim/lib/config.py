"""
Unified configuration management.

This module provides a centralized way to load, validate, and access
configuration for the simulator. It supports:
- YAML file loading
- Environment variable overrides
- Type validation via dataclasses
- Default values from constants

Configuration Hierarchy (highest to lowest priority):
1. Environment variables (STRATSIM_*)
2. User-provided config file
3. Default values from constants.py

Example usage:
    # Load config with environment overrides
    config = load_config("config/backtest.yaml")

    # Access typed config sections
    print(config.backtest.initial_capital)
    print(config.walk_forward.training_window)
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

from stratsim.lib.constants import (
    # Account / execution
    DEFAULT_INITIAL_CAPITAL,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_SLIPPAGE_RATE,
    DEFAULT_MAX_OPEN_POSITIONS,
    DEFAULT_STOP_LOSS_FRACTION,
    DEFAULT_TAKE_PROFIT_FRACTION,
    # Sizing
    POSITION_SIZING_METHODS,
    DEFAULT_POSITION_SIZING,
    DEFAULT_FIXED_FRACTION,
    DEFAULT_RISK_PER_TRADE,
    # Signals
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_MIN_HISTORY,
    DEFAULT_FEATURE_LOOKBACK,
    # Analysis
    DEFAULT_RISK_FREE_RATE,
    DEFAULT_PERIODS_PER_YEAR,
    # Walk-forward
    DEFAULT_TRAINING_WINDOW,
    DEFAULT_TESTING_WINDOW,
    DEFAULT_STEP_SIZE,
    DEFAULT_OPTIMIZATION_METRIC,
    # Monte Carlo
    DEFAULT_MONTE_CARLO_TRIALS,
    DEFAULT_CONFIDENCE_LEVEL,
)


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class DataSettings:
    """Configuration for historical data selection."""
    # Long-format CSV of bars (symbol,timestamp,open,high,low,close,volume)
    bars_path: Optional[str] = None
    symbols: List[str] = field(default_factory=list)
    # Trading period (bars before start_date are history only)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@dataclass
class BacktestSettings:
    """Configuration for the execution simulator."""
    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    commission_rate: float = DEFAULT_COMMISSION_RATE
    slippage_rate: float = DEFAULT_SLIPPAGE_RATE
    max_open_positions: int = DEFAULT_MAX_OPEN_POSITIONS
    stop_loss_fraction: float = DEFAULT_STOP_LOSS_FRACTION
    take_profit_fraction: float = DEFAULT_TAKE_PROFIT_FRACTION
    # Sizing: 'fixed', 'percentage', 'kelly'
    position_sizing: str = DEFAULT_POSITION_SIZING
    fixed_fraction: float = DEFAULT_FIXED_FRACTION
    risk_per_trade: float = DEFAULT_RISK_PER_TRADE
    # Analysis
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR
    # Symbol compared against as buy-and-hold (need not be traded)
    benchmark_symbol: Optional[str] = None


@dataclass
class SignalSettings:
    """Configuration for signal generation."""
    # Algorithm family of the predictor ('linear_regression', 'naive_bayes', ...)
    algorithm_type: str = "technical_indicators"
    # Reference predictor used by the scripts: 'trend_following', 'mean_reversion'
    predictor: str = "trend_following"
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    min_history: int = DEFAULT_MIN_HISTORY
    lookback: int = DEFAULT_FEATURE_LOOKBACK


@dataclass
class WalkForwardSettings:
    """Configuration for walk-forward optimization."""
    training_window: int = DEFAULT_TRAINING_WINDOW
    testing_window: int = DEFAULT_TESTING_WINDOW
    step_size: int = DEFAULT_STEP_SIZE
    metric_name: str = DEFAULT_OPTIMIZATION_METRIC
    n_jobs: int = 1
    # Parameter name -> list of candidate values
    parameter_ranges: Dict[str, List[Any]] = field(default_factory=dict)


@dataclass
class MonteCarloSettings:
    """Configuration for Monte Carlo resampling."""
    n_trials: int = DEFAULT_MONTE_CARLO_TRIALS
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    random_seed: Optional[int] = None
    n_workers: int = 1


@dataclass
class OutputSettings:
    """Configuration for output and logging."""
    output_dir: str = "./results"
    logs_dir: str = "./logs"
    save_trades: bool = True
    log_level: str = "INFO"
    verbose: bool = False


@dataclass
class SimulationConfig:
    """Main configuration container."""
    data: DataSettings = field(default_factory=DataSettings)
    backtest: BacktestSettings = field(default_factory=BacktestSettings)
    signals: SignalSettings = field(default_factory=SignalSettings)
    walk_forward: WalkForwardSettings = field(default_factory=WalkForwardSettings)
    monte_carlo: MonteCarloSettings = field(default_factory=MonteCarloSettings)
    output: OutputSettings = field(default_factory=OutputSettings)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(
    config_path: Optional[str] = None,
    override_env: bool = True
) -> SimulationConfig:
    """
    Load configuration from YAML file with optional environment overrides.

    Args:
        config_path: Path to YAML config file (optional)
        override_env: If True, apply environment variable overrides

    Returns:
        SimulationConfig instance

    Example:
        config = load_config("config/backtest.yaml")
        print(config.backtest.commission_rate)  # 0.001
    """
    config = SimulationConfig()

    if config_path:
        config = _load_from_yaml(config_path, config)

    if override_env:
        config = _apply_env_overrides(config)

    return config


def _load_from_yaml(config_path: str, base_config: SimulationConfig) -> SimulationConfig:
    """Load configuration from YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        yaml_data = yaml.safe_load(f)

    if yaml_data is None:
        return base_config

    if "data" in yaml_data:
        base_config.data = _update_dataclass(base_config.data, yaml_data["data"])

    if "backtest" in yaml_data:
        base_config.backtest = _update_dataclass(base_config.backtest, yaml_data["backtest"])

    if "signals" in yaml_data:
        base_config.signals = _update_dataclass(base_config.signals, yaml_data["signals"])

    if "walk_forward" in yaml_data:
        base_config.walk_forward = _update_dataclass(base_config.walk_forward, yaml_data["walk_forward"])

    if "monte_carlo" in yaml_data:
        base_config.monte_carlo = _update_dataclass(base_config.monte_carlo, yaml_data["monte_carlo"])

    if "output" in yaml_data:
        base_config.output = _update_dataclass(base_config.output, yaml_data["output"])

    # Top-level shortcut shared by every random component
    if "seed" in yaml_data:
        base_config.monte_carlo.random_seed = yaml_data["seed"]

    return base_config


def _update_dataclass(instance: Any, data: dict) -> Any:
    """Update dataclass fields from dictionary."""
    if not data:
        return instance

    field_names = {f.name for f in instance.__dataclass_fields__.values()}

    for key, value in data.items():
        # Accept 'stop-loss.fraction' style keys as 'stop_loss_fraction'
        normalized_key = key.replace(".", "_").replace("-", "_")

        if normalized_key in field_names:
            setattr(instance, normalized_key, value)
        elif key in field_names:
            setattr(instance, key, value)

    return instance


def _apply_env_overrides(config: SimulationConfig) -> SimulationConfig:
    """Apply environment variable overrides to config."""

    if env_val := os.getenv("STRATSIM_INITIAL_CAPITAL"):
        config.backtest.initial_capital = float(env_val)

    if env_val := os.getenv("STRATSIM_COMMISSION_RATE"):
        config.backtest.commission_rate = float(env_val)

    if env_val := os.getenv("STRATSIM_SLIPPAGE_RATE"):
        config.backtest.slippage_rate = float(env_val)

    if env_val := os.getenv("STRATSIM_CONFIDENCE_FLOOR"):
        config.signals.confidence_floor = float(env_val)

    if env_val := os.getenv("STRATSIM_RANDOM_SEED"):
        config.monte_carlo.random_seed = int(env_val)

    if env_val := os.getenv("STRATSIM_N_JOBS"):
        config.walk_forward.n_jobs = int(env_val)

    # Data
    if env_val := os.getenv("STRATSIM_BARS_PATH"):
        config.data.bars_path = env_val

    if env_val := os.getenv("STRATSIM_SYMBOLS"):
        config.data.symbols = [s.strip() for s in env_val.split(",") if s.strip()]

    # Output
    if env_val := os.getenv("STRATSIM_OUTPUT_DIR"):
        config.output.output_dir = env_val

    if env_val := os.getenv("STRATSIM_LOG_LEVEL"):
        config.output.log_level = env_val.upper()

    return config


# =============================================================================
# Configuration Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


def validate_config(config: SimulationConfig) -> List[str]:
    """
    Validate configuration values.

    Args:
        config: SimulationConfig to validate

    Returns:
        List of validation warnings (empty if valid)

    Raises:
        ConfigValidationError: If critical validation fails
    """
    # Deferred: the signals package imports this module for the error type
    from stratsim.signals.strategies import ALGORITHM_FAMILIES

    warnings = []
    errors = []

    bt = config.backtest

    # Execution validation
    if bt.initial_capital <= 0:
        errors.append(f"initial_capital ({bt.initial_capital}) must be positive")

    if bt.commission_rate < 0:
        errors.append("commission_rate cannot be negative")

    if bt.slippage_rate < 0:
        errors.append("slippage_rate cannot be negative")

    if bt.max_open_positions < 1:
        errors.append(f"max_open_positions ({bt.max_open_positions}) must be >= 1")

    if not 0 < bt.stop_loss_fraction < 1:
        errors.append(f"stop_loss_fraction ({bt.stop_loss_fraction}) must be in (0, 1)")

    if bt.take_profit_fraction <= 0:
        errors.append(f"take_profit_fraction ({bt.take_profit_fraction}) must be positive")

    if bt.position_sizing not in POSITION_SIZING_METHODS:
        errors.append(
            f"position_sizing '{bt.position_sizing}' must be one of {POSITION_SIZING_METHODS}"
        )

    if bt.commission_rate > 0.01:
        warnings.append(
            f"commission_rate ({bt.commission_rate}) above 1% per side will dominate "
            f"most strategies' edge"
        )

    if bt.take_profit_fraction < bt.stop_loss_fraction:
        warnings.append(
            f"take_profit_fraction ({bt.take_profit_fraction}) below stop_loss_fraction "
            f"({bt.stop_loss_fraction}) requires a win rate above 50% to break even"
        )

    # Signal validation
    sig = config.signals
    if sig.algorithm_type not in ALGORITHM_FAMILIES:
        errors.append(
            f"algorithm_type '{sig.algorithm_type}' is unknown; "
            f"expected one of {sorted(ALGORITHM_FAMILIES)}"
        )

    if not 0 <= sig.confidence_floor <= 1:
        errors.append(f"confidence_floor ({sig.confidence_floor}) must be in [0, 1]")

    if sig.confidence_floor < 0.5:
        warnings.append(
            f"confidence_floor ({sig.confidence_floor}) below 0.5 may lead to "
            f"excessive trading on weak signals"
        )

    if sig.min_history < 0:
        errors.append("min_history cannot be negative")

    # Data validation
    data = config.data
    if data.start_date and data.end_date:
        if pd.Timestamp(data.end_date) < pd.Timestamp(data.start_date):
            errors.append(
                f"end_date ({data.end_date}) must not be before start_date ({data.start_date})"
            )

    # Walk-forward validation
    wf = config.walk_forward
    if wf.training_window < 1 or wf.testing_window < 1 or wf.step_size < 1:
        errors.append("training_window, testing_window and step_size must be >= 1")

    if wf.step_size < wf.testing_window:
        warnings.append(
            f"step_size ({wf.step_size}) below testing_window ({wf.testing_window}) "
            f"makes out-of-sample ranges overlap"
        )

    for name, values in wf.parameter_ranges.items():
        if not values:
            errors.append(f"parameter_ranges['{name}'] has no candidate values")

    # Monte Carlo validation
    mc = config.monte_carlo
    if mc.n_trials < 1:
        errors.append(f"n_trials ({mc.n_trials}) must be >= 1")

    if not 0 < mc.confidence_level < 1:
        errors.append(f"confidence_level ({mc.confidence_level}) must be in (0, 1)")

    if mc.n_trials < 100:
        warnings.append(
            f"n_trials ({mc.n_trials}) below 100 gives unstable percentile estimates"
        )

    if errors:
        raise ConfigValidationError("Configuration validation failed:\n" +
                                   "\n".join(f"  - {e}" for e in errors))

    return warnings


# =============================================================================
# Configuration Export
# =============================================================================

def config_to_dict(config: SimulationConfig) -> dict:
    """
    Convert SimulationConfig to dictionary for serialization.

    Args:
        config: Configuration to convert

    Returns:
        Dictionary representation (YAML-safe)
    """
    return asdict(config)


def save_config(config: SimulationConfig, path: str) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        path: Output file path
    """
    data = config_to_dict(config)

    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
