"""
Shared utilities library for the simulator.

This module provides common utilities used across the codebase:
- constants: Documented defaults for execution, signals and resampling
- config: Unified configuration loading from YAML and environment variables
- logging: Structured logging with rotation and formatting
"""

from stratsim.lib.config import (
    SimulationConfig,
    DataSettings,
    BacktestSettings,
    SignalSettings,
    WalkForwardSettings,
    MonteCarloSettings,
    OutputSettings,
    ConfigValidationError,
    load_config,
    validate_config,
    config_to_dict,
    save_config,
)

from stratsim.lib.logging_utils import (
    SimulationFormatter,
    BacktestLogger,
    setup_logging,
    get_logger,
)

__all__ = [
    # Config
    "SimulationConfig",
    "DataSettings",
    "BacktestSettings",
    "SignalSettings",
    "WalkForwardSettings",
    "MonteCarloSettings",
    "OutputSettings",
    "ConfigValidationError",
    "load_config",
    "validate_config",
    "config_to_dict",
    "save_config",
    # Logging
    "SimulationFormatter",
    "BacktestLogger",
    "setup_logging",
    "get_logger",
]
