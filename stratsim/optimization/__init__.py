"""
Parameter Optimization Framework for Strategy Backtesting.

This module provides walk-forward grid search over strategy parameters:

- Grid Search: Exhaustive, deterministic search over parameter combinations
- Walk-Forward: Grid search on a training window, evaluated out of sample
  on the adjacent testing window, repeated across the history

Typical Workflow:
    1. Declare candidate values per parameter (ParameterSpace.from_ranges)
    2. Provide a factory building a signal generator from a parameter dict
    3. Run WalkForwardOptimizer over the bar data
    4. Inspect out-of-sample consistency and parameter stability

Example:
    from stratsim.optimization import WalkForwardConfig, WalkForwardOptimizer

    optimizer = WalkForwardOptimizer(
        data=bars,
        signal_generator_factory=make_generator,
        parameter_ranges={"take_profit_fraction": [0.05, 0.10]},
        config=WalkForwardConfig(training_window=60, testing_window=20, step_size=20),
    )
    result = optimizer.run()
    print(result.summary())
"""

from stratsim.optimization.parameter_space import (
    ParameterConfig,
    ParameterSpace,
    ParameterType,
    DefaultParameterSpaces,
)
from stratsim.optimization.results import (
    OptimizationResult,
    OptimizationStatus,
    TrialResult,
)
from stratsim.optimization.optimizer_base import (
    BaseOptimizer,
    OptimizerConfig,
    create_backtest_objective,
    run_backtest_with_params,
    split_params,
)
from stratsim.optimization.grid_search import (
    GridSearchConfig,
    GridSearchOptimizer,
    run_grid_search,
)
from stratsim.optimization.walk_forward import (
    WalkForwardConfig,
    WalkForwardOptimizer,
    WalkForwardResult,
    WalkForwardWindow,
    WindowResult,
    calculate_consistency,
    calculate_parameter_stability,
    generate_windows,
    run_walk_forward,
)

__all__ = [
    # Parameter space
    "ParameterConfig",
    "ParameterSpace",
    "ParameterType",
    "DefaultParameterSpaces",
    # Results
    "OptimizationResult",
    "OptimizationStatus",
    "TrialResult",
    # Base
    "BaseOptimizer",
    "OptimizerConfig",
    "create_backtest_objective",
    "run_backtest_with_params",
    "split_params",
    # Grid search
    "GridSearchConfig",
    "GridSearchOptimizer",
    "run_grid_search",
    # Walk-forward
    "WalkForwardConfig",
    "WalkForwardOptimizer",
    "WalkForwardResult",
    "WalkForwardWindow",
    "WindowResult",
    "calculate_consistency",
    "calculate_parameter_stability",
    "generate_windows",
    "run_walk_forward",
]
