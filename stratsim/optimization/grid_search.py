"""
Grid Search Optimizer for Parameter Optimization.

This module implements exhaustive grid search over parameter combinations.
Every combination in the parameter space is evaluated; the result is a pure
function of the space and the objective, with no randomness involved.

Features:
- Exhaustive search in a fixed combination order
- Parallel execution across combinations (each trial owns its backtest)
- Progress logging per batch

Complexity:
- Time: O(n1 * n2 * ... * nk) where ni is the number of values for parameter i

Usage:
    from stratsim.optimization.grid_search import GridSearchOptimizer, GridSearchConfig

    optimizer = GridSearchOptimizer(
        parameter_space=space,
        objective_fn=my_objective,
        config=GridSearchConfig(metric_name="sharpe_ratio", n_jobs=4),
    )
    result = optimizer.optimize()
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from stratsim.optimization.optimizer_base import BaseOptimizer, Objective, OptimizerConfig
from stratsim.optimization.parameter_space import ParameterSpace
from stratsim.optimization.results import OptimizationResult

logger = logging.getLogger(__name__)


@dataclass
class GridSearchConfig(OptimizerConfig):
    """
    Configuration specific to grid search.

    Inherits from OptimizerConfig and adds:
        batch_size: Combinations evaluated between progress reports
        max_combinations: Maximum combinations to evaluate (0 = no limit)
    """
    batch_size: int = 100
    max_combinations: int = 0

    def __post_init__(self):
        super().__post_init__()
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")


class GridSearchOptimizer(BaseOptimizer):
    """
    Exhaustive grid search optimizer.

    Evaluates all combinations of parameter values in the search space.
    Ties on the target metric go to the combination generated first.

    Example:
        space = ParameterSpace.from_ranges({
            "stop_loss_fraction": [0.03, 0.05],
            "sensitivity": [25.0, 50.0],
        })
        optimizer = GridSearchOptimizer(space, objective)
        result = optimizer.optimize()
        print(f"Best params: {result.best_params}")
    """

    def __init__(
        self,
        parameter_space: ParameterSpace,
        objective_fn: Objective,
        config: Optional[GridSearchConfig] = None,
    ):
        config = config or GridSearchConfig()
        super().__init__(parameter_space, objective_fn, config)
        self.grid_config = config

    def _run_optimization(self) -> OptimizationResult:
        total_combinations = self.parameter_space.count_grid_combinations()
        combinations = list(self.parameter_space.get_grid_combinations())

        limit = self.grid_config.max_combinations
        if limit > 0 and total_combinations > limit:
            logger.warning(
                f"Grid has {total_combinations} combinations, limiting to {limit}"
            )
            combinations = combinations[:limit]

        total = len(combinations)
        if self.config.verbose >= 1:
            logger.info(
                f"Starting grid search with {total} combinations, "
                f"using {self.config.n_jobs} workers"
            )

        batch_size = self.grid_config.batch_size
        for batch_start in range(0, total, batch_size):
            batch = combinations[batch_start:batch_start + batch_size]
            self.evaluate_batch(batch, first_trial_id=batch_start)

            if self.config.verbose >= 1 and total > batch_size:
                done = min(batch_start + batch_size, total)
                elapsed = (datetime.now() - self._start_time).total_seconds()
                rate = done / elapsed if elapsed > 0 else 0
                eta = (total - done) / rate if rate > 0 else 0
                logger.info(
                    f"Progress: {done}/{total} ({100 * done / total:.1f}%), "
                    f"rate={rate:.1f}/s, ETA={eta:.0f}s"
                )

        result = self._build_result()

        if self.config.verbose >= 1:
            logger.info(
                f"Grid search complete: {result.successful_trials}/{result.total_trials} "
                f"trials succeeded, best {self.config.metric_name}={result.best_metric:.4f}"
            )

        return result

    def get_search_space_size(self) -> int:
        """Get total number of combinations in search space."""
        size = self.parameter_space.count_grid_combinations()
        if self.grid_config.max_combinations > 0:
            return min(size, self.grid_config.max_combinations)
        return size

    def estimate_time(self, time_per_trial: float = 1.0) -> float:
        """Estimated total seconds given seconds per trial."""
        return self.get_search_space_size() * time_per_trial / self.config.n_jobs


def run_grid_search(
    parameter_space: ParameterSpace,
    objective_fn: Objective,
    metric_name: str = "sharpe_ratio",
    higher_is_better: bool = True,
    n_jobs: int = 1,
    verbose: int = 1,
) -> OptimizationResult:
    """
    Convenience function to run grid search with default settings.

    Args:
        parameter_space: Space to search
        objective_fn: Objective function
        metric_name: Metric to optimize
        higher_is_better: Ranking direction of the metric
        n_jobs: Number of parallel workers
        verbose: Verbosity level

    Returns:
        OptimizationResult
    """
    config = GridSearchConfig(
        metric_name=metric_name,
        higher_is_better=higher_is_better,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    optimizer = GridSearchOptimizer(
        parameter_space=parameter_space,
        objective_fn=objective_fn,
        config=config,
    )
    return optimizer.optimize()
