"""
Base Optimizer Class for Parameter Optimization.

This module defines the abstract base class for optimization strategies.
It provides:
- Common interface for optimization
- Trial evaluation with failure capture
- Deterministic results aggregation
- The bridge from a parameter dict to a backtest run

Usage:
    class MyOptimizer(BaseOptimizer):
        def _run_optimization(self) -> OptimizationResult:
            ...
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from stratsim.backtest.engine import BacktestConfig, BacktestEngine, BacktestResult
from stratsim.backtest.sizing import SizingHook
from stratsim.optimization.parameter_space import ParameterSpace
from stratsim.optimization.results import (
    OptimizationResult,
    OptimizationStatus,
    TrialResult,
)

logger = logging.getLogger(__name__)

Objective = Callable[[Dict[str, Any]], Dict[str, float]]
SignalGeneratorFactory = Callable[[Dict[str, Any]], Any]


@dataclass
class OptimizerConfig:
    """
    Configuration for optimizer behavior.

    Attributes:
        metric_name: Target metric to optimize (sharpe_ratio, calmar_ratio, etc.)
        higher_is_better: Whether higher metric values are better
        n_jobs: Number of parallel workers (1 = sequential)
        verbose: Verbosity level (0=quiet, 1=progress, 2=detailed)
    """
    metric_name: str = "sharpe_ratio"
    higher_is_better: bool = True
    n_jobs: int = 1
    verbose: int = 1

    def __post_init__(self):
        if self.n_jobs < 1:
            raise ValueError(f"n_jobs must be at least 1, got {self.n_jobs}")


class BaseOptimizer(ABC):
    """
    Abstract base class for parameter optimizers.

    Trial ids are assigned from the order of the candidate list, and the best
    trial is chosen from the id-sorted results, so parallel and sequential
    runs over the same candidates report the same winner.

    Subclasses must implement the `_run_optimization` method.
    """

    def __init__(
        self,
        parameter_space: ParameterSpace,
        objective_fn: Objective,
        config: Optional[OptimizerConfig] = None,
    ):
        """
        Initialize the optimizer.

        Args:
            parameter_space: Parameter space to optimize over
            objective_fn: Function that takes params and returns a metrics dict
            config: Optimizer configuration
        """
        self.parameter_space = parameter_space
        self.objective_fn = objective_fn
        self.config = config or OptimizerConfig()

        self._results: List[TrialResult] = []
        self._start_time: Optional[datetime] = None
        self._end_time: Optional[datetime] = None
        self._lock = threading.Lock()

    @abstractmethod
    def _run_optimization(self) -> OptimizationResult:
        """Run the search and return the aggregated result."""

    def optimize(self) -> OptimizationResult:
        """
        Run optimization and return results.

        Individual trial failures are recorded as failed trials. An error in
        the search itself is logged and returned as a result with empty
        best_params and the message under config['error'].
        """
        with self._lock:
            self._results = []
        self._start_time = datetime.now()

        try:
            result = self._run_optimization()
        except Exception as e:
            logger.error(f"Optimization failed: {e}", exc_info=True)
            self._end_time = datetime.now()
            return self._build_failed_result(str(e))

        self._end_time = datetime.now()
        result.start_time = self._start_time
        result.end_time = self._end_time
        return result

    def evaluate_params(self, params: Dict[str, Any], trial_id: int) -> TrialResult:
        """
        Evaluate a single parameter combination.

        Args:
            params: Parameter values to evaluate
            trial_id: Id of the trial

        Returns:
            TrialResult; status 'failed' with error_message when the params
            are invalid, the objective raises, or the target metric is
            missing or NaN
        """
        started = time.perf_counter()

        valid, errors = self.parameter_space.validate_params(params)
        if not valid:
            return TrialResult(
                trial_id=trial_id,
                params=params,
                status=OptimizationStatus.FAILED.value,
                error_message=f"Invalid params: {errors}",
            )

        try:
            metrics = self.objective_fn(params)
        except Exception as e:
            logger.warning(f"Trial {trial_id} failed: {e}")
            return TrialResult(
                trial_id=trial_id,
                params=params,
                status=OptimizationStatus.FAILED.value,
                error_message=str(e),
                duration_seconds=time.perf_counter() - started,
            )

        duration = time.perf_counter() - started
        value = metrics.get(self.config.metric_name)
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return TrialResult(
                trial_id=trial_id,
                params=params,
                metrics=metrics,
                status=OptimizationStatus.FAILED.value,
                error_message=f"Objective returned no usable '{self.config.metric_name}'",
                duration_seconds=duration,
            )

        if self.config.verbose >= 2:
            logger.debug(f"Trial {trial_id}: {self.config.metric_name}={value:.4f} params={params}")

        return TrialResult(
            trial_id=trial_id,
            params=params,
            metrics=metrics,
            duration_seconds=duration,
        )

    def evaluate_batch(
        self,
        param_list: List[Dict[str, Any]],
        first_trial_id: int = 0,
    ) -> List[TrialResult]:
        """
        Evaluate multiple parameter combinations.

        Runs on a thread pool when n_jobs > 1. Results are returned and
        recorded in trial-id order either way.

        Args:
            param_list: List of parameter dicts to evaluate
            first_trial_id: Trial id of param_list[0]

        Returns:
            List of TrialResult sorted by trial_id
        """
        trial_ids = range(first_trial_id, first_trial_id + len(param_list))

        if self.config.n_jobs == 1 or len(param_list) <= 1:
            results = [
                self.evaluate_params(params, trial_id)
                for params, trial_id in zip(param_list, trial_ids)
            ]
        else:
            with ThreadPoolExecutor(max_workers=self.config.n_jobs) as executor:
                results = list(executor.map(self.evaluate_params, param_list, trial_ids))

        results.sort(key=lambda r: r.trial_id)
        with self._lock:
            self._results.extend(results)
        return results

    def _build_result(self) -> OptimizationResult:
        """Build optimization result from the recorded trials."""
        with self._lock:
            trials = sorted(self._results, key=lambda r: r.trial_id)

        result = OptimizationResult(
            best_params={},
            best_metric=0.0,
            metric_name=self.config.metric_name,
            higher_is_better=self.config.higher_is_better,
            all_results=trials,
            parameter_space_name=self.parameter_space.name,
            optimizer_type=self.__class__.__name__,
            config={
                "metric_name": self.config.metric_name,
                "higher_is_better": self.config.higher_is_better,
                "n_jobs": self.config.n_jobs,
            },
        )

        best = result.get_best_trial()
        if best is not None:
            result.best_params = dict(best.params)
            result.best_metric = best.get_metric(self.config.metric_name)
            if self.config.verbose >= 1:
                logger.info(
                    f"Best {self.config.metric_name}={result.best_metric:.4f} "
                    f"params={result.best_params}"
                )
        else:
            logger.warning(f"No successful trials out of {len(trials)}")

        return result

    def _build_failed_result(self, error_message: str) -> OptimizationResult:
        with self._lock:
            trials = sorted(self._results, key=lambda r: r.trial_id)
        return OptimizationResult(
            best_params={},
            best_metric=0.0,
            metric_name=self.config.metric_name,
            higher_is_better=self.config.higher_is_better,
            all_results=trials,
            parameter_space_name=self.parameter_space.name,
            optimizer_type=self.__class__.__name__,
            start_time=self._start_time,
            end_time=self._end_time,
            config={"error": error_message},
        )

    def get_trial_count(self) -> int:
        with self._lock:
            return len(self._results)


# =============================================================================
# Backtest bridge
# =============================================================================

_CONFIG_FIELDS = {f.name for f in fields(BacktestConfig)}


def split_params(
    params: Dict[str, Any],
    base_config: Optional[BacktestConfig] = None,
) -> Tuple[BacktestConfig, Dict[str, Any]]:
    """
    Route a parameter set into an engine config.

    Parameters named after BacktestConfig fields override the base config;
    the rest are returned for the signal generator factory.

    Raises:
        ConfigValidationError: If an overridden value is invalid
    """
    base_config = base_config or BacktestConfig()
    overrides = {k: v for k, v in params.items() if k in _CONFIG_FIELDS}
    remaining = {k: v for k, v in params.items() if k not in _CONFIG_FIELDS}
    config = replace(base_config, **overrides) if overrides else base_config
    return config, remaining


def run_backtest_with_params(
    data: Dict[str, pd.DataFrame],
    signal_generator_factory: SignalGeneratorFactory,
    params: Dict[str, Any],
    base_config: Optional[BacktestConfig] = None,
    sizing_hook: Optional[SizingHook] = None,
    symbols: Optional[Sequence[str]] = None,
    start_date: Any = None,
    end_date: Any = None,
) -> BacktestResult:
    """
    Run one backtest for a parameter set on a fresh engine.

    The factory receives the full parameter dict, including the entries
    that were routed into the engine config.
    """
    config, _ = split_params(params, base_config)
    engine = BacktestEngine(config, sizing_hook=sizing_hook)
    signal_generator = signal_generator_factory(params)
    return engine.run(
        data,
        signal_generator,
        symbols=symbols,
        start_date=start_date,
        end_date=end_date,
    )


def create_backtest_objective(
    data: Dict[str, pd.DataFrame],
    signal_generator_factory: SignalGeneratorFactory,
    base_config: Optional[BacktestConfig] = None,
    sizing_hook: Optional[SizingHook] = None,
    start_date: Any = None,
    end_date: Any = None,
    symbols: Optional[Sequence[str]] = None,
) -> Objective:
    """
    Create an objective function for backtesting optimization.

    The returned function:
    1. Routes engine parameters into a copy of `base_config`
    2. Builds a signal generator from the full parameter dict
    3. Runs a backtest on its own engine instance
    4. Returns the flat numeric performance metrics

    Each call owns its engine and state, so the objective is safe to call
    from several threads at once.

    Args:
        data: Symbol -> OHLCV frame
        signal_generator_factory: Creates a signal generator from params
        base_config: Engine config the parameters override
        sizing_hook: Optional external sizing hook
        start_date: First tradable timestamp (earlier bars are history)
        end_date: Last timestamp simulated
        symbols: Symbols to trade (default: all in data)

    Example:
        def make_generator(params):
            predictor = create_reference_predictor("trend_following", **params)
            return SignalGenerator(predictor, "linear_regression")

        objective = create_backtest_objective(data, make_generator)
        optimizer = GridSearchOptimizer(space, objective)
    """
    def objective(params: Dict[str, Any]) -> Dict[str, float]:
        result = run_backtest_with_params(
            data,
            signal_generator_factory,
            params,
            base_config=base_config,
            sizing_hook=sizing_hook,
            symbols=symbols,
            start_date=start_date,
            end_date=end_date,
        )
        return {k: float(v) for k, v in result.metrics.to_flat_dict().items()}

    return objective
