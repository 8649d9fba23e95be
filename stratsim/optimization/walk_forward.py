"""
Walk-Forward Optimizer for Time-Series Strategy Parameters.

Walk-forward optimization keeps temporal ordering intact: parameters are
chosen on a training window and judged on the testing window right after
it, then both windows slide forward.

Walk-Forward Process (bar indices of the unified timeline):
    Window 0: [====TRAIN====][TEST]
    Window 1:      [====TRAIN====][TEST]
    Window 2:           [====TRAIN====][TEST]
    ...

Window w starts at bar w * step_size; training covers
[start, start + training_window) and testing the following testing_window
bars. Bars before a slice are available to the signal generator as
history, never as tradable bars.

Usage:
    from stratsim.optimization.walk_forward import WalkForwardOptimizer, WalkForwardConfig

    config = WalkForwardConfig(training_window=252, testing_window=63, step_size=63)
    optimizer = WalkForwardOptimizer(
        data=bars,
        signal_generator_factory=make_generator,
        parameter_ranges={"stop_loss_fraction": [0.03, 0.05]},
        config=config,
    )
    result = optimizer.run()
    print(result.summary())
"""

import json
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from stratsim.backtest.engine import BacktestConfig, BacktestResult
from stratsim.backtest.sizing import SizingHook
from stratsim.lib.config import ConfigValidationError, SimulationConfig, WalkForwardSettings
from stratsim.lib.constants import (
    DEFAULT_OPTIMIZATION_METRIC,
    DEFAULT_STEP_SIZE,
    DEFAULT_TESTING_WINDOW,
    DEFAULT_TRAINING_WINDOW,
    LOWER_IS_BETTER_METRICS,
)
from stratsim.optimization.grid_search import GridSearchConfig, GridSearchOptimizer
from stratsim.optimization.optimizer_base import (
    SignalGeneratorFactory,
    create_backtest_objective,
    run_backtest_with_params,
)
from stratsim.optimization.parameter_space import ParameterSpace
from stratsim.optimization.results import OptimizationResult

logger = logging.getLogger(__name__)


@dataclass
class WalkForwardConfig:
    """
    Configuration for walk-forward optimization.

    Attributes:
        training_window: Bars in each training slice
        testing_window: Bars in each testing slice
        step_size: Bars the window pair advances per step
        metric_name: Metric the grid search optimizes on training slices
        higher_is_better: Ranking direction of the metric; derived from
            metric_name when left as None
        n_jobs: Windows evaluated in parallel
        grid_n_jobs: Parameter combinations evaluated in parallel per window
        verbose: Verbosity level (0=quiet, 1=per-window logging)
    """
    training_window: int = DEFAULT_TRAINING_WINDOW
    testing_window: int = DEFAULT_TESTING_WINDOW
    step_size: int = DEFAULT_STEP_SIZE
    metric_name: str = DEFAULT_OPTIMIZATION_METRIC
    higher_is_better: Optional[bool] = None
    n_jobs: int = 1
    grid_n_jobs: int = 1
    verbose: int = 1

    def __post_init__(self):
        if self.higher_is_better is None:
            self.higher_is_better = self.metric_name not in LOWER_IS_BETTER_METRICS
        errors = []
        for name in ("training_window", "testing_window", "step_size", "n_jobs", "grid_n_jobs"):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be at least 1, got {getattr(self, name)}")
        if errors:
            raise ConfigValidationError("; ".join(errors))

    @classmethod
    def from_settings(cls, settings) -> "WalkForwardConfig":
        """Build from a SimulationConfig or its WalkForwardSettings section."""
        if isinstance(settings, SimulationConfig):
            settings = settings.walk_forward
        if not isinstance(settings, WalkForwardSettings):
            raise TypeError(
                f"Expected SimulationConfig or WalkForwardSettings, got {type(settings).__name__}"
            )
        return cls(
            training_window=settings.training_window,
            testing_window=settings.testing_window,
            step_size=settings.step_size,
            metric_name=settings.metric_name,
            n_jobs=settings.n_jobs,
        )


@dataclass
class WalkForwardWindow:
    """
    One training/testing window pair.

    Index bounds are half-open positions in the unified timeline; the
    timestamps are the first and last bar of each slice (inclusive).
    """
    window_id: int
    train_start_idx: int
    train_end_idx: int
    test_start_idx: int
    test_end_idx: int
    train_start: Optional[pd.Timestamp] = None
    train_end: Optional[pd.Timestamp] = None
    test_start: Optional[pd.Timestamp] = None
    test_end: Optional[pd.Timestamp] = None

    def to_dict(self) -> Dict[str, Any]:
        def fmt(ts):
            return ts.isoformat() if ts is not None else None

        return {
            "window_id": self.window_id,
            "train_bars": [self.train_start_idx, self.train_end_idx],
            "test_bars": [self.test_start_idx, self.test_end_idx],
            "train_start": fmt(self.train_start),
            "train_end": fmt(self.train_end),
            "test_start": fmt(self.test_start),
            "test_end": fmt(self.test_end),
        }


def generate_windows(
    n_bars: int,
    training_window: int,
    testing_window: int,
    step_size: int,
    timeline: Optional[pd.DatetimeIndex] = None,
) -> List[WalkForwardWindow]:
    """
    Slide a training/testing pair across n_bars.

    Produces floor((n_bars - train - test) / step) + 1 windows when
    n_bars >= train + test, otherwise none.

    Args:
        n_bars: Length of the unified timeline
        training_window: Bars per training slice
        testing_window: Bars per testing slice
        step_size: Advance per window
        timeline: Timestamps used to label each slice

    Returns:
        Windows in chronological order
    """
    span = training_window + testing_window
    if n_bars < span:
        return []

    windows = []
    n_windows = (n_bars - span) // step_size + 1
    for w in range(n_windows):
        start = w * step_size
        window = WalkForwardWindow(
            window_id=w,
            train_start_idx=start,
            train_end_idx=start + training_window,
            test_start_idx=start + training_window,
            test_end_idx=start + span,
        )
        if timeline is not None:
            window.train_start = timeline[window.train_start_idx]
            window.train_end = timeline[window.train_end_idx - 1]
            window.test_start = timeline[window.test_start_idx]
            window.test_end = timeline[window.test_end_idx - 1]
        windows.append(window)

    return windows


@dataclass
class WindowResult:
    """
    Outcome of one window: the parameters chosen on the training slice and
    the out-of-sample performance they delivered.

    Attributes:
        window: Window bounds
        best_params: Winning parameter set ({} on failure)
        train_metric: Target metric of the winner on the training slice
        test_metrics: Flat metrics of the testing-slice backtest
        optimization: Full grid search result on the training slice
        test_result: Testing-slice backtest
        error: Failure message; set when the window could not be evaluated
    """
    window: WalkForwardWindow
    best_params: Dict[str, Any] = field(default_factory=dict)
    train_metric: float = 0.0
    test_metrics: Dict[str, float] = field(default_factory=dict)
    optimization: Optional[OptimizationResult] = None
    test_result: Optional[BacktestResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def total_return(self) -> float:
        return self.test_metrics.get("total_return", 0.0)

    @property
    def sharpe_ratio(self) -> float:
        return self.test_metrics.get("sharpe_ratio", 0.0)

    @property
    def max_drawdown(self) -> float:
        return self.test_metrics.get("max_drawdown", 0.0)

    @property
    def n_trades(self) -> int:
        return int(self.test_metrics.get("total_trades", 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window": self.window.to_dict(),
            "best_params": self.best_params,
            "train_metric": self.train_metric,
            "test_metrics": self.test_metrics,
            "error": self.error,
        }


def calculate_consistency(returns: Sequence[float]) -> float:
    """
    Consistency of out-of-sample returns: 1 - std / |mean|.

    Population standard deviation. Returns 0 when there are no returns or
    the mean is exactly zero.
    """
    if len(returns) == 0:
        return 0.0
    values = np.asarray(returns, dtype=np.float64)
    mean = float(np.mean(values))
    if mean == 0:
        return 0.0
    return 1.0 - float(np.std(values)) / abs(mean)


def calculate_parameter_stability(
    param_sets: Sequence[Dict[str, Any]],
) -> Dict[str, Dict[str, Any]]:
    """
    How much each chosen parameter moved across windows.

    Numeric parameters report mean, std, median and the coefficient of
    variation. Every parameter reports its most common value and how often
    it was chosen.
    """
    names = []
    for params in param_sets:
        for name in params:
            if name not in names:
                names.append(name)

    stability = {}
    for name in names:
        values = [p[name] for p in param_sets if name in p]
        counts = Counter(repr(v) for v in values)
        top_repr, top_count = counts.most_common(1)[0]
        mode = next(v for v in values if repr(v) == top_repr)
        entry: Dict[str, Any] = {
            "most_common": mode,
            "frequency": top_count / len(values),
            "n_distinct": len(counts),
        }

        numeric = [
            float(v) for v in values
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        ]
        if len(numeric) == len(values):
            mean = float(np.mean(numeric))
            std = float(np.std(numeric))
            entry.update({
                "mean": mean,
                "std": std,
                "median": float(np.median(numeric)),
                "cv": std / abs(mean) if mean != 0 else 0.0,
            })
        stability[name] = entry

    return stability


@dataclass
class WalkForwardResult:
    """
    Aggregated out-of-sample results from walk-forward optimization.

    Aggregates cover successful windows only; failed windows stay in
    `window_results` with their error.
    """
    window_results: List[WindowResult]
    config: WalkForwardConfig
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    mean_return: float = 0.0
    median_return: float = 0.0
    best_return: float = 0.0
    worst_return: float = 0.0
    mean_sharpe: float = 0.0
    median_sharpe: float = 0.0
    best_sharpe: float = 0.0
    worst_sharpe: float = 0.0
    avg_max_drawdown: float = 0.0
    window_win_rate: float = 0.0
    consistency: float = 0.0
    total_trades: int = 0
    parameter_stability: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        self._aggregate()

    def _aggregate(self) -> None:
        ok = self.successful_windows
        if not ok:
            return

        returns = np.array([r.total_return for r in ok], dtype=np.float64)
        sharpes = np.array([r.sharpe_ratio for r in ok], dtype=np.float64)

        self.mean_return = float(np.mean(returns))
        self.median_return = float(np.median(returns))
        self.best_return = float(np.max(returns))
        self.worst_return = float(np.min(returns))
        self.mean_sharpe = float(np.mean(sharpes))
        self.median_sharpe = float(np.median(sharpes))
        self.best_sharpe = float(np.max(sharpes))
        self.worst_sharpe = float(np.min(sharpes))
        self.avg_max_drawdown = float(np.mean([r.max_drawdown for r in ok]))
        self.window_win_rate = float(np.mean(returns > 0))
        self.consistency = calculate_consistency(returns)
        self.total_trades = sum(r.n_trades for r in ok)
        self.parameter_stability = calculate_parameter_stability(
            [r.best_params for r in ok]
        )

    @property
    def n_windows(self) -> int:
        return len(self.window_results)

    @property
    def successful_windows(self) -> List[WindowResult]:
        return [r for r in self.window_results if r.succeeded]

    @property
    def failed_windows(self) -> List[WindowResult]:
        return [r for r in self.window_results if not r.succeeded]

    @property
    def recommended_params(self) -> Dict[str, Any]:
        """Median of numeric parameters, most common value otherwise."""
        params = {}
        for name, entry in self.parameter_stability.items():
            params[name] = entry["median"] if "median" in entry else entry["most_common"]
        return params

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "=" * 60,
            "WALK-FORWARD OPTIMIZATION RESULTS",
            "=" * 60,
            f"Windows: {len(self.successful_windows)}/{self.n_windows} successful",
            f"Train/Test/Step: {self.config.training_window}/"
            f"{self.config.testing_window}/{self.config.step_size} bars",
            f"Metric: {self.config.metric_name}",
            "",
            "OUT-OF-SAMPLE PERFORMANCE:",
            f"  Return  mean {self.mean_return:.2%}  median {self.median_return:.2%}  "
            f"best {self.best_return:.2%}  worst {self.worst_return:.2%}",
            f"  Sharpe  mean {self.mean_sharpe:.3f}  median {self.median_sharpe:.3f}  "
            f"best {self.best_sharpe:.3f}  worst {self.worst_sharpe:.3f}",
            f"  Avg Max Drawdown: {self.avg_max_drawdown:.2%}",
            f"  Profitable Windows: {self.window_win_rate:.1%}",
            f"  Consistency: {self.consistency:.3f}",
            f"  Total Trades: {self.total_trades}",
            "",
            "PARAMETER STABILITY:",
        ]

        for name, entry in self.parameter_stability.items():
            lines.append(
                f"  {name}: most common {entry['most_common']} "
                f"({entry['frequency']:.0%} of windows)"
            )

        for failed in self.failed_windows:
            lines.append(f"  window {failed.window.window_id} FAILED: {failed.error}")

        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": {
                "training_window": self.config.training_window,
                "testing_window": self.config.testing_window,
                "step_size": self.config.step_size,
                "metric_name": self.config.metric_name,
                "higher_is_better": self.config.higher_is_better,
            },
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "aggregate": {
                "n_windows": self.n_windows,
                "successful_windows": len(self.successful_windows),
                "mean_return": self.mean_return,
                "median_return": self.median_return,
                "best_return": self.best_return,
                "worst_return": self.worst_return,
                "mean_sharpe": self.mean_sharpe,
                "median_sharpe": self.median_sharpe,
                "best_sharpe": self.best_sharpe,
                "worst_sharpe": self.worst_sharpe,
                "avg_max_drawdown": self.avg_max_drawdown,
                "window_win_rate": self.window_win_rate,
                "consistency": self.consistency,
                "total_trades": self.total_trades,
            },
            "parameter_stability": self.parameter_stability,
            "windows": [r.to_dict() for r in self.window_results],
        }

    def save(self, path: Union[str, Path]) -> None:
        """Write the result as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class WalkForwardOptimizer:
    """
    Walk-forward grid search over a multi-symbol bar set.

    For each window:
    1. Grid search the parameter space with backtests on the training slice
    2. Backtest the winning parameters once on the testing slice
    3. Record the out-of-sample metrics

    Every backtest builds its own engine, so windows (and the combinations
    inside each window) can run on worker threads without sharing state.
    A window that raises is recorded with its error and does not stop the
    others.
    """

    def __init__(
        self,
        data: Dict[str, pd.DataFrame],
        signal_generator_factory: SignalGeneratorFactory,
        parameter_ranges: Optional[Dict[str, Sequence[Any]]] = None,
        config: Optional[WalkForwardConfig] = None,
        base_config: Optional[BacktestConfig] = None,
        sizing_hook: Optional[SizingHook] = None,
        symbols: Optional[Sequence[str]] = None,
        parameter_space: Optional[ParameterSpace] = None,
    ):
        """
        Initialize walk-forward optimizer.

        Args:
            data: Symbol -> OHLCV frame with a datetime index
            signal_generator_factory: Builds a signal generator from a
                parameter dict
            parameter_ranges: Parameter name -> candidate values
            config: Walk-forward configuration
            base_config: Engine config the parameters override
            sizing_hook: Optional external sizing hook for every backtest
            symbols: Symbols to trade (default: all in data)
            parameter_space: Explicit space; takes precedence over
                parameter_ranges

        Raises:
            ConfigValidationError: If there are no symbols
        """
        self.data = data
        self.signal_generator_factory = signal_generator_factory
        self.config = config or WalkForwardConfig()
        self.base_config = base_config or BacktestConfig()
        self.sizing_hook = sizing_hook
        self.symbols = sorted(symbols if symbols is not None else data.keys())
        if not self.symbols:
            raise ConfigValidationError("No symbols for walk-forward optimization")

        if parameter_space is None:
            parameter_space = ParameterSpace.from_ranges(parameter_ranges or {})
        self.parameter_space = parameter_space

    def build_timeline(self) -> pd.DatetimeIndex:
        """Sorted union of the bar timestamps of every traded symbol."""
        timeline = pd.DatetimeIndex([])
        for symbol in self.symbols:
            if symbol not in self.data:
                raise ConfigValidationError(f"Symbol missing from data: {symbol}")
            index = pd.DatetimeIndex(self.data[symbol].index)
            timeline = timeline.union(index) if len(timeline) else index.unique()
        return timeline.sort_values()

    def generate_windows(self, n_bars: Optional[int] = None) -> List[WalkForwardWindow]:
        """
        Windows over the unified timeline, or over `n_bars` bare indices.

        Args:
            n_bars: Timeline length; when omitted the data's timeline is
                used and each window carries timestamps

        Returns:
            Windows in chronological order
        """
        timeline = None
        if n_bars is None:
            timeline = self.build_timeline()
            n_bars = len(timeline)

        return generate_windows(
            n_bars,
            self.config.training_window,
            self.config.testing_window,
            self.config.step_size,
            timeline=timeline,
        )

    def run(self) -> WalkForwardResult:
        """
        Run walk-forward optimization.

        Returns:
            WalkForwardResult with per-window and aggregate results

        Raises:
            ConfigValidationError: If the data is shorter than one window
        """
        start_time = datetime.now()
        windows = self.generate_windows()

        if not windows:
            raise ConfigValidationError(
                f"Not enough bars for walk-forward: need at least "
                f"{self.config.training_window + self.config.testing_window}"
            )

        logger.info(
            f"Walk-forward: {len(windows)} windows, "
            f"{self.parameter_space.count_grid_combinations()} combinations each, "
            f"{self.config.n_jobs} workers"
        )

        if self.config.n_jobs == 1:
            results = [self._evaluate_window(w) for w in windows]
        else:
            with ThreadPoolExecutor(max_workers=self.config.n_jobs) as executor:
                results = list(executor.map(self._evaluate_window, windows))

        results.sort(key=lambda r: r.window.window_id)

        result = WalkForwardResult(
            window_results=results,
            config=self.config,
            start_time=start_time,
            end_time=datetime.now(),
        )

        if result.failed_windows:
            logger.warning(
                f"{len(result.failed_windows)}/{result.n_windows} walk-forward windows failed"
            )
        logger.info(
            f"Walk-forward complete: mean OOS return {result.mean_return:.2%}, "
            f"consistency {result.consistency:.3f}"
        )
        return result

    def _evaluate_window(self, window: WalkForwardWindow) -> WindowResult:
        try:
            return self._optimize_window(window)
        except Exception as e:
            logger.error(f"Walk-forward window {window.window_id} failed: {e}", exc_info=True)
            return WindowResult(window=window, error=f"{type(e).__name__}: {e}")

    def _optimize_window(self, window: WalkForwardWindow) -> WindowResult:
        if self.config.verbose >= 1:
            logger.info(
                f"Window {window.window_id}: train {window.train_start} -> {window.train_end}, "
                f"test {window.test_start} -> {window.test_end}"
            )

        objective = create_backtest_objective(
            self.data,
            self.signal_generator_factory,
            base_config=self.base_config,
            sizing_hook=self.sizing_hook,
            start_date=window.train_start,
            end_date=window.train_end,
            symbols=self.symbols,
        )
        optimizer = GridSearchOptimizer(
            self.parameter_space,
            objective,
            GridSearchConfig(
                metric_name=self.config.metric_name,
                higher_is_better=self.config.higher_is_better,
                n_jobs=self.config.grid_n_jobs,
                verbose=0,
            ),
        )
        optimization = optimizer.optimize()

        best_trial = optimization.get_best_trial()
        if best_trial is None:
            failures = [t.error_message for t in optimization.get_failed_trials()]
            detail = failures[0] if failures else optimization.config.get("error", "no trials")
            raise RuntimeError(f"No successful trial on the training slice ({detail})")

        test_result = run_backtest_with_params(
            self.data,
            self.signal_generator_factory,
            optimization.best_params,
            base_config=self.base_config,
            sizing_hook=self.sizing_hook,
            symbols=self.symbols,
            start_date=window.test_start,
            end_date=window.test_end,
        )
        test_metrics = {k: float(v) for k, v in test_result.metrics.to_flat_dict().items()}

        if self.config.verbose >= 1:
            logger.info(
                f"Window {window.window_id}: train {self.config.metric_name}="
                f"{optimization.best_metric:.4f}, test return "
                f"{test_metrics.get('total_return', 0.0):.2%}, params={optimization.best_params}"
            )

        return WindowResult(
            window=window,
            best_params=optimization.best_params,
            train_metric=optimization.best_metric,
            test_metrics=test_metrics,
            optimization=optimization,
            test_result=test_result,
        )


def run_walk_forward(
    data: Dict[str, pd.DataFrame],
    signal_generator_factory: SignalGeneratorFactory,
    parameter_ranges: Dict[str, Sequence[Any]],
    training_window: int = DEFAULT_TRAINING_WINDOW,
    testing_window: int = DEFAULT_TESTING_WINDOW,
    step_size: int = DEFAULT_STEP_SIZE,
    base_config: Optional[BacktestConfig] = None,
    **kwargs,
) -> WalkForwardResult:
    """
    Convenience function for walk-forward optimization.

    Args:
        data: Symbol -> OHLCV frame
        signal_generator_factory: Builds a signal generator from params
        parameter_ranges: Parameter name -> candidate values
        training_window: Bars per training slice
        testing_window: Bars per testing slice
        step_size: Bars per step
        base_config: Engine config the parameters override
        **kwargs: Additional WalkForwardConfig options

    Returns:
        WalkForwardResult
    """
    config = WalkForwardConfig(
        training_window=training_window,
        testing_window=testing_window,
        step_size=step_size,
        **kwargs,
    )
    optimizer = WalkForwardOptimizer(
        data=data,
        signal_generator_factory=signal_generator_factory,
        parameter_ranges=parameter_ranges,
        config=config,
        base_config=base_config,
    )
    return optimizer.run()
