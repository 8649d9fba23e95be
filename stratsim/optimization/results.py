"""
Optimization Results Data Structures.

This module defines data structures for storing and analyzing grid search results:
- TrialResult: Metrics from one backtest of one parameter combination
- OptimizationResult: Every trial of a search plus the winning combination

Trials are ranked by a single target metric. `higher_is_better` flips the
ranking for metrics such as max_drawdown where smaller is better.

Usage:
    from stratsim.optimization.results import OptimizationResult, TrialResult

    trial = TrialResult(
        trial_id=0,
        params={"stop_loss_fraction": 0.05, "change_threshold": 0.02},
        metrics={"sharpe_ratio": 1.2, "total_return": 0.08},
    )
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np


class OptimizationStatus(Enum):
    """Status of a single trial."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TrialResult:
    """
    Results from a single optimization trial.

    Attributes:
        trial_id: Position of the combination in the search order
        params: Parameter values used in this trial
        metrics: Flat numeric metrics from the backtest
        status: 'completed' or 'failed'
        duration_seconds: Time taken for this trial
        error_message: Error message if the trial failed
        metadata: Additional metadata (e.g., window id)
    """
    trial_id: int
    params: Dict[str, Any]
    metrics: Dict[str, float] = field(default_factory=dict)
    status: str = OptimizationStatus.COMPLETED.value
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == OptimizationStatus.COMPLETED.value

    def get_metric(self, name: str, default: float = 0.0) -> float:
        """Get a metric value by name."""
        return self.metrics.get(name, default)

    def is_better_than(
        self,
        other: "TrialResult",
        metric: str,
        higher_is_better: bool = True
    ) -> bool:
        """
        Compare this trial to another based on a metric.

        Ties are not an improvement, so the earliest trial with the best
        value keeps winning regardless of evaluation order.
        """
        this_value = self.get_metric(metric)
        other_value = other.get_metric(metric)

        if higher_is_better:
            return this_value > other_value
        return this_value < other_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trial_id": self.trial_id,
            "params": self.params,
            "metrics": self.metrics,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrialResult":
        return cls(
            trial_id=data["trial_id"],
            params=data["params"],
            metrics=data.get("metrics", {}),
            status=data.get("status", OptimizationStatus.COMPLETED.value),
            duration_seconds=data.get("duration_seconds", 0.0),
            error_message=data.get("error_message"),
            metadata=data.get("metadata", {}),
        )


def _rank_key(metric_name: str, higher_is_better: bool):
    def key(trial: TrialResult) -> Tuple[float, int]:
        value = trial.get_metric(metric_name, float('nan'))
        if math.isnan(value):
            value = float('-inf') if higher_is_better else float('inf')
        # Earlier trials win ties
        return (value if higher_is_better else -value, -trial.trial_id)
    return key


@dataclass
class OptimizationResult:
    """
    Complete results from an optimization run.

    Attributes:
        best_params: Best parameter values found ({} when every trial failed)
        best_metric: Best value of the target metric
        metric_name: Name of the target metric
        higher_is_better: Ranking direction for the target metric
        all_results: Every trial, ordered by trial_id
        parameter_space_name: Name of the parameter space used
        optimizer_type: Type of optimizer used
        start_time: When optimization started
        end_time: When optimization ended
        total_trials: Total number of trials run
        successful_trials: Number of successful trials
        config: Configuration used for optimization
    """
    best_params: Dict[str, Any]
    best_metric: float
    metric_name: str = "sharpe_ratio"
    higher_is_better: bool = True
    all_results: List[TrialResult] = field(default_factory=list)
    parameter_space_name: str = ""
    optimizer_type: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_trials: int = 0
    successful_trials: int = 0
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.total_trials == 0 and self.all_results:
            self.total_trials = len(self.all_results)

        if self.successful_trials == 0 and self.all_results:
            self.successful_trials = sum(1 for r in self.all_results if r.completed)

    def get_best_trial(self) -> Optional[TrialResult]:
        """Best completed trial, or None if no trial completed."""
        completed = [r for r in self.all_results if r.completed]
        if not completed:
            return None
        return max(completed, key=_rank_key(self.metric_name, self.higher_is_better))

    def get_top_n(self, n: int = 10) -> List[TrialResult]:
        """
        Get the top N completed trials by the target metric.

        Args:
            n: Number of trials to return

        Returns:
            Trials sorted best first
        """
        completed = [r for r in self.all_results if r.completed]
        ranked = sorted(
            completed,
            key=_rank_key(self.metric_name, self.higher_is_better),
            reverse=True,
        )
        return ranked[:n]

    def get_failed_trials(self) -> List[TrialResult]:
        return [r for r in self.all_results if not r.completed]

    def get_parameter_stability(self, top_n: int = 10) -> Dict[str, Tuple[float, float]]:
        """
        Spread of numeric parameters across the top N trials.

        Returns:
            Dict of param name -> (mean, std)
        """
        top_trials = self.get_top_n(top_n)
        if len(top_trials) < 2:
            return {}

        stability = {}
        for param_name in top_trials[0].params:
            values = [
                t.params[param_name] for t in top_trials
                if isinstance(t.params.get(param_name), (int, float))
                and not isinstance(t.params.get(param_name), bool)
            ]
            if values:
                stability[param_name] = (float(np.mean(values)), float(np.std(values)))

        return stability

    def get_convergence_curve(self) -> List[float]:
        """Best metric value seen so far at each trial, in trial order."""
        curve = []
        best_so_far = None
        for trial in sorted(self.all_results, key=lambda r: r.trial_id):
            if trial.completed:
                value = trial.get_metric(self.metric_name)
                if best_so_far is None:
                    best_so_far = value
                elif self.higher_is_better:
                    best_so_far = max(best_so_far, value)
                else:
                    best_so_far = min(best_so_far, value)
            curve.append(best_so_far if best_so_far is not None else 0.0)
        return curve

    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return sum(r.duration_seconds for r in self.all_results)

    def summary(self) -> str:
        """Generate a human-readable summary."""
        lines = [
            f"=== Optimization Results: {self.optimizer_type} ===",
            f"Parameter Space: {self.parameter_space_name}",
            f"Target Metric: {self.metric_name} ({'max' if self.higher_is_better else 'min'})",
            f"Trials: {self.successful_trials}/{self.total_trials} successful",
            f"Duration: {self.duration_seconds():.1f}s",
            "",
            "Best Parameters:",
        ]

        for name, value in self.best_params.items():
            if isinstance(value, float):
                lines.append(f"  {name}: {value:.4f}")
            else:
                lines.append(f"  {name}: {value}")

        lines.append(f"\nBest {self.metric_name}: {self.best_metric:.4f}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "best_params": self.best_params,
            "best_metric": self.best_metric,
            "metric_name": self.metric_name,
            "higher_is_better": self.higher_is_better,
            "all_results": [r.to_dict() for r in self.all_results],
            "parameter_space_name": self.parameter_space_name,
            "optimizer_type": self.optimizer_type,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_trials": self.total_trials,
            "successful_trials": self.successful_trials,
            "config": self.config,
        }

    def save(self, path: Union[str, Path]) -> None:
        """
        Save results to a JSON file.

        Args:
            path: Output file path
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizationResult":
        start_time = None
        end_time = None
        if data.get("start_time"):
            start_time = datetime.fromisoformat(data["start_time"])
        if data.get("end_time"):
            end_time = datetime.fromisoformat(data["end_time"])

        return cls(
            best_params=data["best_params"],
            best_metric=data["best_metric"],
            metric_name=data.get("metric_name", "sharpe_ratio"),
            higher_is_better=data.get("higher_is_better", True),
            all_results=[TrialResult.from_dict(r) for r in data.get("all_results", [])],
            parameter_space_name=data.get("parameter_space_name", ""),
            optimizer_type=data.get("optimizer_type", ""),
            start_time=start_time,
            end_time=end_time,
            total_trials=data.get("total_trials", 0),
            successful_trials=data.get("successful_trials", 0),
            config=data.get("config", {}),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "OptimizationResult":
        """Load results written by save()."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
