"""
Tests for the Parameter Optimization Framework

Tests cover:
1. Parameter configuration and grid generation
2. Parameter space construction, defaults and validation
3. Trial and optimization result ranking, stability and persistence
4. Grid search: exhaustive order, failure capture, ties, parallel parity
5. The bridge from parameter sets to backtest runs
"""

import math

import pytest

from stratsim.backtest import BacktestConfig
from stratsim.lib import ConfigValidationError
from stratsim.optimization import (
    BaseOptimizer,
    DefaultParameterSpaces,
    GridSearchConfig,
    GridSearchOptimizer,
    OptimizationResult,
    OptimizationStatus,
    OptimizerConfig,
    ParameterConfig,
    ParameterSpace,
    TrialResult,
    create_backtest_objective,
    run_backtest_with_params,
    run_grid_search,
    split_params,
)
from stratsim.signals import SignalGenerator

from conftest import EveryNthBarPredictor, bar_count_features


# =============================================================================
# Test Fixtures
# =============================================================================

def quadratic_objective(params):
    """Peaks at x=2, y=3."""
    x = params.get("x", 0)
    y = params.get("y", 0)
    return {"score": -((x - 2) ** 2) - (y - 3) ** 2, "x_seen": float(x)}


@pytest.fixture
def xy_space():
    return ParameterSpace.from_ranges({"x": [0, 1, 2, 3], "y": [1, 3, 5]})


def _every_nth_factory(params):
    return SignalGenerator(
        EveryNthBarPredictor(n=params.get("n", 10), value=0.03),
        algorithm_type="linear_regression",
        feature_extractor=bar_count_features,
        min_history=0,
    )


# =============================================================================
# Parameter Configuration
# =============================================================================

class TestParameterConfig:
    """Tests for ParameterConfig."""

    def test_float_grid_with_step(self):
        param = ParameterConfig(name="sl", min_value=0.02, max_value=0.08, step=0.02)
        assert param.get_grid_values() == pytest.approx([0.02, 0.04, 0.06, 0.08])

    def test_float_grid_includes_max(self):
        param = ParameterConfig(name="tp", min_value=0.0, max_value=1.0, step=0.3)
        values = param.get_grid_values()
        assert values[0] == 0.0
        assert values[-1] == 1.0

    def test_float_grid_without_step(self):
        param = ParameterConfig(name="f", min_value=0.0, max_value=9.0)
        assert len(param.get_grid_values()) == 10

    def test_int_grid(self):
        param = ParameterConfig(name="n", min_value=20, max_value=35, step=5, param_type="int")
        assert param.get_grid_values() == [20, 25, 30, 35]

    def test_categorical_keeps_order(self):
        param = ParameterConfig(name="m", param_type="categorical", choices=["kelly", "fixed"])
        assert param.get_grid_values() == ["kelly", "fixed"]

    def test_missing_bounds(self):
        with pytest.raises(ValueError):
            ParameterConfig(name="x", param_type="float")

    def test_inverted_bounds(self):
        with pytest.raises(ValueError):
            ParameterConfig(name="x", min_value=2, max_value=1)

    def test_categorical_without_choices(self):
        with pytest.raises(ValueError):
            ParameterConfig(name="x", param_type="categorical")

    def test_contains(self):
        param = ParameterConfig(name="x", min_value=0, max_value=1)
        assert param.contains(0.5)
        assert not param.contains(2)
        assert not param.contains("a")


# =============================================================================
# Parameter Space
# =============================================================================

class TestParameterSpace:
    """Tests for ParameterSpace."""

    def test_from_ranges(self, xy_space):
        assert xy_space.parameter_names == ["x", "y"]
        assert xy_space.count_grid_combinations() == 12

    def test_combination_order(self, xy_space):
        combos = list(xy_space.get_grid_combinations())
        assert combos[0] == {"x": 0, "y": 1}
        assert combos[1] == {"x": 0, "y": 3}
        assert combos[-1] == {"x": 3, "y": 5}
        assert len(combos) == xy_space.count_grid_combinations()

    def test_empty_space_single_combination(self):
        space = ParameterSpace.from_ranges({})
        assert list(space.get_grid_combinations()) == [{}]
        assert space.count_grid_combinations() == 1

    def test_empty_candidates_rejected(self):
        with pytest.raises(ValueError):
            ParameterSpace.from_ranges({"x": []})

    def test_duplicate_names(self):
        with pytest.raises(ValueError):
            ParameterSpace(parameters=[
                ParameterConfig(name="x", min_value=0, max_value=1),
                ParameterConfig(name="x", min_value=0, max_value=1),
            ])

    def test_add_parameter_chains(self):
        space = ParameterSpace().add_parameter(
            ParameterConfig(name="a", param_type="categorical", choices=[1])
        )
        assert space.get_parameter("a") is not None
        assert space.get_parameter("b") is None
        with pytest.raises(ValueError):
            space.add_parameter(ParameterConfig(name="a", param_type="categorical", choices=[2]))

    def test_defaults(self):
        space = ParameterSpace(parameters=[
            ParameterConfig(name="f", min_value=0.0, max_value=1.0),
            ParameterConfig(name="i", min_value=1, max_value=4, param_type="int"),
            ParameterConfig(name="c", param_type="categorical", choices=["a", "b"]),
            ParameterConfig(name="d", min_value=0.0, max_value=1.0, default=0.9),
        ])
        assert space.get_defaults() == {"f": 0.5, "i": 2, "c": "a", "d": 0.9}

    def test_validate_params(self, xy_space):
        assert xy_space.validate_params({"x": 1, "y": 3}) == (True, [])

        valid, errors = xy_space.validate_params({"x": 9})
        assert not valid
        assert len(errors) == 2

    def test_dict_round_trip(self, xy_space):
        restored = ParameterSpace.from_dict(xy_space.to_dict())
        assert list(restored.get_grid_combinations()) == list(xy_space.get_grid_combinations())

    def test_default_spaces(self):
        assert DefaultParameterSpaces.exits().count_grid_combinations() == 12
        assert DefaultParameterSpaces.get("trend_following").count_grid_combinations() == 36
        assert "oversold" in DefaultParameterSpaces.get("mean_reversion").parameter_names
        with pytest.raises(ValueError):
            DefaultParameterSpaces.get("momentum")


# =============================================================================
# Results
# =============================================================================

class TestOptimizationResult:
    """Tests for result ranking and persistence."""

    @pytest.fixture
    def result(self):
        trials = [
            TrialResult(0, {"x": 0}, {"score": 1.0}),
            TrialResult(1, {"x": 1}, {"score": 3.0}),
            TrialResult(2, {"x": 2}, status=OptimizationStatus.FAILED.value, error_message="boom"),
            TrialResult(3, {"x": 3}, {"score": 3.0}),
            TrialResult(4, {"x": 4}, {"score": 2.0}),
        ]
        return OptimizationResult(
            best_params={"x": 1},
            best_metric=3.0,
            metric_name="score",
            all_results=trials,
        )

    def test_counts(self, result):
        assert result.total_trials == 5
        assert result.successful_trials == 4
        assert [t.trial_id for t in result.get_failed_trials()] == [2]

    def test_best_trial_ties_go_to_earliest(self, result):
        assert result.get_best_trial().trial_id == 1

    def test_top_n(self, result):
        assert [t.trial_id for t in result.get_top_n(3)] == [1, 3, 4]

    def test_lower_is_better(self, result):
        result.higher_is_better = False
        assert result.get_best_trial().trial_id == 0
        assert result.get_convergence_curve() == [1.0, 1.0, 1.0, 1.0, 1.0]

    def test_convergence_curve(self, result):
        assert result.get_convergence_curve() == [1.0, 3.0, 3.0, 3.0, 3.0]

    def test_parameter_stability(self, result):
        stability = result.get_parameter_stability(top_n=2)
        assert stability["x"] == pytest.approx((2.0, 1.0))

    def test_no_completed_trials(self):
        result = OptimizationResult(
            best_params={},
            best_metric=0.0,
            all_results=[TrialResult(0, {}, status=OptimizationStatus.FAILED.value)],
        )
        assert result.get_best_trial() is None
        assert result.get_parameter_stability() == {}

    def test_save_and_load(self, result, tmp_path):
        path = tmp_path / "out" / "grid.json"
        result.save(path)
        loaded = OptimizationResult.load(path)

        assert loaded.best_params == {"x": 1}
        assert loaded.metric_name == "score"
        assert len(loaded.all_results) == 5
        assert loaded.all_results[2].error_message == "boom"

    def test_summary(self, result):
        assert "Best score: 3.0000" in result.summary()

    def test_trial_comparison(self):
        a = TrialResult(0, {}, {"m": 1.0})
        b = TrialResult(1, {}, {"m": 1.0})
        assert not a.is_better_than(b, "m")
        assert not b.is_better_than(a, "m")
        assert TrialResult(2, {}, {"m": 0.5}).is_better_than(a, "m", higher_is_better=False)


# =============================================================================
# Grid Search
# =============================================================================

class TestGridSearch:
    """Tests for GridSearchOptimizer."""

    def test_finds_optimum(self, xy_space):
        optimizer = GridSearchOptimizer(
            xy_space, quadratic_objective, GridSearchConfig(metric_name="score", verbose=0)
        )
        result = optimizer.optimize()

        assert result.best_params == {"x": 2, "y": 3}
        assert result.best_metric == 0
        assert result.total_trials == 12
        assert optimizer.get_trial_count() == 12
        assert [t.trial_id for t in result.all_results] == list(range(12))
        assert result.start_time is not None and result.end_time is not None

    def test_trial_ids_follow_grid_order(self, xy_space):
        result = run_grid_search(xy_space, quadratic_objective, metric_name="score", verbose=0)
        combos = list(xy_space.get_grid_combinations())
        assert [t.params for t in result.all_results] == combos

    def test_minimization(self, xy_space):
        result = run_grid_search(
            xy_space, quadratic_objective, metric_name="score", higher_is_better=False, verbose=0
        )
        assert result.best_params == {"x": 0, "y": 1}

    def test_ties_go_to_first_combination(self, xy_space):
        result = run_grid_search(xy_space, lambda params: {"score": 1.0}, metric_name="score", verbose=0)
        assert result.best_params == {"x": 0, "y": 1}

    def test_failures_are_recorded(self, xy_space):
        def objective(params):
            if params["x"] == 1:
                raise RuntimeError("diverged")
            return quadratic_objective(params)

        result = run_grid_search(xy_space, objective, metric_name="score", verbose=0)

        failed = result.get_failed_trials()
        assert len(failed) == 3
        assert all(t.error_message == "diverged" for t in failed)
        assert result.successful_trials == 9
        assert result.best_params == {"x": 2, "y": 3}

    def test_missing_metric_fails_trial(self, xy_space):
        result = run_grid_search(xy_space, lambda params: {"other": 1.0}, metric_name="score", verbose=0)
        assert result.successful_trials == 0
        assert result.best_params == {}

    def test_nan_metric_fails_trial(self, xy_space):
        result = run_grid_search(
            xy_space, lambda params: {"score": float("nan")}, metric_name="score", verbose=0
        )
        assert len(result.get_failed_trials()) == 12

    def test_parallel_matches_sequential(self, xy_space):
        sequential = run_grid_search(xy_space, quadratic_objective, metric_name="score", verbose=0)
        parallel = run_grid_search(
            xy_space, quadratic_objective, metric_name="score", n_jobs=4, verbose=0
        )

        assert parallel.best_params == sequential.best_params
        assert [t.params for t in parallel.all_results] == [t.params for t in sequential.all_results]
        assert [t.metrics for t in parallel.all_results] == [t.metrics for t in sequential.all_results]

    def test_small_batches(self, xy_space):
        optimizer = GridSearchOptimizer(
            xy_space, quadratic_objective,
            GridSearchConfig(metric_name="score", batch_size=5, verbose=1),
        )
        result = optimizer.optimize()
        assert [t.trial_id for t in result.all_results] == list(range(12))

    def test_max_combinations(self, xy_space):
        optimizer = GridSearchOptimizer(
            xy_space, quadratic_objective,
            GridSearchConfig(metric_name="score", max_combinations=4, verbose=0),
        )
        assert optimizer.get_search_space_size() == 4
        assert optimizer.estimate_time(2.0) == 8.0
        assert optimizer.optimize().total_trials == 4

    def test_empty_space_evaluated_once(self):
        calls = []

        def objective(params):
            calls.append(params)
            return {"score": 1.0}

        result = run_grid_search(ParameterSpace.from_ranges({}), objective, metric_name="score", verbose=0)
        assert calls == [{}]
        assert result.best_params == {}
        assert result.successful_trials == 1

    def test_search_error_returns_failed_result(self, xy_space):
        class BrokenOptimizer(BaseOptimizer):
            def _run_optimization(self):
                raise RuntimeError("search exploded")

        result = BrokenOptimizer(xy_space, quadratic_objective).optimize()
        assert result.best_params == {}
        assert result.config["error"] == "search exploded"

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            OptimizerConfig(n_jobs=0)
        with pytest.raises(ValueError):
            GridSearchConfig(batch_size=0)


# =============================================================================
# Backtest Bridge
# =============================================================================

class TestBacktestBridge:
    """Parameter sets routed into backtest runs."""

    def test_split_params(self):
        base = BacktestConfig()
        config, remaining = split_params(
            {"take_profit_fraction": 0.2, "n": 5, "max_open_positions": 2}, base
        )
        assert config.take_profit_fraction == 0.2
        assert config.max_open_positions == 2
        assert remaining == {"n": 5}
        assert base.take_profit_fraction == 0.10

    def test_split_params_without_overrides(self):
        base = BacktestConfig()
        config, remaining = split_params({"n": 5}, base)
        assert config is base

    def test_split_params_invalid_override(self):
        with pytest.raises(ConfigValidationError):
            split_params({"stop_loss_fraction": 2.0})

    def test_factory_receives_full_params(self, trending_data, base_config):
        seen = []

        def factory(params):
            seen.append(dict(params))
            return _every_nth_factory(params)

        run_backtest_with_params(trending_data, factory, {"n": 10, "take_profit_fraction": 0.2}, base_config)
        assert seen == [{"n": 10, "take_profit_fraction": 0.2}]

    def test_objective_returns_flat_metrics(self, trending_data, base_config):
        objective = create_backtest_objective(trending_data, _every_nth_factory, base_config)
        metrics = objective({"n": 10})

        assert metrics["total_trades"] == 20.0
        assert metrics["total_return"] > 0
        assert all(isinstance(v, float) for v in metrics.values())

    def test_objective_respects_dates(self, trending_data, base_config):
        objective = create_backtest_objective(
            trending_data, _every_nth_factory, base_config,
            start_date="2024-01-01", end_date="2024-01-31",
        )
        # Entries at bars 0, 10, 20 and 30 (the last closed at end of data)
        assert objective({"n": 10})["total_trades"] == 8.0

    def test_grid_over_backtests(self, trending_data, base_config):
        space = ParameterSpace.from_ranges({"n": [10, 20], "take_profit_fraction": [0.05, 0.10]})
        objective = create_backtest_objective(trending_data, _every_nth_factory, base_config)

        sequential = run_grid_search(space, objective, metric_name="total_return", verbose=0)
        parallel = run_grid_search(space, objective, metric_name="total_return", n_jobs=2, verbose=0)

        assert sequential.successful_trials == 4
        assert sequential.best_params == parallel.best_params
        assert [t.metrics for t in sequential.all_results] == [t.metrics for t in parallel.all_results]
        assert not math.isnan(sequential.best_metric)
