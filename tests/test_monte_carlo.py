"""
Tests for Monte Carlo Resampling

Tests cover:
1. MonteCarloConfig validation
2. Reproducibility: same seed, any worker count, same results
3. Distribution statistics on degenerate and known inputs
4. Convergence of the mean and the percentile band as trials grow
5. Risk statistics (probability of loss, VaR, percentile rankings)
6. Resampling a backtest result and a trades CSV
7. Serialization and the robustness check
"""

import json

import numpy as np
import pytest

from stratsim.backtest import (
    BacktestEngine,
    ConfidenceInterval,
    MonteCarloConfig,
    MonteCarloResult,
    MonteCarloSimulator,
    TradeLog,
    run_monte_carlo_from_csv,
)
from stratsim.lib import ConfigValidationError, MonteCarloSettings


MIXED_RETURNS = [0.02, -0.01] * 10


# =============================================================================
# Configuration
# =============================================================================

class TestMonteCarloConfig:
    """Tests for MonteCarloConfig."""

    def test_defaults(self):
        config = MonteCarloConfig()
        assert config.n_trials == 1000
        assert config.confidence_level == 0.95
        assert config.initial_capital == 100_000.0
        assert config.random_seed is None

    @pytest.mark.parametrize("overrides", [
        {"n_trials": 0},
        {"confidence_level": 0.0},
        {"confidence_level": 1.0},
        {"initial_capital": -5.0},
        {"n_workers": 0},
        {"batch_size": 0},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ConfigValidationError):
            MonteCarloConfig(**overrides)

    def test_from_settings(self):
        settings = MonteCarloSettings(n_trials=200, confidence_level=0.9, random_seed=3, n_workers=2)
        config = MonteCarloConfig.from_settings(settings, initial_capital=25_000)
        assert config.n_trials == 200
        assert config.confidence_level == 0.9
        assert config.random_seed == 3
        assert config.n_workers == 2
        assert config.initial_capital == 25_000


# =============================================================================
# Reproducibility
# =============================================================================

class TestReproducibility:
    """Seeded runs are bit-for-bit repeatable."""

    def test_same_seed_same_results(self):
        config = MonteCarloConfig(n_trials=500, random_seed=42)
        first = MonteCarloSimulator(config).run(MIXED_RETURNS)
        second = MonteCarloSimulator(config).run(MIXED_RETURNS)

        np.testing.assert_array_equal(first.final_returns, second.final_returns)
        np.testing.assert_array_equal(first.max_drawdowns, second.max_drawdowns)
        np.testing.assert_array_equal(first.sharpe_ratios, second.sharpe_ratios)

    def test_worker_count_does_not_matter(self):
        serial = MonteCarloSimulator(
            MonteCarloConfig(n_trials=1000, random_seed=7, batch_size=100, n_workers=1)
        ).run(MIXED_RETURNS)
        parallel = MonteCarloSimulator(
            MonteCarloConfig(n_trials=1000, random_seed=7, batch_size=100, n_workers=4)
        ).run(MIXED_RETURNS)

        np.testing.assert_array_equal(serial.final_returns, parallel.final_returns)
        np.testing.assert_array_equal(serial.sharpe_ratios, parallel.sharpe_ratios)

    def test_different_seeds_differ(self):
        first = MonteCarloSimulator(MonteCarloConfig(n_trials=200, random_seed=1)).run(MIXED_RETURNS)
        second = MonteCarloSimulator(MonteCarloConfig(n_trials=200, random_seed=2)).run(MIXED_RETURNS)
        assert not np.array_equal(first.final_returns, second.final_returns)

    def test_partial_last_batch(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=1050, batch_size=250, random_seed=0)
        ).run(MIXED_RETURNS)
        assert result.n_trials_completed == 1050
        assert len(result.final_returns) == 1050


# =============================================================================
# Distributions
# =============================================================================

class TestDistributions:
    """Statistics of the simulated outcomes."""

    def test_identical_returns_give_degenerate_interval(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=100, random_seed=0)
        ).run([0.01] * 20)

        expected = 1.01 ** 20 - 1
        assert result.final_return.lower == pytest.approx(expected)
        assert result.final_return.upper == pytest.approx(expected)
        assert result.final_return.std == pytest.approx(0.0, abs=1e-12)
        assert result.max_drawdown.upper == 0.0
        assert result.sharpe_ratio.mean == 0.0
        assert result.original_final_return == pytest.approx(expected)

    def test_mean_converges_to_expectation(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=20_000, random_seed=123)
        ).run(MIXED_RETURNS)

        # Independent draws: E[prod(1 + r)] = (1 + mean(r)) ** n
        expected = 1.005 ** 20 - 1
        assert result.final_return.mean == pytest.approx(expected, abs=0.005)

    def test_percentile_band_converges_with_trials(self):
        def band_spread(n_trials):
            bounds = np.array([
                [ci.p5, ci.p95]
                for ci in (
                    MonteCarloSimulator(
                        MonteCarloConfig(n_trials=n_trials, random_seed=seed)
                    ).run(MIXED_RETURNS).final_return
                    for seed in range(8)
                )
            ])
            return bounds.std(axis=0)

        few = band_spread(100)
        many = band_spread(10_000)

        # Seed-to-seed noise of each bound shrinks roughly with sqrt(n_trials)
        assert np.all(many < few / 3)

    def test_interval_ordering(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=2_000, random_seed=9)
        ).run(MIXED_RETURNS)

        for ci in (result.final_return, result.max_drawdown, result.sharpe_ratio):
            assert ci.lower <= ci.median <= ci.upper
            assert ci.p5 <= ci.p95

    def test_narrower_level_narrower_interval(self):
        wide = MonteCarloSimulator(
            MonteCarloConfig(n_trials=2_000, random_seed=4, confidence_level=0.95)
        ).run(MIXED_RETURNS)
        narrow = MonteCarloSimulator(
            MonteCarloConfig(n_trials=2_000, random_seed=4, confidence_level=0.5)
        ).run(MIXED_RETURNS)

        assert narrow.final_return.lower >= wide.final_return.lower
        assert narrow.final_return.upper <= wide.final_return.upper

    def test_total_loss_is_floored(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=50, random_seed=0)
        ).run([-1.5, -1.5])

        assert np.all(result.final_returns == -1.0)
        assert np.all(result.max_drawdowns == 1.0)

    def test_non_finite_returns_ignored(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=10, random_seed=0)
        ).run([0.01, float("nan"), float("inf"), 0.01])
        assert result.n_trades == 2


# =============================================================================
# Risk Statistics
# =============================================================================

class TestRiskStatistics:
    """Probability of loss, VaR and rankings."""

    def test_all_positive_never_loses(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=500, random_seed=0)
        ).run([0.01, 0.02, 0.03])
        assert result.probability_of_loss == 0.0
        assert result.value_at_risk > 0

    def test_all_negative_always_loses(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=500, random_seed=0)
        ).run([-0.01, -0.02])
        assert result.probability_of_loss == 1.0

    def test_var_at_or_above_cvar(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=1_000, random_seed=5)
        ).run(MIXED_RETURNS)
        assert result.conditional_var <= result.value_at_risk

    def test_percentile_rankings_bounded(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=500, random_seed=8)
        ).run(MIXED_RETURNS)
        assert set(result.percentile_rankings) == {"final_return", "max_drawdown", "sharpe_ratio"}
        for value in result.percentile_rankings.values():
            assert 0.0 <= value <= 100.0

    def test_empty_returns(self):
        result = MonteCarloSimulator(MonteCarloConfig(random_seed=0)).run([])
        assert result.n_trials_completed == 0
        assert result.n_trades == 0
        assert result.final_return.mean == 0.0
        assert result.get_runs() == []


# =============================================================================
# Inputs from Backtests
# =============================================================================

class TestBacktestInputs:
    """Resampling completed backtests and trade CSVs."""

    def test_run_from_backtest(self, trending_data, every_tenth_bar_generator, base_config):
        backtest = BacktestEngine(base_config).run(trending_data, every_tenth_bar_generator)

        simulator = MonteCarloSimulator(
            MonteCarloConfig(n_trials=200, random_seed=1, initial_capital=5_000)
        )
        result = simulator.run_from_backtest(backtest)

        assert result.config.initial_capital == backtest.initial_capital
        assert simulator.config.initial_capital == 5_000
        assert result.config.n_trials == 200
        assert result.n_trades == len(backtest.trades)
        # Every trade won, so every resampled path ends in profit
        assert result.probability_of_loss == 0.0

    def test_from_csv(self, trending_data, every_tenth_bar_generator, base_config, tmp_path):
        backtest = BacktestEngine(base_config).run(trending_data, every_tenth_bar_generator)
        trades_csv = tmp_path / "trades.csv"
        backtest.report.trade_log.export_csv(str(trades_csv))
        output = tmp_path / "mc" / "result.json"

        result = run_monte_carlo_from_csv(
            str(trades_csv),
            MonteCarloConfig(n_trials=100, random_seed=2),
            output_json=str(output),
        )

        assert result.n_trades == 20
        data = json.loads(output.read_text())
        assert data["n_trials_completed"] == 100
        assert set(data["distributions"]) == {"final_return", "max_drawdown", "sharpe_ratio"}

    def test_empty_csv_raises(self, tmp_path):
        trades_csv = tmp_path / "empty.csv"
        TradeLog().export_csv(str(trades_csv))
        with pytest.raises(ValueError):
            run_monte_carlo_from_csv(str(trades_csv))


# =============================================================================
# Results
# =============================================================================

class TestMonteCarloResult:
    """Result helpers."""

    def test_get_runs(self):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=10, random_seed=0, initial_capital=1_000)
        ).run(MIXED_RETURNS)

        runs = result.get_runs()
        assert len(runs) == 10
        assert [r.trial_id for r in runs] == list(range(10))
        assert runs[0].final_equity == pytest.approx(1_000 * (1 + runs[0].final_return))

    def _result(self, sharpe_lower, dd_upper, p_loss):
        ci = ConfidenceInterval(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
        return MonteCarloResult(
            config=MonteCarloConfig(),
            n_trials_completed=1,
            n_trades=1,
            original_final_return=0.0,
            original_max_drawdown=0.0,
            original_sharpe=0.0,
            final_return=ci,
            max_drawdown=ConfidenceInterval(0.0, dd_upper, 0.0, 0.0, 0.0, 0.0, 0.0),
            sharpe_ratio=ConfidenceInterval(sharpe_lower, 2.0, 0.0, 0.0, 0.0, 0.0, 0.0),
            probability_of_loss=p_loss,
        )

    def test_is_robust(self):
        robust, failures = self._result(1.0, 0.1, 0.05).is_robust()
        assert robust
        assert failures == []

    def test_not_robust(self):
        robust, failures = self._result(0.2, 0.3, 0.5).is_robust()
        assert not robust
        assert len(failures) == 3

    def test_print_summary(self, capsys):
        result = MonteCarloSimulator(
            MonteCarloConfig(n_trials=50, random_seed=0)
        ).run(MIXED_RETURNS)
        result.print_summary()
        assert "MONTE CARLO SIMULATION RESULTS" in capsys.readouterr().out
