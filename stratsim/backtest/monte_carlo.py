"""
Monte Carlo Resampling for Backtest Robustness Assessment

This module assesses strategy robustness by bootstrapping the realized
per-trade returns of a backtest. Each trial draws len(trades) returns with
replacement, compounds them against a fresh starting capital and records
the trial's final return, maximum drawdown and Sharpe estimate.

Why Monte Carlo Matters:
- A profitable backtest may be due to a lucky handful of trades
- Resampling reveals the range of plausible outcomes
- Confidence intervals help set realistic expectations
- Worst-case scenarios inform risk management

Reproducibility:
- numpy.random.SeedSequence(random_seed) spawns one child seed per batch
  of trials, and each batch draws from its own Generator
- Batches are laid out before any work starts, so results are identical
  for any number of workers

Usage:
    from stratsim.backtest.monte_carlo import MonteCarloSimulator

    simulator = MonteCarloSimulator(MonteCarloConfig(random_seed=42))
    result = simulator.run_from_backtest(backtest_result)

    print(f"Final return 95% CI: {result.final_return}")
    print(f"P(loss): {result.probability_of_loss:.1%}")
"""

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from stratsim.lib.config import ConfigValidationError, MonteCarloSettings
from stratsim.lib.constants import (
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_INITIAL_CAPITAL,
    DEFAULT_MONTE_CARLO_BATCH_SIZE,
    DEFAULT_MONTE_CARLO_TRIALS,
    DEFAULT_PERIODS_PER_YEAR,
    DEFAULT_VAR_ALPHA,
)
from stratsim.backtest.metrics import (
    calculate_conditional_var,
    calculate_historical_var,
    calculate_sharpe_ratio,
)
from stratsim.backtest.trade_logger import TradeLog

logger = logging.getLogger(__name__)


@dataclass
class ConfidenceInterval:
    """
    Distribution summary for one simulated metric.

    Attributes:
        lower: Lower bound of the confidence interval
        upper: Upper bound of the confidence interval
        median: Median value
        mean: Mean value
        std: Standard deviation
        p5: 5th percentile
        p95: 95th percentile
        confidence_level: Interval coverage as a fraction (0.95)
    """
    lower: float
    upper: float
    median: float
    mean: float
    std: float
    p5: float
    p95: float
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary for serialization."""
        return {
            "lower": round(self.lower, 6),
            "upper": round(self.upper, 6),
            "median": round(self.median, 6),
            "mean": round(self.mean, 6),
            "std": round(self.std, 6),
            "p5": round(self.p5, 6),
            "p95": round(self.p95, 6),
            "confidence_level": self.confidence_level,
        }

    def __str__(self) -> str:
        return f"[{self.lower:.4f}, {self.upper:.4f}] (median={self.median:.4f})"


@dataclass
class SimulationRun:
    """
    Results from a single Monte Carlo trial.

    Attributes:
        trial_id: Position of the trial in the overall sequence
        final_return: Compounded return over the resampled trades
        max_drawdown: Maximum drawdown of the synthetic equity curve
        sharpe_ratio: Sharpe estimate treating each trade as a period
        final_equity: Ending equity of the synthetic curve
    """
    trial_id: int
    final_return: float
    max_drawdown: float
    sharpe_ratio: float
    final_equity: float


@dataclass
class MonteCarloConfig:
    """
    Configuration for Monte Carlo resampling.

    Attributes:
        n_trials: Number of trials to run
        confidence_level: Interval coverage as a fraction (0.95)
        initial_capital: Starting capital of every synthetic path
        random_seed: Seed for reproducibility (None draws fresh entropy)
        n_workers: Threads used to run batches (1 runs inline)
        batch_size: Trials per RNG stream
        periods_per_year: Annualization used for the per-trial Sharpe
        var_alpha: Tail probability for VaR / CVaR of final returns
    """
    n_trials: int = DEFAULT_MONTE_CARLO_TRIALS
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    random_seed: Optional[int] = None
    n_workers: int = 1
    batch_size: int = DEFAULT_MONTE_CARLO_BATCH_SIZE
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR
    var_alpha: float = DEFAULT_VAR_ALPHA

    def __post_init__(self):
        if self.n_trials < 1:
            raise ConfigValidationError(f"n_trials must be at least 1, got {self.n_trials}")
        if not 0 < self.confidence_level < 1:
            raise ConfigValidationError(
                f"confidence_level must be in (0, 1), got {self.confidence_level}"
            )
        if self.initial_capital <= 0:
            raise ConfigValidationError(
                f"initial_capital must be positive, got {self.initial_capital}"
            )
        if self.n_workers < 1 or self.batch_size < 1:
            raise ConfigValidationError("n_workers and batch_size must be at least 1")

    @classmethod
    def from_settings(
        cls,
        settings: MonteCarloSettings,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    ) -> 'MonteCarloConfig':
        return cls(
            n_trials=settings.n_trials,
            confidence_level=settings.confidence_level,
            initial_capital=initial_capital,
            random_seed=settings.random_seed,
            n_workers=settings.n_workers,
        )


@dataclass
class MonteCarloResult:
    """
    Complete results from Monte Carlo resampling.

    Attributes:
        config: Configuration used for the simulation
        n_trials_completed: Number of trials run
        n_trades: Trades per trial (length of the input series)
        original_final_return: Compounded return of the original order
        original_max_drawdown: Max drawdown of the original order
        original_sharpe: Sharpe of the original order

        final_return: Distribution of trial final returns
        max_drawdown: Distribution of trial max drawdowns
        sharpe_ratio: Distribution of trial Sharpe estimates

        probability_of_loss: Share of trials with a negative final return
        probability_drawdown_exceeds_original: Share of trials whose
            drawdown is worse than the original
        value_at_risk: Historical VaR of final returns
        conditional_var: CVaR of final returns
        percentile_rankings: Where the original results rank (0-100)
        final_returns / max_drawdowns / sharpe_ratios: Raw per-trial values
    """
    config: MonteCarloConfig
    n_trials_completed: int
    n_trades: int

    original_final_return: float
    original_max_drawdown: float
    original_sharpe: float

    final_return: ConfidenceInterval
    max_drawdown: ConfidenceInterval
    sharpe_ratio: ConfidenceInterval

    probability_of_loss: float = 0.0
    probability_drawdown_exceeds_original: float = 0.0
    value_at_risk: float = 0.0
    conditional_var: float = 0.0
    percentile_rankings: Dict[str, float] = field(default_factory=dict)

    final_returns: np.ndarray = field(default_factory=lambda: np.array([]), repr=False)
    max_drawdowns: np.ndarray = field(default_factory=lambda: np.array([]), repr=False)
    sharpe_ratios: np.ndarray = field(default_factory=lambda: np.array([]), repr=False)

    def get_runs(self) -> List[SimulationRun]:
        """Per-trial results, in trial order."""
        capital = self.config.initial_capital
        return [
            SimulationRun(
                trial_id=i,
                final_return=float(r),
                max_drawdown=float(d),
                sharpe_ratio=float(s),
                final_equity=float(capital * (1 + r)),
            )
            for i, (r, d, s) in enumerate(
                zip(self.final_returns, self.max_drawdowns, self.sharpe_ratios)
            )
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "config": {
                "n_trials": self.config.n_trials,
                "confidence_level": self.config.confidence_level,
                "initial_capital": self.config.initial_capital,
                "random_seed": self.config.random_seed,
                "batch_size": self.config.batch_size,
            },
            "n_trials_completed": self.n_trials_completed,
            "n_trades": self.n_trades,
            "original_metrics": {
                "final_return": round(self.original_final_return, 6),
                "max_drawdown": round(self.original_max_drawdown, 6),
                "sharpe_ratio": round(self.original_sharpe, 4),
            },
            "distributions": {
                "final_return": self.final_return.to_dict(),
                "max_drawdown": self.max_drawdown.to_dict(),
                "sharpe_ratio": self.sharpe_ratio.to_dict(),
            },
            "risk": {
                "probability_of_loss": round(self.probability_of_loss, 6),
                "probability_drawdown_exceeds_original": round(
                    self.probability_drawdown_exceeds_original, 6
                ),
                "value_at_risk": round(self.value_at_risk, 6),
                "conditional_var": round(self.conditional_var, 6),
            },
            "percentile_rankings": {
                k: round(v, 2) for k, v in self.percentile_rankings.items()
            },
        }

    def export_json(self, filepath: str) -> None:
        """Export results to JSON file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def is_robust(
        self,
        min_sharpe: float = 0.5,
        max_drawdown: float = 0.20,
        max_probability_of_loss: float = 0.10,
    ) -> Tuple[bool, List[str]]:
        """
        Check if the strategy is robust based on Monte Carlo results.

        A strategy is considered robust if:
        1. The Sharpe interval's lower bound is above min_sharpe
        2. The drawdown interval's upper bound is below max_drawdown
        3. The probability of loss is at most max_probability_of_loss

        Returns:
            Tuple of (is_robust, list of failure reasons)
        """
        failures = []

        if self.sharpe_ratio.lower < min_sharpe:
            failures.append(
                f"Sharpe CI lower bound ({self.sharpe_ratio.lower:.3f}) "
                f"< minimum ({min_sharpe})"
            )

        if self.max_drawdown.upper > max_drawdown:
            failures.append(
                f"Max drawdown CI upper bound ({self.max_drawdown.upper:.2%}) "
                f"> maximum ({max_drawdown:.2%})"
            )

        if self.probability_of_loss > max_probability_of_loss:
            failures.append(
                f"Probability of loss ({self.probability_of_loss:.2%}) "
                f"> maximum ({max_probability_of_loss:.2%})"
            )

        return len(failures) == 0, failures

    def print_summary(self) -> None:
        """Print a formatted summary of results."""
        level = f"{self.config.confidence_level:.0%} CI"

        print("\n" + "=" * 60)
        print("MONTE CARLO SIMULATION RESULTS")
        print("=" * 60)
        print(f"\nTrials: {self.n_trials_completed} x {self.n_trades} trades")
        print(f"Initial Capital: ${self.config.initial_capital:,.2f}")

        print("\n" + "-" * 60)
        print("ORIGINAL vs SIMULATED RESULTS")
        print("-" * 60)
        print(f"\n{'Metric':<16} {'Original':<12} {level:<26} {'Percentile':<10}")
        print("-" * 66)

        rows = [
            ("Final Return", "final_return", self.original_final_return, self.final_return, ".2%"),
            ("Max Drawdown", "max_drawdown", self.original_max_drawdown, self.max_drawdown, ".2%"),
            ("Sharpe Ratio", "sharpe_ratio", self.original_sharpe, self.sharpe_ratio, ".3f"),
        ]
        for label, key, original, ci, fmt in rows:
            interval = f"[{ci.lower:{fmt}}, {ci.upper:{fmt}}]"
            print(
                f"{label:<16} {original:<12{fmt}} {interval:<26} "
                f"{self.percentile_rankings.get(key, 0):.1f}%"
            )

        print(f"\nP(loss): {self.probability_of_loss:.2%}")
        print(f"P(drawdown > original): {self.probability_drawdown_exceeds_original:.2%}")
        print(f"VaR / CVaR ({self.config.var_alpha:.0%}): "
              f"{self.value_at_risk:.2%} / {self.conditional_var:.2%}")

        print("\n" + "-" * 60)
        print("ROBUSTNESS CHECK")
        print("-" * 60)

        is_robust, failures = self.is_robust()
        if is_robust:
            print("\nStrategy PASSES robustness checks")
        else:
            print("\nStrategy FAILS robustness checks:")
            for failure in failures:
                print(f"  - {failure}")

        print("\n" + "=" * 60)


class MonteCarloSimulator:
    """
    Bootstrap resampler for per-trade returns.

    Why Resampling Works:
    - Trade returns are treated as independent draws from one distribution
    - Sampling with replacement varies both order and composition
    - Different draws reveal the range of possible equity paths
    - Helps separate luck from edge in backtest results

    Limitations:
    - Assumes trades are independent (may not hold for mean-reversion)
    - Does not account for changing market conditions
    - Commission/slippage are already baked into trade returns

    Usage:
        simulator = MonteCarloSimulator(MonteCarloConfig(n_trials=5000, random_seed=7))
        result = simulator.run(trade_returns)
    """

    def __init__(self, config: Optional[MonteCarloConfig] = None):
        self.config = config or MonteCarloConfig()

    # =========================================================================
    # Path Statistics
    # =========================================================================

    def _equity_paths(self, samples: np.ndarray) -> np.ndarray:
        """
        Compound sampled returns into equity paths.

        Args:
            samples: (trials, trades) array of per-trade returns

        Returns:
            (trials, trades + 1) array starting at initial_capital
        """
        growth = np.clip(1.0 + samples, 0.0, None)
        paths = self.config.initial_capital * np.cumprod(growth, axis=1)
        start = np.full((samples.shape[0], 1), self.config.initial_capital)
        return np.hstack([start, paths])

    def _path_metrics(self, samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        paths = self._equity_paths(samples)
        capital = self.config.initial_capital

        final_returns = paths[:, -1] / capital - 1.0

        running_max = np.maximum.accumulate(paths, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            drawdowns = np.where(running_max > 0, (running_max - paths) / running_max, 0.0)
        max_drawdowns = drawdowns.max(axis=1)

        annualization = np.sqrt(self.config.periods_per_year)
        sharpes = np.array([
            calculate_sharpe_ratio(row, annualization_factor=annualization) for row in samples
        ])

        return final_returns, max_drawdowns, sharpes

    def _run_batch(
        self,
        returns: np.ndarray,
        seed: np.random.SeedSequence,
        n_trials: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        rng = np.random.default_rng(seed)
        idx = rng.integers(0, len(returns), size=(n_trials, len(returns)))
        return self._path_metrics(returns[idx])

    def _summarize(self, values: np.ndarray) -> ConfidenceInterval:
        """Compute the distribution summary of one metric."""
        level = self.config.confidence_level

        if len(values) == 0:
            return ConfidenceInterval(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, level)

        tail = (1 - level) / 2 * 100
        return ConfidenceInterval(
            lower=float(np.percentile(values, tail)),
            upper=float(np.percentile(values, 100 - tail)),
            median=float(np.median(values)),
            mean=float(np.mean(values)),
            std=float(np.std(values)),
            p5=float(np.percentile(values, 5)),
            p95=float(np.percentile(values, 95)),
            confidence_level=level,
        )

    @staticmethod
    def _percentile_rank(
        original: float,
        simulated: np.ndarray,
        higher_is_better: bool = True,
    ) -> float:
        """Share of trials the original beat, as a percentage."""
        if len(simulated) == 0:
            return 50.0
        if higher_is_better:
            return float((simulated < original).mean() * 100)
        return float((simulated > original).mean() * 100)

    # =========================================================================
    # Public API
    # =========================================================================

    def run(self, trade_returns: Sequence[float]) -> MonteCarloResult:
        """
        Run Monte Carlo resampling over per-trade returns.

        Args:
            trade_returns: Realized net return of each trade on committed
                capital, in chronological order

        Returns:
            MonteCarloResult with distributions and risk statistics
        """
        returns = np.asarray(trade_returns, dtype=float)
        returns = returns[np.isfinite(returns)]
        cfg = self.config

        if len(returns) == 0:
            logger.warning("No trades to resample")
            empty = self._summarize(np.array([]))
            return MonteCarloResult(
                config=cfg,
                n_trials_completed=0,
                n_trades=0,
                original_final_return=0.0,
                original_max_drawdown=0.0,
                original_sharpe=0.0,
                final_return=empty,
                max_drawdown=empty,
                sharpe_ratio=empty,
            )

        logger.info(
            f"Starting Monte Carlo: {cfg.n_trials} trials x {len(returns)} trades, "
            f"seed={cfg.random_seed}, workers={cfg.n_workers}"
        )

        batch_sizes = [cfg.batch_size] * (cfg.n_trials // cfg.batch_size)
        if cfg.n_trials % cfg.batch_size:
            batch_sizes.append(cfg.n_trials % cfg.batch_size)
        seeds = np.random.SeedSequence(cfg.random_seed).spawn(len(batch_sizes))

        if cfg.n_workers > 1 and len(batch_sizes) > 1:
            with ThreadPoolExecutor(max_workers=cfg.n_workers) as executor:
                batches = list(executor.map(
                    lambda args: self._run_batch(returns, *args),
                    zip(seeds, batch_sizes),
                ))
        else:
            batches = [self._run_batch(returns, s, n) for s, n in zip(seeds, batch_sizes)]

        final_returns = np.concatenate([b[0] for b in batches])
        max_drawdowns = np.concatenate([b[1] for b in batches])
        sharpes = np.concatenate([b[2] for b in batches])

        # Original order, compounded the same way as every trial
        orig_returns, orig_dds, orig_sharpes = self._path_metrics(returns[np.newaxis, :])
        original_return = float(orig_returns[0])
        original_dd = float(orig_dds[0])
        original_sharpe = float(orig_sharpes[0])

        result = MonteCarloResult(
            config=cfg,
            n_trials_completed=len(final_returns),
            n_trades=len(returns),
            original_final_return=original_return,
            original_max_drawdown=original_dd,
            original_sharpe=original_sharpe,
            final_return=self._summarize(final_returns),
            max_drawdown=self._summarize(max_drawdowns),
            sharpe_ratio=self._summarize(sharpes),
            probability_of_loss=float(np.mean(final_returns < 0)),
            probability_drawdown_exceeds_original=float(np.mean(max_drawdowns > original_dd)),
            value_at_risk=calculate_historical_var(final_returns, cfg.var_alpha),
            conditional_var=calculate_conditional_var(final_returns, cfg.var_alpha),
            percentile_rankings={
                "final_return": self._percentile_rank(original_return, final_returns),
                "max_drawdown": self._percentile_rank(
                    original_dd, max_drawdowns, higher_is_better=False
                ),
                "sharpe_ratio": self._percentile_rank(original_sharpe, sharpes),
            },
            final_returns=final_returns,
            max_drawdowns=max_drawdowns,
            sharpe_ratios=sharpes,
        )

        logger.info(
            f"Monte Carlo complete: return CI {result.final_return}, "
            f"P(loss)={result.probability_of_loss:.2%}"
        )
        return result

    def run_from_backtest(self, backtest_result) -> MonteCarloResult:
        """
        Resample the trades of a completed backtest.

        The paths start from the backtest's initial capital so they are
        comparable to the original equity curve. The simulator's own config
        is left unchanged.
        """
        simulator = self
        if not math.isclose(self.config.initial_capital, backtest_result.initial_capital):
            simulator = MonteCarloSimulator(
                replace(self.config, initial_capital=backtest_result.initial_capital)
            )
        returns = [t.trade_return for t in backtest_result.trades]
        return simulator.run(returns)


def run_monte_carlo_from_csv(
    trades_csv: str,
    config: Optional[MonteCarloConfig] = None,
    output_json: Optional[str] = None,
) -> MonteCarloResult:
    """
    Run Monte Carlo resampling from a trades CSV written by TradeLog.

    Args:
        trades_csv: Path to trades CSV file
        config: Simulation configuration
        output_json: Optional path to save results

    Returns:
        MonteCarloResult

    Raises:
        ValueError: If the file holds no trades
    """
    trade_log = TradeLog.from_csv(trades_csv)
    if len(trade_log) == 0:
        raise ValueError(f"No trades found in {trades_csv}")

    result = MonteCarloSimulator(config).run(trade_log.get_trade_returns())

    if output_json:
        result.export_json(output_json)
        logger.info(f"Results saved to {output_json}")

    return result
