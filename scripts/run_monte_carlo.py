#!/usr/bin/env python3
"""
Monte Carlo Simulation CLI

Resample the per-trade returns of a finished backtest with replacement to
build confidence intervals for final return, max drawdown and Sharpe.

Usage:
    # From a trades CSV written by a backtest run
    python scripts/run_monte_carlo.py --trades results/20240102_120000/trades.csv

    # With custom parameters
    python scripts/run_monte_carlo.py --trades trades.csv --trials 5000 --capital 50000

    # Save results to JSON
    python scripts/run_monte_carlo.py --trades trades.csv --output results/monte_carlo.json
"""

import argparse
import logging
import sys
from pathlib import Path

from stratsim.backtest.monte_carlo import MonteCarloConfig, run_monte_carlo_from_csv
from stratsim.lib import ConfigValidationError, load_config, setup_logging
from stratsim.lib.constants import DEFAULT_INITIAL_CAPITAL

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run Monte Carlo resampling for strategy robustness assessment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Basic usage with trades CSV
    python scripts/run_monte_carlo.py --trades results/trades.csv

    # Run 5000 trials with $50,000 capital
    python scripts/run_monte_carlo.py --trades trades.csv --trials 5000 --capital 50000

    # Set random seed for reproducibility
    python scripts/run_monte_carlo.py --trades trades.csv --seed 42
        """,
    )

    parser.add_argument(
        "--trades",
        type=str,
        required=True,
        help="Path to a trades CSV written by a backtest run",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration supplying monte_carlo defaults",
    )
    parser.add_argument(
        "--trials", "-n",
        type=int,
        default=None,
        help="Number of Monte Carlo trials (default: monte_carlo.n_trials)",
    )
    parser.add_argument(
        "--capital",
        type=float,
        default=None,
        help=f"Initial capital (default: backtest.initial_capital, {DEFAULT_INITIAL_CAPITAL:,.0f})",
    )
    parser.add_argument(
        "--confidence",
        type=float,
        default=None,
        help="Confidence level as a fraction (default: monte_carlo.confidence_level)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: monte_carlo.n_workers)",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output JSON file for results (optional)",
    )
    parser.add_argument(
        "--min-sharpe",
        type=float,
        default=0.5,
        help="Minimum acceptable Sharpe lower bound (default: 0.5)",
    )
    parser.add_argument(
        "--max-drawdown",
        type=float,
        default=0.20,
        help="Maximum acceptable drawdown upper bound (default: 0.20 = 20%%)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args()


def main():
    args = parse_args()

    settings = load_config(args.config)
    setup_logging(level="DEBUG" if args.verbose else settings.output.log_level)

    trades_path = Path(args.trades)
    if not trades_path.exists():
        logger.error(f"Trades file not found: {args.trades}")
        sys.exit(1)

    mc = settings.monte_carlo
    try:
        config = MonteCarloConfig(
            n_trials=args.trials if args.trials is not None else mc.n_trials,
            confidence_level=args.confidence if args.confidence is not None else mc.confidence_level,
            initial_capital=args.capital if args.capital is not None else settings.backtest.initial_capital,
            random_seed=args.seed if args.seed is not None else mc.random_seed,
            n_workers=args.workers if args.workers is not None else mc.n_workers,
            periods_per_year=settings.backtest.periods_per_year,
        )
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(2)

    logger.info(f"Loading trades from: {args.trades}")
    logger.info(f"Running {config.n_trials} Monte Carlo trials...")

    try:
        result = run_monte_carlo_from_csv(
            trades_csv=args.trades,
            config=config,
            output_json=args.output,
        )
    except ValueError as e:
        logger.error(f"Monte Carlo simulation failed: {e}")
        sys.exit(1)

    result.print_summary()

    is_robust, failures = result.is_robust(
        min_sharpe=args.min_sharpe,
        max_drawdown=args.max_drawdown,
    )
    if is_robust:
        logger.info("Strategy passes robustness checks")
        sys.exit(0)

    for failure in failures:
        logger.warning(failure)
    logger.warning("Strategy fails robustness checks")
    sys.exit(1)


if __name__ == "__main__":
    main()
