#!/usr/bin/env python3
"""
Run Backtest Entry Point.

Command-line interface to backtest a reference predictor over a long-format
bar CSV, optionally followed by walk-forward optimization and Monte Carlo
resampling of the realized trades.

Features:
- YAML configuration with command-line overrides
- Single backtest with trade log, equity curve and summary export
- Walk-forward grid search over the configured parameter ranges
- Monte Carlo confidence intervals on return, drawdown and Sharpe

Usage:
    # Run backtest with defaults
    python scripts/run_backtest.py --data data/bars.csv

    # Use a config file and a different reference predictor
    python scripts/run_backtest.py --config config/backtest.yaml --predictor mean_reversion

    # Add walk-forward optimization and Monte Carlo
    python scripts/run_backtest.py --data data/bars.csv --walk-forward --monte-carlo
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from stratsim.backtest import BacktestConfig, BacktestEngine, MonteCarloConfig, MonteCarloSimulator
from stratsim.data import load_bars_csv
from stratsim.lib import ConfigValidationError, config_to_dict, load_config, setup_logging, validate_config
from stratsim.optimization import (
    DefaultParameterSpaces,
    ParameterSpace,
    WalkForwardConfig,
    WalkForwardOptimizer,
)
from stratsim.signals import create_signal_generator_factory

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Backtest a strategy over historical bars',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to YAML configuration file',
    )
    parser.add_argument(
        '--data',
        type=str,
        default=None,
        help='Long-format bar CSV (overrides data.bars_path)',
    )
    parser.add_argument(
        '--symbols',
        nargs='+',
        default=None,
        help='Symbols to trade (default: all in the file)',
    )
    parser.add_argument(
        '--start-date',
        type=str,
        default=None,
        help='First tradable date; earlier bars are history only',
    )
    parser.add_argument(
        '--end-date',
        type=str,
        default=None,
        help='Last date simulated',
    )
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output directory for results (overrides output.output_dir)',
    )

    # Backtest overrides
    parser.add_argument(
        '--initial-capital',
        type=float,
        default=None,
        help='Initial account capital',
    )
    parser.add_argument(
        '--benchmark',
        type=str,
        default=None,
        help='Symbol to compare against as buy-and-hold',
    )
    parser.add_argument(
        '--predictor',
        type=str,
        default=None,
        help="Reference predictor: 'trend_following' or 'mean_reversion'",
    )
    parser.add_argument(
        '--algorithm-type',
        type=str,
        default=None,
        help='Algorithm family used to read predictions',
    )

    # Run modes
    parser.add_argument(
        '--walk-forward',
        action='store_true',
        help='Run walk-forward optimization after the backtest',
    )
    parser.add_argument(
        '--monte-carlo',
        action='store_true',
        help='Resample the realized trades after the backtest',
    )
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Verbose output',
    )

    return parser.parse_args()


def apply_overrides(config, args: argparse.Namespace):
    """Fold command-line overrides into the loaded configuration."""
    if args.data:
        config.data.bars_path = args.data
    if args.symbols:
        config.data.symbols = args.symbols
    if args.start_date:
        config.data.start_date = args.start_date
    if args.end_date:
        config.data.end_date = args.end_date
    if args.output:
        config.output.output_dir = args.output
    if args.initial_capital is not None:
        config.backtest.initial_capital = args.initial_capital
    if args.predictor:
        config.signals.predictor = args.predictor
    if args.algorithm_type:
        config.signals.algorithm_type = args.algorithm_type
    if args.benchmark:
        config.backtest.benchmark_symbol = args.benchmark
    if args.verbose:
        config.output.verbose = True
        config.output.log_level = "DEBUG"
    return config


def walk_forward_space(config) -> ParameterSpace:
    """
    Parameter space searched by walk-forward optimization.

    The configured parameter ranges when there are any, else the predefined
    space of the configured reference predictor.
    """
    if config.walk_forward.parameter_ranges:
        return ParameterSpace.from_ranges(config.walk_forward.parameter_ranges)

    logger.info(f"No parameter ranges configured - using the '{config.signals.predictor}' defaults")
    return DefaultParameterSpaces.get(config.signals.predictor)


def main():
    """Main entry point."""
    args = parse_args()

    config = apply_overrides(load_config(args.config), args)
    setup_logging(level=config.output.log_level, log_dir=config.output.logs_dir)

    try:
        for warning in validate_config(config):
            logger.warning(warning)
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(2)

    if not config.data.bars_path:
        logger.error("No bar data given: pass --data or set data.bars_path")
        sys.exit(2)

    symbols = config.data.symbols or None
    benchmark = config.backtest.benchmark_symbol
    load_symbols = symbols
    if symbols and benchmark and benchmark not in symbols:
        load_symbols = symbols + [benchmark]

    # Single backtest
    try:
        factory = create_signal_generator_factory(config.signals)
        backtest_config = BacktestConfig.from_settings(config)
        engine = BacktestEngine(backtest_config)
        data = load_bars_csv(config.data.bars_path, symbols=load_symbols)
        result = engine.run(
            data,
            factory({}),
            symbols=symbols,
            start_date=config.data.start_date,
            end_date=config.data.end_date,
        )
    except (ConfigValidationError, FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        sys.exit(2)

    print(result.metrics.summary())
    print(result.diagnostics.summary())

    run_dir = Path(config.output.output_dir) / datetime.now().strftime("%Y%m%d_%H%M%S")
    if config.output.save_trades:
        files = result.report.export_all(str(run_dir))
        logger.info(f"Reports written: {sorted(files.values())}")
    run_dir.mkdir(parents=True, exist_ok=True)
    with open(run_dir / "config.json", "w") as f:
        json.dump(config_to_dict(config), f, indent=2, default=str)

    # Walk-forward optimization
    if args.walk_forward:
        optimizer = WalkForwardOptimizer(
            data=data,
            signal_generator_factory=factory,
            symbols=list(result.symbols),
            config=WalkForwardConfig.from_settings(config),
            base_config=backtest_config,
            parameter_space=walk_forward_space(config),
        )
        wf_result = optimizer.run()
        print(wf_result.summary())
        wf_result.save(run_dir / "walk_forward.json")

    # Monte Carlo resampling
    if args.monte_carlo:
        if not result.trades:
            logger.warning("No trades to resample - skipping Monte Carlo")
        else:
            mc_config = MonteCarloConfig.from_settings(
                config.monte_carlo, initial_capital=backtest_config.initial_capital
            )
            mc_result = MonteCarloSimulator(mc_config).run_from_backtest(result)
            mc_result.print_summary()
            mc_result.export_json(str(run_dir / "monte_carlo.json"))

    if result.metrics.total_trades == 0:
        logger.warning("No trades generated - check predictor and data")
        sys.exit(1)

    sys.exit(0)


if __name__ == '__main__':
    main()
