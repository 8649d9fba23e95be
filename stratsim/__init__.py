"""
stratsim: strategy backtesting and simulation engine.

Subpackages:
- lib: constants, configuration and logging shared by every module
- data: historical bar loading and validation
- signals: indicators, feature extraction and prediction-to-signal mapping
- backtest: execution simulator, equity tracking, metrics and Monte Carlo
- optimization: parameter spaces, grid search and walk-forward optimization
"""

__version__ = "0.1.0"
