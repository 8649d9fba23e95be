"""
Entry point scripts for the stratsim simulator.

Scripts:
- run_backtest.py: Backtest a reference predictor, with optional walk-forward and Monte Carlo
- run_monte_carlo.py: Resample the trades CSV of a finished backtest
"""
