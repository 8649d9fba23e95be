"""
Historical bar loading and validation.

Bars are read once, before any simulation starts, into one DataFrame per
symbol indexed by timestamp. Nothing in the simulation loop touches disk.
"""

from stratsim.data.bars import (
    BarValidationResult,
    GapInfo,
    load_bars_csv,
    split_by_symbol,
    validate_bars,
)

__all__ = [
    "BarValidationResult",
    "GapInfo",
    "load_bars_csv",
    "split_by_symbol",
    "validate_bars",
]
