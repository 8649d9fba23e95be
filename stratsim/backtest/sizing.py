"""
Position sizing policies.

Quantity is always a whole number of units, floored so a trade never
commits more than the policy allows:

- fixed:      floor(capital x fixed_fraction / price)
- percentage: floor(capital x min(risk_per_trade x confidence, 20%) / price)
- kelly:      floor(capital x min(risk_per_trade x confidence x 2, 25%) / price)

A caller may supply its own risk-sizing hook with the signature
`size_position(capital, price, confidence) -> quantity`; the engine then
uses it instead of the configured policy.
"""

import math
from typing import Callable

from stratsim.lib.constants import (
    DEFAULT_FIXED_FRACTION,
    DEFAULT_RISK_PER_TRADE,
    MAX_KELLY_ALLOCATION,
    MAX_PERCENTAGE_ALLOCATION,
    POSITION_SIZING_METHODS,
)

SizingHook = Callable[[float, float, float], float]


def _floor_units(capital: float, allocation: float, price: float) -> int:
    if price <= 0 or capital <= 0 or allocation <= 0:
        return 0
    return int(math.floor(capital * allocation / price))


def fixed_fraction_size(
    capital: float,
    price: float,
    confidence: float = 1.0,
    fraction: float = DEFAULT_FIXED_FRACTION,
) -> int:
    """Units buying `fraction` of capital, regardless of confidence."""
    return _floor_units(capital, fraction, price)


def percentage_size(
    capital: float,
    price: float,
    confidence: float,
    risk_per_trade: float = DEFAULT_RISK_PER_TRADE,
) -> int:
    """Units buying risk_per_trade x confidence of capital, capped at 20%."""
    allocation = min(risk_per_trade * confidence, MAX_PERCENTAGE_ALLOCATION)
    return _floor_units(capital, allocation, price)


def kelly_size(
    capital: float,
    price: float,
    confidence: float,
    risk_per_trade: float = DEFAULT_RISK_PER_TRADE,
) -> int:
    """Kelly-style sizing: doubled confidence-weighted risk, capped at 25%."""
    allocation = min(risk_per_trade * confidence * 2, MAX_KELLY_ALLOCATION)
    return _floor_units(capital, allocation, price)


class PositionSizer:
    """
    Applies the configured sizing policy, or a caller-supplied hook.

    Attributes:
        method: 'fixed', 'percentage' or 'kelly'
        fixed_fraction: Capital share for 'fixed'
        risk_per_trade: Base risk for 'percentage' and 'kelly'
        hook: Optional external size_position(capital, price, confidence)
    """

    def __init__(
        self,
        method: str = "fixed",
        fixed_fraction: float = DEFAULT_FIXED_FRACTION,
        risk_per_trade: float = DEFAULT_RISK_PER_TRADE,
        hook: SizingHook = None,
    ):
        if method not in POSITION_SIZING_METHODS:
            raise ValueError(f"Unknown sizing method '{method}'. Known: {POSITION_SIZING_METHODS}")
        self.method = method
        self.fixed_fraction = fixed_fraction
        self.risk_per_trade = risk_per_trade
        self.hook = hook

    def size(self, capital: float, price: float, confidence: float) -> int:
        """
        Quantity for a new position.

        Returns:
            Whole units; 0 means the trade cannot be sized
        """
        if self.hook is not None:
            quantity = self.hook(capital, price, confidence)
            if quantity is None or not math.isfinite(quantity):
                return 0
            return int(math.floor(quantity))

        if self.method == "percentage":
            return percentage_size(capital, price, confidence, self.risk_per_trade)
        if self.method == "kelly":
            return kelly_size(capital, price, confidence, self.risk_per_trade)
        return fixed_fraction_size(capital, price, confidence, self.fixed_fraction)

    def __repr__(self) -> str:
        source = "hook" if self.hook is not None else self.method
        return f"PositionSizer({source})"
