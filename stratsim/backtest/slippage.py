"""
Slippage Model

Models execution slippage as a fixed fraction of the intended fill price.
Every fill is moved against the trader:

- Buying (opening a long, covering a short): fill = price x (1 + rate)
- Selling (closing a long, opening a short): fill = price x (1 - rate)

Stop-loss, take-profit and end-of-backtest exits are all treated as market
orders, so they pay slippage just like entries.
"""

from dataclasses import dataclass
from typing import Optional

from stratsim.lib.constants import DEFAULT_SLIPPAGE_RATE


BUY = 1
SELL = -1


@dataclass
class SlippageConfig:
    """
    Configuration for slippage model.

    Attributes:
        slippage_rate: Adverse fraction of price applied to every fill
    """
    slippage_rate: float = DEFAULT_SLIPPAGE_RATE

    def __post_init__(self):
        if not 0 <= self.slippage_rate < 1:
            raise ValueError(f"slippage_rate must be in [0, 1), got {self.slippage_rate}")


class SlippageModel:
    """
    Proportional slippage calculator with per-run totals.

    Usage:
        model = SlippageModel(SlippageConfig(slippage_rate=0.0005))

        fill_price = model.apply_slippage(
            price=100.00,
            side=BUY,
        )  # Returns 100.05
    """

    def __init__(self, config: Optional[SlippageConfig] = None):
        """
        Initialize the slippage model.

        Args:
            config: Slippage configuration. Uses defaults if not provided.
        """
        self.config = config or SlippageConfig()
        self._total_slippage_cost = 0.0
        self._slippage_events = 0

    def apply_slippage(
        self,
        price: float,
        side: int,
        quantity: float = 1,
        record: bool = True,
    ) -> float:
        """
        Calculate fill price after slippage.

        Args:
            price: Intended fill price
            side: Order side (BUY=1, SELL=-1)
            quantity: Units filled (for tracking total cost)
            record: Whether to record this slippage event

        Returns:
            Adjusted fill price after slippage
        """
        if side not in (BUY, SELL):
            raise ValueError(f"side must be BUY (1) or SELL (-1), got {side}")

        fill_price = price * (1 + self.config.slippage_rate * side)

        if record and self.config.slippage_rate > 0:
            self._slippage_events += 1
            self._total_slippage_cost += abs(fill_price - price) * quantity

        return fill_price

    def get_slippage_cost(self, price: float, quantity: float = 1) -> float:
        """
        Currency cost of slippage on a fill.

        Args:
            price: Intended fill price
            quantity: Units filled

        Returns:
            Slippage cost
        """
        return price * self.config.slippage_rate * quantity

    def get_total_slippage_cost(self) -> float:
        """Get total slippage cost across all recorded events."""
        return self._total_slippage_cost

    def get_slippage_events(self) -> int:
        """Get number of slippage events recorded."""
        return self._slippage_events

    def reset(self) -> None:
        """Reset cumulative tracking (e.g., for new backtest run)."""
        self._total_slippage_cost = 0.0
        self._slippage_events = 0

    def __repr__(self) -> str:
        return f"SlippageModel(rate={self.config.slippage_rate:.4%})"
