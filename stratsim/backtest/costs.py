"""
Transaction Cost Model

Commission is charged as a fraction of traded notional on every side:
entry pays `commission_rate x quantity x entry_price`, exit pays
`commission_rate x quantity x exit_price`. Both sides are deducted from
the trade's realized P&L, so net P&L is always gross P&L minus the two
commissions.

Default rate is 0.1% per side (0.2% round-trip), which keeps a strategy
honest about turnover: a 10% target trade nets roughly 9.8% after costs.
"""

from dataclasses import dataclass
from typing import Optional

from stratsim.lib.constants import DEFAULT_COMMISSION_RATE


@dataclass
class CommissionConfig:
    """
    Configuration for proportional commission.

    Attributes:
        commission_rate: Fraction of notional charged per side
        min_commission: Floor per side in currency units (0 disables)
    """
    commission_rate: float = DEFAULT_COMMISSION_RATE
    min_commission: float = 0.0

    def __post_init__(self):
        if self.commission_rate < 0:
            raise ValueError(f"commission_rate cannot be negative, got {self.commission_rate}")
        if self.min_commission < 0:
            raise ValueError(f"min_commission cannot be negative, got {self.min_commission}")


class TransactionCostModel:
    """
    Commission calculator with per-run totals.

    Usage:
        model = TransactionCostModel(CommissionConfig(commission_rate=0.001))
        entry_cost = model.calculate_entry_cost(notional=10_000)  # 10.0
    """

    def __init__(self, config: Optional[CommissionConfig] = None):
        """
        Initialize the transaction cost model.

        Args:
            config: Commission configuration. Uses defaults if not provided.
        """
        self.config = config or CommissionConfig()
        self._total_commission = 0.0
        self._total_sides = 0

    def _side_cost(self, notional: float) -> float:
        if notional <= 0:
            return 0.0
        return max(abs(notional) * self.config.commission_rate, self.config.min_commission)

    def calculate_entry_cost(self, notional: float) -> float:
        """
        Calculate the commission to open a position.

        Args:
            notional: quantity x entry price

        Returns:
            Entry commission
        """
        return self._side_cost(notional)

    def calculate_exit_cost(self, notional: float) -> float:
        """
        Calculate the commission to close a position.

        Args:
            notional: quantity x exit price

        Returns:
            Exit commission
        """
        return self._side_cost(notional)

    def record(self, commission: float) -> None:
        """Add a charged commission to the running total."""
        self._total_commission += commission
        self._total_sides += 1

    def get_total_commission(self) -> float:
        """Get total commission charged across all recorded sides."""
        return self._total_commission

    def get_total_sides(self) -> int:
        """Get the number of charged entry/exit sides."""
        return self._total_sides

    def reset(self) -> None:
        """Reset cumulative tracking (e.g., for new backtest run)."""
        self._total_commission = 0.0
        self._total_sides = 0

    def __repr__(self) -> str:
        return (
            f"TransactionCostModel("
            f"rate={self.config.commission_rate:.4%}, "
            f"min=${self.config.min_commission:.2f})"
        )
