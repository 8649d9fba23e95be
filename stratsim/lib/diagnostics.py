"""
Run diagnostics.

Data sufficiency problems, numeric degeneracy and rejected signals are
expected during a long simulation and must never abort it. They are
counted here instead, one SimulationDiagnostics per run, and surfaced on
the BacktestResult.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from stratsim.lib.logging_utils import BacktestLogger


# Diagnostic kinds
INSUFFICIENT_HISTORY = "insufficient_history"
MISSING_BAR = "missing_bar"
DEGENERATE_BAR = "degenerate_bar"
DEGENERATE_FEATURES = "degenerate_features"
PREDICTOR_ERROR = "predictor_error"
INVALID_PREDICTION = "invalid_prediction"
REJECTED_MAX_POSITIONS = "rejected_max_positions"
REJECTED_ZERO_QUANTITY = "rejected_zero_quantity"
REJECTED_INSUFFICIENT_CAPITAL = "rejected_insufficient_capital"


@dataclass
class SimulationDiagnostics:
    """
    Counters and a bounded message log for one simulation run.

    Attributes:
        counts: Occurrences per diagnostic kind
        messages: First `max_messages` diagnostic messages, in order
        cancelled: True if the run stopped on a cancellation request
    """
    counts: Counter = field(default_factory=Counter)
    messages: List[str] = field(default_factory=list)
    max_messages: int = 200
    cancelled: bool = False
    _log: BacktestLogger = field(default_factory=BacktestLogger, repr=False, compare=False)

    def record(self, kind: str, message: str, symbol: Optional[str] = None) -> None:
        """Count a diagnostic and keep its message while under the cap."""
        self.counts[kind] += 1
        if len(self.messages) < self.max_messages:
            self.messages.append(f"{kind}: {message}")

        if symbol is not None and kind.startswith("rejected_"):
            self._log.rejection(symbol, kind, details=message)
        else:
            self._log.diagnostic(kind, message)

    def count(self, kind: str) -> int:
        return self.counts.get(kind, 0)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def total_rejections(self) -> int:
        return sum(v for k, v in self.counts.items() if k.startswith("rejected_"))

    def to_dict(self) -> Dict:
        return {
            "counts": dict(sorted(self.counts.items())),
            "messages": list(self.messages),
            "cancelled": self.cancelled,
        }

    def summary(self) -> str:
        """One line per diagnostic kind."""
        if not self.counts:
            return "Diagnostics: none"
        lines = [f"Diagnostics ({self.total} total):"]
        for kind, n in sorted(self.counts.items()):
            lines.append(f"  {kind}: {n}")
        if self.cancelled:
            lines.append("  run cancelled before the end of the data")
        return "\n".join(lines)
