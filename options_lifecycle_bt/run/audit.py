"""
Realism audit summary: how much of what the strategies proposed could actually be traded, and at what cost.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..portfolio.state import PortfolioState


@dataclass(frozen=True)
class RealismAuditSummary:
    candidates_evaluated: int
    candidates_filled: int
    execution_rate: float
    slippage_cost: float
    skipped_premium: float
    top_issues: List[Tuple[str, int]] = field(default_factory=list)

    def as_metrics(self) -> Dict[str, object]:
        return {
            "candidates_evaluated": self.candidates_evaluated,
            "execution_rate_pct": self.execution_rate * 100.0,
            "slippage_cost": self.slippage_cost,
            "skipped_premium": self.skipped_premium,
            "top_issues": [list(issue) for issue in self.top_issues],
        }


def summarize(state: PortfolioState, top_n: int = 3) -> RealismAuditSummary:
    """Execution rate is filled over evaluated (0.0 before anything was evaluated); issues rank by count, then code."""
    evaluated = state.candidates_evaluated
    ranked = sorted(state.rejection_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return RealismAuditSummary(
        candidates_evaluated=evaluated,
        candidates_filled=state.candidates_filled,
        execution_rate=state.candidates_filled / evaluated if evaluated > 0 else 0.0,
        slippage_cost=state.slippage_cost,
        skipped_premium=state.skipped_premium,
        top_issues=ranked[:top_n],
    )
