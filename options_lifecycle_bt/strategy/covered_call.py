"""
Covered call: hold 100 shares per contract and sell an out-of-the-money call against them.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from .base import CandidateStrategy
from .registry import register_strategy
from ..data.models import DailyBar
from ..portfolio.position import StrategyTag, TradeCandidate


@register_strategy("covered_call")
class CoveredCallStrategy(CandidateStrategy):
    """
    Params:
      - otm_pct: float, short call sits this far above the close (default 0.05)
    """

    tag = StrategyTag.CoveredCall

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        super().__init__(params)
        self.otm_pct = float(self.params.get("otm_pct", 0.05))

    def build_candidate(self, bar: DailyBar, expiry: date) -> Optional[TradeCandidate]:
        return TradeCandidate(
            symbol=bar.symbol,
            strategy=self.tag,
            short_strike=self.round_up(bar.close * (1.0 + self.otm_pct)),
            long_strike=None,
            expiration_date=expiry,
            underlying_price=bar.close,
        )
