"""
Put credit spread: sell an out-of-the-money put, buy a lower put for protection.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from .base import CandidateStrategy
from .registry import register_strategy
from ..data.models import DailyBar
from ..portfolio.position import StrategyTag, TradeCandidate


@register_strategy("put_credit_spread")
class PutCreditSpreadStrategy(CandidateStrategy):
    """
    Params:
      - otm_pct: float, short strike sits this far below the close (default 0.10)
      - width: float, distance from short to long strike in dollars (default 1.0)
    """

    tag = StrategyTag.PutCreditSpread

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        super().__init__(params)
        self.otm_pct = float(self.params.get("otm_pct", 0.10))
        self.width = float(self.params.get("width", 1.0))
        if self.width <= 0:
            raise ValueError(f"width must be positive, got {self.width}")

    def build_candidate(self, bar: DailyBar, expiry: date) -> Optional[TradeCandidate]:
        short_strike = self.round_down(bar.close * (1.0 - self.otm_pct))
        long_strike = round(short_strike - self.width, 4)
        if long_strike <= 0:
            return None
        return TradeCandidate(
            symbol=bar.symbol,
            strategy=self.tag,
            short_strike=short_strike,
            long_strike=long_strike,
            expiration_date=expiry,
            underlying_price=bar.close,
        )
