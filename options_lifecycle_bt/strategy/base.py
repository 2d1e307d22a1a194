"""
Base class for candidate strategies.

A strategy only proposes trades. Sizing, the realism gate and the fill price all happen downstream,
so a candidate never carries a price.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..data.calendars import days_to_expiration, monthly_expiration
from ..data.models import DailyBar
from ..portfolio.position import Position, StrategyTag, TradeCandidate


class CandidateStrategy(ABC):
    """
    Common params:
      - preferred_dte: int, target days to expiration (default 45)
      - min_dte / max_dte: int, accepted expiration range (default 30 / 60)
      - strike_increment: float, listed strike spacing (default 0.5)
      - max_open: int, open positions of this strategy allowed at once (default 1)
    """

    tag: StrategyTag

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        params = params or {}
        self.params = params
        self.preferred_dte = int(params.get("preferred_dte", 45))
        self.min_dte = int(params.get("min_dte", 30))
        self.max_dte = int(params.get("max_dte", 60))
        self.strike_increment = float(params.get("strike_increment", 0.5))
        self.max_open = int(params.get("max_open", 1))
        if self.strike_increment <= 0:
            raise ValueError(f"strike_increment must be positive, got {self.strike_increment}")
        if self.min_dte > self.max_dte:
            raise ValueError(f"min_dte ({self.min_dte}) must be <= max_dte ({self.max_dte})")

    def round_down(self, price: float) -> float:
        return round(math.floor(price / self.strike_increment + 1e-9) * self.strike_increment, 4)

    def round_up(self, price: float) -> float:
        return round(math.ceil(price / self.strike_increment - 1e-9) * self.strike_increment, 4)

    def expiration_for(self, as_of: date) -> Optional[date]:
        """Monthly expiration near preferred_dte, or None when it falls outside [min_dte, max_dte]."""
        expiry = monthly_expiration(as_of, self.preferred_dte)
        dte = days_to_expiration(as_of, expiry)
        if dte < self.min_dte or dte > self.max_dte:
            return None
        return expiry

    def has_capacity(self, open_positions: Sequence[Position]) -> bool:
        mine = sum(1 for p in open_positions if p.strategy == self.tag and p.is_open)
        return mine < self.max_open

    def generate_candidates(self, bar: DailyBar, context: Optional[Dict[str, Any]] = None) -> List[TradeCandidate]:
        context = context or {}
        if not self.has_capacity(context.get("open_positions", ())):
            return []
        expiry = self.expiration_for(bar.date)
        if expiry is None:
            return []
        candidate = self.build_candidate(bar, expiry)
        return [candidate] if candidate is not None else []

    @abstractmethod
    def build_candidate(self, bar: DailyBar, expiry: date) -> Optional[TradeCandidate]:
        ...
