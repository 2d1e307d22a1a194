"""
Portfolio state: everything a run needs to continue from the last processed bar.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .position import Position, PositionStatus


class DataGapRecord(BaseModel):
    """A bar or candidate skipped because data was not available."""
    as_of: date
    kind: str = Field(description="daily_bar, vix or quote")
    what: str
    symbol: Optional[str] = None


class PortfolioState(BaseModel):
    """Capital, positions (indexed by id), accumulators and engine history."""
    initial_capital: float
    capital: float
    peak_equity: float
    max_drawdown: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0

    open_positions: Dict[int, Position] = Field(default_factory=dict)
    closed_positions: List[Position] = Field(default_factory=list)
    trade_sequence: int = 0

    weekly_premium: float = 0.0
    monthly_premium: float = 0.0
    premium_reset_date: Optional[date] = None

    daily_pnl: List[float] = Field(default_factory=list, description="Realized P&L per processed bar")
    last_bar_pnl_pct: float = Field(default=0.0, description="Previous bar's equity change over equity, feeds the kill switch")
    pnl_history: Dict[int, List[float]] = Field(default_factory=dict)
    pnl_last: Dict[int, float] = Field(default_factory=dict)

    data_gaps: List[DataGapRecord] = Field(default_factory=list, description="Most recent gaps only")
    gap_counts: Dict[str, int] = Field(default_factory=dict, description="Every gap ever recorded, by kind")
    rejection_counts: Dict[str, int] = Field(default_factory=dict)
    candidates_rejected: int = 0
    halted: bool = Field(default=False, description="Set by the emergency stop; no new entries afterwards")

    # realism audit
    candidates_evaluated: int = Field(default=0, description="Candidates with a quote that reached the gate")
    candidates_filled: int = 0
    slippage_cost: float = Field(default=0.0, description="Dollars given up against mid on entry and exit fills")
    skipped_premium: float = Field(default=0.0, description="Mid credit of candidates that were not filled")

    active_alerts: List[str] = Field(default_factory=list, description="Risk-limit alerts currently in breach")
    alert_counts: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def initial(cls, capital: float) -> "PortfolioState":
        return cls(initial_capital=capital, capital=capital, peak_equity=capital)

    @model_validator(mode="after")
    def validate_positions(self):
        for pid, p in self.open_positions.items():
            if p.id != pid:
                raise ValueError(f"open position keyed {pid} has id {p.id}")
            if p.status != PositionStatus.Open:
                raise ValueError(f"position {pid} is {p.status.value} but listed as open")
        for p in self.closed_positions:
            if p.status == PositionStatus.Open or p.realized_pnl is None:
                raise ValueError(f"position {p.id} in the closed log is not finalized")
        ids = list(self.open_positions) + [p.id for p in self.closed_positions]
        if len(ids) != len(set(ids)):
            raise ValueError("position ids are not unique")
        if ids and max(ids) > self.trade_sequence:
            raise ValueError(f"position id {max(ids)} exceeds trade sequence {self.trade_sequence}")
        if len(self.data_gaps) > self.total_gaps:
            raise ValueError(f"{len(self.data_gaps)} gap records but only {self.total_gaps} gaps counted")
        return self

    def record_gap(self, record: DataGapRecord, keep: int) -> None:
        """Count the gap and keep only the newest `keep` records."""
        self.gap_counts[record.kind] = self.gap_counts.get(record.kind, 0) + 1
        self.data_gaps.append(record)
        if len(self.data_gaps) > keep:
            del self.data_gaps[: len(self.data_gaps) - keep]

    @property
    def equity(self) -> float:
        return self.capital + self.unrealized_pnl

    @property
    def wins(self) -> int:
        return sum(1 for p in self.closed_positions if (p.realized_pnl or 0.0) > 0)

    @property
    def win_rate(self) -> float:
        """Fraction of closed positions with positive realized P&L (0.0 with no closes)."""
        if not self.closed_positions:
            return 0.0
        return self.wins / len(self.closed_positions)

    @property
    def total_gaps(self) -> int:
        return sum(self.gap_counts.values())
