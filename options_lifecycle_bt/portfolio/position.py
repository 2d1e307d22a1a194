"""
Position model and its lifecycle state machine.

State Machine:
    Open -> Closed    (profit target, stop loss, DTE floor, emergency stop)
    Open -> Expired   (finished out of the money)
    Open -> Assigned  (short leg finished in the money)
    Open -> Rolled    (closed to reopen further out)

Terminal states never change again. Positions are frozen; every change is a new copy
produced by transition() or with_mark(), and only the ledger calls either.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from ..data.models import Right
from ..errors import InvalidTransition

CONTRACT_MULTIPLIER = 100


class StrategyTag(str, Enum):
    PutCreditSpread = "PutCreditSpread"
    CoveredCall = "CoveredCall"


class PositionStatus(str, Enum):
    Open = "Open"
    Closed = "Closed"
    Rolled = "Rolled"
    Assigned = "Assigned"
    Expired = "Expired"


class CloseReason(str, Enum):
    ProfitTarget = "ProfitTarget"
    StopLoss = "StopLoss"
    DteThreshold = "DteThreshold"
    Expired = "Expired"
    Assigned = "Assigned"
    EmergencyStop = "EmergencyStop"
    Rolled = "Rolled"


TERMINAL_STATUSES = frozenset({PositionStatus.Closed, PositionStatus.Rolled, PositionStatus.Assigned, PositionStatus.Expired})

_STATUS_FOR_REASON = {
    CloseReason.Expired: PositionStatus.Expired,
    CloseReason.Assigned: PositionStatus.Assigned,
    CloseReason.Rolled: PositionStatus.Rolled,
}


def status_for_reason(reason: CloseReason) -> PositionStatus:
    return _STATUS_FOR_REASON.get(reason, PositionStatus.Closed)


@dataclass(frozen=True)
class PositionMark:
    """Unrealized view of an open position as of one bar. Dollar amounts are for the whole position."""
    as_of: date
    underlying_price: float
    spread_value: float  # per-share cost to close the option legs
    intrinsic_value: float
    time_value: float
    delta: float
    gamma: float
    theta: float
    vega: float
    unrealized_pnl: float
    var95: float = 0.0
    var99: float = 0.0


@dataclass(frozen=True)
class TradeCandidate:
    """A trade a strategy would like to open. Carries no price: the slippage model sets it."""
    symbol: str
    strategy: StrategyTag
    short_strike: float
    long_strike: Optional[float]
    expiration_date: date
    underlying_price: float
    multiplier: int = CONTRACT_MULTIPLIER

    @property
    def right(self) -> Right:
        return "P" if self.strategy == StrategyTag.PutCreditSpread else "C"

    @property
    def legs(self) -> int:
        return 2 if self.long_strike is not None else 1

    @property
    def max_loss_per_contract(self) -> float:
        """Capital at risk for one contract before credit: spread width, or the shares for a covered call."""
        if self.strategy == StrategyTag.PutCreditSpread:
            return (self.short_strike - float(self.long_strike)) * self.multiplier
        return self.underlying_price * self.multiplier


@dataclass(frozen=True)
class Position:
    id: int
    symbol: str
    strategy: StrategyTag
    short_strike: float
    long_strike: Optional[float]
    quantity: int
    entry_credit: float
    entry_underlying: float
    entry_commission: float
    open_date: date
    expiration_date: date
    vix_at_entry: float
    multiplier: int = CONTRACT_MULTIPLIER
    status: PositionStatus = PositionStatus.Open
    mark: Optional[PositionMark] = None
    close_date: Optional[date] = None
    close_reason: Optional[CloseReason] = None
    exit_price: Optional[float] = None
    exit_underlying: Optional[float] = None
    exit_commission: float = 0.0
    realized_pnl: Optional[float] = None

    def __post_init__(self):
        validate_position(self)

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.Open

    @property
    def right(self) -> Right:
        return "P" if self.strategy == StrategyTag.PutCreditSpread else "C"

    @property
    def legs(self) -> int:
        return 2 if self.long_strike is not None else 1

    @property
    def credit_received(self) -> float:
        return self.entry_credit * self.quantity * self.multiplier

    @property
    def max_profit(self) -> float:
        """Option premium kept if every short leg expires worthless."""
        return self.credit_received

    def dte(self, as_of: date) -> int:
        return (self.expiration_date - as_of).days

    def option_pnl(self, spread_value: float) -> float:
        """P&L of the option legs only, in dollars, if closed at spread_value per share."""
        return (self.entry_credit - spread_value) * self.quantity * self.multiplier

    def stock_pnl(self, underlying_price: float) -> float:
        if self.strategy != StrategyTag.CoveredCall:
            return 0.0
        return (underlying_price - self.entry_underlying) * self.quantity * self.multiplier

    def short_leg_itm(self, underlying_price: float) -> bool:
        if self.right == "P":
            return underlying_price < self.short_strike
        return underlying_price > self.short_strike

    def with_mark(self, mark: PositionMark) -> "Position":
        if not self.is_open:
            raise InvalidTransition(f"position {self.id} is {self.status.value}; closed positions are immutable")
        return replace(self, mark=mark)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_position(p: Position) -> None:
    if p.quantity <= 0:
        raise ValueError(f"quantity must be > 0, got {p.quantity}")
    if p.strategy == StrategyTag.PutCreditSpread:
        if p.long_strike is None:
            raise ValueError("put credit spread needs a long strike")
        if not p.short_strike > p.long_strike:
            raise ValueError(f"put credit spread needs short strike > long strike, got {p.short_strike} <= {p.long_strike}")
    elif p.long_strike is not None:
        raise ValueError("covered call has no long option leg")
    if p.expiration_date < p.open_date:
        raise ValueError(f"expiration {p.expiration_date} is before open date {p.open_date}")


def transition(
    position: Position,
    reason: CloseReason,
    *,
    close_date: date,
    exit_price: float,
    exit_underlying: float,
    exit_commission: float,
    realized_pnl: float,
) -> Position:
    """
    Move an open position to the terminal status implied by reason.

    Raises:
        InvalidTransition: the position is already in a terminal state
    """
    if position.status != PositionStatus.Open:
        raise InvalidTransition(
            f"position {position.id}: {position.status.value} -> {status_for_reason(reason).value} is not allowed"
        )
    return replace(
        position,
        status=status_for_reason(reason),
        close_date=close_date,
        close_reason=reason,
        exit_price=float(exit_price),
        exit_underlying=float(exit_underlying),
        exit_commission=float(exit_commission),
        realized_pnl=float(realized_pnl),
    )


@dataclass(frozen=True)
class ClosedTradeRecord:
    """One row of the closed-trade stream handed to report writers."""
    id: int
    symbol: str
    strategy: str
    short_strike: float
    long_strike: Optional[float]
    quantity: int
    entry_price: float
    exit_price: float
    realized_pnl: float
    commission: float
    duration_days: int
    vix_at_entry: float
    open_date: date
    close_date: date
    close_reason: str
    status: str

    @classmethod
    def from_position(cls, p: Position) -> "ClosedTradeRecord":
        if p.is_open:
            raise ValueError(f"position {p.id} is still open")
        return cls(
            id=p.id,
            symbol=p.symbol,
            strategy=p.strategy.value,
            short_strike=p.short_strike,
            long_strike=p.long_strike,
            quantity=p.quantity,
            entry_price=p.entry_credit,
            exit_price=float(p.exit_price),
            realized_pnl=float(p.realized_pnl),
            commission=p.entry_commission + p.exit_commission,
            duration_days=(p.close_date - p.open_date).days,
            vix_at_entry=p.vix_at_entry,
            open_date=p.open_date,
            close_date=p.close_date,
            close_reason=p.close_reason.value,
            status=p.status.value,
        )
