"""
Position ledger: the only component that creates, marks or closes positions.

Open positions live in PortfolioState.open_positions keyed by id; a close moves the finalized
copy to the append-only closed log. Exit rules run once per bar, first match wins:

    StopLoss -> ProfitTarget -> DteThreshold          (before expiration day)
    Expiration (Expired or Assigned at intrinsic)     (on or after expiration day)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, List, Mapping, Optional, Union

import pandas as pd

from ..config.schemas import ExitRulesConfig
from ..errors import InvalidTransition
from ..execution.realism import RealismVerdict
from ..execution.slippage import Fill
from ..pricing import intrinsic_value
from .pnl import PnLEngine, position_legs
from .position import (
    CloseReason,
    ClosedTradeRecord,
    Position,
    PositionMark,
    TradeCandidate,
    transition,
)
from .state import PortfolioState

logger = logging.getLogger(__name__)

# (position, reason) -> per-share price to buy the option legs back, or None when no quote is usable
ExitPricer = Callable[[Position, CloseReason], Optional[float]]


def settlement_value(position: Position, underlying_price: float) -> float:
    """Per-share intrinsic cost to close the option legs at expiration."""
    return sum(-sign * intrinsic_value(underlying_price, strike, right) for strike, right, sign in position_legs(position))


class PositionLedger:
    def __init__(
        self,
        state: PortfolioState,
        pnl: PnLEngine,
        exits: Optional[ExitRulesConfig] = None,
        commission_per_contract: float = 0.65,
    ):
        self.state = state
        self.pnl = pnl
        self.exits = exits or ExitRulesConfig()
        self.commission_per_contract = float(commission_per_contract)

    @property
    def open_positions(self) -> List[Position]:
        return [self.state.open_positions[pid] for pid in sorted(self.state.open_positions)]

    @property
    def closed_positions(self) -> List[Position]:
        return list(self.state.closed_positions)

    def get(self, position_id: int) -> Position:
        if position_id in self.state.open_positions:
            return self.state.open_positions[position_id]
        for p in self.state.closed_positions:
            if p.id == position_id:
                return p
        raise KeyError(f"unknown position id {position_id}")

    # -- opening -------------------------------------------------------

    def open(
        self,
        candidate: TradeCandidate,
        verdict: RealismVerdict,
        fill: Fill,
        as_of: date,
        vix: float = 0.0,
    ) -> Optional[Position]:
        """
        Book a new position from a gated, filled candidate.

        Returns None (and books nothing) when the verdict is not ok.

        Raises:
            ValueError: strikes or quantity violate position invariants
        """
        if not verdict.ok:
            logger.debug(f"Not booking {candidate.strategy.value} {candidate.symbol}: {', '.join(verdict.codes)}")
            return None

        position = Position(
            id=self.state.trade_sequence + 1,
            symbol=candidate.symbol,
            strategy=candidate.strategy,
            short_strike=float(candidate.short_strike),
            long_strike=None if candidate.long_strike is None else float(candidate.long_strike),
            quantity=int(fill.qty),
            entry_credit=float(fill.price),
            entry_underlying=float(candidate.underlying_price),
            entry_commission=float(fill.commission),
            open_date=as_of,
            expiration_date=candidate.expiration_date,
            vix_at_entry=float(vix),
            multiplier=int(candidate.multiplier),
        )
        self.state.trade_sequence = position.id
        self.state.open_positions[position.id] = position
        self.state.weekly_premium += position.credit_received
        self.state.monthly_premium += position.credit_received

        logger.info(
            f"Opened #{position.id} {position.strategy.value} {position.symbol} "
            f"{position.short_strike}/{position.long_strike} x{position.quantity} @ {position.entry_credit:.4f} "
            f"exp {position.expiration_date}"
        )
        return position

    def reset_premiums(self, as_of: date) -> None:
        """Zero the weekly accumulator on a new ISO week and the monthly one on a new month."""
        last = self.state.premium_reset_date
        if last is not None:
            if as_of.isocalendar()[:2] != last.isocalendar()[:2]:
                self.state.weekly_premium = 0.0
            if (as_of.year, as_of.month) != (last.year, last.month):
                self.state.monthly_premium = 0.0
        self.state.premium_reset_date = as_of

    # -- marking -------------------------------------------------------

    def mark_to_market(self, as_of: date, prices: Union[float, Mapping[str, float]], vix: float) -> Dict[int, PositionMark]:
        """Mark every open position; closed positions are never touched."""
        marks: Dict[int, PositionMark] = {}
        for p in self.open_positions:
            px = prices if isinstance(prices, (int, float)) else prices[p.symbol]
            mark = self.pnl.calculate_position_pnl(p, float(px), vix, as_of)
            self.state.open_positions[p.id] = p.with_mark(mark)
            marks[p.id] = mark
        self.state.unrealized_pnl = sum(m.unrealized_pnl for m in marks.values())
        return marks

    # -- closing -------------------------------------------------------

    def exit_commission(self, position: Position) -> float:
        return self.commission_per_contract * position.quantity * position.legs

    def realized_pnl_for(self, position: Position, exit_price: float, exit_underlying: float, exit_commission: float) -> float:
        """(credit - exit) x qty x multiplier, plus stock P&L for covered calls, less both commissions."""
        return (
            position.option_pnl(exit_price)
            + position.stock_pnl(exit_underlying)
            - position.entry_commission
            - exit_commission
        )

    def close(
        self,
        position_id: int,
        reason: CloseReason,
        realized_pnl: float,
        as_of: date,
        exit_price: float,
        exit_underlying: Optional[float] = None,
        exit_commission: float = 0.0,
    ) -> Position:
        """
        Finalize an open position and move it to the closed log.

        Raises:
            InvalidTransition: the id is unknown or the position is already closed
        """
        position = self.state.open_positions.get(position_id)
        if position is None:
            closed = any(p.id == position_id for p in self.state.closed_positions)
            state = "already closed" if closed else "unknown"
            raise InvalidTransition(f"cannot close position {position_id}: {state}")

        if exit_underlying is None:
            exit_underlying = position.mark.underlying_price if position.mark else position.entry_underlying

        final = transition(
            position,
            reason,
            close_date=as_of,
            exit_price=exit_price,
            exit_underlying=exit_underlying,
            exit_commission=exit_commission,
            realized_pnl=realized_pnl,
        )
        del self.state.open_positions[position_id]
        self.state.closed_positions.append(final)
        self.state.capital += final.realized_pnl
        self.state.realized_pnl += final.realized_pnl
        if final.mark is not None:
            self.state.unrealized_pnl -= final.mark.unrealized_pnl
        self.pnl.forget(position_id)

        logger.info(
            f"Closed #{final.id} {final.strategy.value} {reason.value} -> {final.status.value} "
            f"exit {final.exit_price:.4f} pnl {final.realized_pnl:+.2f}"
        )
        return final

    def evaluate_exit(self, position: Position, as_of: date) -> Optional[CloseReason]:
        """First exit rule that fires for this bar, or None."""
        if not position.is_open:
            return None
        dte = position.dte(as_of)
        # expiration day settles at intrinsic; a worthless spread is not a profit-target close
        if dte <= 0:
            return CloseReason.Expired
        mark = position.mark
        if mark is not None and position.credit_received > 0:
            option_pnl = position.option_pnl(mark.spread_value)
            if -option_pnl >= self.exits.stop_loss_multiple * position.credit_received:
                return CloseReason.StopLoss
            if option_pnl >= self.exits.profit_target_fraction * position.max_profit:
                return CloseReason.ProfitTarget

        if self.exits.dte_floor is not None and dte <= self.exits.dte_floor:
            return CloseReason.DteThreshold
        return None

    def _close_for(
        self,
        position: Position,
        reason: CloseReason,
        as_of: date,
        exit_pricer: Optional[ExitPricer],
    ) -> Position:
        underlying = position.mark.underlying_price if position.mark else position.entry_underlying

        if reason == CloseReason.Expired:
            exit_price = settlement_value(position, underlying)
            if position.short_leg_itm(underlying):
                reason = CloseReason.Assigned
                commission = self.exit_commission(position)
            else:
                commission = 0.0
        else:
            exit_price = exit_pricer(position, reason) if exit_pricer is not None else None
            if exit_price is None:
                exit_price = position.mark.spread_value if position.mark else position.entry_credit
                logger.debug(f"#{position.id}: no buy-back quote, using theoretical {exit_price:.4f}")
            commission = self.exit_commission(position)

        realized = self.realized_pnl_for(position, exit_price, underlying, commission)
        return self.close(position.id, reason, realized, as_of, exit_price, underlying, commission)

    def apply_exit_rules(self, as_of: date, exit_pricer: Optional[ExitPricer] = None) -> List[Position]:
        """Evaluate every open position once; returns the positions closed this bar."""
        closed = []
        for p in self.open_positions:
            reason = self.evaluate_exit(p, as_of)
            if reason is None:
                continue
            closed.append(self._close_for(p, reason, as_of, exit_pricer))
        return closed

    def roll(self, position_id: int, as_of: date, exit_price: float, exit_underlying: Optional[float] = None) -> Position:
        """Close a position as Rolled. Reopening further out is a new candidate through the gate."""
        position = self.state.open_positions.get(position_id)
        if position is None:
            raise InvalidTransition(f"cannot roll position {position_id}: not open")
        if exit_underlying is None:
            exit_underlying = position.mark.underlying_price if position.mark else position.entry_underlying
        commission = self.exit_commission(position)
        realized = self.realized_pnl_for(position, exit_price, exit_underlying, commission)
        return self.close(position_id, CloseReason.Rolled, realized, as_of, exit_price, exit_underlying, commission)

    def close_all(
        self,
        as_of: date,
        reason: CloseReason = CloseReason.EmergencyStop,
        exit_pricer: Optional[ExitPricer] = None,
    ) -> List[Position]:
        if self.open_positions:
            logger.warning(f"Closing all {len(self.state.open_positions)} open positions: {reason.value}")
        return [self._close_for(p, reason, as_of, exit_pricer) for p in self.open_positions]

    # -- equity & reporting -------------------------------------------

    def update_equity(self) -> None:
        """Refresh peak equity and max drawdown after the bar's marks and closes."""
        equity = self.state.equity
        if equity > self.state.peak_equity:
            self.state.peak_equity = equity
        if self.state.peak_equity > 0:
            dd = (self.state.peak_equity - equity) / self.state.peak_equity
            self.state.max_drawdown = max(self.state.max_drawdown, dd)

    def closed_trade_records(self) -> List[ClosedTradeRecord]:
        return [ClosedTradeRecord.from_position(p) for p in self.state.closed_positions]

    def trades_frame(self) -> pd.DataFrame:
        """Closed trades as a DataFrame (one row per position) for report writers."""
        rows = [r.__dict__ for r in self.closed_trade_records()]
        if not rows:
            return pd.DataFrame(columns=list(ClosedTradeRecord.__dataclass_fields__))
        return pd.DataFrame(rows)
