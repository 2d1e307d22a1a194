"""
Realism gate: decides whether a candidate trade is executable under market-microstructure constraints.

Every check runs on every call so a rejection carries the full list of violations, in a fixed order.
Pure functions: no I/O, no clock, no state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..config.schemas import RealismConfig
from ..data.models import QuoteSnapshot, is_degenerate

SCALE_TOLERANCE = 1e-9
LOSS_TOLERANCE = 1e-12


class ReasonCode(str, Enum):
    NBBO_CROSSED_OR_LOCKED = "NBBO_CROSSED_OR_LOCKED"
    SPREAD_TOO_WIDE = "SPREAD_TOO_WIDE"
    OPEN_INTEREST_TOO_LOW = "OPEN_INTEREST_TOO_LOW"
    QUOTE_TOO_STALE = "QUOTE_TOO_STALE"
    INSUFFICIENT_VENUES = "INSUFFICIENT_VENUES"
    DELTA_OUT_OF_BAND = "DELTA_OUT_OF_BAND"
    VIX_SCALING_NOT_INVERSE = "VIX_SCALING_NOT_INVERSE"
    EARNINGS_SIZE_NOT_REDUCED = "EARNINGS_SIZE_NOT_REDUCED"
    DAILY_KILL_SWITCH_BREACHED = "DAILY_KILL_SWITCH_BREACHED"
    OUTSIDE_EXECUTION_WINDOW = "OUTSIDE_EXECUTION_WINDOW"


@dataclass(frozen=True)
class RealismVerdict:
    ok: bool
    reasons: Tuple[ReasonCode, ...] = ()

    def __bool__(self) -> bool:
        return self.ok

    @property
    def codes(self) -> Tuple[str, ...]:
        return tuple(r.value for r in self.reasons)


@dataclass(frozen=True)
class VixContext:
    """
    Volatility regime as classified by the VIX tier table.

    high_regime_scale is the size scale the policy allows in the high regime;
    elevated is True when the current regime is one of the configured elevated regimes.
    """
    level: float
    regime: str
    high_regime_scale: float
    elevated: bool


@dataclass(frozen=True)
class SizingContext:
    scale_used: float
    requested_size: int
    baseline_size: int
    earnings_days: Optional[int] = None
    daily_loss_pct: float = 0.0  # signed fraction of equity, negative on a losing day


def spread_pct(bid: float, ask: float) -> float:
    """(ask-bid)/mid, infinite for degenerate quotes."""
    if is_degenerate(bid, ask):
        return math.inf
    mid = (bid + ask) / 2.0
    return (ask - bid) / mid


def liquidity_ok(bid: float, ask: float, max_spread_pct: float) -> bool:
    return spread_pct(bid, ask) <= max_spread_pct


def evaluate(
    quote: QuoteSnapshot,
    delta: float,
    vix_context: VixContext,
    sizing: SizingContext,
    time_ok: bool,
    thresholds: RealismConfig,
) -> RealismVerdict:
    """
    Run all realism checks.

    Args:
        quote: quote the fill would be taken from (a single leg or a combined vertical)
        delta: delta of the short leg (sign ignored)
        vix_context: current volatility regime
        sizing: size actually requested versus the account baseline
        time_ok: externally computed execution-window flag
        thresholds: RealismConfig

    Returns:
        RealismVerdict with ok=True only when no check fails
    """
    reasons = []

    if quote.bid >= quote.ask or not quote.nbbo_sane:
        reasons.append(ReasonCode.NBBO_CROSSED_OR_LOCKED)

    if not liquidity_ok(quote.bid, quote.ask, thresholds.max_spread_pct):
        reasons.append(ReasonCode.SPREAD_TOO_WIDE)

    if quote.open_interest < thresholds.min_open_interest:
        reasons.append(ReasonCode.OPEN_INTEREST_TOO_LOW)

    if quote.quote_age_sec > thresholds.max_quote_age_sec:
        reasons.append(ReasonCode.QUOTE_TOO_STALE)

    if quote.venue_count < thresholds.min_venues:
        reasons.append(ReasonCode.INSUFFICIENT_VENUES)

    # NaN delta fails the band
    if not (thresholds.delta_min <= abs(delta) <= thresholds.delta_max):
        reasons.append(ReasonCode.DELTA_OUT_OF_BAND)

    if vix_context.elevated and sizing.scale_used > vix_context.high_regime_scale + SCALE_TOLERANCE:
        reasons.append(ReasonCode.VIX_SCALING_NOT_INVERSE)

    near_earnings = sizing.earnings_days is not None and 0 <= sizing.earnings_days <= thresholds.earnings_window_days
    if near_earnings and sizing.requested_size >= sizing.baseline_size:
        reasons.append(ReasonCode.EARNINGS_SIZE_NOT_REDUCED)

    if sizing.daily_loss_pct <= -abs(thresholds.daily_stop_pct) + LOSS_TOLERANCE:
        reasons.append(ReasonCode.DAILY_KILL_SWITCH_BREACHED)

    if not time_ok:
        reasons.append(ReasonCode.OUTSIDE_EXECUTION_WINDOW)

    return RealismVerdict(ok=not reasons, reasons=tuple(reasons))
