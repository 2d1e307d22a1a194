"""
Data models for bars/quotes and the collaborator interfaces the engine consumes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional, Protocol


Right = Literal["P", "C"]


@dataclass(frozen=True)
class DailyBar:
    """Underlying OHLCV bar for one trading day."""
    symbol: str
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class QuoteSnapshot:
    """
    Option (or net spread) quote as observed by the data provider.

    nbbo_sane is an externally supplied signal; the engine does not derive it.
    """
    bid: float
    ask: float
    open_interest: int
    quote_age_sec: float
    venue_count: int
    nbbo_sane: bool
    observed_at: datetime

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    @property
    def width(self) -> float:
        return self.ask - self.bid

    @property
    def is_degenerate(self) -> bool:
        return is_degenerate(self.bid, self.ask)

    @property
    def spread_pct(self) -> float:
        """(ask-bid)/mid; infinite for degenerate quotes."""
        if self.is_degenerate:
            return math.inf
        return self.width / self.mid


def is_degenerate(bid: float, ask: float) -> bool:
    if bid is None or ask is None:
        return True
    if not (math.isfinite(bid) and math.isfinite(ask)):
        return True
    return bid <= 0 or ask <= 0 or bid >= ask


def combine_vertical(short_leg: QuoteSnapshot, long_leg: QuoteSnapshot) -> QuoteSnapshot:
    """
    Net credit quote for a vertical spread (sell short_leg, buy long_leg).

    Natural prices: you can sell the spread at short.bid - long.ask and buy it back at short.ask - long.bid.
    Liquidity fields take the weaker leg.
    """
    return QuoteSnapshot(
        bid=short_leg.bid - long_leg.ask,
        ask=short_leg.ask - long_leg.bid,
        open_interest=min(short_leg.open_interest, long_leg.open_interest),
        quote_age_sec=max(short_leg.quote_age_sec, long_leg.quote_age_sec),
        venue_count=min(short_leg.venue_count, long_leg.venue_count),
        nbbo_sane=bool(short_leg.nbbo_sane and long_leg.nbbo_sane),
        observed_at=max(short_leg.observed_at, long_leg.observed_at),
    )


class MarketDataProvider(Protocol):
    """
    Blocking market data interface. Each method returns None when the data point is not available
    (implementations may also raise errors.DataGap).
    """

    def get_daily_bar(self, symbol: str, as_of: date) -> Optional[DailyBar]:
        ...

    def get_option_quote(self, symbol: str, strike: float, expiry: date, as_of: date, right: Right) -> Optional[QuoteSnapshot]:
        ...

    def get_vix(self, as_of: date) -> Optional[float]:
        ...


class EarningsCalendar(Protocol):
    """Trading days until the next earnings event (None if unknown / none upcoming)."""

    def days_until_earnings(self, symbol: str, as_of: date) -> Optional[int]:
        ...
