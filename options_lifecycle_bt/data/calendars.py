"""
Trading calendar utilities: weekday sessions, monthly expirations, execution window, earnings proximity.

Sessions are Mon-Fri only (no holiday calendar for now); a holiday simply shows up as a data gap.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd


def generate_trading_days(start: date, end: date, after: Optional[date] = None) -> List[date]:
    """
    Weekdays in [start, end], optionally restricted to days strictly after `after`.

    Example:
        >>> generate_trading_days(date(2024, 1, 5), date(2024, 1, 9))
        [datetime.date(2024, 1, 5), datetime.date(2024, 1, 8), datetime.date(2024, 1, 9)]
    """
    if end < start:
        return []
    days = pd.bdate_range(start=start, end=end)
    out = [d.date() for d in days]
    if after is not None:
        out = [d for d in out if d > after]
    return out


def third_friday(year: int, month: int) -> date:
    """Standard monthly options expiration."""
    first = date(year, month, 1)
    first_friday = first + timedelta(days=(4 - first.weekday()) % 7)
    return first_friday + timedelta(days=14)


def monthly_expiration(as_of: date, preferred_dte: int) -> date:
    """Third Friday of the month that contains as_of + preferred_dte."""
    target = as_of + timedelta(days=int(preferred_dte))
    return third_friday(target.year, target.month)


def days_to_expiration(as_of: date, expiry: date) -> int:
    return (expiry - as_of).days


def in_execution_window(ts: datetime, window_start: time, window_end: time, tz: str = "America/New_York") -> bool:
    """
    True when ts (converted to the exchange timezone) falls inside [window_start, window_end].

    Naive timestamps are taken to be exchange-local already.
    """
    if ts.tzinfo is not None:
        ts = ts.astimezone(ZoneInfo(tz))
    t = ts.time().replace(tzinfo=None)
    return window_start <= t <= window_end


class StaticEarningsCalendar:
    """Earnings calendar built from known event dates; distance is counted in business days."""

    def __init__(self, events: Dict[str, Iterable[date]]):
        self._events: Dict[str, List[date]] = {sym.upper(): sorted(set(ds)) for sym, ds in events.items()}

    def days_until_earnings(self, symbol: str, as_of: date) -> Optional[int]:
        upcoming = [d for d in self._events.get(symbol.upper(), []) if d >= as_of]
        if not upcoming:
            return None
        return int(np.busday_count(as_of, upcoming[0]))
