"""
Data layer: bar/quote contracts, calendars, frame-backed provider
"""

from .models import (
    Right,
    DailyBar,
    QuoteSnapshot,
    MarketDataProvider,
    EarningsCalendar,
    combine_vertical,
    is_degenerate,
)
from .calendars import (
    generate_trading_days,
    third_friday,
    monthly_expiration,
    days_to_expiration,
    in_execution_window,
    StaticEarningsCalendar,
)
from .providers_frame import FrameDataProvider

__all__ = [
    "Right",
    "DailyBar",
    "QuoteSnapshot",
    "MarketDataProvider",
    "EarningsCalendar",
    "combine_vertical",
    "is_degenerate",
    "generate_trading_days",
    "third_friday",
    "monthly_expiration",
    "days_to_expiration",
    "in_execution_window",
    "StaticEarningsCalendar",
    "FrameDataProvider",
]
