"""
In-memory data provider over already-fetched pandas frames.

Frames are indexed once at construction so per-bar lookups are dictionary hits.
Rows with NaN in a required column are treated as not available (never filled in).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .models import DailyBar, QuoteSnapshot, Right

logger = logging.getLogger(__name__)

# (symbol, date, strike_key, expiry, right)
_QuoteKey = Tuple[str, date, float, date, str]

BAR_COLUMNS = ["date", "open", "high", "low", "close"]
QUOTE_COLUMNS = ["date", "strike", "expiry", "right", "bid", "ask", "open_interest", "quote_age_sec", "venue_count"]


def _to_date(x) -> date:
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    return pd.Timestamp(x).date()


def _strike_key(strike: float) -> float:
    # Strikes arrive as floats from arithmetic (close * 0.9 etc.); 1e-4 resolution is plenty.
    return round(float(strike), 4)


def _missing(row: pd.Series, cols) -> bool:
    return any(pd.isna(row[c]) for c in cols)


class FrameDataProvider:
    """
    MarketDataProvider backed by pandas frames.

    bars: columns date, open, high, low, close[, volume][, symbol]
    vix: Series indexed by date, or DataFrame with columns date, vix
    quotes: columns date, strike, expiry, right, bid, ask, open_interest, quote_age_sec, venue_count
            [, nbbo_sane][, observed_at][, symbol]

    When a frame has no symbol column every row belongs to `default_symbol`.
    A quote without observed_at is stamped at `default_quote_time` on its date.
    """

    def __init__(
        self,
        bars: pd.DataFrame,
        vix: Union[pd.Series, pd.DataFrame, None] = None,
        quotes: Optional[pd.DataFrame] = None,
        default_symbol: str = "SPY",
        default_quote_time: time = time(10, 15),
    ):
        self.default_symbol = default_symbol.upper()
        self.default_quote_time = default_quote_time
        self._bars: Dict[Tuple[str, date], DailyBar] = {}
        self._vix: Dict[date, float] = {}
        self._quotes: Dict[_QuoteKey, QuoteSnapshot] = {}

        self._index_bars(bars)
        if vix is not None:
            self._index_vix(vix)
        if quotes is not None:
            self._index_quotes(quotes)

        logger.debug(
            f"FrameDataProvider indexed {len(self._bars)} bars, {len(self._vix)} vix prints, {len(self._quotes)} quotes"
        )

    def _symbol_of(self, row: pd.Series) -> str:
        if "symbol" in row.index and not pd.isna(row["symbol"]):
            return str(row["symbol"]).upper()
        return self.default_symbol

    def _index_bars(self, bars: pd.DataFrame) -> None:
        missing_cols = [c for c in BAR_COLUMNS if c not in bars.columns]
        if missing_cols:
            raise ValueError(f"bars frame missing columns: {missing_cols}")
        for _, row in bars.iterrows():
            if _missing(row, BAR_COLUMNS):
                continue
            d = _to_date(row["date"])
            sym = self._symbol_of(row)
            volume = row["volume"] if "volume" in row.index and not pd.isna(row["volume"]) else 0.0
            self._bars[(sym, d)] = DailyBar(
                symbol=sym,
                date=d,
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(volume),
            )

    def _index_vix(self, vix: Union[pd.Series, pd.DataFrame]) -> None:
        if isinstance(vix, pd.DataFrame):
            if "date" not in vix.columns or "vix" not in vix.columns:
                raise ValueError("vix frame needs columns: date, vix")
            series = pd.Series(vix["vix"].to_numpy(), index=vix["date"])
        else:
            series = vix
        for idx, value in series.items():
            if pd.isna(value) or not np.isfinite(float(value)):
                continue
            self._vix[_to_date(idx)] = float(value)

    def _index_quotes(self, quotes: pd.DataFrame) -> None:
        missing_cols = [c for c in QUOTE_COLUMNS if c not in quotes.columns]
        if missing_cols:
            raise ValueError(f"quotes frame missing columns: {missing_cols}")
        for _, row in quotes.iterrows():
            if _missing(row, QUOTE_COLUMNS):
                continue
            d = _to_date(row["date"])
            right = str(row["right"]).upper()[:1]
            if right not in ("P", "C"):
                logger.warning(f"Skipping quote with unknown right {row['right']!r} on {d}")
                continue
            nbbo = True
            if "nbbo_sane" in row.index and not pd.isna(row["nbbo_sane"]):
                nbbo = bool(row["nbbo_sane"])
            if "observed_at" in row.index and not pd.isna(row["observed_at"]):
                observed = pd.Timestamp(row["observed_at"]).to_pydatetime()
            else:
                observed = datetime.combine(d, self.default_quote_time)
            key = (self._symbol_of(row), d, _strike_key(row["strike"]), _to_date(row["expiry"]), right)
            self._quotes[key] = QuoteSnapshot(
                bid=float(row["bid"]),
                ask=float(row["ask"]),
                open_interest=int(row["open_interest"]),
                quote_age_sec=float(row["quote_age_sec"]),
                venue_count=int(row["venue_count"]),
                nbbo_sane=nbbo,
                observed_at=observed,
            )

    def get_daily_bar(self, symbol: str, as_of: date) -> Optional[DailyBar]:
        return self._bars.get((symbol.upper(), as_of))

    def get_option_quote(self, symbol: str, strike: float, expiry: date, as_of: date, right: Right) -> Optional[QuoteSnapshot]:
        return self._quotes.get((symbol.upper(), as_of, _strike_key(strike), expiry, right))

    def get_vix(self, as_of: date) -> Optional[float]:
        return self._vix.get(as_of)
