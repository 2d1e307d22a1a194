"""
Shared fixtures: quotes, configs and a small synthetic market priced off Black-Scholes.
"""

from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
import pytest

from options_lifecycle_bt.config import RunConfig
from options_lifecycle_bt.data import QuoteSnapshot, generate_trading_days, monthly_expiration
from options_lifecycle_bt.pricing import BlackScholesModel

SYMBOL = "XYZ"
START = date(2024, 1, 2)
END = date(2024, 3, 29)


def _merge(base: Dict, override: Dict) -> Dict:
    out = dict(base)
    for k, v in override.items():
        if isinstance(out.get(k), dict) and isinstance(v, dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


@pytest.fixture
def make_quote():
    def _make(
        bid: float = 0.95,
        ask: float = 1.05,
        open_interest: int = 1000,
        quote_age_sec: float = 0.5,
        venue_count: int = 4,
        nbbo_sane: bool = True,
        observed_at: datetime = datetime(2024, 1, 2, 10, 15),
    ) -> QuoteSnapshot:
        return QuoteSnapshot(
            bid=bid,
            ask=ask,
            open_interest=open_interest,
            quote_age_sec=quote_age_sec,
            venue_count=venue_count,
            nbbo_sane=nbbo_sane,
            observed_at=observed_at,
        )
    return _make


@pytest.fixture
def make_config(tmp_path):
    """RunConfig over the synthetic market with a permissive-but-real gate."""
    def _make(overrides: Optional[Dict] = None) -> RunConfig:
        cfg = {
            "engine": {"symbol": SYMBOL, "start": START.isoformat(), "end": END.isoformat(), "initial_capital": 10_000},
            "realism": {"max_spread_pct": 0.5, "delta_min": 0.01, "delta_max": 0.5},
            "checkpoint": {"directory": str(tmp_path / "checkpoints"), "every_n_bars": 5},
        }
        return RunConfig(**_merge(cfg, overrides or {}))
    return _make


def build_market(
    start: date = START,
    end: date = END,
    closes: Optional[List[float]] = None,
    vix: float = 30.0,
    gap_days: Iterable[date] = (),
    half_spread: float = 0.01,
    rights: Iterable[str] = ("P",),
    strikes: Optional[np.ndarray] = None,
) -> Dict[str, pd.DataFrame]:
    """Bars, VIX and option quotes for every day; gap days have no bar."""
    days = generate_trading_days(start, end)
    if closes is None:
        # flat, then a slide, then flat again
        closes = [100.0 - max(0.0, min(6.0, (i - 20) * 0.5)) for i in range(len(days))]
    if strikes is None:
        strikes = np.arange(80.0, 112.5, 0.5)
    gaps = set(gap_days)
    expiries = sorted({monthly_expiration(d, 45) for d in days})
    bs = BlackScholesModel()

    bar_rows, vix_rows, quote_rows = [], [], []
    for d, close in zip(days, closes):
        vix_rows.append({"date": d, "vix": vix})
        if d in gaps:
            continue
        bar_rows.append({"date": d, "open": close, "high": close * 1.01, "low": close * 0.99, "close": close, "volume": 1e6})
        for expiry in expiries:
            dte = (expiry - d).days
            if dte <= 0:
                continue
            for k in strikes:
                for right in rights:
                    mid = max(bs.theoretical_greeks(close, float(k), dte, vix / 100.0, 0.04, right).price, 0.05)
                    quote_rows.append({
                        "date": d,
                        "strike": float(k),
                        "expiry": expiry,
                        "right": right,
                        "bid": mid - half_spread,
                        "ask": mid + half_spread,
                        "open_interest": 1000,
                        "quote_age_sec": 0.5,
                        "venue_count": 4,
                        "nbbo_sane": True,
                        "observed_at": datetime.combine(d, time(10, 15)),
                    })
    return {
        "bars": pd.DataFrame(bar_rows),
        "vix": pd.DataFrame(vix_rows),
        "quotes": pd.DataFrame(quote_rows),
    }


@pytest.fixture(scope="session")
def market():
    return build_market()
