"""
Tests for the pandas-backed data provider.
"""

from datetime import date, datetime

import numpy as np
import pandas as pd
import pytest

from options_lifecycle_bt.data import FrameDataProvider, combine_vertical

D1 = date(2024, 1, 2)
D2 = date(2024, 1, 3)
EXPIRY = date(2024, 2, 16)


def _bars():
    return pd.DataFrame(
        [
            {"date": "2024-01-02", "open": 15.0, "high": 15.6, "low": 14.8, "close": 15.5, "volume": 1.2e6},
            {"date": "2024-01-03", "open": 15.5, "high": np.nan, "low": 15.0, "close": 15.2, "volume": 9e5},
        ]
    )


def _quotes():
    return pd.DataFrame(
        [
            {"date": D1, "strike": 14.0, "expiry": EXPIRY, "right": "put", "bid": 0.40, "ask": 0.45,
             "open_interest": 900, "quote_age_sec": 0.4, "venue_count": 5},
            {"date": D1, "strike": 13.0, "expiry": EXPIRY, "right": "P", "bid": 0.12, "ask": 0.15,
             "open_interest": 400, "quote_age_sec": 1.1, "venue_count": 3, "nbbo_sane": False,
             "observed_at": datetime(2024, 1, 2, 10, 20)},
            {"date": D2, "strike": 14.0, "expiry": EXPIRY, "right": "P", "bid": np.nan, "ask": 0.45,
             "open_interest": 900, "quote_age_sec": 0.4, "venue_count": 5},
            {"date": D1, "strike": 14.0, "expiry": EXPIRY, "right": "X", "bid": 0.1, "ask": 0.2,
             "open_interest": 1, "quote_age_sec": 0.4, "venue_count": 1},
        ]
    )


@pytest.fixture
def provider():
    vix = pd.Series([18.5, np.nan], index=[D1, D2])
    return FrameDataProvider(_bars(), vix=vix, quotes=_quotes(), default_symbol="sofi")


def test_bars_lookup(provider):
    bar = provider.get_daily_bar("SOFI", D1)
    assert bar.close == 15.5
    assert bar.symbol == "SOFI"
    assert provider.get_daily_bar("sofi", D1) == bar
    # rows with missing required fields are not available
    assert provider.get_daily_bar("SOFI", D2) is None
    assert provider.get_daily_bar("SPY", D1) is None


def test_vix_lookup(provider):
    assert provider.get_vix(D1) == 18.5
    assert provider.get_vix(D2) is None


def test_vix_from_frame():
    vix = pd.DataFrame({"date": ["2024-01-02"], "vix": [21.0]})
    p = FrameDataProvider(_bars(), vix=vix, default_symbol="SOFI")
    assert p.get_vix(D1) == 21.0
    with pytest.raises(ValueError):
        FrameDataProvider(_bars(), vix=pd.DataFrame({"day": [D1], "level": [21.0]}))


def test_quote_lookup(provider):
    q = provider.get_option_quote("SOFI", 14.0, EXPIRY, D1, "P")
    assert (q.bid, q.ask, q.open_interest, q.venue_count) == (0.40, 0.45, 900, 5)
    assert q.nbbo_sane is True
    assert q.observed_at == datetime(2024, 1, 2, 10, 15)

    long_q = provider.get_option_quote("SOFI", 13.0, EXPIRY, D1, "P")
    assert long_q.nbbo_sane is False
    assert long_q.observed_at == datetime(2024, 1, 2, 10, 20)


def test_quote_strike_tolerates_float_noise(provider):
    assert provider.get_option_quote("SOFI", 13.999999999, EXPIRY, D1, "P") is not None


def test_missing_quotes_are_none(provider):
    assert provider.get_option_quote("SOFI", 14.0, EXPIRY, D2, "P") is None
    assert provider.get_option_quote("SOFI", 14.0, EXPIRY, D1, "C") is None
    assert provider.get_option_quote("SOFI", 12.0, EXPIRY, D1, "P") is None


def test_missing_columns_raise():
    with pytest.raises(ValueError, match="bars frame missing columns"):
        FrameDataProvider(_bars().drop(columns=["close"]))
    with pytest.raises(ValueError, match="quotes frame missing columns"):
        FrameDataProvider(_bars(), quotes=_quotes().drop(columns=["venue_count"]))


def test_combined_vertical_quote(provider):
    short_q = provider.get_option_quote("SOFI", 14.0, EXPIRY, D1, "P")
    long_q = provider.get_option_quote("SOFI", 13.0, EXPIRY, D1, "P")
    net = combine_vertical(short_q, long_q)
    assert net.bid == pytest.approx(0.40 - 0.15)
    assert net.ask == pytest.approx(0.45 - 0.12)
    assert net.open_interest == 400
    assert net.venue_count == 3
    assert net.quote_age_sec == 1.1
    assert net.nbbo_sane is False
    assert net.observed_at == datetime(2024, 1, 2, 10, 20)
