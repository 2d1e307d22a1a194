import math
from datetime import datetime

import pytest

from options_lifecycle_bt.config.schemas import SlippageConfig
from options_lifecycle_bt.data.models import QuoteSnapshot
from options_lifecycle_bt.errors import InvalidQuote
from options_lifecycle_bt.execution.slippage import (
    SlippageModel,
    apply_slippage,
    buy_ladder,
    realistic_fill_price,
    sell_ladder,
)

QUOTES = [(0.90, 1.00), (1.00, 1.02), (0.05, 0.10), (2.10, 2.60), (14.0, 15.5), (0.29, 0.31)]


def test_tight_spread_ladder():
    ladder = sell_ladder(1.00, 1.02, 0.01)
    assert ladder == pytest.approx([1.01, 1.008, 1.008])


def test_wide_spread_ladder():
    ladder = sell_ladder(0.90, 1.00, 0.01)
    assert ladder == pytest.approx([0.95, 0.94, 0.94])


@pytest.mark.parametrize("bid,ask", QUOTES)
def test_sell_ladder_non_increasing_within_quote(bid, ask):
    ladder = sell_ladder(bid, ask, 0.01)
    assert 1 <= len(ladder) <= 3
    assert all(a >= b for a, b in zip(ladder, ladder[1:]))
    assert all(bid <= p <= ask for p in ladder)


@pytest.mark.parametrize("bid,ask", QUOTES)
def test_buy_ladder_non_decreasing_within_quote(bid, ask):
    ladder = buy_ladder(bid, ask, 0.01)
    assert all(a <= b for a, b in zip(ladder, ladder[1:]))
    assert all(bid <= p <= ask for p in ladder)


@pytest.mark.parametrize("bid,ask", [(0.0, 1.0), (1.0, 0.0), (1.0, 1.0), (1.2, 1.0), (-1.0, 1.0), (math.nan, 1.0)])
def test_degenerate_quotes_have_no_ladder(bid, ask):
    assert sell_ladder(bid, ask) == []
    assert buy_ladder(bid, ask) == []
    assert apply_slippage(bid, ask, 1) == 0.0
    assert realistic_fill_price(bid, ask, 1.0) == 0.0


@pytest.mark.parametrize("bid,ask", QUOTES)
def test_apply_slippage_non_increasing_in_attempt(bid, ask):
    prices = [apply_slippage(bid, ask, attempt) for attempt in range(0, 8)]
    # attempt 0 is below the ladder: the bid is the floor
    assert prices[0] == bid
    assert all(a >= b for a, b in zip(prices[1:], prices[2:]))
    # past the end of the ladder stays on the last rung
    assert prices[7] == sell_ladder(bid, ask)[-1]


def test_realistic_fill_price_never_better_than_ladder():
    assert realistic_fill_price(0.90, 1.00, 0.98) == pytest.approx(0.95)
    assert realistic_fill_price(0.90, 1.00, 0.85) == pytest.approx(0.90)
    assert realistic_fill_price(0.90, 1.00, 0.94) == pytest.approx(0.94)


def test_model_fill_sell_and_buy():
    model = SlippageModel(SlippageConfig(tick=0.01, fill_attempt=2, commission_per_contract=0.65))
    q = QuoteSnapshot(0.90, 1.00, 1000, 0.5, 3, True, datetime(2024, 1, 2, 10, 15))
    sell = model.fill(q, "SELL", 5, legs=2)
    assert sell.price == pytest.approx(0.94)
    assert sell.attempt == 2
    assert sell.commission == pytest.approx(0.65 * 5 * 2)

    buy = model.fill(q, "BUY", 5, legs=2)
    assert buy.price == pytest.approx(0.96)


def test_model_fill_refuses_degenerate_quote(make_quote):
    model = SlippageModel(SlippageConfig())
    with pytest.raises(InvalidQuote):
        model.fill(make_quote(1.0, 1.0), "SELL", 1)
    with pytest.raises(ValueError):
        model.fill(make_quote(), "SELL", 0)
