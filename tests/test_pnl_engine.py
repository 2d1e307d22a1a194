"""
Tests for the P&L engine: Greek signs, values at expiration, VaR and realized-series stats.
"""

from datetime import date, timedelta

import numpy as np
import pytest

from options_lifecycle_bt.config.schemas import PnLConfig
from options_lifecycle_bt.portfolio.pnl import PnLEngine, historical_var, max_drawdown, sharpe_ratio
from options_lifecycle_bt.portfolio.position import Position, StrategyTag

OPEN = date(2024, 1, 2)
EXPIRY = date(2024, 2, 16)


def _spread(short=95.0, long=90.0, qty=2, credit=1.20, pid=1) -> Position:
    return Position(
        id=pid, symbol="XYZ", strategy=StrategyTag.PutCreditSpread, short_strike=short, long_strike=long,
        quantity=qty, entry_credit=credit, entry_underlying=100.0, entry_commission=2.6,
        open_date=OPEN, expiration_date=EXPIRY, vix_at_entry=30.0,
    )


def _covered_call(strike=105.0, qty=2) -> Position:
    return Position(
        id=2, symbol="XYZ", strategy=StrategyTag.CoveredCall, short_strike=strike, long_strike=None,
        quantity=qty, entry_credit=1.50, entry_underlying=100.0, entry_commission=1.3,
        open_date=OPEN, expiration_date=EXPIRY, vix_at_entry=30.0,
    )


def test_otm_put_credit_spread_greek_signs():
    mark = PnLEngine().calculate_position_pnl(_spread(), 100.0, 30.0, OPEN)
    assert mark.delta > 0
    assert mark.theta > 0
    assert mark.vega < 0
    assert mark.intrinsic_value == 0.0
    # the holder is net short premium
    assert mark.time_value < 0
    assert 0 < mark.spread_value < 5.0


def test_covered_call_short_call_reduces_stock_delta():
    cc = _covered_call(qty=2)
    mark = PnLEngine().calculate_position_pnl(cc, 100.0, 30.0, OPEN)
    shares = cc.quantity * cc.multiplier
    assert 0 < mark.delta < shares
    assert mark.theta > 0


def test_covered_call_unrealized_includes_stock():
    cc = _covered_call(qty=1)
    engine = PnLEngine()
    up = engine.calculate_position_pnl(cc, 110.0, 30.0, EXPIRY, record=False)
    # at expiry: call worth 5, stock +10 per share, credit 1.5
    assert up.spread_value == pytest.approx(5.0)
    assert up.unrealized_pnl == pytest.approx((1.5 - 5.0) * 100 + 10.0 * 100)


def test_values_at_expiration_are_intrinsic():
    p = _spread(qty=3)
    mark = PnLEngine().calculate_position_pnl(p, 85.0, 30.0, EXPIRY)
    assert mark.spread_value == pytest.approx(5.0)
    assert mark.intrinsic_value == pytest.approx(-5.0 * 3 * 100)
    assert mark.time_value == pytest.approx(0.0)
    assert (mark.delta, mark.gamma, mark.theta, mark.vega) == (0.0, 0.0, 0.0, 0.0)
    assert mark.unrealized_pnl == pytest.approx((1.20 - 5.0) * 3 * 100)


def test_var99_at_least_var95_parametric():
    mark = PnLEngine().calculate_position_pnl(_spread(), 97.0, 30.0, OPEN)
    assert mark.var95 > 0
    assert mark.var99 >= mark.var95


def test_var99_at_least_var95_historical():
    rng = np.random.default_rng(7)
    engine = PnLEngine(PnLConfig(min_var_observations=20))
    p = _spread()
    prices = 100.0 + np.cumsum(rng.normal(0.0, 1.0, size=60))
    mark = None
    for i, px in enumerate(prices):
        mark = engine.calculate_position_pnl(p, float(px), 30.0, OPEN + timedelta(days=i % 30))
    assert engine.history_length(p.id) == 59
    assert mark.var99 >= mark.var95 >= 0


def test_historical_var_on_fixed_history():
    changes = np.random.default_rng(11).normal(0.0, 50.0, size=500)
    v95 = historical_var(changes, 0.95)
    v99 = historical_var(changes, 0.99)
    assert v99 >= v95 > 0
    # only gains: nothing at risk
    assert historical_var([1.0, 2.0, 3.0], 0.99) == 0.0
    assert historical_var([], 0.95) == 0.0


def test_history_is_bounded():
    engine = PnLEngine(PnLConfig(var_window=252))
    p = _spread()
    for i in range(300):
        engine.calculate_position_pnl(p, 100.0 + (i % 7) * 0.5, 30.0, OPEN)
    assert engine.history_length(p.id) == 252


def test_history_export_restore_reproduces_var():
    a = PnLEngine()
    p = _spread()
    for i in range(30):
        a.calculate_position_pnl(p, 100.0 - i * 0.2, 30.0, OPEN)
    changes, last = a.export_history()

    b = PnLEngine()
    b.restore_history(changes, last)
    assert b.value_at_risk(p.id, 10.0, -1.0, 94.0, 30.0) == a.value_at_risk(p.id, 10.0, -1.0, 94.0, 30.0)
    assert a.calculate_position_pnl(p, 93.0, 30.0, OPEN) == b.calculate_position_pnl(p, 93.0, 30.0, OPEN)


def test_forget_drops_history():
    engine = PnLEngine()
    p = _spread()
    engine.calculate_position_pnl(p, 100.0, 30.0, OPEN)
    engine.calculate_position_pnl(p, 99.0, 30.0, OPEN)
    engine.forget(p.id)
    assert engine.history_length(p.id) == 0


def test_portfolio_aggregation_sums_positions():
    engine = PnLEngine()
    a, b = _spread(pid=1), _spread(short=94.0, long=89.0, pid=3)
    ma = engine.calculate_position_pnl(a, 100.0, 30.0, OPEN, record=False)
    mb = engine.calculate_position_pnl(b, 100.0, 30.0, OPEN, record=False)
    total = engine.calculate_portfolio_pnl([a, b], 100.0, 30.0, OPEN, daily_pnl=[10.0, -5.0, 20.0], capital_base=10_000)
    assert total.positions == 2
    assert total.delta == pytest.approx(ma.delta + mb.delta)
    assert total.unrealized_pnl == pytest.approx(ma.unrealized_pnl + mb.unrealized_pnl)
    assert total.var99 >= total.var95
    assert total.sharpe_ratio > 0
    # aggregation does not feed the VaR history
    assert engine.history_length(a.id) == 0


def test_sharpe_ratio():
    assert sharpe_ratio([], 10_000) == 0.0
    assert sharpe_ratio([5.0, 5.0, 5.0], 10_000) == 0.0
    assert sharpe_ratio([10.0, 20.0, 15.0, 5.0], 10_000) > 0
    assert sharpe_ratio([-10.0, -20.0, -15.0, -5.0], 10_000) < 0


def test_max_drawdown():
    assert max_drawdown([100.0, -200.0, 50.0], 1000.0) == pytest.approx(200.0 / 1100.0)
    assert max_drawdown([10.0, 10.0], 1000.0) == 0.0
