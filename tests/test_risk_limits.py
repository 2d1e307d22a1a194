"""
Tests for portfolio risk-limit alerts and the realism audit summary.
"""

from dataclasses import replace
from datetime import date

import pytest

from options_lifecycle_bt.config.schemas import RiskLimitsConfig
from options_lifecycle_bt.portfolio.pnl import PortfolioPnL
from options_lifecycle_bt.portfolio.position import Position, PositionMark, StrategyTag
from options_lifecycle_bt.portfolio.state import PortfolioState
from options_lifecycle_bt.risk.limits import RiskAlertKind, check_risk_limits
from options_lifecycle_bt.run.audit import summarize

AS_OF = date(2024, 1, 10)


def _portfolio(**overrides) -> PortfolioPnL:
    values = dict(
        as_of=AS_OF, positions=1, delta=10.0, gamma=-1.0, theta=5.0, vega=-50.0, intrinsic_value=0.0,
        time_value=-80.0, unrealized_pnl=0.0, var95=20.0, var99=30.0, sharpe_ratio=0.0, max_drawdown=0.0,
    )
    values.update(overrides)
    return PortfolioPnL(**values)


def _marked(symbol: str, unrealized: float, pid: int = 1) -> Position:
    p = Position(
        id=pid, symbol=symbol, strategy=StrategyTag.PutCreditSpread, short_strike=90.0, long_strike=89.0,
        quantity=6, entry_credit=0.14, entry_underlying=100.0, entry_commission=7.8,
        open_date=date(2024, 1, 2), expiration_date=date(2024, 2, 16), vix_at_entry=30.0,
    )
    mark = PositionMark(
        as_of=AS_OF, underlying_price=95.0, spread_value=0.3, intrinsic_value=0.0, time_value=0.0,
        delta=0.0, gamma=0.0, theta=0.0, vega=0.0, unrealized_pnl=unrealized, var95=0.0, var99=0.0,
    )
    return replace(p, mark=mark)


def test_quiet_portfolio_raises_no_alerts():
    assert check_risk_limits(_portfolio(), [_marked("XYZ", -20.0)], 100.0, 10_000.0, RiskLimitsConfig()) == []


@pytest.mark.parametrize(
    "overrides, kind",
    [
        ({"max_drawdown": 0.30}, RiskAlertKind.MaxDrawdown),
        ({"delta": 60.0}, RiskAlertKind.DeltaExposure),
        ({"delta": -60.0}, RiskAlertKind.DeltaExposure),
        ({"vega": -6000.0}, RiskAlertKind.VegaExposure),
        ({"theta": -1500.0}, RiskAlertKind.ThetaExposure),
    ],
)
def test_each_portfolio_limit_alerts(overrides, kind):
    alerts = check_risk_limits(_portfolio(**overrides), [], 100.0, 10_000.0, RiskLimitsConfig())
    assert [a.kind for a in alerts] == [kind]
    assert alerts[0].symbol == "PORTFOLIO"
    assert alerts[0].key == f"{kind.value}:PORTFOLIO"


def test_delta_exposure_is_dollar_delta_over_equity():
    # 60 shares x $100 over $10,000 = 0.6
    alert = check_risk_limits(_portfolio(delta=60.0), [], 100.0, 10_000.0, RiskLimitsConfig())[0]
    assert alert.value == pytest.approx(0.6)
    assert alert.limit == 0.5
    assert check_risk_limits(_portfolio(delta=60.0), [], 50.0, 10_000.0, RiskLimitsConfig()) == []


def test_concentration_is_per_symbol():
    positions = [_marked("XYZ", -2000.0, pid=1), _marked("XYZ", 1500.0, pid=2), _marked("ABC", -100.0, pid=3)]
    alerts = check_risk_limits(_portfolio(), positions, 100.0, 10_000.0, RiskLimitsConfig())
    assert [(a.kind, a.symbol) for a in alerts] == [(RiskAlertKind.Concentration, "XYZ")]
    assert alerts[0].value == pytest.approx(0.35)


def test_alerts_come_in_fixed_order():
    portfolio = _portfolio(max_drawdown=0.5, delta=100.0, vega=9000.0, theta=-2000.0)
    alerts = check_risk_limits(portfolio, [_marked("XYZ", -5000.0)], 100.0, 10_000.0, RiskLimitsConfig())
    assert [a.kind for a in alerts] == [
        RiskAlertKind.MaxDrawdown,
        RiskAlertKind.DeltaExposure,
        RiskAlertKind.VegaExposure,
        RiskAlertKind.ThetaExposure,
        RiskAlertKind.Concentration,
    ]


def test_disabled_limits_never_alert():
    portfolio = _portfolio(max_drawdown=0.5, delta=100.0)
    assert check_risk_limits(portfolio, [], 100.0, 10_000.0, RiskLimitsConfig(enabled=False)) == []


def test_audit_summary_ranks_issues_and_rates_execution():
    state = PortfolioState.initial(10_000.0)
    state.candidates_evaluated = 8
    state.candidates_filled = 2
    state.slippage_cost = 12.0
    state.skipped_premium = 300.0
    state.rejection_counts = {"SPREAD_TOO_WIDE": 4, "DELTA_OUT_OF_BAND": 4, "QUOTE_TOO_STALE": 1, "OPEN_INTEREST_TOO_LOW": 2}

    audit = summarize(state)
    assert audit.execution_rate == pytest.approx(0.25)
    assert audit.top_issues == [("DELTA_OUT_OF_BAND", 4), ("SPREAD_TOO_WIDE", 4), ("OPEN_INTEREST_TOO_LOW", 2)]

    metrics = audit.as_metrics()
    assert metrics["execution_rate_pct"] == pytest.approx(25.0)
    assert metrics["slippage_cost"] == 12.0
    assert metrics["skipped_premium"] == 300.0
    assert metrics["top_issues"][0] == ["DELTA_OUT_OF_BAND", 4]


def test_audit_summary_of_empty_run():
    audit = summarize(PortfolioState.initial(10_000.0))
    assert audit.execution_rate == 0.0
    assert audit.top_issues == []
