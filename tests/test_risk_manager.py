from datetime import datetime

from options_lifecycle_bt.config.schemas import RealismConfig, RiskConfig
from options_lifecycle_bt.data.models import QuoteSnapshot
from options_lifecycle_bt.execution.realism import ReasonCode, SizingContext, evaluate
from options_lifecycle_bt.risk.manager import RiskManager


def test_vix_tier_lookup_uses_table_boundaries():
    rm = RiskManager(RiskConfig())
    assert rm.tier_for(10.0).regime == "low"
    assert rm.tier_for(15.0).regime == "normal"
    assert rm.tier_for(24.99).regime == "normal"
    assert rm.tier_for(25.0).regime == "high"
    assert rm.tier_for(80.0).regime == "crisis"


def test_vix_context_flags_elevated_regimes():
    rm = RiskManager(RiskConfig())
    calm = rm.vix_context(12.0)
    assert not calm.elevated
    assert calm.high_regime_scale == 0.6

    stressed = rm.vix_context(40.0)
    assert stressed.elevated
    assert stressed.regime == "crisis"


def test_baseline_clamped_to_contract_limits():
    rm = RiskManager(RiskConfig(max_contracts=5))
    # 10% of 10k over $100 risk per contract = 10, capped at 5
    assert rm.baseline_contracts(10_000, 100.0) == 5
    # too little capital still sizes the minimum
    assert rm.baseline_contracts(100, 100.0) == 1


def test_size_scales_inversely_with_vix():
    rm = RiskManager(RiskConfig())
    low = rm.size(10_000, 100.0, vix=12.0)
    high = rm.size(10_000, 100.0, vix=30.0)
    assert low.baseline_size == high.baseline_size == 10
    assert low.requested_size == 10
    assert high.requested_size == 6
    assert high.scale_used == 0.6


def test_size_cut_inside_earnings_window():
    rm = RiskManager(RiskConfig(), earnings_window_days=2)
    d = rm.size(10_000, 100.0, vix=12.0, earnings_days=1)
    assert d.baseline_size == 10
    assert d.requested_size == 7
    assert d.reason == "earnings_cut"

    outside = rm.size(10_000, 100.0, vix=12.0, earnings_days=5)
    assert outside.requested_size == 10


def test_size_never_below_one_contract():
    rm = RiskManager(RiskConfig())
    d = rm.size(1_000, 100.0, vix=50.0, earnings_days=0)
    assert d.baseline_size == 1
    assert d.requested_size == 1
    # the floor means no reduction at all
    assert d.scale_used == 1.0
    assert d.tier_scale == 0.3


def test_scale_used_reflects_rounding_and_cuts():
    rm = RiskManager(RiskConfig())
    d = rm.size(10_000, 100.0, vix=30.0, earnings_days=1)
    # 10 -> 6 (high tier) -> 4 (earnings)
    assert d.requested_size == 4
    assert d.scale_used == 0.4
    assert d.tier_scale == 0.6


def _sized_verdict(decision):
    quote = QuoteSnapshot(
        bid=0.95, ask=1.05, open_interest=1000, quote_age_sec=0.5, venue_count=4,
        nbbo_sane=True, observed_at=datetime(2024, 1, 2, 10, 15),
    )
    sizing = SizingContext(
        scale_used=decision.scale_used,
        requested_size=decision.requested_size,
        baseline_size=decision.baseline_size,
        earnings_days=decision.earnings_days,
    )
    return evaluate(quote, -0.12, decision.vix_context, sizing, True, RealismConfig())


def test_one_lot_in_elevated_regime_fails_vix_scaling():
    rm = RiskManager(RiskConfig())
    for vix in (25.0, 40.0):
        d = rm.size(1_000, 100.0, vix=vix)
        assert (d.baseline_size, d.requested_size) == (1, 1)
        verdict = _sized_verdict(d)
        assert not verdict.ok
        assert verdict.reasons == (ReasonCode.VIX_SCALING_NOT_INVERSE,)


def test_scaled_size_in_elevated_regime_passes():
    rm = RiskManager(RiskConfig())
    assert _sized_verdict(rm.size(10_000, 100.0, vix=30.0)).ok
    assert _sized_verdict(rm.size(10_000, 100.0, vix=40.0)).ok
    # a calm market never trips the check even unscaled
    assert _sized_verdict(rm.size(1_000, 100.0, vix=12.0)).ok
