"""
Configuration schemas using Pydantic for validation and type safety.
"""

from datetime import date, time
from typing import Optional, Literal, Dict, List, Any
from pydantic import BaseModel, Field, field_validator, model_validator


Regime = Literal["low", "normal", "high", "crisis"]


class VixTier(BaseModel):
    """One row of the volatility-regime table: VIX at or above min_vix maps to regime/size_scale."""
    regime: Regime
    min_vix: float = Field(ge=0.0)
    size_scale: float = Field(gt=0.0, description="Multiplier applied to the baseline contract count")


def _default_vix_tiers() -> List[VixTier]:
    return [
        VixTier(regime="low", min_vix=0.0, size_scale=1.0),
        VixTier(regime="normal", min_vix=15.0, size_scale=0.8),
        VixTier(regime="high", min_vix=25.0, size_scale=0.6),
        VixTier(regime="crisis", min_vix=35.0, size_scale=0.3),
    ]


class RealismConfig(BaseModel):
    """Hard execution constraints checked by the realism gate"""
    max_spread_pct: float = Field(default=0.12, description="Max (ask-bid)/mid")
    min_open_interest: int = Field(default=250, description="Minimum open interest")
    max_quote_age_sec: float = Field(default=2.0, description="Maximum quote age in seconds")
    min_venues: int = Field(default=2, description="Minimum number of reporting venues")
    delta_min: float = Field(default=0.10, description="Lower bound of |delta| band")
    delta_max: float = Field(default=0.15, description="Upper bound of |delta| band")
    earnings_window_days: int = Field(default=2, description="Earnings proximity window (trading days)")
    daily_stop_pct: float = Field(default=0.01, description="Daily loss stop as fraction of equity (0.01 = 1%)")

    @model_validator(mode="after")
    def validate_delta_band(self):
        if self.delta_min > self.delta_max:
            raise ValueError(f"delta_min ({self.delta_min}) must be <= delta_max ({self.delta_max})")
        return self


class RiskLimitsConfig(BaseModel):
    """Portfolio alert thresholds checked after every bar (alerts are logged, never enforced)"""
    enabled: bool = True
    max_drawdown: float = Field(default=0.25, gt=0.0, description="Alert when the realized-series drawdown exceeds this fraction")
    max_delta_exposure: float = Field(default=0.5, gt=0.0, description="|delta| x underlying over equity")
    max_vega: float = Field(default=5000.0, gt=0.0, description="|vega| in dollars per vol point")
    min_theta: float = Field(default=-1000.0, description="Alert when portfolio theta (dollars per day) falls below this")
    max_concentration: float = Field(default=0.3, gt=0.0, description="Per-symbol |unrealized P&L| over equity")


class RiskConfig(BaseModel):
    """Position sizing policy (audited by the realism gate)"""
    allocation_per_trade: float = Field(default=0.10, description="Fraction of capital risked per trade")
    min_contracts: int = Field(default=1, ge=1)
    max_contracts: int = Field(default=50, ge=1)
    vix_tiers: List[VixTier] = Field(default_factory=_default_vix_tiers, description="Ordered VIX regime table")
    elevated_regimes: List[Regime] = Field(default_factory=lambda: ["high", "crisis"])
    high_regime: Regime = Field(default="high", description="Tier whose size_scale caps sizing in elevated regimes")
    earnings_size_factor: float = Field(default=0.7, gt=0.0, le=1.0, description="Size cut inside the earnings window")
    emergency_drawdown_pct: Optional[float] = Field(default=None, description="Close everything when drawdown reaches this fraction")
    limits: RiskLimitsConfig = Field(default_factory=RiskLimitsConfig)

    @field_validator("vix_tiers")
    @classmethod
    def validate_tiers(cls, v):
        """Tiers must be sorted by min_vix and start at zero"""
        if not v:
            raise ValueError("vix_tiers must not be empty")
        bounds = [t.min_vix for t in v]
        if bounds != sorted(bounds) or len(set(bounds)) != len(bounds):
            raise ValueError(f"vix_tiers must be strictly increasing by min_vix, got {bounds}")
        if bounds[0] != 0.0:
            raise ValueError("first vix tier must start at min_vix=0")
        return v

    @model_validator(mode="after")
    def validate_high_regime(self):
        if self.high_regime not in {t.regime for t in self.vix_tiers}:
            raise ValueError(f"high_regime '{self.high_regime}' is not present in vix_tiers")
        return self


class SlippageConfig(BaseModel):
    """Fill price ladder and costs"""
    tick: float = Field(default=0.01, gt=0.0, description="Minimum price increment")
    fill_attempt: int = Field(default=2, ge=1, description="Ladder rung used for simulated fills (1 = mid)")
    commission_per_contract: float = Field(default=0.65, ge=0.0, description="Commission per contract per leg")


class ExitRulesConfig(BaseModel):
    """Exit rule thresholds. Expiration settles first, then StopLoss -> ProfitTarget -> DteThreshold"""
    stop_loss_multiple: float = Field(default=2.0, gt=0.0, description="Close when loss >= multiple x credit received")
    profit_target_fraction: float = Field(default=0.70, gt=0.0, le=1.0, description="Close when gain >= fraction of max profit")
    dte_floor: Optional[int] = Field(default=7, description="Close when days-to-expiration <= floor (None disables)")


class PnLConfig(BaseModel):
    """Mark-to-market and tail risk"""
    risk_free_rate: float = Field(default=0.04)
    var_window: int = Field(default=252, ge=2, description="Rolling P&L observations kept per position")
    min_var_observations: int = Field(default=20, ge=2, description="Below this, VaR uses the delta-gamma estimate")


class StrategyConfig(BaseModel):
    """Candidate generation"""
    names: List[str] = Field(default_factory=lambda: ["put_credit_spread"], description="Registered candidate strategies")
    params: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-strategy parameters")
    weekly_premium_goal: Optional[float] = Field(default=None, description="Stop opening for the week once reached")
    earnings_dates: Dict[str, List[date]] = Field(default_factory=dict, description="Known earnings dates per symbol")


class EngineConfig(BaseModel):
    """Run range and capital"""
    symbol: str
    start: date
    end: date
    initial_capital: float = Field(default=10_000.0, gt=0.0)
    tz: str = Field(default="America/New_York", description="Exchange timezone for the execution window")
    entry_window_start: time = Field(default=time(10, 10))
    entry_window_end: time = Field(default=time(10, 30))
    max_gap_records: int = Field(default=100, ge=0, description="Gap records kept in state; older ones survive only as counts")

    @model_validator(mode="after")
    def validate_range(self):
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) is before start ({self.start})")
        return self


class CheckpointConfig(BaseModel):
    """Checkpoint storage (operational; excluded from the config fingerprint)"""
    enabled: bool = True
    directory: str = Field(default="checkpoints")
    every_n_bars: int = Field(default=20, ge=1)
    keep_completed: int = Field(default=5, ge=0)


class LoggingConfig(BaseModel):
    """Logging (operational; excluded from the config fingerprint)"""
    level: str = Field(default="INFO")
    run_log_dir: Optional[str] = Field(default=None, description="Write run.log per run under this directory")
    progress_every_sec: float = Field(default=5.0)


class RunConfig(BaseModel):
    """Complete run configuration"""
    engine: EngineConfig
    realism: RealismConfig = Field(default_factory=RealismConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    slippage: SlippageConfig = Field(default_factory=SlippageConfig)
    exits: ExitRulesConfig = Field(default_factory=ExitRulesConfig)
    pnl: PnLConfig = Field(default_factory=PnLConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# Sections that change where/how a run is recorded but never what it computes.
OPERATIONAL_SECTIONS = ("checkpoint", "logging")
