"""
Portfolio risk-limit alerts over a PortfolioPnL roll-up.

Alerts are informational: the orchestrator logs them and counts them, nothing is closed or blocked.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

from ..config.schemas import RiskLimitsConfig
from ..portfolio.pnl import PortfolioPnL
from ..portfolio.position import Position

logger = logging.getLogger(__name__)

PORTFOLIO = "PORTFOLIO"


class RiskAlertKind(str, Enum):
    MaxDrawdown = "MAX_DRAWDOWN"
    DeltaExposure = "DELTA_EXPOSURE"
    VegaExposure = "VEGA_EXPOSURE"
    ThetaExposure = "THETA_EXPOSURE"
    Concentration = "CONCENTRATION"


@dataclass(frozen=True)
class RiskAlert:
    kind: RiskAlertKind
    symbol: str
    value: float
    limit: float
    severity: str

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.symbol}"

    @property
    def message(self) -> str:
        return f"{self.kind.value} {self.symbol}: {self.value:.4g} breaches limit {self.limit:.4g}"


def check_risk_limits(
    portfolio: PortfolioPnL,
    positions: Iterable[Position],
    underlying_price: float,
    equity: float,
    limits: RiskLimitsConfig,
) -> List[RiskAlert]:
    """
    Check drawdown, Greeks and per-symbol concentration against limits.

    Args:
        portfolio: roll-up of the open positions
        positions: the same open positions, marked (concentration reads their unrealized P&L)
        underlying_price: converts share delta to dollar delta
        equity: account value the exposures are measured against
        limits: thresholds

    Returns:
        Alerts in a fixed order: drawdown, delta, vega, theta, then concentration by symbol
    """
    if not limits.enabled:
        return []

    alerts: List[RiskAlert] = []
    if portfolio.max_drawdown > limits.max_drawdown:
        alerts.append(RiskAlert(RiskAlertKind.MaxDrawdown, PORTFOLIO, portfolio.max_drawdown, limits.max_drawdown, "critical"))

    if equity > 0:
        delta_exposure = abs(portfolio.delta) * underlying_price / equity
        if delta_exposure > limits.max_delta_exposure:
            alerts.append(RiskAlert(RiskAlertKind.DeltaExposure, PORTFOLIO, delta_exposure, limits.max_delta_exposure, "high"))

    if abs(portfolio.vega) > limits.max_vega:
        alerts.append(RiskAlert(RiskAlertKind.VegaExposure, PORTFOLIO, abs(portfolio.vega), limits.max_vega, "medium"))
    if portfolio.theta < limits.min_theta:
        alerts.append(RiskAlert(RiskAlertKind.ThetaExposure, PORTFOLIO, portfolio.theta, limits.min_theta, "low"))

    if equity > 0:
        exposure = defaultdict(float)
        for p in positions:
            if p.is_open and p.mark is not None:
                exposure[p.symbol] += abs(p.mark.unrealized_pnl)
        for symbol in sorted(exposure):
            concentration = exposure[symbol] / equity
            if concentration > limits.max_concentration:
                alerts.append(RiskAlert(RiskAlertKind.Concentration, symbol, concentration, limits.max_concentration, "high"))

    return alerts
