"""
Risk management layer: VIX-tiered sizing, earnings cut and portfolio limit alerts
"""

from .manager import RiskManager, SizingDecision
from .limits import RiskAlert, RiskAlertKind, check_risk_limits

__all__ = ["RiskManager", "SizingDecision", "RiskAlert", "RiskAlertKind", "check_risk_limits"]
