"""
Portfolio: positions, P&L engine, state and the position ledger
"""

from .position import (
    StrategyTag,
    PositionStatus,
    CloseReason,
    PositionMark,
    Position,
    TradeCandidate,
    ClosedTradeRecord,
    transition,
)
from .pnl import PnLEngine, PortfolioPnL, historical_var, sharpe_ratio, max_drawdown
from .state import PortfolioState, DataGapRecord
from .ledger import PositionLedger, settlement_value

__all__ = [
    "StrategyTag",
    "PositionStatus",
    "CloseReason",
    "PositionMark",
    "Position",
    "TradeCandidate",
    "ClosedTradeRecord",
    "transition",
    "PnLEngine",
    "PortfolioPnL",
    "historical_var",
    "sharpe_ratio",
    "max_drawdown",
    "PortfolioState",
    "DataGapRecord",
    "PositionLedger",
    "settlement_value",
]
