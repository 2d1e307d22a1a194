"""
Execution layer: realism gate and slippage model
"""

from .realism import (
    ReasonCode,
    RealismVerdict,
    VixContext,
    SizingContext,
    evaluate,
    spread_pct,
    liquidity_ok,
)
from .slippage import (
    Fill,
    SlippageModel,
    sell_ladder,
    buy_ladder,
    apply_slippage,
    realistic_fill_price,
)

__all__ = [
    "ReasonCode",
    "RealismVerdict",
    "VixContext",
    "SizingContext",
    "evaluate",
    "spread_pct",
    "liquidity_ok",
    "Fill",
    "SlippageModel",
    "sell_ladder",
    "buy_ladder",
    "apply_slippage",
    "realistic_fill_price",
]
