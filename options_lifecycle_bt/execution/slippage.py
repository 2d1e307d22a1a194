"""
Slippage model: turn a quoted bid/ask into a defensible fill price.

Selling walks a ladder down from mid toward the bid; buying walks it up from mid toward the ask.
Each ladder has at most three rungs:

    rung 1: mid
    rung 2: one tick through mid
    rung 3: 10% of the width through mid

every rung clamped to [bid, ask]. Degenerate quotes have no ladder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Literal

from ..config.schemas import SlippageConfig
from ..data.models import QuoteSnapshot, is_degenerate
from ..errors import InvalidQuote

logger = logging.getLogger(__name__)

Side = Literal["BUY", "SELL"]

WIDTH_FRACTION = 0.1
PRICE_EPS = 1e-12


def sell_ladder(bid: float, ask: float, tick: float = 0.01) -> List[float]:
    """
    Non-increasing sell prices, each within [bid, ask].

    Example: bid 0.90 / ask 1.00 / tick 0.01 gives mid 0.95, then 0.94 and 0.94.
    """
    if is_degenerate(bid, ask):
        return []
    mid = (bid + ask) / 2.0
    width = ask - bid
    rung3 = max(bid, mid - WIDTH_FRACTION * width)
    rung2 = max(rung3, mid - tick)
    rung1 = max(rung2, mid)
    return [rung1, rung2, rung3]


def buy_ladder(bid: float, ask: float, tick: float = 0.01) -> List[float]:
    """Non-decreasing buy prices, each within [bid, ask]."""
    if is_degenerate(bid, ask):
        return []
    mid = (bid + ask) / 2.0
    width = ask - bid
    rung3 = min(ask, mid + WIDTH_FRACTION * width)
    rung2 = min(rung3, mid + tick)
    rung1 = min(rung2, mid)
    return [rung1, rung2, rung3]


def apply_slippage(bid: float, ask: float, attempt: int, tick: float = 0.01) -> float:
    """
    Price of the attempt-th sell rung (1-indexed).

    Attempts past the end of the ladder get the last rung; attempt < 1 gets the bid.
    Invalid quotes price at 0.0.
    """
    ladder = sell_ladder(bid, ask, tick)
    if not ladder:
        return 0.0
    if attempt < 1:
        return float(bid)
    return ladder[min(attempt, len(ladder)) - 1]


def realistic_fill_price(bid: float, ask: float, requested: float, tick: float = 0.01) -> float:
    """Best sell rung at or below the requested price, else the bid (0.0 for invalid quotes)."""
    ladder = sell_ladder(bid, ask, tick)
    if not ladder:
        return 0.0
    for price in ladder:
        if price <= requested + PRICE_EPS:
            return price
    return float(bid)


@dataclass(frozen=True)
class Fill:
    side: Side
    price: float  # per-share, net of all legs
    qty: int
    legs: int
    commission: float
    attempt: int

    @property
    def notional(self) -> float:
        return self.price * self.qty


@dataclass
class SlippageModel:
    cfg: SlippageConfig

    def _commission(self, qty: int, legs: int) -> float:
        return float(self.cfg.commission_per_contract) * int(qty) * int(legs)

    def fill(self, quote: QuoteSnapshot, side: Side, qty: int, legs: int = 1) -> Fill:
        """
        Simulate a fill on the configured ladder rung.

        Raises:
            InvalidQuote: bid/ask is degenerate (no ladder exists)
            ValueError: qty is not positive
        """
        if qty <= 0:
            raise ValueError(f"qty must be positive, got {qty}")
        if quote.is_degenerate:
            raise InvalidQuote(quote.bid, quote.ask)

        ladder = (sell_ladder if side == "SELL" else buy_ladder)(quote.bid, quote.ask, self.cfg.tick)
        attempt = min(self.cfg.fill_attempt, len(ladder))
        price = ladder[attempt - 1]
        fill = Fill(
            side=side,
            price=float(price),
            qty=int(qty),
            legs=int(legs),
            commission=self._commission(qty, legs),
            attempt=attempt,
        )
        logger.debug(f"{side} {qty}x{legs} legs @ {price:.4f} (bid={quote.bid:.4f} ask={quote.ask:.4f} rung={attempt})")
        return fill

    def exit_commission(self, qty: int, legs: int) -> float:
        return self._commission(qty, legs)
