"""
Error taxonomy for the engine.

Data and realism problems are recovered locally (a gap is recorded, a candidate is skipped).
Configuration and state problems escalate and halt the run or the resume attempt.

A rejected trade is NOT an exception: see execution.realism.RealismVerdict.
"""

from __future__ import annotations

from datetime import date
from typing import Optional


class BacktestError(Exception):
    """Base class for engine errors."""


class DataGap(BacktestError):
    """Missing bar, quote or VIX print for a date. The bar (or candidate) is skipped."""

    def __init__(self, what: str, as_of: Optional[date] = None, symbol: Optional[str] = None):
        self.what = what
        self.as_of = as_of
        self.symbol = symbol
        where = f" {symbol}" if symbol else ""
        when = f" on {as_of.isoformat()}" if as_of else ""
        super().__init__(f"data gap: {what}{where}{when}")


class InvalidQuote(BacktestError):
    """Degenerate bid/ask (bid<=0, ask<=0 or bid>=ask). Always a realism failure."""

    def __init__(self, bid: float, ask: float):
        self.bid = bid
        self.ask = ask
        super().__init__(f"invalid quote: bid={bid} ask={ask}")


class ConfigMismatch(BacktestError):
    """Stored configuration fingerprint differs from the active run's fingerprint."""

    code = "CONFIG_MISMATCH"

    def __init__(self, run_id: str, stored: str, active: str):
        self.run_id = run_id
        self.stored = stored
        self.active = active
        super().__init__(f"{self.code}: checkpoint {run_id} was written with config {stored}, active config is {active}")


class StateCorruption(BacktestError):
    """Checkpoint cannot be deserialized or violates a state invariant."""


class InvalidTransition(StateCorruption):
    """Illegal position status change (terminal states never reopen)."""
