"""
Candidate strategies with deterministic discovery via explicit imports.

Importing a strategy module registers it; add new modules here.
"""

from .base import CandidateStrategy
from .registry import register_strategy, list_strategies, get_strategy, build_strategies
from .put_credit_spread import PutCreditSpreadStrategy
from .covered_call import CoveredCallStrategy

__all__ = [
    "CandidateStrategy",
    "register_strategy",
    "list_strategies",
    "get_strategy",
    "build_strategies",
    "PutCreditSpreadStrategy",
    "CoveredCallStrategy",
]
