"""
Risk management: contract sizing from capital, VIX regime and earnings proximity.

Sizing is policy, the realism gate audits it. Nothing here can admit a trade on its own.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..config.schemas import RiskConfig, VixTier
from ..execution.realism import VixContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingDecision:
    baseline_size: int
    requested_size: int
    scale_used: float  # requested / baseline after every cut and clamp
    vix_context: VixContext
    tier_scale: float = 1.0
    earnings_days: Optional[int] = None
    reason: str = "ok"


@dataclass
class RiskManager:
    cfg: RiskConfig
    earnings_window_days: int = 2

    def tier_for(self, vix: float) -> VixTier:
        """Highest tier whose min_vix is at or below vix (tiers are sorted, first starts at 0)."""
        chosen = self.cfg.vix_tiers[0]
        for tier in self.cfg.vix_tiers:
            if vix >= tier.min_vix:
                chosen = tier
        return chosen

    def vix_context(self, vix: float) -> VixContext:
        tier = self.tier_for(vix)
        high = next(t for t in self.cfg.vix_tiers if t.regime == self.cfg.high_regime)
        return VixContext(
            level=float(vix),
            regime=tier.regime,
            high_regime_scale=float(high.size_scale),
            elevated=tier.regime in self.cfg.elevated_regimes,
        )

    def baseline_contracts(self, capital: float, max_loss_per_contract: float) -> int:
        """floor(capital * allocation / max loss per contract), clamped to [min_contracts, max_contracts]."""
        if max_loss_per_contract <= 0:
            raise ValueError(f"max_loss_per_contract must be positive, got {max_loss_per_contract}")
        raw = int(math.floor(max(capital, 0.0) * self.cfg.allocation_per_trade / max_loss_per_contract))
        return int(min(max(raw, self.cfg.min_contracts), self.cfg.max_contracts))

    def in_earnings_window(self, earnings_days: Optional[int]) -> bool:
        return earnings_days is not None and 0 <= earnings_days <= self.earnings_window_days

    def size(
        self,
        capital: float,
        max_loss_per_contract: float,
        vix: float,
        earnings_days: Optional[int] = None,
    ) -> SizingDecision:
        """
        Decide the contract count for a new entry.

        Args:
            capital: current account capital
            max_loss_per_contract: worst-case loss of one contract in dollars
            vix: VIX level for the bar
            earnings_days: trading days until the next earnings event (None if none upcoming)

        Returns:
            SizingDecision with the account baseline, the size actually requested and the scale that
            size really represents. The one-contract floor can push that above the tier scale, and
            the realism gate is told so.
        """
        ctx = self.vix_context(vix)
        scale = float(self.tier_for(vix).size_scale)
        baseline = self.baseline_contracts(capital, max_loss_per_contract)

        requested = int(math.floor(baseline * scale))
        reason = "ok"
        if self.in_earnings_window(earnings_days):
            requested = int(math.floor(requested * self.cfg.earnings_size_factor))
            reason = "earnings_cut"
        requested = max(1, min(requested, self.cfg.max_contracts))

        if requested != baseline:
            logger.debug(
                f"Sizing: baseline={baseline} requested={requested} scale={scale} regime={ctx.regime} "
                f"earnings_days={earnings_days}"
            )
        return SizingDecision(
            baseline_size=baseline,
            requested_size=requested,
            scale_used=requested / baseline,
            vix_context=ctx,
            tier_scale=scale,
            earnings_days=earnings_days,
            reason=reason,
        )
