"""
P&L engine: Greeks, intrinsic/time value, unrealized P&L and tail risk for positions and portfolios.

Sign conventions (whole-position dollars, holder's perspective):
- short legs count -1, long legs +1, scaled by quantity x multiplier
- covered calls add +1 delta per share for the stock
- intrinsic_value / time_value are the value of the option legs to the holder, so a net short
  position carries non-positive values

VaR is historical over a bounded FIFO of per-bar P&L changes per position. Until enough
observations exist a delta-gamma estimate is used instead.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import date
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..config.schemas import PnLConfig
from ..data.models import Right
from ..pricing import BlackScholesModel, Greeks, PricingModel, intrinsic_value
from .position import Position, PositionMark, StrategyTag

logger = logging.getLogger(__name__)

TRADING_DAYS = 252
Z95 = 1.645
Z99 = 2.326


@dataclass(frozen=True)
class LegValue:
    strike: float
    right: Right
    sign: int
    greeks: Greeks
    intrinsic: float


@dataclass(frozen=True)
class PortfolioPnL:
    as_of: date
    positions: int
    delta: float
    gamma: float
    theta: float
    vega: float
    intrinsic_value: float
    time_value: float
    unrealized_pnl: float
    var95: float
    var99: float
    sharpe_ratio: float
    max_drawdown: float


def position_legs(position: Position) -> List[Tuple[float, Right, int]]:
    """(strike, right, sign) for every option leg."""
    legs = [(position.short_strike, position.right, -1)]
    if position.long_strike is not None:
        legs.append((float(position.long_strike), position.right, +1))
    return legs


def historical_var(changes: Sequence[float], confidence: float) -> float:
    """Loss not exceeded with the given confidence: max(0, -quantile(changes, 1 - confidence))."""
    if len(changes) == 0:
        return 0.0
    q = float(np.quantile(np.asarray(changes, dtype=float), 1.0 - confidence))
    return max(0.0, -q)


def delta_gamma_var(delta: float, gamma: float, underlying: float, vix: float, z: float) -> float:
    """Worst of an up and a down z-sigma one-day move under a delta-gamma approximation."""
    move = underlying * (vix / 100.0) / math.sqrt(TRADING_DAYS) * z
    pnl_up = delta * move + 0.5 * gamma * move ** 2
    pnl_down = -delta * move + 0.5 * gamma * move ** 2
    return max(0.0, -min(pnl_up, pnl_down))


def sharpe_ratio(daily_pnl: Sequence[float], capital_base: float, risk_free_rate: float = 0.0) -> float:
    """Annualized Sharpe of daily returns (daily P&L over capital_base). 0.0 when undefined."""
    if len(daily_pnl) < 2 or capital_base <= 0:
        return 0.0
    returns = np.asarray(daily_pnl, dtype=float) / capital_base - risk_free_rate / TRADING_DAYS
    std = float(np.std(returns, ddof=1))
    if std <= 0 or not np.isfinite(std):
        return 0.0
    return float(np.mean(returns) / std * math.sqrt(TRADING_DAYS))


def max_drawdown(daily_pnl: Sequence[float], capital_base: float) -> float:
    """Largest peak-to-trough equity decline as a fraction of the peak."""
    if len(daily_pnl) == 0 or capital_base <= 0:
        return 0.0
    equity = capital_base + np.cumsum(np.asarray(daily_pnl, dtype=float))
    peaks = np.maximum.accumulate(np.concatenate(([capital_base], equity)))[1:]
    dd = (peaks - equity) / peaks
    return float(max(0.0, dd.max()))


class PnLEngine:
    """
    Marks positions to market with a PricingModel and keeps the per-position VaR history.

    The history is engine state: export_history()/restore_history() let a checkpoint carry it
    so a resumed run reports the same VaR as an uninterrupted one.
    """

    def __init__(self, cfg: Optional[PnLConfig] = None, pricing: Optional[PricingModel] = None):
        self.cfg = cfg or PnLConfig()
        self.pricing: PricingModel = pricing or BlackScholesModel()
        self._changes: Dict[int, Deque[float]] = {}
        self._last: Dict[int, float] = {}

    # -- leg valuation -------------------------------------------------

    def leg_values(self, position: Position, underlying_price: float, vix: float, as_of: date) -> List[LegValue]:
        dte = position.dte(as_of)
        vol = vix / 100.0
        out = []
        for strike, right, sign in position_legs(position):
            intr = intrinsic_value(underlying_price, strike, right)
            if dte <= 0:
                g = Greeks(delta=0.0, gamma=0.0, theta=0.0, vega=0.0, price=intr)
            else:
                g = self.pricing.theoretical_greeks(underlying_price, strike, dte, vol, self.cfg.risk_free_rate, right)
            out.append(LegValue(strike=strike, right=right, sign=sign, greeks=g, intrinsic=intr))
        return out

    def spread_value(self, position: Position, underlying_price: float, vix: float, as_of: date) -> float:
        """Theoretical per-share cost to close the option legs."""
        return sum(-leg.sign * leg.greeks.price for leg in self.leg_values(position, underlying_price, vix, as_of))

    # -- position ------------------------------------------------------

    def calculate_position_pnl(
        self,
        position: Position,
        underlying_price: float,
        vix: float,
        as_of: date,
        record: bool = True,
    ) -> PositionMark:
        """
        Mark one position.

        Args:
            position: open position
            underlying_price: underlying close for as_of
            vix: VIX level (vol = vix / 100)
            as_of: valuation date
            record: append this mark's P&L change to the VaR history (once per bar)

        Returns:
            PositionMark with whole-position Greeks, values, unrealized P&L and VaR
        """
        scale = position.quantity * position.multiplier
        legs = self.leg_values(position, underlying_price, vix, as_of)

        cost_to_close = sum(-leg.sign * leg.greeks.price for leg in legs)
        intrinsic = sum(leg.sign * leg.intrinsic for leg in legs) * scale
        value = -cost_to_close * scale

        delta = sum(leg.sign * leg.greeks.delta for leg in legs) * scale
        gamma = sum(leg.sign * leg.greeks.gamma for leg in legs) * scale
        theta = sum(leg.sign * leg.greeks.theta for leg in legs) * scale
        vega = sum(leg.sign * leg.greeks.vega for leg in legs) * scale
        if position.strategy == StrategyTag.CoveredCall:
            delta += scale

        unrealized = position.option_pnl(cost_to_close) + position.stock_pnl(underlying_price)

        if record:
            self._record(position.id, unrealized)
        var95, var99 = self.value_at_risk(position.id, delta, gamma, underlying_price, vix)

        return PositionMark(
            as_of=as_of,
            underlying_price=float(underlying_price),
            spread_value=float(cost_to_close),
            intrinsic_value=float(intrinsic),
            time_value=float(value - intrinsic),
            delta=float(delta),
            gamma=float(gamma),
            theta=float(theta),
            vega=float(vega),
            unrealized_pnl=float(unrealized),
            var95=var95,
            var99=var99,
        )

    def _record(self, position_id: int, unrealized: float) -> None:
        if position_id in self._last:
            window = self._changes.setdefault(position_id, deque(maxlen=self.cfg.var_window))
            window.append(unrealized - self._last[position_id])
        self._last[position_id] = unrealized

    def value_at_risk(
        self, position_id: int, delta: float, gamma: float, underlying_price: float, vix: float
    ) -> Tuple[float, float]:
        changes = self._changes.get(position_id, ())
        if len(changes) >= self.cfg.min_var_observations:
            var95 = historical_var(changes, 0.95)
            var99 = historical_var(changes, 0.99)
        else:
            var95 = delta_gamma_var(delta, gamma, underlying_price, vix, Z95)
            var99 = delta_gamma_var(delta, gamma, underlying_price, vix, Z99)
        return float(var95), float(max(var95, var99))

    def forget(self, position_id: int) -> None:
        """Drop history for a position that is no longer open."""
        self._changes.pop(position_id, None)
        self._last.pop(position_id, None)

    def history_length(self, position_id: int) -> int:
        return len(self._changes.get(position_id, ()))

    # -- portfolio -----------------------------------------------------

    def calculate_portfolio_pnl(
        self,
        positions: Iterable[Position],
        prices: Union[float, Mapping[str, float]],
        vix: float,
        as_of: date,
        daily_pnl: Sequence[float] = (),
        capital_base: float = 0.0,
    ) -> PortfolioPnL:
        """
        Aggregate position marks (without touching the VaR history) plus realized-series stats.

        prices may be one underlying price or a mapping symbol -> price.
        VaR is summed across positions (no diversification credit).
        """
        totals = dict(delta=0.0, gamma=0.0, theta=0.0, vega=0.0, intrinsic=0.0, time=0.0, unreal=0.0, v95=0.0, v99=0.0)
        count = 0
        for p in positions:
            if not p.is_open:
                continue
            px = prices if isinstance(prices, (int, float)) else prices[p.symbol]
            m = self.calculate_position_pnl(p, float(px), vix, as_of, record=False)
            totals["delta"] += m.delta
            totals["gamma"] += m.gamma
            totals["theta"] += m.theta
            totals["vega"] += m.vega
            totals["intrinsic"] += m.intrinsic_value
            totals["time"] += m.time_value
            totals["unreal"] += m.unrealized_pnl
            totals["v95"] += m.var95
            totals["v99"] += m.var99
            count += 1

        return PortfolioPnL(
            as_of=as_of,
            positions=count,
            delta=totals["delta"],
            gamma=totals["gamma"],
            theta=totals["theta"],
            vega=totals["vega"],
            intrinsic_value=totals["intrinsic"],
            time_value=totals["time"],
            unrealized_pnl=totals["unreal"],
            var95=totals["v95"],
            var99=totals["v99"],
            sharpe_ratio=sharpe_ratio(daily_pnl, capital_base, self.cfg.risk_free_rate),
            max_drawdown=max_drawdown(daily_pnl, capital_base),
        )

    # -- persistence ---------------------------------------------------

    def export_history(self) -> Tuple[Dict[int, List[float]], Dict[int, float]]:
        changes = {pid: list(window) for pid, window in self._changes.items()}
        return changes, dict(self._last)

    def restore_history(self, changes: Mapping[int, Sequence[float]], last: Mapping[int, float]) -> None:
        self._changes = {
            int(pid): deque((float(x) for x in window), maxlen=self.cfg.var_window) for pid, window in changes.items()
        }
        self._last = {int(pid): float(v) for pid, v in last.items()}
