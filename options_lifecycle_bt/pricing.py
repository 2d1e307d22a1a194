"""
Theoretical option pricing consumed by the P&L engine.

The engine treats pricing as a black box behind PricingModel; BlackScholesModel is the
default so a run works out of the box. Conventions for every implementation:

    dte     calendar days to expiration
    vol     annualized volatility as a fraction (VIX 20 -> 0.20)
    theta   value change per calendar day
    vega    value change per 1 vol point (0.01)
    price   per-share option value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np
from scipy.stats import norm

from .data.models import Right

DAYS_PER_YEAR = 365.0
MIN_VOL = 1e-4


@dataclass(frozen=True)
class Greeks:
    delta: float
    gamma: float
    theta: float
    vega: float
    price: float


class PricingModel(Protocol):
    def theoretical_greeks(
        self, underlying: float, strike: float, dte: float, vol: float, rate: float, right: Right
    ) -> Greeks:
        ...


def intrinsic_value(underlying: float, strike: float, right: Right) -> float:
    if right == "C":
        return max(0.0, underlying - strike)
    return max(0.0, strike - underlying)


class BlackScholesModel:
    """
    European Black-Scholes with no dividend yield.

    At or past expiration the option is worth its intrinsic value and every Greek is zero.

    Example:
        >>> g = BlackScholesModel().theoretical_greeks(100.0, 90.0, 30, 0.20, 0.04, "P")
        >>> -0.1 < g.delta < 0.0
        True
    """

    def theoretical_greeks(
        self, underlying: float, strike: float, dte: float, vol: float, rate: float, right: Right
    ) -> Greeks:
        S = float(underlying)
        K = float(strike)
        if S <= 0 or K <= 0:
            raise ValueError(f"underlying and strike must be positive, got S={S} K={K}")
        if dte <= 0:
            return Greeks(delta=0.0, gamma=0.0, theta=0.0, vega=0.0, price=intrinsic_value(S, K, right))

        T = float(dte) / DAYS_PER_YEAR
        sigma = max(float(vol), MIN_VOL)
        r = float(rate)
        sqrt_T = np.sqrt(T)

        d1 = (np.log(S / K) + (r + 0.5 * sigma ** 2) * T) / (sigma * sqrt_T)
        d2 = d1 - sigma * sqrt_T
        disc = np.exp(-r * T)
        pdf_d1 = norm.pdf(d1)

        gamma = pdf_d1 / (S * sigma * sqrt_T)
        vega = S * pdf_d1 * sqrt_T / 100.0
        decay = -S * pdf_d1 * sigma / (2.0 * sqrt_T)

        if right == "C":
            price = S * norm.cdf(d1) - K * disc * norm.cdf(d2)
            delta = norm.cdf(d1)
            theta = decay - r * K * disc * norm.cdf(d2)
        else:
            price = K * disc * norm.cdf(-d2) - S * norm.cdf(-d1)
            delta = norm.cdf(d1) - 1.0
            theta = decay + r * K * disc * norm.cdf(-d2)

        return Greeks(
            delta=float(delta),
            gamma=float(gamma),
            theta=float(theta) / DAYS_PER_YEAR,
            vega=float(vega),
            price=max(float(price), 0.0),
        )
