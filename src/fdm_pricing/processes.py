"""Diffusion process parameter sets consumed by the finite-difference generators.

Processes are plain frozen data: the generators sample their coefficients and
the attached market data (forward rates over a time-step interval) but never
mutate them, so one process instance may back any number of valuations.
"""

from __future__ import annotations
from collections.abc import Callable
from dataclasses import dataclass
import math

import numpy as np

from .exceptions import ValidationError
from .market_environment import MarketData
from .rates import DiscountCurve


def _require_finite(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return value


@dataclass(frozen=True, slots=True, kw_only=True)
class BlackScholesProcess:
    """Log-normal equity process with flat volatility."""

    spot: float
    volatility: float
    market_data: MarketData

    def __post_init__(self) -> None:
        if _require_finite("spot", self.spot) <= 0.0:
            raise ValidationError("spot must be positive")
        if _require_finite("volatility", self.volatility) <= 0.0:
            raise ValidationError("volatility must be positive")


@dataclass(frozen=True, slots=True, kw_only=True)
class HestonProcess:
    """Heston (1993) stochastic-variance equity process.

    dS/S = (r - q) dt + sqrt(v) dW_1
    dv   = kappa (theta - v) dt + sigma sqrt(v) dW_2,   d<W_1, W_2> = rho dt
    """

    spot: float
    v0: float
    kappa: float
    theta: float
    sigma: float
    rho: float
    market_data: MarketData

    def __post_init__(self) -> None:
        if _require_finite("spot", self.spot) <= 0.0:
            raise ValidationError("spot must be positive")
        if _require_finite("v0", self.v0) <= 0.0:
            raise ValidationError("v0 must be positive")
        if _require_finite("kappa", self.kappa) <= 0.0:
            raise ValidationError("kappa must be positive")
        if _require_finite("theta", self.theta) <= 0.0:
            raise ValidationError("theta must be positive")
        if _require_finite("sigma", self.sigma) <= 0.0:
            raise ValidationError("sigma must be positive")
        if not -1.0 <= _require_finite("rho", self.rho) <= 1.0:
            raise ValidationError(f"rho must be in [-1, 1], got {self.rho}")


@dataclass(frozen=True, slots=True, kw_only=True)
class CoxIngersollRossProcess:
    """Square-root short-rate process dr = kappa (theta - r) dt + sigma sqrt(r) dW."""

    r0: float
    kappa: float
    theta: float
    sigma: float

    def __post_init__(self) -> None:
        if _require_finite("r0", self.r0) <= 0.0:
            raise ValidationError("r0 must be positive")
        if _require_finite("kappa", self.kappa) <= 0.0:
            raise ValidationError("kappa must be positive")
        if _require_finite("theta", self.theta) <= 0.0:
            raise ValidationError("theta must be positive")
        if _require_finite("sigma", self.sigma) <= 0.0:
            raise ValidationError("sigma must be positive")


@dataclass(frozen=True, slots=True)
class LocalVolSurface:
    """Local volatility sigma(t, S) with the domain it is trusted on.

    vol_fn must be vectorised over spot.  Callers clamp spot into
    ``[min_strike, max_strike]`` and time to ``max_time`` before evaluating.
    """

    vol_fn: Callable[[float, np.ndarray], np.ndarray]
    min_strike: float = 0.0
    max_strike: float = math.inf
    max_time: float = math.inf

    def __post_init__(self) -> None:
        if not callable(self.vol_fn):
            raise ValidationError("vol_fn must be callable")
        if self.min_strike >= self.max_strike:
            raise ValidationError("min_strike must be below max_strike")

    @classmethod
    def flat(cls, volatility: float) -> "LocalVolSurface":
        return cls(lambda t, s: np.full_like(np.asarray(s, dtype=float), volatility))

    def local_vol(self, t: float, spot: np.ndarray) -> np.ndarray:
        return np.asarray(self.vol_fn(t, spot), dtype=float)


@dataclass(frozen=True, slots=True, kw_only=True)
class QuantoHelper:
    """Drift correction for an equity paying out in a foreign currency."""

    domestic_curve: DiscountCurve
    foreign_curve: DiscountCurve
    fx_volatility: float
    equity_fx_correlation: float

    def __post_init__(self) -> None:
        if _require_finite("fx_volatility", self.fx_volatility) < 0.0:
            raise ValidationError("fx_volatility must be non-negative")
        if not -1.0 <= _require_finite("equity_fx_correlation", self.equity_fx_correlation) <= 1.0:
            raise ValidationError("equity_fx_correlation must be in [-1, 1]")

    def quanto_adjustment(
        self, equity_vol: float | np.ndarray, t1: float, t2: float
    ) -> float | np.ndarray:
        r_domestic = self.domestic_curve.forward_rate(t1, t2)
        r_foreign = self.foreign_curve.forward_rate(t1, t2)
        return (
            r_domestic
            - r_foreign
            + np.asarray(equity_vol) * self.fx_volatility * self.equity_fx_correlation
        )
