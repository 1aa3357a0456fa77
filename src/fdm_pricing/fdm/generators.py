"""Time-dependent PDE generators assembled from banded operators.

A generator owns one triple-band map per direction and, for two-factor
models, a nine-point correlation map.  ``set_time(t1, t2)`` refreshes the
coefficients for the step ``[t1, t2]`` from the forward rates over that
interval; the band structure never changes after construction.

All generators work in log-spot along direction 0 and price in backward
time, so ``apply(u)`` returns ``L u`` with ``dV/d(tau) = L V``.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import logging

import numpy as np
from scipy import sparse

from ..exceptions import ConfigurationError
from ..processes import (
    BlackScholesProcess,
    CoxIngersollRossProcess,
    HestonProcess,
    LocalVolSurface,
    QuantoHelper,
)
from .meshers import FdmMesherComposite
from .operators import (
    FirstDerivativeOp,
    SecondDerivativeOp,
    SecondOrderMixedDerivativeOp,
    TripleBandLinearOp,
)

logger = logging.getLogger(__name__)

__all__ = [
    "FdmLinearOpComposite",
    "FdmBlackScholesOp",
    "FdmHestonOp",
    "FdmCIROp",
]


class FdmLinearOpComposite(ABC):
    """Generator split into per-direction parts plus a mixed remainder.

    ``apply`` equals the sum of ``apply_direction`` over all directions plus
    ``apply_mixed``.  ADI schemes rely on that decomposition.
    """

    @abstractmethod
    def size(self) -> int:
        """Number of directions."""

    @abstractmethod
    def set_time(self, t1: float, t2: float) -> None:
        """Refresh coefficients for the step ``[t1, t2]``."""

    @abstractmethod
    def apply(self, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def apply_mixed(self, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def solve_splitting(self, direction: int, r: np.ndarray, a: float) -> np.ndarray:
        """Solve ``(I + a L_direction) x = r``."""

    @abstractmethod
    def preconditioner(self, r: np.ndarray, dt: float) -> np.ndarray:
        """Approximate inverse of ``I + dt L`` used by iterative solvers."""

    @abstractmethod
    def to_matrix_decomp(self) -> list[sparse.csr_matrix]: ...

    def to_matrix(self) -> sparse.csr_matrix:
        decomp = self.to_matrix_decomp()
        total = decomp[0]
        for m in decomp[1:]:
            total = total + m
        return total.tocsr()

    def _check_direction(self, direction: int) -> None:
        if not 0 <= direction < self.size():
            raise ConfigurationError(
                f"direction too large: {direction} (operator has {self.size()} directions)"
            )


def _clamped_local_vol(
    surface: LocalVolSurface, t1: float, t2: float, log_spot: np.ndarray
) -> np.ndarray:
    """Local vol at the interval midpoint, inside the surface's trusted domain."""
    t = min(surface.max_time, 0.5 * (t1 + t2))
    spot = np.clip(np.exp(log_spot), surface.min_strike, surface.max_strike)
    return surface.local_vol(t, spot)


# ── One factor ──────────────────────────────────────────────────────


class FdmBlackScholesOp(FdmLinearOpComposite):
    """Black-Scholes generator in log-spot with optional local volatility."""

    def __init__(
        self,
        mesher: FdmMesherComposite,
        process: BlackScholesProcess,
        quanto_helper: QuantoHelper | None = None,
        local_vol: LocalVolSurface | None = None,
    ) -> None:
        self._mesher = mesher
        self._process = process
        self._quanto_helper = quanto_helper
        self._local_vol = local_vol
        self._x = mesher.locations(0)
        self._dx_map = FirstDerivativeOp(0, mesher)
        self._dxx_map = SecondDerivativeOp(0, mesher)
        self._map_t = TripleBandLinearOp(0, mesher)

    def size(self) -> int:
        return 1

    def set_time(self, t1: float, t2: float) -> None:
        market_data = self._process.market_data
        r = market_data.risk_free_rate(t1, t2)
        q = market_data.dividend_rate(t1, t2)

        if self._local_vol is not None:
            v = _clamped_local_vol(self._local_vol, t1, t2, self._x) ** 2
        else:
            v = self._process.volatility**2

        drift = r - q - 0.5 * v
        if self._quanto_helper is not None:
            drift = drift - self._quanto_helper.quanto_adjustment(np.sqrt(v), t1, t2)
        self._map_t.axpyb(drift, self._dx_map, self._dxx_map.mult(0.5 * v), -r)

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self._map_t.apply(r)

    def apply_mixed(self, r: np.ndarray) -> np.ndarray:
        return np.zeros_like(np.asarray(r, dtype=float))

    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray:
        self._check_direction(direction)
        return self._map_t.apply(r)

    def solve_splitting(self, direction: int, r: np.ndarray, a: float) -> np.ndarray:
        self._check_direction(direction)
        return self._map_t.solve_splitting(r, a, 1.0)

    def preconditioner(self, r: np.ndarray, dt: float) -> np.ndarray:
        return self.solve_splitting(0, r, dt)

    def to_matrix_decomp(self) -> list[sparse.csr_matrix]:
        return [self._map_t.to_matrix()]


# ── Heston ──────────────────────────────────────────────────────────


class FdmHestonOp(FdmLinearOpComposite):
    """Heston generator on a (log-spot, variance) mesh.

    With an optional leverage function ``L(t, S)`` this is the stochastic
    local volatility generator:

        (r - q - L^2 v/2 - quanto) V_x + L^2 v/2 V_xx - r/2 V      (direction 0)
        kappa (theta - v) V_v + mixing^2 sigma^2 v/2 V_vv - r/2 V   (direction 1)
        L rho sigma mixing v V_xv                                   (mixed)

    At the lowest and highest log-spot nodes the second derivative vanishes,
    so the variance term of the drift is dropped there as well.
    """

    def __init__(
        self,
        mesher: FdmMesherComposite,
        process: HestonProcess,
        quanto_helper: QuantoHelper | None = None,
        leverage_fct: LocalVolSurface | None = None,
        mixing_factor: float = 1.0,
    ) -> None:
        self._mesher = mesher
        self._process = process
        self._quanto_helper = quanto_helper
        self._leverage_fct = leverage_fct

        layout = mesher.layout
        v = mesher.locations(1)
        x_coords = layout.coordinate_array(0)
        equity_edge = (x_coords == 0) | (x_coords == layout.dim[0] - 1)

        self._variance_values = np.where(equity_edge, 0.0, 0.5 * v)
        self._volatility_values = np.sqrt(2.0 * self._variance_values)

        # equity part
        self._dx_map = FirstDerivativeOp(0, mesher)
        self._dxx_map = SecondDerivativeOp(0, mesher).mult(0.5 * v)
        self._map_x = TripleBandLinearOp(0, mesher)

        # variance part
        mixed_sigma = process.sigma * mixing_factor
        self._dy_map = (
            SecondDerivativeOp(1, mesher)
            .mult(0.5 * mixed_sigma**2 * v)
            .add(FirstDerivativeOp(1, mesher).mult(process.kappa * (process.theta - v)))
        )
        self._map_y = TripleBandLinearOp(1, mesher)

        self._correlation_map = SecondOrderMixedDerivativeOp(0, 1, mesher).mult(
            process.rho * mixed_sigma * v
        )
        self._leverage = np.ones(layout.size)

    def size(self) -> int:
        return 2

    @property
    def leverage(self) -> np.ndarray:
        """Leverage slice of the last ``set_time`` call (ones without a leverage function)."""
        return self._leverage

    def _leverage_slice(self, t1: float, t2: float) -> np.ndarray:
        layout = self._mesher.layout
        if self._leverage_fct is None:
            return np.ones(layout.size)
        x = self._mesher.meshers[0].locations
        row = np.maximum(0.01, _clamped_local_vol(self._leverage_fct, t1, t2, x))
        return row[layout.coordinate_array(0)]

    def set_time(self, t1: float, t2: float) -> None:
        market_data = self._process.market_data
        r = market_data.risk_free_rate(t1, t2)
        q = market_data.dividend_rate(t1, t2)

        self._leverage = self._leverage_slice(t1, t2)
        l_square = self._leverage**2
        drift = r - q - self._variance_values * l_square
        if self._quanto_helper is not None:
            drift = drift - self._quanto_helper.quanto_adjustment(
                self._volatility_values * self._leverage, t1, t2
            )
        self._map_x.axpyb(drift, self._dx_map, self._dxx_map.mult(l_square), -0.5 * r)
        self._map_y.axpyb(None, self._dy_map, self._dy_map, -0.5 * r)

    def apply(self, r: np.ndarray) -> np.ndarray:
        return (
            self._map_y.apply(r)
            + self._map_x.apply(r)
            + self._leverage * self._correlation_map.apply(r)
        )

    def apply_mixed(self, r: np.ndarray) -> np.ndarray:
        return self._leverage * self._correlation_map.apply(r)

    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray:
        self._check_direction(direction)
        if direction == 0:
            return self._map_x.apply(r)
        return self._map_y.apply(r)

    def solve_splitting(self, direction: int, r: np.ndarray, a: float) -> np.ndarray:
        self._check_direction(direction)
        if direction == 0:
            return self._map_x.solve_splitting(r, a, 1.0)
        return self._map_y.solve_splitting(r, a, 1.0)

    def preconditioner(self, r: np.ndarray, dt: float) -> np.ndarray:
        return self.solve_splitting(1, self.solve_splitting(0, r, dt), dt)

    def to_matrix_decomp(self) -> list[sparse.csr_matrix]:
        return [
            self._map_x.to_matrix(),
            self._map_y.to_matrix(),
            self._correlation_map.to_matrix(),
        ]


# ── Equity with stochastic short rate ───────────────────────────────


class FdmCIROp(FdmLinearOpComposite):
    """Black-Scholes equity with a CIR short rate on a (log-spot, rate) mesh.

        (r - q - sigma_s^2/2 - quanto) V_x + sigma_s^2/2 V_xx - r/2 V     (direction 0)
        kappa (theta - r) V_r + sigma_r^2 r/2 V_rr - r/2 V                (direction 1)
        rho sigma_s sigma_r sqrt(r) V_xr                                  (mixed)

    ``r`` in the equity drift and the discounting is the short-rate state,
    not a curve rate.
    """

    def __init__(
        self,
        mesher: FdmMesherComposite,
        cir_process: CoxIngersollRossProcess,
        bs_process: BlackScholesProcess,
        rho: float,
        quanto_helper: QuantoHelper | None = None,
    ) -> None:
        if not -1.0 <= rho <= 1.0:
            raise ConfigurationError(f"rho must be in [-1, 1], got {rho}")
        self._mesher = mesher
        self._bs_process = bs_process
        self._quanto_helper = quanto_helper

        rates = mesher.locations(1)
        self._rates = rates
        self._dx_map = FirstDerivativeOp(0, mesher)
        self._dxx_map = SecondDerivativeOp(0, mesher)
        self._map_x = TripleBandLinearOp(0, mesher)

        self._dy_map = (
            SecondDerivativeOp(1, mesher)
            .mult(0.5 * cir_process.sigma**2 * rates)
            .add(FirstDerivativeOp(1, mesher).mult(cir_process.kappa * (cir_process.theta - rates)))
        )
        self._map_y = TripleBandLinearOp(1, mesher)
        self._correlation_map = SecondOrderMixedDerivativeOp(0, 1, mesher).mult(
            rho * bs_process.volatility * cir_process.sigma * np.sqrt(rates)
        )

    def size(self) -> int:
        return 2

    def set_time(self, t1: float, t2: float) -> None:
        q = self._bs_process.market_data.dividend_rate(t1, t2)
        variance = self._bs_process.volatility**2
        drift = self._rates - q - 0.5 * variance
        if self._quanto_helper is not None:
            drift = drift - self._quanto_helper.quanto_adjustment(
                self._bs_process.volatility, t1, t2
            )
        self._map_x.axpyb(
            drift, self._dx_map, self._dxx_map.mult(0.5 * variance), -0.5 * self._rates
        )
        self._map_y.axpyb(None, self._dy_map, self._dy_map, -0.5 * self._rates)

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self._map_x.apply(r) + self._map_y.apply(r) + self._correlation_map.apply(r)

    def apply_mixed(self, r: np.ndarray) -> np.ndarray:
        return self._correlation_map.apply(r)

    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray:
        self._check_direction(direction)
        if direction == 0:
            return self._map_x.apply(r)
        return self._map_y.apply(r)

    def solve_splitting(self, direction: int, r: np.ndarray, a: float) -> np.ndarray:
        self._check_direction(direction)
        if direction == 0:
            return self._map_x.solve_splitting(r, a, 1.0)
        return self._map_y.solve_splitting(r, a, 1.0)

    def preconditioner(self, r: np.ndarray, dt: float) -> np.ndarray:
        return self.solve_splitting(1, self.solve_splitting(0, r, dt), dt)

    def to_matrix_decomp(self) -> list[sparse.csr_matrix]:
        return [
            self._map_x.to_matrix(),
            self._map_y.to_matrix(),
            self._correlation_map.to_matrix(),
        ]
