"""Meshers: per-dimension grid locations and their tensor-product composite.

One-dimensional meshers own an immutable, strictly increasing array of
locations together with forward (``dplus``) and backward (``dminus``)
spacings.  :class:`FdmMesherComposite` combines them into the mesh of a
multi-factor grid sharing one :class:`FdmLinearOpLayout`.
"""

from __future__ import annotations
from collections.abc import Sequence
import logging
import math

import numpy as np
from scipy.integrate import simpson
from scipy.stats import ncx2, norm

from ..exceptions import ValidationError
from ..instruments import Dividend
from ..market_environment import MarketData
from ..processes import QuantoHelper
from .layout import FdmLinearOpLayout

logger = logging.getLogger(__name__)


def _read_only(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


class Fdm1dMesher:
    """Mesh of one state dimension."""

    def __init__(self, locations: Sequence[float] | np.ndarray) -> None:
        x = np.array(locations, dtype=float)
        if x.ndim != 1 or x.size < 2:
            raise ValidationError("a mesher needs at least 2 points per dimension")
        if not np.all(np.isfinite(x)):
            raise ValidationError("mesher locations must be finite")
        if np.any(np.diff(x) <= 0.0):
            raise ValidationError("mesher locations must be strictly increasing")

        dplus = np.full(x.size, np.nan)
        dminus = np.full(x.size, np.nan)
        dplus[:-1] = np.diff(x)
        dminus[1:] = np.diff(x)
        self._locations = _read_only(x)
        self._dplus = _read_only(dplus)
        self._dminus = _read_only(dminus)

    @property
    def size(self) -> int:
        return self._locations.size

    @property
    def locations(self) -> np.ndarray:
        return self._locations

    @property
    def dplus(self) -> np.ndarray:
        return self._dplus

    @property
    def dminus(self) -> np.ndarray:
        return self._dminus

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(size={self.size}, "
            f"range=[{self._locations[0]:.6g}, {self._locations[-1]:.6g}])"
        )


class Uniform1dMesher(Fdm1dMesher):
    def __init__(self, start: float, end: float, size: int) -> None:
        if size < 2:
            raise ValidationError("a mesher needs at least 2 points per dimension")
        if end <= start:
            raise ValidationError("end must be greater than start")
        super().__init__(np.linspace(start, end, int(size)))


class Concentrating1dMesher(Fdm1dMesher):
    """Mesh on ``[start, end]`` with points clustered around ``c_point[0]``.

    Uses the sinh transform of Tavella and Randall: nodes are
    ``c + b * sinh(c1 + (c2 - c1) * u)`` for a uniform ``u`` in ``[0, 1]``,
    where the width ``b = density * (end - start)``.  Smaller densities give
    stronger clustering.  Without ``c_point`` the mesh is uniform.
    """

    def __init__(
        self,
        start: float,
        end: float,
        size: int,
        c_point: tuple[float, float] | None = None,
    ) -> None:
        if size < 2:
            raise ValidationError("a mesher needs at least 2 points per dimension")
        if end <= start:
            raise ValidationError("end must be greater than start")

        if c_point is None:
            x = np.linspace(start, end, int(size))
        else:
            center, density = float(c_point[0]), float(c_point[1])
            if density <= 0.0:
                raise ValidationError("concentration density must be positive")
            width = density * (end - start)
            c1 = math.asinh((start - center) / width)
            c2 = math.asinh((end - center) / width)
            u = np.linspace(0.0, 1.0, int(size))
            x = center + width * np.sinh(c1 + (c2 - c1) * u)
            x[0], x[-1] = start, end
        super().__init__(x)


class BlackScholesMesher(Fdm1dMesher):
    """Log-spot mesh wide enough for a log-normal equity over ``[0, maturity]``.

    The forward is rolled through the dividend dates and a set of
    intermediate times; the range spans the smallest and largest forward
    seen, widened by ``scale_factor`` standard deviations at the
    ``1 - eps`` quantile.  Points are concentrated around ``c_point``
    (by default the strike) when it falls inside the range.
    """

    def __init__(
        self,
        size: int,
        spot: float,
        volatility: float,
        market_data: MarketData,
        maturity: float,
        strike: float,
        *,
        eps: float = 1e-4,
        scale_factor: float = 1.5,
        c_point: tuple[float, float] | None = None,
        dividends: Sequence[tuple[float, Dividend]] = (),
        quanto_helper: QuantoHelper | None = None,
        spot_adjustment: float = 0.0,
    ) -> None:
        if maturity <= 0.0:
            raise ValidationError("maturity must be positive")
        if not 0.0 < eps < 0.5:
            raise ValidationError("eps must be in (0, 0.5)")

        n_intermediate = max(2, int(24.0 * maturity))
        steps: list[tuple[float, Dividend | None]] = [
            (t, dividend) for t, dividend in dividends if 0.0 <= t <= maturity
        ]
        steps += [((i + 1) * maturity / n_intermediate, None) for i in range(n_intermediate)]
        steps.sort(key=lambda step: step[0])

        fwd = float(spot) + float(spot_adjustment)
        lo = hi = fwd
        last = 0.0
        for t, dividend in steps:
            fwd *= (
                market_data.discount(last)
                / market_data.discount(t)
                * market_data.dividend_discount(t)
                / market_data.dividend_discount(last)
            )
            if quanto_helper is not None and t > last:
                fwd *= math.exp(
                    -float(quanto_helper.quanto_adjustment(volatility, last, t)) * (t - last)
                )
            lo, hi = min(lo, fwd), max(hi, fwd)
            if dividend is not None:
                fwd -= float(dividend.amount_at(fwd))
                if fwd <= 0.0:
                    raise ValidationError("dividends exceed the forward of the underlying")
                lo, hi = min(lo, fwd), max(hi, fwd)
            last = t

        width = volatility * math.sqrt(maturity) * norm.ppf(1.0 - eps) * scale_factor
        x_min = math.log(lo) - width
        x_max = math.log(hi) + width

        c_point = (strike, 0.1) if c_point is None else c_point
        log_center = math.log(c_point[0])
        if x_min < log_center < x_max:
            mesher: Fdm1dMesher = Concentrating1dMesher(
                x_min, x_max, size, (log_center, c_point[1])
            )
        else:
            mesher = Uniform1dMesher(x_min, x_max, size)
        logger.debug(
            "BlackScholesMesher size=%d x=[%.4f, %.4f] fwd=[%.4f, %.4f]",
            size,
            x_min,
            x_max,
            lo,
            hi,
        )
        super().__init__(mesher.locations)


class SquareRootProcess1dMesher(Fdm1dMesher):
    """Mesh for a square-root factor (Heston variance, CIR short rate).

    For each of ``time_steps`` horizons in ``(0, maturity]`` the mesh walks
    the non-central chi-square transition law from 0 in equal probability
    increments, keeping every step at least ``q_max / (50 * size)`` wide so
    a strongly skewed law (Feller condition violated) cannot pile its nodes
    up at zero.  The samples of all horizons are sorted and averaged in
    ``size`` buckets.
    """

    def __init__(
        self,
        size: int,
        x0: float,
        kappa: float,
        theta: float,
        sigma: float,
        maturity: float,
        *,
        time_steps: int = 10,
        eps: float = 1e-4,
    ) -> None:
        if size < 2:
            raise ValidationError("a mesher needs at least 2 points per dimension")
        if maturity <= 0.0:
            raise ValidationError("maturity must be positive")
        if min(x0, kappa, theta, sigma) <= 0.0:
            raise ValidationError("square-root process parameters must be positive")

        size = int(size)
        dof = 4.0 * kappa * theta / sigma**2
        samples = []
        for j in range(1, time_steps + 1):
            t = j * maturity / time_steps
            decay = math.exp(-kappa * t)
            scale = sigma**2 * (1.0 - decay) / (4.0 * kappa)
            nc = x0 * decay / scale
            q_max = max(x0, scale * float(ncx2.ppf(1.0 - eps, dof, nc)))
            min_step = q_max / (50.0 * size)

            samples.append((0.0, eps))
            p, x_prev = 0.0, 0.0
            for i in range(1, size):
                p += (1.0 - eps - p) / (size - i)
                x = max(x_prev + min_step, scale * float(ncx2.ppf(p, dof, nc)))
                p = float(ncx2.cdf(x / scale, dof, nc))
                x_prev = x
                samples.append((x, p))

        samples.sort()
        buckets = np.array(samples).reshape(size, time_steps, 2).mean(axis=1)
        locations = buckets[:, 0]
        super().__init__(locations)

        probabilities = np.sort(buckets[:, 1])
        width = probabilities[-1] - probabilities[0]
        if width > 0.0:
            p_fine = np.linspace(probabilities[0], probabilities[-1], 1001)
            v_fine = np.interp(p_fine, probabilities, locations)
            self._vola_estimate = float(simpson(np.sqrt(v_fine), x=p_fine) / width)
        else:
            self._vola_estimate = float(np.mean(np.sqrt(locations)))
        logger.debug(
            "SquareRootProcess1dMesher size=%d range=[%.6g, %.6g] vola=%.4f",
            size,
            locations[0],
            locations[-1],
            self._vola_estimate,
        )

    @property
    def vola_estimate(self) -> float:
        """Average volatility implied by the mesh, used to size the equity mesh."""
        return self._vola_estimate


class FdmMesherComposite:
    """Tensor product of one-dimensional meshers."""

    def __init__(self, *meshers: Fdm1dMesher) -> None:
        if not meshers:
            raise ValidationError("FdmMesherComposite needs at least one mesher")
        self._meshers = tuple(meshers)
        self._layout = FdmLinearOpLayout([m.size for m in meshers])

        self._locations = []
        self._dplus = []
        self._dminus = []
        for direction, mesher in enumerate(meshers):
            coords = self._layout.coordinate_array(direction)
            self._locations.append(_read_only(mesher.locations[coords]))
            self._dplus.append(_read_only(mesher.dplus[coords]))
            self._dminus.append(_read_only(mesher.dminus[coords]))

    @property
    def layout(self) -> FdmLinearOpLayout:
        return self._layout

    @property
    def meshers(self) -> tuple[Fdm1dMesher, ...]:
        return self._meshers

    def locations(self, direction: int) -> np.ndarray:
        return self._locations[direction]

    def dplus(self, direction: int) -> np.ndarray:
        return self._dplus[direction]

    def dminus(self, direction: int) -> np.ndarray:
        return self._dminus[direction]

    def location(self, index: int, direction: int) -> float:
        return float(self._locations[direction][index])
