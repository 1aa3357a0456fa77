"""Banded linear operators on a tensor-product mesh.

Operators store one coefficient per band and per grid point instead of a
matrix.  A :class:`TripleBandLinearOp` couples each point with its two
neighbours along a single direction; a :class:`NinePointLinearOp` couples
the 3x3 neighbourhood in a plane of two directions.  Neighbour indices are
fixed when the operator is built; later updates (``axpyb``) only rewrite
coefficient values in place.

At the edge of a direction the missing neighbour is replaced by the point
itself, so boundary rows must carry a zero coefficient on that band.  The
derivative operators below guarantee this: first derivatives switch to
one-sided differences and second derivatives vanish (zero curvature).
"""

from __future__ import annotations
import logging

import numpy as np
from scipy import sparse

from ..exceptions import ConfigurationError, SingularSystemError, ValidationError
from .meshers import FdmMesherComposite

logger = logging.getLogger(__name__)

Coefficient = float | np.ndarray | None


def _solve_tridiagonal_lines(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray,
) -> np.ndarray:
    """Solve many tridiagonal systems at once via the Thomas algorithm.

    Axis 0 runs along each system; the remaining axes enumerate independent
    systems.  Row ``i`` reads
    ``lower[i] * x[i-1] + diag[i] * x[i] + upper[i] * x[i+1] = rhs[i]``
    with ``lower[0]`` and ``upper[-1]`` acting on ``x[0]`` / ``x[-1]`` themselves.
    """
    n = diag.shape[0]
    c = upper.astype(float, copy=True)
    d = diag.astype(float, copy=True)
    y = rhs.astype(float, copy=True)
    d[0] += lower[0]
    d[-1] += c[-1]

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        # Forward elimination
        for i in range(1, n):
            w = lower[i] / d[i - 1]
            d[i] -= w * c[i - 1]
            y[i] -= w * y[i - 1]

        # Back substitution
        x = np.empty_like(y)
        x[-1] = y[-1] / d[-1]
        for i in range(n - 2, -1, -1):
            x[i] = (y[i] - c[i] * x[i + 1]) / d[i]

    if not np.all(np.isfinite(x)):
        raise SingularSystemError("banded solve produced non-finite values (singular system)")
    return x


def _neighbour_index(mesher: FdmMesherComposite, direction: int, offset: int) -> np.ndarray:
    """Linear index of the neighbour at ``offset`` along ``direction`` (self at the edges)."""
    layout = mesher.layout
    coords = layout.coordinate_array(direction)
    idx = np.arange(layout.size)
    target = coords + offset
    inside = (target >= 0) & (target < layout.dim[direction])
    return np.where(inside, idx + offset * layout.spacing[direction], idx)


def _as_coefficient(value: Coefficient, size: int) -> np.ndarray | float:
    if value is None:
        return 0.0
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0 or arr.size == 1:
        return float(arr.reshape(-1)[0])
    if arr.shape != (size,):
        raise ValidationError(f"coefficient array must have length {size}, got {arr.shape}")
    return arr


class TripleBandLinearOp:
    """Tridiagonal operator acting along one direction of the mesh."""

    def __init__(self, direction: int, mesher: FdmMesherComposite) -> None:
        if not 0 <= direction < mesher.layout.ndim:
            raise ConfigurationError(
                f"direction {direction} outside [0, {mesher.layout.ndim})"
            )
        size = mesher.layout.size
        self._direction = direction
        self._mesher = mesher
        self._i0 = _neighbour_index(mesher, direction, -1)
        self._i2 = _neighbour_index(mesher, direction, +1)
        self._lower = np.zeros(size)
        self._diag = np.zeros(size)
        self._upper = np.zeros(size)

    # ── structure ───────────────────────────────────────────────────

    @property
    def direction(self) -> int:
        return self._direction

    @property
    def mesher(self) -> FdmMesherComposite:
        return self._mesher

    @property
    def lower(self) -> np.ndarray:
        return self._lower

    @property
    def diag(self) -> np.ndarray:
        return self._diag

    @property
    def upper(self) -> np.ndarray:
        return self._upper

    def copy(self) -> "TripleBandLinearOp":
        """Same band structure (shared index maps), independent coefficients."""
        op = TripleBandLinearOp.__new__(TripleBandLinearOp)
        op._direction = self._direction
        op._mesher = self._mesher
        op._i0 = self._i0
        op._i2 = self._i2
        op._lower = self._lower.copy()
        op._diag = self._diag.copy()
        op._upper = self._upper.copy()
        return op

    def _check_compatible(self, other: "TripleBandLinearOp") -> None:
        if other._direction != self._direction or other._mesher is not self._mesher:
            raise ConfigurationError(
                "triple-band operators must share direction and mesher to be combined"
            )

    # ── algebra ─────────────────────────────────────────────────────

    def mult(self, u: float | np.ndarray) -> "TripleBandLinearOp":
        """Row scaling ``diag(u) @ self``."""
        u = _as_coefficient(u, self._diag.size)
        op = self.copy()
        op._lower *= u
        op._diag *= u
        op._upper *= u
        return op

    def add(self, other: "TripleBandLinearOp | float | np.ndarray") -> "TripleBandLinearOp":
        """``self + other`` for an operator, or ``self + diag(other)`` for a coefficient."""
        op = self.copy()
        if isinstance(other, TripleBandLinearOp):
            self._check_compatible(other)
            op._lower += other._lower
            op._diag += other._diag
            op._upper += other._upper
        else:
            op._diag += _as_coefficient(other, self._diag.size)
        return op

    def axpyb(
        self,
        a: Coefficient,
        x: "TripleBandLinearOp",
        y: "TripleBandLinearOp",
        b: Coefficient,
    ) -> None:
        """In place: ``self = diag(a) @ x + y + diag(b)``.

        ``a`` and ``b`` are scalars, grid-sized arrays or ``None`` (absent).
        Band arrays are overwritten, never reallocated.
        """
        self._check_compatible(x)
        self._check_compatible(y)
        size = self._diag.size
        b = _as_coefficient(b, size)
        if a is None:
            np.copyto(self._lower, y._lower)
            np.copyto(self._upper, y._upper)
            np.add(y._diag, b, out=self._diag)
            return
        a = _as_coefficient(a, size)
        np.multiply(a, x._lower, out=self._lower)
        self._lower += y._lower
        np.multiply(a, x._diag, out=self._diag)
        self._diag += y._diag
        self._diag += b
        np.multiply(a, x._upper, out=self._upper)
        self._upper += y._upper

    # ── application ─────────────────────────────────────────────────

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self._lower * r[self._i0] + self._diag * r + self._upper * r[self._i2]

    def solve_splitting(self, r: np.ndarray, a: float, b: float = 1.0) -> np.ndarray:
        """Solve ``(b I + a L) x = r`` along this operator's direction.

        Every grid line along the direction is an independent tridiagonal
        system; all of them are solved in one vectorised sweep.
        """
        layout = self._mesher.layout

        def lines(v: np.ndarray) -> np.ndarray:
            return np.moveaxis(layout.to_grid(v), self._direction, 0)

        x = _solve_tridiagonal_lines(
            a * lines(self._lower),
            a * lines(self._diag) + b,
            a * lines(self._upper),
            lines(np.asarray(r, dtype=float)),
        )
        return layout.from_grid(np.moveaxis(x, 0, self._direction))

    def to_matrix(self) -> sparse.csr_matrix:
        size = self._diag.size
        idx = np.arange(size)
        rows = np.concatenate([idx, idx, idx])
        cols = np.concatenate([self._i0, idx, self._i2])
        data = np.concatenate([self._lower, self._diag, self._upper])
        return sparse.coo_matrix((data, (rows, cols)), shape=(size, size)).tocsr()


class FirstDerivativeOp(TripleBandLinearOp):
    """Central first derivative on a non-uniform mesh, one-sided at the edges."""

    def __init__(self, direction: int, mesher: FdmMesherComposite) -> None:
        super().__init__(direction, mesher)
        coords = mesher.layout.coordinate_array(direction)
        last = mesher.layout.dim[direction] - 1
        hm = mesher.dminus(direction)
        hp = mesher.dplus(direction)
        first, final = coords == 0, coords == last

        with np.errstate(invalid="ignore", divide="ignore"):
            lower = -hp / (hm * (hm + hp))
            diag = (hp - hm) / (hm * hp)
            upper = hm / (hp * (hm + hp))
            self._lower[:] = np.where(first, 0.0, np.where(final, -1.0 / hm, lower))
            self._diag[:] = np.where(first, -1.0 / hp, np.where(final, 1.0 / hm, diag))
            self._upper[:] = np.where(first, 1.0 / hp, np.where(final, 0.0, upper))


class SecondDerivativeOp(TripleBandLinearOp):
    """Second derivative on a non-uniform mesh; rows at the edges are zero."""

    def __init__(self, direction: int, mesher: FdmMesherComposite) -> None:
        super().__init__(direction, mesher)
        coords = mesher.layout.coordinate_array(direction)
        last = mesher.layout.dim[direction] - 1
        hm = mesher.dminus(direction)
        hp = mesher.dplus(direction)
        edge = (coords == 0) | (coords == last)

        with np.errstate(invalid="ignore", divide="ignore"):
            self._lower[:] = np.where(edge, 0.0, 2.0 / (hm * (hm + hp)))
            self._diag[:] = np.where(edge, 0.0, -2.0 / (hm * hp))
            self._upper[:] = np.where(edge, 0.0, 2.0 / (hp * (hm + hp)))


class NinePointLinearOp:
    """Operator on the 3x3 neighbourhood spanned by two directions."""

    def __init__(self, d0: int, d1: int, mesher: FdmMesherComposite) -> None:
        ndim = mesher.layout.ndim
        if not (0 <= d0 < ndim and 0 <= d1 < ndim):
            raise ConfigurationError(f"directions ({d0}, {d1}) outside [0, {ndim})")
        if d0 == d1:
            raise ConfigurationError("a nine-point operator needs two distinct directions")
        layout = mesher.layout
        self._d0, self._d1 = d0, d1
        self._mesher = mesher

        idx = np.arange(layout.size)
        step0 = _neighbour_index(mesher, d0, -1) - idx, _neighbour_index(mesher, d0, 1) - idx
        step1 = _neighbour_index(mesher, d1, -1) - idx, _neighbour_index(mesher, d1, 1) - idx
        offsets0 = (step0[0], np.zeros_like(idx), step0[1])
        offsets1 = (step1[0], np.zeros_like(idx), step1[1])
        self._index = np.stack(
            [np.stack([idx + offsets0[j] + offsets1[k] for k in range(3)]) for j in range(3)]
        )
        self._weights = np.zeros((3, 3, layout.size))

    @property
    def weights(self) -> np.ndarray:
        """Coefficients ``[j, k, i]`` for offset ``(j - 1, k - 1)`` around point ``i``."""
        return self._weights

    def copy(self) -> "NinePointLinearOp":
        op = NinePointLinearOp.__new__(NinePointLinearOp)
        op._d0, op._d1 = self._d0, self._d1
        op._mesher = self._mesher
        op._index = self._index
        op._weights = self._weights.copy()
        return op

    def mult(self, u: float | np.ndarray) -> "NinePointLinearOp":
        op = self.copy()
        op._weights *= _as_coefficient(u, self._weights.shape[-1])
        return op

    def apply(self, r: np.ndarray) -> np.ndarray:
        return np.einsum("jki,jki->i", self._weights, np.asarray(r)[self._index])

    def to_matrix(self) -> sparse.csr_matrix:
        size = self._weights.shape[-1]
        rows = np.broadcast_to(np.arange(size), self._index.shape).ravel()
        return sparse.coo_matrix(
            (self._weights.ravel(), (rows, self._index.ravel())), shape=(size, size)
        ).tocsr()


class SecondOrderMixedDerivativeOp(NinePointLinearOp):
    """Cross derivative d^2/(dx_d0 dx_d1) as the product of two first-derivative stencils."""

    def __init__(self, d0: int, d1: int, mesher: FdmMesherComposite) -> None:
        super().__init__(d0, d1, mesher)
        dx0 = FirstDerivativeOp(d0, mesher)
        dx1 = FirstDerivativeOp(d1, mesher)
        w0 = (dx0.lower, dx0.diag, dx0.upper)
        w1 = (dx1.lower, dx1.diag, dx1.upper)
        for j in range(3):
            for k in range(3):
                self._weights[j, k] = w0[j] * w1[k]
