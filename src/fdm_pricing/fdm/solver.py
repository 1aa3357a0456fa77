"""Grid solver: one rollback plus interpolated value and Greeks."""

from __future__ import annotations
from collections.abc import Sequence
from dataclasses import dataclass
import logging

import numpy as np
import pandas as pd
from scipy.interpolate import CubicSpline, RectBivariateSpline

from ..exceptions import ConfigurationError, NumericalError, ValidationError
from .backward_solver import FdmBackwardSolver
from .generators import FdmLinearOpComposite
from .inner_value import FdmLogInnerValue
from .meshers import FdmMesherComposite
from .schemes import FdmSchemeDesc
from .step_conditions import FdmSnapshotCondition, FdmStepConditionComposite

logger = logging.getLogger(__name__)

__all__ = ["FdmSolverDesc", "FdmGridSolver"]

ONE_DAY = 1.0 / 365.0
# bicubic read-off of gamma needs four nodes per direction
MIN_NODES = 4


@dataclass(frozen=True, slots=True)
class FdmSolverDesc:
    """Everything one rollback needs apart from the generator and the scheme."""

    mesher: FdmMesherComposite
    boundary_conditions: Sequence[object]
    condition: FdmStepConditionComposite
    calculator: FdmLogInnerValue
    maturity: float
    time_steps: int
    damping_steps: int = 0

    def __post_init__(self) -> None:
        if self.maturity <= 0.0:
            raise ValidationError("maturity must be positive")
        if self.time_steps < 1:
            raise ValidationError("time_steps must be >= 1")
        if self.damping_steps < 0:
            raise ValidationError("damping_steps must be >= 0")
        object.__setattr__(self, "boundary_conditions", tuple(self.boundary_conditions))


class FdmGridSolver:
    """Rolls the payoff back to t=0 once and reads values and Greeks off the grid.

    Direction 0 of the mesh is log-spot; an optional direction 1 is the
    second factor (variance or short rate).  Off-grid points are read with a
    natural cubic spline (one factor) or a bicubic spline (two factors).
    The rollback runs lazily on the first query.

    Theta comes from a snapshot of the grid taken shortly before t=0, at
    ``0.99 * min(1 day, first stopping time)``.
    """

    def __init__(
        self,
        desc: FdmSolverDesc,
        scheme_desc: FdmSchemeDesc,
        op: FdmLinearOpComposite,
    ) -> None:
        ndim = desc.mesher.layout.ndim
        if ndim not in (1, 2):
            raise ConfigurationError(f"grid solver supports 1 or 2 dimensions, got {ndim}")
        if op.size() != ndim:
            raise ConfigurationError(
                f"generator has {op.size()} directions but the mesh has {ndim}"
            )
        dims = desc.mesher.layout.dim
        if min(dims) < MIN_NODES:
            raise ValidationError(
                f"grid read-off needs at least {MIN_NODES} points per direction, got {tuple(dims)}"
            )
        self._desc = desc
        self._scheme_desc = scheme_desc
        self._op = op

        positive_stops = [t for t in desc.condition.stopping_times if t > 0.0]
        first_stop = positive_stops[0] if positive_stops else desc.maturity
        self._snapshot = FdmSnapshotCondition(0.99 * min(ONE_DAY, first_stop))
        self._condition = FdmStepConditionComposite.join(
            desc.condition,
            FdmStepConditionComposite([self._snapshot.time], [self._snapshot]),
        )

        self._values: np.ndarray | None = None
        self._interpolator = None
        self._snapshot_interpolator = None

    @property
    def values(self) -> np.ndarray:
        """Rolled-back grid function at t=0."""
        self._calculate()
        return self._values

    def _calculate(self) -> None:
        if self._values is not None:
            return
        desc = self._desc
        initial = desc.calculator.avg_inner_value(desc.maturity)
        solver = FdmBackwardSolver(
            self._op, desc.boundary_conditions, self._condition, self._scheme_desc
        )
        self._values = solver.rollback(
            initial, desc.maturity, 0.0, desc.time_steps, desc.damping_steps
        )
        if not np.all(np.isfinite(self._values)):
            raise NumericalError("rollback produced non-finite values")
        if self._snapshot.values is None:
            raise NumericalError("theta snapshot was not taken during the rollback")

        self._interpolator = self._build_interpolator(self._values)
        self._snapshot_interpolator = self._build_interpolator(self._snapshot.values)
        logger.debug(
            "Rolled back %d grid points over [0, %.6f] with %d+%d steps",
            self._values.size,
            desc.maturity,
            desc.damping_steps,
            desc.time_steps,
        )

    def _build_interpolator(self, values: np.ndarray):
        meshers = self._desc.mesher.meshers
        x = meshers[0].locations
        if len(meshers) == 1:
            return CubicSpline(x, values, bc_type="natural")
        y = meshers[1].locations
        grid = self._desc.mesher.layout.to_grid(values)
        return RectBivariateSpline(x, y, grid, kx=3, ky=3)

    def _evaluate(self, interpolator, spot: float, factors: tuple[float, ...], dx: int = 0) -> float:
        ndim = self._desc.mesher.layout.ndim
        if len(factors) != ndim - 1:
            raise ConfigurationError(
                f"expected {ndim - 1} factor level(s) besides spot, got {len(factors)}"
            )
        if spot <= 0.0:
            raise ValidationError("spot must be positive")
        x = np.log(spot)
        if ndim == 1:
            return float(interpolator(x, dx))
        return float(interpolator.ev(x, factors[0], dx=dx))

    def value_at(self, spot: float, *factors: float) -> float:
        self._calculate()
        return self._evaluate(self._interpolator, spot, factors)

    def delta_at(self, spot: float, *factors: float) -> float:
        self._calculate()
        return self._evaluate(self._interpolator, spot, factors, dx=1) / spot

    def gamma_at(self, spot: float, *factors: float) -> float:
        self._calculate()
        v_x = self._evaluate(self._interpolator, spot, factors, dx=1)
        v_xx = self._evaluate(self._interpolator, spot, factors, dx=2)
        return (v_xx - v_x) / (spot * spot)

    def theta_at(self, spot: float, *factors: float) -> float:
        self._calculate()
        value = self._evaluate(self._interpolator, spot, factors)
        snapshot = self._evaluate(self._snapshot_interpolator, spot, factors)
        return (snapshot - value) / self._snapshot.time

    def value_surface(self) -> pd.DataFrame:
        """Grid values at t=0: rows are spot levels, columns second-factor levels."""
        self._calculate()
        meshers = self._desc.mesher.meshers
        spots = pd.Index(np.exp(meshers[0].locations), name="spot")
        if len(meshers) == 1:
            return pd.DataFrame({"value": self._values}, index=spots)
        grid = self._desc.mesher.layout.to_grid(self._values)
        columns = pd.Index(meshers[1].locations, name="factor")
        return pd.DataFrame(grid, index=spots, columns=columns)
