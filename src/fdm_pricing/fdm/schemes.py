"""Time-stepping schemes for ``dV/d(tau) = L V`` in backward time.

A scheme is bound to one generator.  ``set_step(dt)`` fixes the step size
and ``step(a, t)`` advances the grid function from ``t`` to ``t - dt``,
refreshing the generator for ``[max(0, t - dt), t]`` first.

ADI references: Douglas and Rachford (1956), Craig and Sneyd (1988),
in 't Hout and Welfert (2009), Hundsdorfer and Verwer (2003).
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import math

import numpy as np
from scipy.sparse.linalg import LinearOperator, bicgstab

from ..enums import FdmSchemeType
from ..exceptions import ConfigurationError, ConvergenceError
from .generators import FdmLinearOpComposite

logger = logging.getLogger(__name__)

__all__ = [
    "FdmSchemeDesc",
    "FdmScheme",
    "DouglasScheme",
    "CraigSneydScheme",
    "ModifiedCraigSneydScheme",
    "HundsdorferScheme",
    "ExplicitEulerScheme",
    "ImplicitEulerScheme",
    "CrankNicolsonScheme",
    "make_scheme",
]

KRYLOV_RTOL = 1e-8


@dataclass(frozen=True, slots=True)
class FdmSchemeDesc:
    """Scheme family with its implicitness ``theta`` and correction weight ``mu``."""

    type: FdmSchemeType
    theta: float
    mu: float

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            try:
                object.__setattr__(self, "type", FdmSchemeType(self.type.lower()))
            except ValueError as exc:
                raise ValueError(f"unknown scheme type '{self.type}'") from exc
        elif not isinstance(self.type, FdmSchemeType):
            raise TypeError(f"type must be FdmSchemeType or str, got {type(self.type).__name__}")
        if not 0.0 <= self.theta <= 1.0:
            raise ValueError(f"theta must be in [0, 1], got {self.theta}")
        if not 0.0 <= self.mu <= 1.0:
            raise ValueError(f"mu must be in [0, 1], got {self.mu}")

    @classmethod
    def douglas(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.DOUGLAS, 0.5, 0.0)

    @classmethod
    def craig_sneyd(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.CRAIG_SNEYD, 0.5, 0.5)

    @classmethod
    def modified_craig_sneyd(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.MODIFIED_CRAIG_SNEYD, 1.0 / 3.0, 1.0 / 3.0)

    @classmethod
    def hundsdorfer(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.HUNDSDORFER, 0.5 + math.sqrt(3.0) / 6.0, 0.5)

    @classmethod
    def modified_hundsdorfer(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.HUNDSDORFER, 1.0 - math.sqrt(2.0) / 2.0, 0.5)

    @classmethod
    def explicit_euler(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.EXPLICIT_EULER, 0.0, 0.0)

    @classmethod
    def implicit_euler(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.IMPLICIT_EULER, 0.0, 0.0)

    @classmethod
    def crank_nicolson(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.CRANK_NICOLSON, 0.5, 0.0)

    @classmethod
    def default_for(cls, scheme_type: FdmSchemeType) -> "FdmSchemeDesc":
        """Standard parameters of a scheme family."""
        return {
            FdmSchemeType.DOUGLAS: cls.douglas,
            FdmSchemeType.CRAIG_SNEYD: cls.craig_sneyd,
            FdmSchemeType.MODIFIED_CRAIG_SNEYD: cls.modified_craig_sneyd,
            FdmSchemeType.HUNDSDORFER: cls.hundsdorfer,
            FdmSchemeType.EXPLICIT_EULER: cls.explicit_euler,
            FdmSchemeType.IMPLICIT_EULER: cls.implicit_euler,
            FdmSchemeType.CRANK_NICOLSON: cls.crank_nicolson,
        }[scheme_type]()


class FdmScheme(ABC):
    def __init__(self, op: FdmLinearOpComposite, theta: float = 0.5, mu: float = 0.5) -> None:
        self._op = op
        self._theta = theta
        self._mu = mu
        self._dt: float | None = None

    @property
    def dt(self) -> float | None:
        return self._dt

    def set_step(self, dt: float) -> None:
        self._dt = float(dt)

    def _prepare(self, t: float) -> float:
        if self._dt is None:
            raise ConfigurationError("set_step must be called before step")
        self._op.set_time(max(0.0, t - self._dt), t)
        return self._dt

    def _directional_pass(
        self, y: np.ndarray, explicit_at: np.ndarray, dt: float
    ) -> np.ndarray:
        for direction in range(self._op.size()):
            rhs = y - self._theta * dt * self._op.apply_direction(direction, explicit_at)
            y = self._op.solve_splitting(direction, rhs, -self._theta * dt)
        return y

    @abstractmethod
    def step(self, a: np.ndarray, t: float) -> np.ndarray: ...


class DouglasScheme(FdmScheme):
    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._prepare(t)
        y = a + dt * self._op.apply(a)
        return self._directional_pass(y, a, dt)


class CraigSneydScheme(FdmScheme):
    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._prepare(t)
        y0 = a + dt * self._op.apply(a)
        y = self._directional_pass(y0, a, dt)
        yt = y0 + self._mu * dt * self._op.apply_mixed(y - a)
        return self._directional_pass(yt, a, dt)


class ModifiedCraigSneydScheme(FdmScheme):
    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._prepare(t)
        y0 = a + dt * self._op.apply(a)
        y = self._directional_pass(y0, a, dt)
        yh = y0 + self._mu * dt * self._op.apply_mixed(y - a)
        yt = yh + (0.5 - self._mu) * dt * self._op.apply(y - a)
        return self._directional_pass(yt, a, dt)


class HundsdorferScheme(FdmScheme):
    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._prepare(t)
        y0 = a + dt * self._op.apply(a)
        y = self._directional_pass(y0, a, dt)
        yt = y0 + self._mu * dt * self._op.apply(y - a)
        return self._directional_pass(yt, y, dt)


class ExplicitEulerScheme(FdmScheme):
    def __init__(self, op: FdmLinearOpComposite) -> None:
        super().__init__(op, theta=1.0, mu=0.0)

    def step(self, a: np.ndarray, t: float, theta: float = 1.0) -> np.ndarray:
        dt = self._prepare(t)
        return a + theta * dt * self._op.apply(a)


class ImplicitEulerScheme(FdmScheme):
    """Fully implicit step ``(I - theta dt L) x = a``.

    One-factor generators are solved directly with the tridiagonal
    splitting solve; multi-factor generators go through BiCGStab with the
    generator's directional preconditioner.
    """

    def __init__(self, op: FdmLinearOpComposite, rtol: float = KRYLOV_RTOL) -> None:
        super().__init__(op, theta=1.0, mu=0.0)
        self._rtol = rtol
        self._iterations = 0

    @property
    def iterations(self) -> int:
        """Krylov iterations of the last multi-factor step."""
        return self._iterations

    def step(self, a: np.ndarray, t: float, theta: float = 1.0) -> np.ndarray:
        dt = self._prepare(t)
        if self._op.size() == 1:
            return self._op.solve_splitting(0, a, -theta * dt)

        n = a.size
        op = self._op
        system = LinearOperator((n, n), matvec=lambda x: x - theta * dt * op.apply(x))
        precond = LinearOperator((n, n), matvec=lambda x: op.preconditioner(x, -theta * dt))

        self._iterations = 0

        def count(_xk: np.ndarray) -> None:
            self._iterations += 1

        x, info = bicgstab(
            system,
            a,
            x0=a,
            rtol=self._rtol,
            atol=0.0,
            maxiter=max(10, n),
            M=precond,
            callback=count,
        )
        if info != 0:
            raise ConvergenceError(
                f"BiCGStab did not converge at t={t:.6f} (info={info}, "
                f"iterations={self._iterations})"
            )
        logger.debug("Implicit Euler t=%.6f: BiCGStab converged in %d iterations", t, self._iterations)
        return x


class CrankNicolsonScheme(FdmScheme):
    """Explicit step weighted ``1 - theta`` followed by an implicit step weighted ``theta``."""

    def __init__(self, op: FdmLinearOpComposite, theta: float = 0.5) -> None:
        super().__init__(op, theta=theta, mu=0.0)
        self._explicit = ExplicitEulerScheme(op)
        self._implicit = ImplicitEulerScheme(op)

    def set_step(self, dt: float) -> None:
        super().set_step(dt)
        self._explicit.set_step(dt)
        self._implicit.set_step(dt)

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        if self._theta != 1.0:
            a = self._explicit.step(a, t, 1.0 - self._theta)
        if self._theta != 0.0:
            a = self._implicit.step(a, t, self._theta)
        return a


def make_scheme(desc: FdmSchemeDesc, op: FdmLinearOpComposite) -> FdmScheme:
    """Instantiate the scheme described by ``desc`` for ``op``."""
    scheme_type = desc.type
    if scheme_type is FdmSchemeType.DOUGLAS:
        return DouglasScheme(op, desc.theta, desc.mu)
    if scheme_type is FdmSchemeType.CRAIG_SNEYD:
        return CraigSneydScheme(op, desc.theta, desc.mu)
    if scheme_type is FdmSchemeType.MODIFIED_CRAIG_SNEYD:
        return ModifiedCraigSneydScheme(op, desc.theta, desc.mu)
    if scheme_type is FdmSchemeType.HUNDSDORFER:
        return HundsdorferScheme(op, desc.theta, desc.mu)
    if scheme_type is FdmSchemeType.EXPLICIT_EULER:
        return ExplicitEulerScheme(op)
    if scheme_type is FdmSchemeType.IMPLICIT_EULER:
        return ImplicitEulerScheme(op)
    if scheme_type is FdmSchemeType.CRANK_NICOLSON:
        return CrankNicolsonScheme(op, desc.theta)
    raise ConfigurationError(f"unknown scheme type: {scheme_type}")
