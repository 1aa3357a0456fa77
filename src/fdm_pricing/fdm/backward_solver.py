"""Backward rollback of a grid function from maturity towards the pricing time."""

from __future__ import annotations
from collections.abc import Sequence
import logging

import numpy as np

from ..enums import SolverState
from ..exceptions import UnsupportedFeatureError, ValidationError
from .generators import FdmLinearOpComposite
from .schemes import FdmScheme, FdmSchemeDesc, ImplicitEulerScheme, make_scheme
from .step_conditions import FdmStepConditionComposite

logger = logging.getLogger(__name__)

# Sub-steps shorter than this are skipped and step ends this close to ``to`` snap onto it
_SNAP_TOLERANCE = 1e-8


class FdmBackwardSolver:
    """Rolls a grid function back in time under step conditions.

    ``rollback`` runs an optional damping phase of implicit Euler steps
    right after ``from_`` (smoothing a non-smooth terminal payoff), then the
    main phase with the configured scheme.  Each step is split at every
    stopping time strictly inside it and the step conditions are applied at
    the end of every (sub-)step.

    The solver is single use per rollback interval; ``state`` reports its
    progress: INITIALIZED -> DAMPING -> MAIN -> TERMINAL.
    """

    def __init__(
        self,
        op: FdmLinearOpComposite,
        boundary_conditions: Sequence[object],
        condition: FdmStepConditionComposite | None,
        scheme_desc: FdmSchemeDesc,
    ) -> None:
        if boundary_conditions:
            raise UnsupportedFeatureError(
                "only the natural (zero curvature) boundary is supported; "
                f"got {len(boundary_conditions)} boundary condition(s)"
            )
        self._op = op
        self._condition = condition if condition is not None else FdmStepConditionComposite([], [])
        self._scheme_desc = scheme_desc
        self._state = SolverState.INITIALIZED

    @property
    def state(self) -> SolverState:
        return self._state

    def rollback(
        self,
        a: np.ndarray,
        from_: float,
        to: float,
        steps: int,
        damping_steps: int = 0,
    ) -> np.ndarray:
        if from_ < to:
            raise ValidationError(f"rollback needs from_ >= to, got from_={from_}, to={to}")
        if steps < 1:
            raise ValidationError("steps must be >= 1")
        if damping_steps < 0:
            raise ValidationError("damping_steps must be >= 0")

        a = np.asarray(a, dtype=float).copy()
        delta_t = from_ - to
        all_steps = steps + damping_steps
        damping_to = from_ - (delta_t * damping_steps) / all_steps

        if damping_steps > 0:
            self._state = SolverState.DAMPING
            logger.debug(
                "Damping phase: %d implicit Euler steps on [%.6f, %.6f]",
                damping_steps,
                damping_to,
                from_,
            )
            a = self._rollback_phase(
                ImplicitEulerScheme(self._op), a, from_, damping_to, damping_steps
            )

        self._state = SolverState.MAIN
        logger.debug(
            "Main phase: %d %s steps on [%.6f, %.6f]",
            steps,
            self._scheme_desc.type.value,
            to,
            damping_to,
        )
        a = self._rollback_phase(
            make_scheme(self._scheme_desc, self._op),
            a,
            damping_to,
            to,
            steps,
            apply_at_start=damping_steps == 0,
        )
        self._state = SolverState.TERMINAL
        return a

    def _rollback_phase(
        self,
        scheme: FdmScheme,
        a: np.ndarray,
        from_: float,
        to: float,
        steps: int,
        apply_at_start: bool = True,
    ) -> np.ndarray:
        dt = (from_ - to) / steps
        stopping_times = self._condition.stopping_times
        if apply_at_start and stopping_times and stopping_times[-1] == from_:
            a = self._condition.apply_to(a, from_)

        t = from_
        for i in range(steps):
            now = t
            next_t = t - dt
            if abs(to - next_t) < _SNAP_TOLERANCE or i == steps - 1:
                next_t = to

            hit = False
            for stop in reversed(stopping_times):
                if next_t <= stop < now:
                    hit = True
                    if now - stop > _SNAP_TOLERANCE:
                        scheme.set_step(now - stop)
                        a = scheme.step(a, now)
                    a = self._condition.apply_to(a, stop)
                    now = stop

            if hit:
                if now - next_t > _SNAP_TOLERANCE:
                    scheme.set_step(now - next_t)
                    a = scheme.step(a, now)
                    a = self._condition.apply_to(a, next_t)
            else:
                scheme.set_step(now - next_t)
                a = scheme.step(a, now)
                a = self._condition.apply_to(a, next_t)

            t = next_t
        return a
