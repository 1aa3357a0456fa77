"""Events applied to the grid function at stopping times during the rollback.

Every condition exposes the same two-method capability: ``applies_at(t)``
tells the composite whether ``t`` is one of its event times, and
``apply_to(a, t)`` returns the transformed grid function.  The composite
holds the merged stopping times and applies its conditions in list order.
"""

from __future__ import annotations
from collections.abc import Iterable, Sequence
import logging
from typing import Protocol, runtime_checkable

import numpy as np

from ..enums import ExerciseType
from ..exceptions import ValidationError
from ..instruments import Dividend
from .inner_value import FdmLogInnerValue
from .meshers import FdmMesherComposite

logger = logging.getLogger(__name__)

__all__ = [
    "StepCondition",
    "FdmDividendHandler",
    "FdmAmericanStepCondition",
    "FdmBermudanStepCondition",
    "FdmSnapshotCondition",
    "FdmStepConditionComposite",
]

TIME_TOLERANCE = 1e-12


def _close(t1: float, t2: float) -> bool:
    return abs(t1 - t2) <= TIME_TOLERANCE * max(1.0, abs(t1), abs(t2))


def _merge_times(times: Iterable[float]) -> list[float]:
    merged: list[float] = []
    for t in sorted(float(t) for t in times):
        if not merged or not _close(merged[-1], t):
            merged.append(t)
    return merged


@runtime_checkable
class StepCondition(Protocol):
    def applies_at(self, t: float) -> bool: ...

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray: ...


class FdmDividendHandler:
    """Discrete dividends as jump conditions ``V(S, t-) = V(S - D(S), t+)``.

    The shift is done along the equity (log-spot) direction by linear
    interpolation in spot, flat beyond the mesh.
    """

    def __init__(
        self,
        dividends: Sequence[tuple[float, Dividend]],
        mesher: FdmMesherComposite,
        direction: int = 0,
    ) -> None:
        self._dividends = sorted(((float(t), d) for t, d in dividends), key=lambda e: e[0])
        self._mesher = mesher
        self._direction = direction
        self._spot = np.exp(mesher.meshers[direction].locations)

    @property
    def dividend_times(self) -> list[float]:
        return [t for t, _ in self._dividends]

    def applies_at(self, t: float) -> bool:
        return any(_close(t, dt) for dt, _ in self._dividends)

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray:
        layout = self._mesher.layout
        result = np.asarray(a, dtype=float).copy()
        for div_time, dividend in self._dividends:
            if not _close(t, div_time):
                continue
            shifted_spot = self._spot - np.asarray(dividend.amount_at(self._spot), dtype=float)
            moved = np.moveaxis(layout.to_grid(result), self._direction, 0)
            lines = moved.reshape(moved.shape[0], -1).copy()
            for j in range(lines.shape[1]):
                values = lines[:, j].copy()
                lines[:, j] = np.interp(
                    shifted_spot,
                    self._spot,
                    values,
                    left=values[0],
                    right=values[-1],
                )
            grid = np.moveaxis(lines.reshape(moved.shape), 0, self._direction)
            result = layout.from_grid(grid).copy()
            logger.debug("Applied dividend at t=%.6f", div_time)
        return result


class FdmAmericanStepCondition:
    """Early exercise at every time step: ``max(V, inner value)``."""

    def __init__(self, calculator: FdmLogInnerValue) -> None:
        self._calculator = calculator

    def applies_at(self, t: float) -> bool:
        return True

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray:
        return np.maximum(a, self._calculator.inner_value(t))


class FdmBermudanStepCondition:
    """Early exercise on a discrete set of exercise times."""

    def __init__(self, exercise_times: Sequence[float], calculator: FdmLogInnerValue) -> None:
        self._exercise_times = _merge_times(exercise_times)
        self._calculator = calculator

    @property
    def exercise_times(self) -> list[float]:
        return list(self._exercise_times)

    def applies_at(self, t: float) -> bool:
        return any(_close(t, et) for et in self._exercise_times)

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray:
        if not self.applies_at(t):
            return a
        return np.maximum(a, self._calculator.inner_value(t))


class FdmSnapshotCondition:
    """Keeps a copy of the grid function at one time (used for theta)."""

    def __init__(self, t: float) -> None:
        self._t = float(t)
        self._values: np.ndarray | None = None

    @property
    def time(self) -> float:
        return self._t

    @property
    def values(self) -> np.ndarray | None:
        return self._values

    def applies_at(self, t: float) -> bool:
        return _close(t, self._t)

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray:
        if self.applies_at(t):
            self._values = np.array(a, dtype=float, copy=True)
        return a


class FdmStepConditionComposite:
    """Ordered set of conditions with their merged stopping times."""

    def __init__(
        self,
        stopping_times: Iterable[float],
        conditions: Sequence[StepCondition],
    ) -> None:
        stopping_times = _merge_times(stopping_times)
        if any(t < 0.0 for t in stopping_times):
            raise ValidationError("stopping times must be non-negative")
        self._stopping_times = stopping_times
        self._conditions = list(conditions)

    @property
    def stopping_times(self) -> list[float]:
        return list(self._stopping_times)

    @property
    def conditions(self) -> list[StepCondition]:
        return list(self._conditions)

    def apply_to(self, a: np.ndarray, t: float) -> np.ndarray:
        for condition in self._conditions:
            a = condition.apply_to(a, t)
        return a

    @classmethod
    def join(cls, *composites: "FdmStepConditionComposite | None") -> "FdmStepConditionComposite":
        times: list[float] = []
        conditions: list[StepCondition] = []
        for composite in composites:
            if composite is None:
                continue
            times.extend(composite.stopping_times)
            conditions.extend(composite.conditions)
        return cls(times, conditions)

    @classmethod
    def vanilla_composite(
        cls,
        dividends: Sequence[tuple[float, Dividend]],
        exercise_type: ExerciseType,
        exercise_times: Sequence[float],
        mesher: FdmMesherComposite,
        calculator: FdmLogInnerValue,
        maturity: float,
    ) -> "FdmStepConditionComposite":
        """Dividend jumps followed by the exercise projection of a vanilla option.

        Only dividends strictly after the pricing time and not after maturity
        take part.
        """
        times: list[float] = []
        conditions: list[StepCondition] = []

        live = [(t, d) for t, d in dividends if 0.0 < t <= maturity]
        if live:
            handler = FdmDividendHandler(live, mesher)
            times.extend(handler.dividend_times)
            conditions.append(handler)

        if exercise_type is ExerciseType.AMERICAN:
            conditions.append(FdmAmericanStepCondition(calculator))
        elif exercise_type is ExerciseType.BERMUDAN:
            bermudan_times = [t for t in exercise_times if 0.0 <= t <= maturity]
            conditions.append(FdmBermudanStepCondition(bermudan_times, calculator))
            times.extend(bermudan_times)

        composite = cls(times, conditions)
        logger.debug(
            "Step conditions: %d conditions, stopping times %s",
            len(composite.conditions),
            composite.stopping_times,
        )
        return composite
