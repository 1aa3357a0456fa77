"""Contract data consumed by the engines: payoffs, exercises, dividends, arguments.

These are plain data holders.  The engines read strikes, exercise dates and
dividend schedules from them and evaluate payoffs on the grid, nothing more.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import datetime as dt

import numpy as np

from .enums import ExerciseType, OptionType
from .exceptions import ConfigurationError, ValidationError

__all__ = [
    "PlainVanillaPayoff",
    "CashOrNothingPayoff",
    "EuropeanExercise",
    "AmericanExercise",
    "BermudanExercise",
    "FixedDividend",
    "FractionalDividend",
    "VanillaOptionArguments",
    "DividendVanillaOptionArguments",
    "OptionArguments",
]


# ── Payoffs ─────────────────────────────────────────────────────────


def _check_striked(option_type: OptionType, strike: float) -> float:
    if not isinstance(option_type, OptionType):
        raise ConfigurationError(
            f"option_type must be OptionType enum, got {type(option_type).__name__}"
        )
    try:
        strike = float(strike)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("strike must be numeric") from exc
    if not np.isfinite(strike) or strike <= 0.0:
        raise ValidationError("strike must be positive and finite")
    return strike


@dataclass(frozen=True, slots=True)
class PlainVanillaPayoff:
    option_type: OptionType
    strike: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "strike", _check_striked(self.option_type, self.strike))

    def __call__(self, spot: np.ndarray | float) -> np.ndarray:
        spot = np.asarray(spot, dtype=float)
        if self.option_type is OptionType.CALL:
            return np.maximum(spot - self.strike, 0.0)
        return np.maximum(self.strike - spot, 0.0)


@dataclass(frozen=True, slots=True)
class CashOrNothingPayoff:
    """Digital payoff: ``cash_payoff`` if the option finishes in the money."""

    option_type: OptionType
    strike: float
    cash_payoff: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "strike", _check_striked(self.option_type, self.strike))

    def __call__(self, spot: np.ndarray | float) -> np.ndarray:
        spot = np.asarray(spot, dtype=float)
        if self.option_type is OptionType.CALL:
            itm = spot > self.strike
        else:
            itm = spot < self.strike
        return np.where(itm, float(self.cash_payoff), 0.0)


# ── Exercises ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class EuropeanExercise:
    date: dt.datetime
    type: ExerciseType = field(default=ExerciseType.EUROPEAN, init=False)

    @property
    def dates(self) -> tuple[dt.datetime, ...]:
        return (self.date,)

    @property
    def last_date(self) -> dt.datetime:
        return self.date


@dataclass(frozen=True, slots=True)
class AmericanExercise:
    """Exercisable at any time up to and including ``latest_date``."""

    latest_date: dt.datetime
    type: ExerciseType = field(default=ExerciseType.AMERICAN, init=False)

    @property
    def dates(self) -> tuple[dt.datetime, ...]:
        return (self.latest_date,)

    @property
    def last_date(self) -> dt.datetime:
        return self.latest_date


@dataclass(frozen=True, slots=True)
class BermudanExercise:
    exercise_dates: tuple[dt.datetime, ...]
    type: ExerciseType = field(default=ExerciseType.BERMUDAN, init=False)

    def __post_init__(self) -> None:
        if not self.exercise_dates:
            raise ValidationError("BermudanExercise needs at least one exercise date")
        object.__setattr__(self, "exercise_dates", tuple(sorted(self.exercise_dates)))

    @property
    def dates(self) -> tuple[dt.datetime, ...]:
        return self.exercise_dates

    @property
    def last_date(self) -> dt.datetime:
        return self.exercise_dates[-1]


Exercise = EuropeanExercise | AmericanExercise | BermudanExercise


# ── Dividends ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FixedDividend:
    """Cash dividend of a fixed amount going ex on ``date``."""

    date: dt.datetime
    amount: float

    def __post_init__(self) -> None:
        if not np.isfinite(float(self.amount)) or float(self.amount) < 0.0:
            raise ValidationError("dividend amount must be finite and non-negative")

    def amount_at(self, spot: np.ndarray | float) -> np.ndarray:
        return np.full_like(np.asarray(spot, dtype=float), float(self.amount))


@dataclass(frozen=True, slots=True)
class FractionalDividend:
    """Dividend proportional to the prevailing underlying level."""

    date: dt.datetime
    rate: float

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.rate) < 1.0:
            raise ValidationError("dividend rate must be in [0, 1)")

    def amount_at(self, spot: np.ndarray | float) -> np.ndarray:
        return float(self.rate) * np.asarray(spot, dtype=float)


Dividend = FixedDividend | FractionalDividend


# ── Option arguments (closed union per instrument family) ───────────


@dataclass(frozen=True, slots=True)
class VanillaOptionArguments:
    """Arguments of a plain one-asset option: no dividends attached."""

    payoff: PlainVanillaPayoff | CashOrNothingPayoff | None
    exercise: Exercise | None

    @property
    def dividends(self) -> tuple[Dividend, ...]:
        return ()

    def validate(self) -> None:
        if self.payoff is None:
            raise ValidationError("no payoff given")
        if self.exercise is None:
            raise ValidationError("no exercise given")


@dataclass(frozen=True, slots=True)
class DividendVanillaOptionArguments:
    """Arguments of a one-asset option carrying its own cash-flow schedule."""

    payoff: PlainVanillaPayoff | CashOrNothingPayoff | None
    exercise: Exercise | None
    cash_flow: tuple[Dividend, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "cash_flow", tuple(sorted(self.cash_flow, key=lambda d: d.date)))

    @property
    def dividends(self) -> tuple[Dividend, ...]:
        return self.cash_flow

    def validate(self) -> None:
        if self.payoff is None:
            raise ValidationError("no payoff given")
        if self.exercise is None:
            raise ValidationError("no exercise given")
        exercise_date = self.exercise.last_date
        for i, dividend in enumerate(self.cash_flow, start=1):
            if dividend.date > exercise_date:
                raise ValidationError(
                    f"dividend #{i} date ({dividend.date:%Y-%m-%d}) is later than "
                    f"the exercise date ({exercise_date:%Y-%m-%d})"
                )


OptionArguments = VanillaOptionArguments | DividendVanillaOptionArguments
