"""Enums for finite-difference option valuation."""

from enum import Enum

__all__ = [
    "OptionType",
    "ExerciseType",
    "FdmSchemeType",
    "SolverState",
    "DividendSource",
    "DayCountConvention",
]


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class ExerciseType(Enum):
    EUROPEAN = "european"
    AMERICAN = "american"
    BERMUDAN = "bermudan"


class FdmSchemeType(Enum):
    DOUGLAS = "douglas"
    CRAIG_SNEYD = "craig_sneyd"
    MODIFIED_CRAIG_SNEYD = "modified_craig_sneyd"
    HUNDSDORFER = "hundsdorfer"
    EXPLICIT_EULER = "explicit_euler"
    IMPLICIT_EULER = "implicit_euler"
    CRANK_NICOLSON = "crank_nicolson"


class SolverState(Enum):
    INITIALIZED = "initialized"
    DAMPING = "damping"
    MAIN = "main"
    TERMINAL = "terminal"


class DividendSource(Enum):
    EXPLICIT = "explicit"
    ARGUMENTS = "arguments"


class DayCountConvention(Enum):
    ACT_360 = "ACT/360"
    ACT_365F = "ACT/365F"
    ACT_365_25 = "ACT/365.25"
