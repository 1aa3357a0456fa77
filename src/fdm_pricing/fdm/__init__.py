"""Finite-difference building blocks.

Public API
----------
Grid:
    FdmLinearOpLayout: multi-index <-> linear index bijection
    Fdm1dMesher, Uniform1dMesher, Concentrating1dMesher,
    BlackScholesMesher, SquareRootProcess1dMesher, FdmMesherComposite

Operators and generators:
    TripleBandLinearOp, FirstDerivativeOp, SecondDerivativeOp,
    NinePointLinearOp, SecondOrderMixedDerivativeOp,
    FdmLinearOpComposite, FdmBlackScholesOp, FdmHestonOp, FdmCIROp

Rollback:
    FdmLogInnerValue, step conditions, FdmSchemeDesc and schemes,
    FdmBackwardSolver, FdmSolverDesc, FdmGridSolver
"""

from .layout import FdmLinearOpLayout
from .meshers import (
    Fdm1dMesher,
    Uniform1dMesher,
    Concentrating1dMesher,
    BlackScholesMesher,
    SquareRootProcess1dMesher,
    FdmMesherComposite,
)
from .operators import (
    TripleBandLinearOp,
    FirstDerivativeOp,
    SecondDerivativeOp,
    NinePointLinearOp,
    SecondOrderMixedDerivativeOp,
)
from .generators import FdmLinearOpComposite, FdmBlackScholesOp, FdmHestonOp, FdmCIROp
from .inner_value import FdmLogInnerValue
from .step_conditions import (
    StepCondition,
    FdmDividendHandler,
    FdmAmericanStepCondition,
    FdmBermudanStepCondition,
    FdmSnapshotCondition,
    FdmStepConditionComposite,
)
from .schemes import FdmSchemeDesc, make_scheme
from .backward_solver import FdmBackwardSolver
from .solver import FdmSolverDesc, FdmGridSolver

__all__ = [
    "FdmLinearOpLayout",
    "Fdm1dMesher",
    "Uniform1dMesher",
    "Concentrating1dMesher",
    "BlackScholesMesher",
    "SquareRootProcess1dMesher",
    "FdmMesherComposite",
    "TripleBandLinearOp",
    "FirstDerivativeOp",
    "SecondDerivativeOp",
    "NinePointLinearOp",
    "SecondOrderMixedDerivativeOp",
    "FdmLinearOpComposite",
    "FdmBlackScholesOp",
    "FdmHestonOp",
    "FdmCIROp",
    "FdmLogInnerValue",
    "StepCondition",
    "FdmDividendHandler",
    "FdmAmericanStepCondition",
    "FdmBermudanStepCondition",
    "FdmSnapshotCondition",
    "FdmStepConditionComposite",
    "FdmSchemeDesc",
    "make_scheme",
    "FdmBackwardSolver",
    "FdmSolverDesc",
    "FdmGridSolver",
]
