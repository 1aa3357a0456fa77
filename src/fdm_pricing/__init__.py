from .engines import (
    FdmResults,
    FdBlackScholesVanillaEngine,
    FdHestonVanillaEngine,
    FdCIRVanillaEngine,
)
from .params import FdmEngineParams
from .market_environment import MarketData
from .rates import DiscountCurve
from .processes import (
    BlackScholesProcess,
    HestonProcess,
    CoxIngersollRossProcess,
    LocalVolSurface,
    QuantoHelper,
)
from .instruments import (
    PlainVanillaPayoff,
    CashOrNothingPayoff,
    EuropeanExercise,
    AmericanExercise,
    BermudanExercise,
    FixedDividend,
    FractionalDividend,
    VanillaOptionArguments,
    DividendVanillaOptionArguments,
)


__all__ = [
    "FdmResults",
    "FdBlackScholesVanillaEngine",
    "FdHestonVanillaEngine",
    "FdCIRVanillaEngine",
    "FdmEngineParams",
    "MarketData",
    "DiscountCurve",
    "BlackScholesProcess",
    "HestonProcess",
    "CoxIngersollRossProcess",
    "LocalVolSurface",
    "QuantoHelper",
    "PlainVanillaPayoff",
    "CashOrNothingPayoff",
    "EuropeanExercise",
    "AmericanExercise",
    "BermudanExercise",
    "FixedDividend",
    "FractionalDividend",
    "VanillaOptionArguments",
    "DividendVanillaOptionArguments",
]
