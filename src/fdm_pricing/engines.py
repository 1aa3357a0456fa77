"""Finite-difference vanilla option engines.

An engine holds a process and an :class:`FdmEngineParams`.  Each call to
``calculate(arguments)`` validates the option arguments, then builds the
mesher, payoff calculator, step conditions, generator and grid solver
from scratch and returns value, delta, gamma and theta at today's state.
Nothing is cached between calls, so one engine may price any number of
options.

Dividends come either from the engine (``dividends=[...]``) or, when the
engine is built with ``dividends=None``, from the option arguments.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
import logging

from .enums import DividendSource
from .exceptions import ConfigurationError, UnsupportedFeatureError, ValidationError
from .fdm.generators import FdmBlackScholesOp, FdmCIROp, FdmHestonOp, FdmLinearOpComposite
from .fdm.inner_value import FdmLogInnerValue
from .fdm.meshers import BlackScholesMesher, FdmMesherComposite, SquareRootProcess1dMesher
from .fdm.schemes import FdmSchemeDesc
from .fdm.solver import FdmGridSolver, FdmSolverDesc
from .fdm.step_conditions import FdmStepConditionComposite
from .instruments import Dividend, OptionArguments
from .market_environment import MarketData
from .params import FdmEngineParams
from .processes import BlackScholesProcess, CoxIngersollRossProcess, HestonProcess
from .utils import log_timing

logger = logging.getLogger(__name__)

__all__ = [
    "FdmResults",
    "FdBlackScholesVanillaEngine",
    "FdHestonVanillaEngine",
    "FdCIRVanillaEngine",
]


@dataclass(frozen=True, slots=True)
class FdmResults:
    value: float
    delta: float
    gamma: float
    theta: float


@dataclass(frozen=True, slots=True)
class _Contract:
    """Option arguments translated to year fractions of the engine's market data."""

    maturity: float
    strike: float
    exercise_times: tuple[float, ...]
    dividends: tuple[tuple[float, Dividend], ...]


class _FdVanillaEngine(ABC):
    _default_scheme: FdmSchemeDesc

    def __init__(
        self,
        params: FdmEngineParams | None = None,
        dividends: Sequence[Dividend] | None = None,
    ) -> None:
        self._params = params if params is not None else FdmEngineParams()
        if dividends is None:
            self._dividend_source = DividendSource.ARGUMENTS
            self._dividends: tuple[Dividend, ...] = ()
        else:
            self._dividend_source = DividendSource.EXPLICIT
            self._dividends = tuple(sorted(dividends, key=lambda d: d.date))

    @property
    def params(self) -> FdmEngineParams:
        return self._params

    @property
    def dividend_source(self) -> DividendSource:
        return self._dividend_source

    @property
    def scheme_desc(self) -> FdmSchemeDesc:
        return self._params.scheme if self._params.scheme is not None else self._default_scheme

    @property
    @abstractmethod
    def market_data(self) -> MarketData: ...

    def _contract(self, arguments: OptionArguments) -> _Contract:
        strike = getattr(arguments.payoff, "strike", None)
        if strike is None:
            raise ConfigurationError(
                f"{type(self).__name__} needs a striked payoff, "
                f"got {type(arguments.payoff).__name__}"
            )

        market_data = self.market_data
        maturity = market_data.time(arguments.exercise.last_date)
        if maturity <= 0.0:
            raise ValidationError("exercise date must be after the pricing date")

        if self._dividend_source is DividendSource.ARGUMENTS:
            dividends = arguments.dividends
        else:
            dividends = self._dividends

        return _Contract(
            maturity=maturity,
            strike=float(strike),
            exercise_times=tuple(market_data.time(d) for d in arguments.exercise.dates),
            dividends=tuple((market_data.time(d.date), d) for d in dividends),
        )

    def calculate(self, arguments: OptionArguments) -> FdmResults:
        """Value the option and its spot Greeks.  Arguments are validated first."""
        arguments.validate()
        contract = self._contract(arguments)
        with log_timing(logger, f"{type(self).__name__}.calculate", self._params.log_timings):
            mesher = self._mesher(contract)
            calculator = FdmLogInnerValue(
                arguments.payoff, mesher, 0, averaging=self._params.smooth_payoff
            )
            conditions = FdmStepConditionComposite.vanilla_composite(
                contract.dividends,
                arguments.exercise.type,
                contract.exercise_times,
                mesher,
                calculator,
                contract.maturity,
            )
            desc = FdmSolverDesc(
                mesher=mesher,
                boundary_conditions=(),
                condition=conditions,
                calculator=calculator,
                maturity=contract.maturity,
                time_steps=self._params.t_grid,
                damping_steps=self._params.damping_steps,
            )
            solver = FdmGridSolver(desc, self.scheme_desc, self._generator(mesher))
            results = self._read_off(solver)

        logger.debug(
            "%s: T=%.4f K=%.4f value=%.6f delta=%.6f",
            type(self).__name__,
            contract.maturity,
            contract.strike,
            results.value,
            results.delta,
        )
        return results

    @abstractmethod
    def _mesher(self, contract: _Contract) -> FdmMesherComposite: ...

    @abstractmethod
    def _generator(self, mesher: FdmMesherComposite) -> FdmLinearOpComposite: ...

    @abstractmethod
    def _read_off(self, solver: FdmGridSolver) -> FdmResults: ...


class FdBlackScholesVanillaEngine(_FdVanillaEngine):
    """One-factor engine for the Black-Scholes process (optionally local vol)."""

    _default_scheme = FdmSchemeDesc.douglas()

    def __init__(
        self,
        process: BlackScholesProcess,
        params: FdmEngineParams | None = None,
        dividends: Sequence[Dividend] | None = None,
    ) -> None:
        super().__init__(params, dividends)
        self._process = process

    @property
    def market_data(self) -> MarketData:
        return self._process.market_data

    def _mesher(self, contract: _Contract) -> FdmMesherComposite:
        p = self._process
        return FdmMesherComposite(
            BlackScholesMesher(
                self._params.x_grid,
                p.spot,
                p.volatility,
                p.market_data,
                contract.maturity,
                contract.strike,
                dividends=contract.dividends,
                quanto_helper=self._params.quanto_helper,
            )
        )

    def _generator(self, mesher: FdmMesherComposite) -> FdmLinearOpComposite:
        return FdmBlackScholesOp(
            mesher,
            self._process,
            quanto_helper=self._params.quanto_helper,
            local_vol=self._params.leverage_fct,
        )

    def _read_off(self, solver: FdmGridSolver) -> FdmResults:
        s = self._process.spot
        return FdmResults(
            value=solver.value_at(s),
            delta=solver.delta_at(s),
            gamma=solver.gamma_at(s),
            theta=solver.theta_at(s),
        )


class FdHestonVanillaEngine(_FdVanillaEngine):
    """Two-factor engine for the Heston (or Heston stochastic local vol) model."""

    _default_scheme = FdmSchemeDesc.hundsdorfer()

    def __init__(
        self,
        process: HestonProcess,
        params: FdmEngineParams | None = None,
        dividends: Sequence[Dividend] | None = None,
    ) -> None:
        super().__init__(params, dividends)
        self._process = process

    @property
    def market_data(self) -> MarketData:
        return self._process.market_data

    def _mesher(self, contract: _Contract) -> FdmMesherComposite:
        p = self._process
        variance = SquareRootProcess1dMesher(
            self._params.factor_grid, p.v0, p.kappa, p.theta, p.sigma, contract.maturity
        )
        equity = BlackScholesMesher(
            self._params.x_grid,
            p.spot,
            variance.vola_estimate,
            p.market_data,
            contract.maturity,
            contract.strike,
            dividends=contract.dividends,
            quanto_helper=self._params.quanto_helper,
        )
        return FdmMesherComposite(equity, variance)

    def _generator(self, mesher: FdmMesherComposite) -> FdmLinearOpComposite:
        return FdmHestonOp(
            mesher,
            self._process,
            quanto_helper=self._params.quanto_helper,
            leverage_fct=self._params.leverage_fct,
            mixing_factor=self._params.mixing_factor,
        )

    def _read_off(self, solver: FdmGridSolver) -> FdmResults:
        s, v0 = self._process.spot, self._process.v0
        return FdmResults(
            value=solver.value_at(s, v0),
            delta=solver.delta_at(s, v0),
            gamma=solver.gamma_at(s, v0),
            theta=solver.theta_at(s, v0),
        )


class FdCIRVanillaEngine(_FdVanillaEngine):
    """Two-factor engine: Black-Scholes equity discounted with a CIR short rate."""

    _default_scheme = FdmSchemeDesc.modified_hundsdorfer()

    def __init__(
        self,
        cir_process: CoxIngersollRossProcess,
        bs_process: BlackScholesProcess,
        rho: float,
        params: FdmEngineParams | None = None,
        dividends: Sequence[Dividend] | None = None,
    ) -> None:
        super().__init__(params, dividends)
        if self._params.leverage_fct is not None:
            raise UnsupportedFeatureError("FdCIRVanillaEngine does not support a leverage function")
        if not -1.0 <= rho <= 1.0:
            raise ValidationError(f"rho must be in [-1, 1], got {rho}")
        self._cir_process = cir_process
        self._bs_process = bs_process
        self._rho = float(rho)

    @property
    def market_data(self) -> MarketData:
        return self._bs_process.market_data

    def _mesher(self, contract: _Contract) -> FdmMesherComposite:
        cir, bs = self._cir_process, self._bs_process
        rate = SquareRootProcess1dMesher(
            self._params.factor_grid, cir.r0, cir.kappa, cir.theta, cir.sigma, contract.maturity
        )
        equity = BlackScholesMesher(
            self._params.x_grid,
            bs.spot,
            bs.volatility,
            bs.market_data,
            contract.maturity,
            contract.strike,
            dividends=contract.dividends,
            quanto_helper=self._params.quanto_helper,
        )
        return FdmMesherComposite(equity, rate)

    def _generator(self, mesher: FdmMesherComposite) -> FdmLinearOpComposite:
        return FdmCIROp(
            mesher,
            self._cir_process,
            self._bs_process,
            self._rho,
            quanto_helper=self._params.quanto_helper,
        )

    def _read_off(self, solver: FdmGridSolver) -> FdmResults:
        s, r0 = self._bs_process.spot, self._cir_process.r0
        return FdmResults(
            value=solver.value_at(s, r0),
            delta=solver.delta_at(s, r0),
            gamma=solver.gamma_at(s, r0),
            theta=solver.theta_at(s, r0),
        )
