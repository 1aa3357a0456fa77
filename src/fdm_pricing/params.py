"""Configuration of the finite-difference engines."""

from dataclasses import dataclass

from .enums import FdmSchemeType
from .fdm.schemes import FdmSchemeDesc
from .processes import LocalVolSurface, QuantoHelper


@dataclass(frozen=True, slots=True)
class FdmEngineParams:
    """Grid sizes, time stepping and optional model extensions of an FD engine.

    Attributes
    ==========
    t_grid:
        Number of main-phase time steps. Default: 100.
    x_grid:
        Number of log-spot grid points, at least 4. Default: 100.
    factor_grid:
        Number of grid points of the second factor (variance or short rate).
        At least 4; ignored by one-factor engines. Default: 50.
    damping_steps:
        Implicit Euler steps taken right after maturity to smooth a
        non-smooth payoff before the main scheme starts. Default: 0.
    scheme:
        Time-stepping scheme, as a full FdmSchemeDesc or a scheme type /
        its string value (standard theta and mu). None selects the engine
        default: Douglas (Black-Scholes), Hundsdorfer (Heston) or modified
        Hundsdorfer (CIR).
    quanto_helper:
        Drift correction for a payoff in a foreign currency.
    leverage_fct:
        Leverage function of a stochastic local vol model (Heston engine),
        or the local volatility surface (Black-Scholes engine).
    mixing_factor:
        Scales the vol-of-vol of the Heston generator. Default: 1.0.
    smooth_payoff:
        Start the rollback from cell-averaged payoff values. Default: True.
    log_timings:
        Log the wall time of each calculation at DEBUG level.
    """

    t_grid: int = 100
    x_grid: int = 100
    factor_grid: int = 50
    damping_steps: int = 0
    scheme: FdmSchemeDesc | FdmSchemeType | str | None = None
    quanto_helper: QuantoHelper | None = None
    leverage_fct: LocalVolSurface | None = None
    mixing_factor: float = 1.0
    smooth_payoff: bool = True
    log_timings: bool = False

    def __post_init__(self):
        if isinstance(self.scheme, str):
            try:
                object.__setattr__(self, "scheme", FdmSchemeType(self.scheme.lower()))
            except ValueError as exc:
                raise ValueError(f"unknown scheme '{self.scheme}'") from exc
        if isinstance(self.scheme, FdmSchemeType):
            object.__setattr__(self, "scheme", FdmSchemeDesc.default_for(self.scheme))
        if self.scheme is not None and not isinstance(self.scheme, FdmSchemeDesc):
            raise ValueError(
                f"scheme must be FdmSchemeDesc, FdmSchemeType, str or None, "
                f"got {type(self.scheme).__name__}"
            )
        if self.t_grid < 1:
            raise ValueError(f"t_grid must be >= 1, got {self.t_grid}")
        if self.x_grid < 4:
            raise ValueError(f"x_grid must be >= 4, got {self.x_grid}")
        if self.factor_grid < 4:
            raise ValueError(f"factor_grid must be >= 4, got {self.factor_grid}")
        if self.damping_steps < 0:
            raise ValueError(f"damping_steps must be >= 0, got {self.damping_steps}")
        if self.mixing_factor < 0.0:
            raise ValueError(f"mixing_factor must be >= 0, got {self.mixing_factor}")
