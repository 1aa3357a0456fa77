"""Term-structure collaborator queried by the finite-difference generators."""

import warnings
from dataclasses import dataclass

import numpy as np

from .exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class DiscountCurve:
    """Deterministic discount curve with log-linear interpolation.

    times are year fractions from the pricing date and must be strictly
    increasing. dfs are positive discount factors, typically with df(0)=1.
    The generators only ever ask for :meth:`forward_rate` over a time-step
    interval; the mesher additionally uses :meth:`df` to roll forwards.
    """

    times: np.ndarray
    dfs: np.ndarray
    flat_rate: float | None = None

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        df = np.asarray(self.dfs, dtype=float)
        if t.ndim != 1 or df.ndim != 1 or t.shape != df.shape:
            raise ValidationError("times and dfs must be 1D arrays of the same length")
        if t.size < 2:
            raise ValidationError("a curve needs at least two pillars")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("times must be strictly increasing")
        if np.any(df <= 0.0):
            raise ValidationError("discount factors must be positive")
        if self.flat_rate is not None and not np.isfinite(float(self.flat_rate)):
            raise ValidationError("flat_rate must be finite when provided")
        t.setflags(write=False)
        df.setflags(write=False)
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "dfs", df)

    @classmethod
    def flat(cls, rate: float, end_time: float, steps: int = 1) -> "DiscountCurve":
        """Build a flat continuously-compounded curve on ``[0, end_time]``."""
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        if steps < 1:
            raise ValidationError("steps must be >= 1")
        times = np.linspace(0.0, float(end_time), int(steps) + 1)
        return cls(times=times, dfs=np.exp(-float(rate) * times), flat_rate=float(rate))

    @classmethod
    def from_forwards(cls, times: np.ndarray, forwards: np.ndarray) -> "DiscountCurve":
        """Build a curve from piecewise-constant forward rates.

        Parameters
        ----------
        times
            Year-fraction grid including 0.  Shape ``(N+1,)``.
        forwards
            Continuously-compounded forward rate on each interval.  Shape ``(N,)``.
        """
        times = np.asarray(times, dtype=float)
        forwards = np.asarray(forwards, dtype=float)
        if times.ndim != 1 or forwards.ndim != 1:
            raise ValidationError("times and forwards must be 1-D arrays")
        if forwards.size != times.size - 1:
            raise ValidationError("forwards must have length len(times) - 1")
        if not np.isclose(times[0], 0.0):
            raise ValidationError("times must start at 0.0")
        cum_rate = np.concatenate([[0.0], np.cumsum(forwards * np.diff(times))])
        return cls(times=times, dfs=np.exp(-cum_rate))

    def _log_df(self, t: float | np.ndarray) -> np.ndarray:
        t = np.asarray(t, dtype=float)
        if self.flat_rate is not None:
            return -self.flat_rate * t
        horizon = float(self.times[-1])
        if np.any(t > horizon * (1.0 + 1e-10)):
            warnings.warn(f"Extrapolating discount curve beyond t={horizon:.4f}", stacklevel=3)
        log_dfs = np.log(self.dfs)
        return np.interp(t, self.times, log_dfs, left=log_dfs[0], right=log_dfs[-1])

    def df(self, t: float | np.ndarray) -> np.ndarray:
        """Discount factor(s) at ``t``; log-DF is held flat past the last pillar."""
        return np.exp(self._log_df(t))

    def forward_rate(self, t1: float, t2: float) -> float:
        """Continuously-compounded forward rate on ``[t1, t2]``, as used per time step."""
        if t2 <= t1:
            raise ValidationError(f"Need t2 > t1, got t1={t1}, t2={t2}")
        if self.flat_rate is not None:
            return float(self.flat_rate)
        return float(self._log_df(t1) - self._log_df(t2)) / (t2 - t1)

    def zero_rate(self, t: float) -> float:
        if t <= 0.0:
            raise ValidationError("t must be positive")
        return float(-self._log_df(t)) / t
