"""Custom exception hierarchy for the fdm_pricing library.

All library-specific exceptions inherit from :class:`FdmPricingError`,
enabling callers to catch *any* library error with a single ``except`` clause::

    try:
        results = engine.calculate(arguments)
    except FdmPricingError as exc:
        log.error("Pricing failed: %s", exc)
"""

from __future__ import annotations


class FdmPricingError(Exception):
    """Base exception for all library errors."""


# ── Input validation ────────────────────────────────────────────────


class ValidationError(FdmPricingError):
    """Inconsistent input detected before any grid work starts."""


class ConfigurationError(FdmPricingError):
    """Caller/assembly mistake (wrong direction index, wrong argument shape, etc.)."""


# ── Feature support ─────────────────────────────────────────────────


class UnsupportedFeatureError(FdmPricingError):
    """Requested feature combination is not supported."""


# ── Numerical issues ────────────────────────────────────────────────


class NumericalError(FdmPricingError):
    """Base for errors arising from numerical computation."""


class ConvergenceError(NumericalError):
    """An iterative solver failed to converge within the allowed tolerance / iterations."""


class SingularSystemError(NumericalError):
    """A banded solve hit a zero pivot or produced non-finite values."""
