"""Helper functions shared by the finite-difference engines."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from collections.abc import Iterator
import logging
import time

from .enums import DayCountConvention
from .exceptions import ValidationError

__all__ = [
    "log_timing",
    "calculate_year_fraction",
]

_DAYS_PER_YEAR = {
    DayCountConvention.ACT_365F: 365.0,
    DayCountConvention.ACT_360: 360.0,
    DayCountConvention.ACT_365_25: 365.25,
}


@contextmanager
def log_timing(logger: logging.Logger, label: str, enabled: bool) -> Iterator[None]:
    """Emit a debug line with the wall time spent in the block (no-op unless enabled)."""
    if not enabled:
        yield
        return
    started = time.perf_counter()
    try:
        yield
    finally:
        logger.debug("Timing %s: %.6fs", label, time.perf_counter() - started)


def calculate_year_fraction(
    start_date: datetime,
    end_date: datetime,
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F,
) -> float:
    """Year fraction from ``start_date`` to ``end_date`` under an actual/fixed basis.

    Negative when ``end_date`` precedes ``start_date``; intraday differences
    count as fractions of a day.

    >>> calculate_year_fraction(datetime(2025, 1, 1), datetime(2026, 1, 1))
    1.0
    """
    try:
        days_per_year = _DAYS_PER_YEAR[day_count_convention]
    except KeyError:
        raise ValidationError(
            f"Unsupported day_count_convention: {day_count_convention}"
        ) from None
    elapsed = end_date - start_date
    return (elapsed.days + elapsed.seconds / 86400.0) / days_per_year
