"""Market data container consumed by the finite-difference engines."""

from __future__ import annotations
from dataclasses import dataclass
import datetime as dt

from .enums import DayCountConvention
from .exceptions import ValidationError
from .rates import DiscountCurve
from .utils import calculate_year_fraction


@dataclass(frozen=True, slots=True)
class MarketData:
    """Pricing date, risk-free curve and optional continuous dividend curve.

    ``dividend_curve=None`` means a zero dividend yield.  All curve times are
    year fractions measured from ``pricing_date`` with ``day_count_convention``.
    """

    pricing_date: dt.datetime
    discount_curve: DiscountCurve
    dividend_curve: DiscountCurve | None = None
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F

    def __post_init__(self) -> None:
        if not isinstance(self.pricing_date, dt.datetime):
            raise ValidationError(
                f"pricing_date must be a datetime, got {type(self.pricing_date).__name__}"
            )
        if not isinstance(self.discount_curve, DiscountCurve):
            raise ValidationError(
                f"discount_curve must be a DiscountCurve, got {type(self.discount_curve).__name__}"
            )
        if self.dividend_curve is not None and not isinstance(self.dividend_curve, DiscountCurve):
            raise ValidationError(
                f"dividend_curve must be a DiscountCurve, got {type(self.dividend_curve).__name__}"
            )

    def time(self, date: dt.datetime) -> float:
        """Year fraction from the pricing date to ``date``."""
        return calculate_year_fraction(self.pricing_date, date, self.day_count_convention)

    def risk_free_rate(self, t1: float, t2: float) -> float:
        return self.discount_curve.forward_rate(t1, t2)

    def dividend_rate(self, t1: float, t2: float) -> float:
        if self.dividend_curve is None:
            return 0.0
        return self.dividend_curve.forward_rate(t1, t2)

    def discount(self, t: float) -> float:
        return float(self.discount_curve.df(t))

    def dividend_discount(self, t: float) -> float:
        if self.dividend_curve is None:
            return 1.0
        return float(self.dividend_curve.df(t))
