"""Tests for dividend, exercise and snapshot step conditions."""

import math

import numpy as np
import pytest

from fdm_pricing.enums import ExerciseType, OptionType
from fdm_pricing.fdm.inner_value import FdmLogInnerValue
from fdm_pricing.fdm.meshers import FdmMesherComposite, Uniform1dMesher
from fdm_pricing.fdm.step_conditions import (
    FdmAmericanStepCondition,
    FdmBermudanStepCondition,
    FdmDividendHandler,
    FdmSnapshotCondition,
    FdmStepConditionComposite,
    StepCondition,
)
from fdm_pricing.instruments import FixedDividend, FractionalDividend, PlainVanillaPayoff

from fdm_pricing.tests.helpers import PRICING_DATE


@pytest.fixture()
def log_mesher():
    return FdmMesherComposite(Uniform1dMesher(math.log(20.0), math.log(500.0), 201))


@pytest.fixture()
def put_calculator(log_mesher):
    return FdmLogInnerValue(PlainVanillaPayoff(OptionType.PUT, 100.0), log_mesher, averaging=False)


# ---------------------------------------------------------------------------
# Dividends
# ---------------------------------------------------------------------------


class TestFdmDividendHandler:
    def test_linear_value_shifts_by_amount(self, log_mesher):
        spot = np.exp(log_mesher.locations(0))
        handler = FdmDividendHandler([(0.5, FixedDividend(PRICING_DATE, 3.0))], log_mesher)
        shifted = handler.apply_to(spot.copy(), 0.5)
        inside = spot - 3.0 >= spot[0]
        np.testing.assert_allclose(shifted[inside], spot[inside] - 3.0, rtol=1e-12)
        # flat extrapolation below the mesh
        np.testing.assert_allclose(shifted[~inside], spot[0])

    def test_other_times_untouched(self, log_mesher):
        spot = np.exp(log_mesher.locations(0))
        handler = FdmDividendHandler([(0.5, FixedDividend(PRICING_DATE, 3.0))], log_mesher)
        assert not handler.applies_at(0.25)
        np.testing.assert_array_equal(handler.apply_to(spot, 0.25), spot)

    def test_fractional_dividend(self, log_mesher):
        spot = np.exp(log_mesher.locations(0))
        handler = FdmDividendHandler([(0.5, FractionalDividend(PRICING_DATE, 0.1))], log_mesher)
        shifted = handler.apply_to(spot, 0.5)
        inside = 0.9 * spot >= spot[0]
        np.testing.assert_allclose(shifted[inside], 0.9 * spot[inside], rtol=1e-12)

    def test_shift_acts_along_equity_direction_only(self):
        mesher = FdmMesherComposite(
            Uniform1dMesher(math.log(50.0), math.log(200.0), 31),
            Uniform1dMesher(0.0, 1.0, 4),
        )
        spot = np.exp(mesher.locations(0))
        a = spot * (1.0 + mesher.locations(1))
        handler = FdmDividendHandler([(0.5, FixedDividend(PRICING_DATE, 1.0))], mesher)
        shifted = handler.apply_to(a, 0.5)
        inside = spot - 1.0 >= np.exp(math.log(50.0))
        expected = (spot - 1.0) * (1.0 + mesher.locations(1))
        np.testing.assert_allclose(shifted[inside], expected[inside], rtol=1e-10)


# ---------------------------------------------------------------------------
# Exercise / snapshot
# ---------------------------------------------------------------------------


class TestExerciseConditions:
    def test_american_takes_max_with_inner_value(self, put_calculator):
        condition = FdmAmericanStepCondition(put_calculator)
        result = condition.apply_to(np.zeros(201), 0.3)
        np.testing.assert_allclose(result, put_calculator.inner_value(0.3))
        assert condition.applies_at(0.123)

    def test_bermudan_only_on_exercise_times(self, put_calculator):
        condition = FdmBermudanStepCondition([0.25, 0.5], put_calculator)
        zeros = np.zeros(201)
        np.testing.assert_array_equal(condition.apply_to(zeros, 0.3), zeros)
        assert np.max(condition.apply_to(zeros, 0.5)) > 0.0

    def test_snapshot_stores_copy(self):
        snapshot = FdmSnapshotCondition(0.01)
        a = np.arange(5.0)
        snapshot.apply_to(a, 0.02)
        assert snapshot.values is None
        snapshot.apply_to(a, 0.01)
        a[0] = 42.0
        assert snapshot.values[0] == 0.0

    def test_conditions_satisfy_protocol(self, put_calculator):
        assert isinstance(FdmAmericanStepCondition(put_calculator), StepCondition)
        assert isinstance(FdmSnapshotCondition(0.1), StepCondition)


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


class TestFdmStepConditionComposite:
    def test_stopping_times_sorted_and_merged(self):
        composite = FdmStepConditionComposite([0.5, 0.25, 0.5 + 1e-14, 0.75], [])
        assert composite.stopping_times == [0.25, 0.5, 0.75]

    def test_conditions_applied_in_order(self, log_mesher, put_calculator):
        spot = np.exp(log_mesher.locations(0))
        dividend = FdmDividendHandler([(0.5, FixedDividend(PRICING_DATE, 5.0))], log_mesher)
        exercise = FdmBermudanStepCondition([0.5], put_calculator)
        composite = FdmStepConditionComposite([0.5], [dividend, exercise])
        a = np.zeros_like(spot)
        expected = exercise.apply_to(dividend.apply_to(a, 0.5), 0.5)
        np.testing.assert_allclose(composite.apply_to(a, 0.5), expected)

    def test_vanilla_composite_filters_dividends(self, log_mesher, put_calculator):
        dividends = [
            (-0.1, FixedDividend(PRICING_DATE, 1.0)),
            (0.4, FixedDividend(PRICING_DATE, 1.0)),
            (1.0, FixedDividend(PRICING_DATE, 1.0)),
            (1.2, FixedDividend(PRICING_DATE, 1.0)),
        ]
        composite = FdmStepConditionComposite.vanilla_composite(
            dividends, ExerciseType.BERMUDAN, [0.5, 1.0], log_mesher, put_calculator, 1.0
        )
        assert composite.stopping_times == [0.4, 0.5, 1.0]
        assert isinstance(composite.conditions[0], FdmDividendHandler)
        assert isinstance(composite.conditions[1], FdmBermudanStepCondition)

    def test_european_without_dividends_is_empty(self, log_mesher, put_calculator):
        composite = FdmStepConditionComposite.vanilla_composite(
            [], ExerciseType.EUROPEAN, [1.0], log_mesher, put_calculator, 1.0
        )
        assert composite.stopping_times == []
        assert composite.conditions == []

    def test_join(self):
        a = FdmStepConditionComposite([0.1], [FdmSnapshotCondition(0.1)])
        b = FdmStepConditionComposite([0.3, 0.1], [FdmSnapshotCondition(0.3)])
        joined = FdmStepConditionComposite.join(a, None, b)
        assert joined.stopping_times == [0.1, 0.3]
        assert len(joined.conditions) == 2


# ---------------------------------------------------------------------------
# Inner value
# ---------------------------------------------------------------------------


class TestFdmLogInnerValue:
    def test_averaging_smooths_the_kink(self, log_mesher):
        payoff = PlainVanillaPayoff(OptionType.CALL, 100.0)
        raw = FdmLogInnerValue(payoff, log_mesher, averaging=False).avg_inner_value(1.0)
        avg = FdmLogInnerValue(payoff, log_mesher, averaging=True).avg_inner_value(1.0)
        x = log_mesher.locations(0)
        near = np.argmin(np.abs(x - math.log(100.0)))
        # averaging a convex payoff lifts it at the kink, barely moves it elsewhere
        assert avg[near] >= raw[near]
        far = np.exp(x) > 200.0
        np.testing.assert_allclose(avg[far], raw[far], rtol=1e-3)
