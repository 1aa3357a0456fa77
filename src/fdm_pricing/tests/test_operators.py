"""Tests for the banded operator algebra."""

import numpy as np
import pytest

from fdm_pricing.exceptions import ConfigurationError, SingularSystemError
from fdm_pricing.fdm.meshers import Concentrating1dMesher, Fdm1dMesher, FdmMesherComposite
from fdm_pricing.fdm.operators import (
    FirstDerivativeOp,
    NinePointLinearOp,
    SecondDerivativeOp,
    SecondOrderMixedDerivativeOp,
    TripleBandLinearOp,
)


def _mesher_2d() -> FdmMesherComposite:
    return FdmMesherComposite(
        Concentrating1dMesher(-1.0, 1.0, 12, (0.2, 0.2)),
        Fdm1dMesher([0.0, 0.1, 0.25, 0.5, 1.0, 1.6, 2.5]),
    )


@pytest.fixture()
def mesher():
    return _mesher_2d()


@pytest.fixture()
def rng():
    return np.random.default_rng(7)


# ---------------------------------------------------------------------------
# Derivative stencils
# ---------------------------------------------------------------------------


class TestDerivatives:
    def test_first_derivative_exact_for_quadratic_in_interior(self, mesher):
        x = mesher.locations(0)
        coords = mesher.layout.coordinate_array(0)
        interior = (coords > 0) & (coords < mesher.layout.dim[0] - 1)
        d = FirstDerivativeOp(0, mesher).apply(x**2)
        np.testing.assert_allclose(d[interior], 2.0 * x[interior], atol=1e-12)

    def test_first_derivative_exact_for_linear_everywhere(self, mesher):
        y = mesher.locations(1)
        d = FirstDerivativeOp(1, mesher).apply(3.0 * y - 1.0)
        np.testing.assert_allclose(d, 3.0, atol=1e-12)

    def test_second_derivative_of_quadratic(self, mesher):
        y = mesher.locations(1)
        coords = mesher.layout.coordinate_array(1)
        edge = (coords == 0) | (coords == mesher.layout.dim[1] - 1)
        d = SecondDerivativeOp(1, mesher).apply(y**2)
        np.testing.assert_allclose(d[~edge], 2.0, atol=1e-10)
        np.testing.assert_array_equal(d[edge], 0.0)

    def test_mixed_derivative_of_bilinear(self, mesher):
        x, y = mesher.locations(0), mesher.locations(1)
        d = SecondOrderMixedDerivativeOp(0, 1, mesher).apply(x * y)
        np.testing.assert_allclose(d, 1.0, atol=1e-10)

    def test_mixed_derivative_needs_distinct_directions(self, mesher):
        with pytest.raises(ConfigurationError, match="distinct"):
            SecondOrderMixedDerivativeOp(1, 1, mesher)

    def test_direction_out_of_range(self, mesher):
        with pytest.raises(ConfigurationError):
            FirstDerivativeOp(2, mesher)


# ---------------------------------------------------------------------------
# apply vs. materialised matrix
# ---------------------------------------------------------------------------


class TestMatrixConsistency:
    @pytest.mark.parametrize("direction", [0, 1])
    def test_triple_band_apply_matches_matrix(self, mesher, rng, direction):
        op = SecondDerivativeOp(direction, mesher).mult(rng.uniform(0.5, 2.0, mesher.layout.size))
        op = op.add(FirstDerivativeOp(direction, mesher).mult(rng.normal(size=mesher.layout.size)))
        u = rng.normal(size=mesher.layout.size)
        np.testing.assert_allclose(op.apply(u), op.to_matrix() @ u, atol=1e-10)

    def test_nine_point_apply_matches_matrix(self, mesher, rng):
        op = SecondOrderMixedDerivativeOp(0, 1, mesher).mult(rng.normal(size=mesher.layout.size))
        u = rng.normal(size=mesher.layout.size)
        np.testing.assert_allclose(op.apply(u), op.to_matrix() @ u, atol=1e-10)
        assert isinstance(op, NinePointLinearOp)


# ---------------------------------------------------------------------------
# Algebra
# ---------------------------------------------------------------------------


class TestAlgebra:
    def test_axpyb(self, mesher, rng):
        x = FirstDerivativeOp(0, mesher)
        y = SecondDerivativeOp(0, mesher)
        a = rng.normal(size=mesher.layout.size)
        b = -0.3
        out = TripleBandLinearOp(0, mesher)
        out.axpyb(a, x, y, b)
        u = rng.normal(size=mesher.layout.size)
        expected = a * x.apply(u) + y.apply(u) + b * u
        np.testing.assert_allclose(out.apply(u), expected, atol=1e-10)

    def test_axpyb_without_scaled_term(self, mesher, rng):
        y = SecondDerivativeOp(1, mesher)
        out = TripleBandLinearOp(1, mesher)
        out.axpyb(None, y, y, 0.5)
        u = rng.normal(size=mesher.layout.size)
        np.testing.assert_allclose(out.apply(u), y.apply(u) + 0.5 * u, atol=1e-10)

    def test_axpyb_reuses_band_storage(self, mesher):
        out = TripleBandLinearOp(0, mesher)
        diag = out.diag
        out.axpyb(1.0, FirstDerivativeOp(0, mesher), SecondDerivativeOp(0, mesher), 0.0)
        assert out.diag is diag

    def test_mult_leaves_original_untouched(self, mesher):
        op = FirstDerivativeOp(0, mesher)
        before = op.diag.copy()
        op.mult(5.0)
        np.testing.assert_array_equal(op.diag, before)

    def test_add_scalar_shifts_diagonal(self, mesher, rng):
        op = SecondDerivativeOp(0, mesher)
        u = rng.normal(size=mesher.layout.size)
        np.testing.assert_allclose(op.add(2.0).apply(u), op.apply(u) + 2.0 * u, atol=1e-12)

    def test_combining_different_directions_raises(self, mesher):
        with pytest.raises(ConfigurationError, match="share direction"):
            FirstDerivativeOp(0, mesher).add(FirstDerivativeOp(1, mesher))


# ---------------------------------------------------------------------------
# Splitting solve
# ---------------------------------------------------------------------------


class TestSolveSplitting:
    @pytest.mark.parametrize("direction", [0, 1])
    def test_inverts_implicit_system(self, mesher, rng, direction):
        op = SecondDerivativeOp(direction, mesher).mult(0.5).add(
            FirstDerivativeOp(direction, mesher).mult(0.1)
        ).add(-0.05)
        r = rng.normal(size=mesher.layout.size)
        a = -0.01
        x = op.solve_splitting(r, a, 1.0)
        np.testing.assert_allclose(x + a * op.apply(x), r, atol=1e-10)

    def test_with_scaled_identity(self, mesher, rng):
        op = SecondDerivativeOp(0, mesher)
        r = rng.normal(size=mesher.layout.size)
        x = op.solve_splitting(r, -0.02, 2.0)
        np.testing.assert_allclose(2.0 * x - 0.02 * op.apply(x), r, atol=1e-10)

    def test_singular_system_raises(self, mesher):
        op = TripleBandLinearOp(0, mesher)
        with pytest.raises(SingularSystemError):
            op.solve_splitting(np.ones(mesher.layout.size), 1.0, 0.0)
