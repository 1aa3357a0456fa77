"""Tests for the Black-Scholes, Heston and CIR generators."""

import numpy as np
import pytest

from fdm_pricing.exceptions import ConfigurationError
from fdm_pricing.fdm.generators import FdmBlackScholesOp, FdmCIROp, FdmHestonOp
from fdm_pricing.fdm.meshers import (
    BlackScholesMesher,
    FdmMesherComposite,
    SquareRootProcess1dMesher,
)
from fdm_pricing.processes import (
    BlackScholesProcess,
    CoxIngersollRossProcess,
    HestonProcess,
    LocalVolSurface,
    QuantoHelper,
)

from fdm_pricing.tests.helpers import PRICING_DATE, flat_curve, flat_market_data


def _heston_mesher(process: HestonProcess, nx: int = 20, nv: int = 10) -> FdmMesherComposite:
    variance = SquareRootProcess1dMesher(
        nv, process.v0, process.kappa, process.theta, process.sigma, 1.0
    )
    equity = BlackScholesMesher(
        nx, process.spot, variance.vola_estimate, process.market_data, 1.0, 100.0
    )
    return FdmMesherComposite(equity, variance)


@pytest.fixture()
def heston_op(heston_process):
    return FdmHestonOp(_heston_mesher(heston_process), heston_process)


@pytest.fixture()
def rng():
    return np.random.default_rng(11)


# ---------------------------------------------------------------------------
# Heston
# ---------------------------------------------------------------------------


class TestFdmHestonOp:
    def test_set_time_is_idempotent(self, heston_op, rng):
        u = rng.normal(size=heston_op._mesher.layout.size)
        heston_op.set_time(0.2, 0.3)
        first = heston_op.apply(u)
        heston_op.set_time(0.2, 0.3)
        np.testing.assert_array_equal(heston_op.apply(u), first)

    def test_apply_is_sum_of_parts(self, heston_op, rng):
        heston_op.set_time(0.0, 0.1)
        u = rng.normal(size=heston_op._mesher.layout.size)
        parts = (
            heston_op.apply_direction(0, u)
            + heston_op.apply_direction(1, u)
            + heston_op.apply_mixed(u)
        )
        np.testing.assert_allclose(heston_op.apply(u), parts, atol=1e-10)

    def test_apply_matches_matrix(self, heston_op, rng):
        heston_op.set_time(0.0, 0.1)
        u = rng.normal(size=heston_op._mesher.layout.size)
        np.testing.assert_allclose(heston_op.apply(u), heston_op.to_matrix() @ u, atol=1e-9)
        assert len(heston_op.to_matrix_decomp()) == 3

    def test_variance_drift_vanishes_at_equity_edges(self):
        process = HestonProcess(
            spot=100.0, v0=0.04, kappa=1.5, theta=0.04, sigma=0.3, rho=-0.7,
            market_data=flat_market_data(PRICING_DATE, 0.0),
        )
        mesher = _heston_mesher(process)
        op = FdmHestonOp(mesher, process)
        op.set_time(0.0, 0.1)
        x, v = mesher.locations(0), mesher.locations(1)
        coords = mesher.layout.coordinate_array(0)
        edge = (coords == 0) | (coords == mesher.layout.dim[0] - 1)

        # d/dx of a linear function is exact and its curvature is zero
        result = op.apply_direction(0, x)
        np.testing.assert_allclose(result[edge], 0.0, atol=1e-12)
        np.testing.assert_allclose(result[~edge], -0.5 * v[~edge], atol=1e-10)

    def test_bad_direction_raises_without_mutation(self, heston_op, rng):
        heston_op.set_time(0.0, 0.1)
        u = rng.normal(size=heston_op._mesher.layout.size)
        u_before = u.copy()
        before = heston_op.apply(u)
        with pytest.raises(ConfigurationError, match="direction too large"):
            heston_op.apply_direction(2, u)
        with pytest.raises(ConfigurationError, match="direction too large"):
            heston_op.solve_splitting(2, u, -0.01)
        np.testing.assert_array_equal(u, u_before)
        np.testing.assert_array_equal(heston_op.apply(u), before)

    def test_preconditioner_is_sequential_splitting(self, heston_op, rng):
        heston_op.set_time(0.0, 0.1)
        r = rng.normal(size=heston_op._mesher.layout.size)
        expected = heston_op.solve_splitting(1, heston_op.solve_splitting(0, r, -0.05), -0.05)
        np.testing.assert_allclose(heston_op.preconditioner(r, -0.05), expected)

    def test_unit_leverage_matches_plain_heston(self, heston_process, rng):
        mesher = _heston_mesher(heston_process)
        plain = FdmHestonOp(mesher, heston_process)
        slv = FdmHestonOp(mesher, heston_process, leverage_fct=LocalVolSurface.flat(1.0))
        plain.set_time(0.0, 0.1)
        slv.set_time(0.0, 0.1)
        u = rng.normal(size=mesher.layout.size)
        np.testing.assert_allclose(slv.apply(u), plain.apply(u), atol=1e-10)

    def test_leverage_is_floored(self, heston_process):
        mesher = _heston_mesher(heston_process)
        op = FdmHestonOp(mesher, heston_process, leverage_fct=LocalVolSurface.flat(0.0))
        op.set_time(0.0, 0.1)
        np.testing.assert_allclose(op.leverage, 0.01)

    def test_quanto_shifts_equity_drift(self, heston_process):
        mesher = _heston_mesher(heston_process)
        quanto = QuantoHelper(
            domestic_curve=flat_curve(0.05),
            foreign_curve=flat_curve(0.05),
            fx_volatility=0.1,
            equity_fx_correlation=0.5,
        )
        plain = FdmHestonOp(mesher, heston_process)
        adjusted = FdmHestonOp(mesher, heston_process, quanto_helper=quanto)
        plain.set_time(0.0, 0.1)
        adjusted.set_time(0.0, 0.1)
        x = mesher.locations(0)
        vol = np.sqrt(2.0 * adjusted._variance_values)
        diff = adjusted.apply_direction(0, x) - plain.apply_direction(0, x)
        np.testing.assert_allclose(diff, -vol * 0.1 * 0.5, atol=1e-10)


# ---------------------------------------------------------------------------
# Black-Scholes / CIR
# ---------------------------------------------------------------------------


class TestFdmBlackScholesOp:
    def test_discounts_constants(self, bs_process):
        mesher = FdmMesherComposite(
            BlackScholesMesher(30, 100.0, 0.2, bs_process.market_data, 1.0, 100.0)
        )
        op = FdmBlackScholesOp(mesher, bs_process)
        op.set_time(0.0, 0.1)
        np.testing.assert_allclose(op.apply(np.ones(30)), -0.10, atol=1e-12)
        assert op.size() == 1

    def test_flat_local_vol_matches_constant_vol(self, bs_process, rng):
        mesher = FdmMesherComposite(
            BlackScholesMesher(30, 100.0, 0.2, bs_process.market_data, 1.0, 100.0)
        )
        plain = FdmBlackScholesOp(mesher, bs_process)
        local = FdmBlackScholesOp(mesher, bs_process, local_vol=LocalVolSurface.flat(0.2))
        plain.set_time(0.0, 0.1)
        local.set_time(0.0, 0.1)
        u = rng.normal(size=30)
        np.testing.assert_allclose(local.apply(u), plain.apply(u), atol=1e-10)

    def test_direction_check(self, bs_process):
        mesher = FdmMesherComposite(
            BlackScholesMesher(30, 100.0, 0.2, bs_process.market_data, 1.0, 100.0)
        )
        with pytest.raises(ConfigurationError):
            FdmBlackScholesOp(mesher, bs_process).apply_direction(1, np.ones(30))


class TestFdmCIROp:
    def test_apply_is_sum_of_parts(self, rng):
        bs = BlackScholesProcess(
            spot=100.0, volatility=0.2, market_data=flat_market_data(PRICING_DATE, 0.05)
        )
        cir = CoxIngersollRossProcess(r0=0.05, kappa=0.8, theta=0.05, sigma=0.1)
        mesher = FdmMesherComposite(
            BlackScholesMesher(20, 100.0, 0.2, bs.market_data, 1.0, 100.0),
            SquareRootProcess1dMesher(10, 0.05, 0.8, 0.05, 0.1, 1.0),
        )
        op = FdmCIROp(mesher, cir, bs, rho=0.3)
        op.set_time(0.0, 0.1)
        u = rng.normal(size=mesher.layout.size)
        parts = op.apply_direction(0, u) + op.apply_direction(1, u) + op.apply_mixed(u)
        np.testing.assert_allclose(op.apply(u), parts, atol=1e-10)
        np.testing.assert_allclose(op.apply(u), op.to_matrix() @ u, atol=1e-9)

        # a constant is discounted at the short-rate state
        np.testing.assert_allclose(op.apply(np.ones(mesher.layout.size)), -mesher.locations(1))
