"""Shared pytest fixtures for fdm_pricing tests."""

import datetime as dt

import pytest

from fdm_pricing.enums import OptionType
from fdm_pricing.instruments import EuropeanExercise, PlainVanillaPayoff, VanillaOptionArguments
from fdm_pricing.market_environment import MarketData
from fdm_pricing.processes import BlackScholesProcess, HestonProcess

from fdm_pricing.tests.helpers import (
    MATURITY,
    PRICING_DATE,
    RATE,
    SPOT,
    STRIKE,
    VOL,
    flat_market_data,
)


@pytest.fixture()
def pricing_date() -> dt.datetime:
    return PRICING_DATE


@pytest.fixture()
def maturity() -> dt.datetime:
    return MATURITY


# ---------------------------------------------------------------------------
# Market data / processes
# ---------------------------------------------------------------------------


@pytest.fixture()
def market_data() -> MarketData:
    """Flat 10% risk-free curve, no dividend yield."""
    return flat_market_data(PRICING_DATE, RATE)


@pytest.fixture()
def bs_process(market_data: MarketData) -> BlackScholesProcess:
    return BlackScholesProcess(spot=SPOT, volatility=VOL, market_data=market_data)


@pytest.fixture()
def heston_process() -> HestonProcess:
    """Feller-compliant Heston parameter set on a flat 5% curve."""
    return HestonProcess(
        spot=SPOT,
        v0=0.04,
        kappa=1.5,
        theta=0.04,
        sigma=0.3,
        rho=-0.7,
        market_data=flat_market_data(PRICING_DATE, 0.05),
    )


# ---------------------------------------------------------------------------
# Option arguments
# ---------------------------------------------------------------------------


@pytest.fixture()
def euro_call_args() -> VanillaOptionArguments:
    return VanillaOptionArguments(
        payoff=PlainVanillaPayoff(OptionType.CALL, STRIKE),
        exercise=EuropeanExercise(MATURITY),
    )
