"""Reference prices and small utilities shared by the test-suite."""

import datetime as dt

import numpy as np
from scipy.integrate import quad
from scipy.stats import norm

from fdm_pricing.market_environment import MarketData
from fdm_pricing.rates import DiscountCurve

PRICING_DATE = dt.datetime(2025, 1, 1)
MATURITY = dt.datetime(2026, 1, 1)
SPOT = 100.0
STRIKE = 100.0
RATE = 0.10
VOL = 0.20


def flat_curve(rate: float, end_time: float = 5.0) -> DiscountCurve:
    return DiscountCurve.flat(rate, end_time)


def flat_market_data(
    pricing_date: dt.datetime, rate: float, dividend_yield: float | None = None
) -> MarketData:
    dividend_curve = None if dividend_yield is None else flat_curve(dividend_yield)
    return MarketData(pricing_date, flat_curve(rate), dividend_curve)


def bs_call(spot, strike, T, r, vol, q=0.0):
    d1 = (np.log(spot / strike) + (r - q + 0.5 * vol**2) * T) / (vol * np.sqrt(T))
    d2 = d1 - vol * np.sqrt(T)
    return spot * np.exp(-q * T) * norm.cdf(d1) - strike * np.exp(-r * T) * norm.cdf(d2)


def bs_put(spot, strike, T, r, vol, q=0.0):
    return bs_call(spot, strike, T, r, vol, q) - spot * np.exp(-q * T) + strike * np.exp(-r * T)


def bs_call_greeks(spot, strike, T, r, vol):
    """Delta, gamma and calendar theta of a European call without dividends."""
    sqrt_t = np.sqrt(T)
    d1 = (np.log(spot / strike) + (r + 0.5 * vol**2) * T) / (vol * sqrt_t)
    d2 = d1 - vol * sqrt_t
    delta = norm.cdf(d1)
    gamma = norm.pdf(d1) / (spot * vol * sqrt_t)
    theta = -spot * norm.pdf(d1) * vol / (2.0 * sqrt_t) - r * strike * np.exp(-r * T) * norm.cdf(d2)
    return delta, gamma, theta


def bs_digital_call(spot, strike, T, r, vol, cash=1.0):
    d2 = (np.log(spot / strike) + (r - 0.5 * vol**2) * T) / (vol * np.sqrt(T))
    return cash * np.exp(-r * T) * norm.cdf(d2)


def heston_call(spot, strike, T, r, v0, kappa, theta, sigma, rho, q=0.0):
    """Semi-analytic Heston call, "little trap" form of the characteristic function."""
    x = np.log(spot)
    forward = spot * np.exp((r - q) * T)

    def cf(u):
        b = kappa - rho * sigma * 1j * u
        d = np.sqrt(b**2 + sigma**2 * (1j * u + u**2))
        g = (b - d) / (b + d)
        e = np.exp(-d * T)
        c = (r - q) * 1j * u * T + kappa * theta / sigma**2 * (
            (b - d) * T - 2.0 * np.log((1.0 - g * e) / (1.0 - g))
        )
        D = (b - d) / sigma**2 * (1.0 - e) / (1.0 - g * e)
        return np.exp(c + D * v0 + 1j * u * x)

    log_k = np.log(strike)

    def p1_integrand(u):
        return np.real(np.exp(-1j * u * log_k) * cf(u - 1j) / (1j * u * forward))

    def p2_integrand(u):
        return np.real(np.exp(-1j * u * log_k) * cf(u) / (1j * u))

    p1 = 0.5 + quad(p1_integrand, 1e-8, 200.0, limit=400)[0] / np.pi
    p2 = 0.5 + quad(p2_integrand, 1e-8, 200.0, limit=400)[0] / np.pi
    return spot * np.exp(-q * T) * p1 - strike * np.exp(-r * T) * p2


def second_difference_oscillation(values: np.ndarray, x: np.ndarray, center: float, width: float) -> float:
    """Sum of |second differences| of ``values`` on nodes within ``width`` of ``center``."""
    mask = np.abs(x - center) <= width
    idx = np.flatnonzero(mask)
    idx = idx[(idx > 0) & (idx < values.size - 1)]
    return float(np.sum(np.abs(values[idx + 1] - 2.0 * values[idx] + values[idx - 1])))
