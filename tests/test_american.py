"""
Tests for the BAW pricer and the bisection IV solver.

Covers: erf/CDF accuracy against scipy, European fallback, side
handling, degenerate-input propagation, IV round trips and the solver's
no-failure contract.

Run with: pytest tests/ -v
"""

import pytest
import numpy as np
from scipy.special import erf as scipy_erf
from scipy.stats import norm

from vol_smile.american import (
    erf, norm_cdf, european_price, american_price, implied_vol,
    normalize_side, InvalidOptionSide,
)


# ── fixtures ─────────────────────────────────────────────────────────

S = 100.0
K = 100.0
T = 0.25
r = 0.05
sigma = 0.20
q = 0.01


def bsm_reference(S, K, T, r, sigma, q, option_type):
    """Closed-form BSM with scipy's exact normal CDF."""
    d1 = (np.log(S / K) + (r - q + 0.5 * sigma**2) * T) / (sigma * np.sqrt(T))
    d2 = d1 - sigma * np.sqrt(T)
    if option_type == "call":
        return S * np.exp(-q * T) * norm.cdf(d1) - K * np.exp(-r * T) * norm.cdf(d2)
    return K * np.exp(-r * T) * norm.cdf(-d2) - S * np.exp(-q * T) * norm.cdf(-d1)


class TestNormalApproximation:

    def test_erf_accuracy(self):
        """A&S 7.1.26 is good to ~1.5e-7 everywhere."""
        x = np.linspace(-5, 5, 2001)
        np.testing.assert_allclose(erf(x), scipy_erf(x), atol=2e-7)

    def test_erf_odd(self):
        x = np.linspace(0.05, 4, 80)
        np.testing.assert_array_equal(erf(-x), -erf(x))

    def test_erf_zero(self):
        assert abs(float(erf(0.0))) < 1e-8

    def test_norm_cdf_accuracy(self):
        x = np.linspace(-6, 6, 1201)
        np.testing.assert_allclose(norm_cdf(x), norm.cdf(x), atol=2e-7)

    def test_norm_cdf_symmetry(self):
        """N(x) + N(-x) == 1."""
        x = np.linspace(-3, 3, 61)
        np.testing.assert_allclose(norm_cdf(x) + norm_cdf(-x), 1.0, atol=1e-12)


class TestPricing:

    def test_european_matches_scipy_reference(self):
        for K_test in [80.0, 95.0, 100.0, 110.0, 125.0]:
            for side in ("call", "put"):
                ours = european_price(S, K_test, T, r, sigma, q, side)
                ref = bsm_reference(S, K_test, T, r, sigma, q, side)
                assert abs(ours - ref) < 1e-4, f"{side} K={K_test}: {ours} vs {ref}"

    def test_put_call_parity(self):
        """C - P = S*e^{-qT} - K*e^{-rT}, up to the erf approximation error."""
        for K_test in [80.0, 100.0, 120.0]:
            c = european_price(S, K_test, T, r, sigma, q, "call")
            p = european_price(S, K_test, T, r, sigma, q, "put")
            rhs = S * np.exp(-q * T) - K_test * np.exp(-r * T)
            assert abs((c - p) - rhs) < 1e-4

    @pytest.mark.parametrize("side", ["call", "put"])
    @pytest.mark.parametrize("vol", [0.05, 0.2, 0.6, 1.5])
    def test_american_falls_back_to_european(self, side, vol):
        """With q < r the BAW premium is never added."""
        for K_test in [70.0, 100.0, 140.0]:
            amer = american_price(S, K_test, T, r, vol, q, side)
            d1 = (np.log(S / K_test) + (r - q + 0.5 * vol**2) * T) / (vol * np.sqrt(T))
            d2 = d1 - vol * np.sqrt(T)
            if side == "call":
                closed = S * np.exp(-q * T) * norm_cdf(d1) - K_test * np.exp(-r * T) * norm_cdf(d2)
            else:
                closed = K_test * np.exp(-r * T) * norm_cdf(-d2) - S * np.exp(-q * T) * norm_cdf(-d1)
            assert abs(amer - float(closed)) < 1e-10

    def test_dividend_heavy_returns_european(self):
        """q >= r: early exercise never optimal, European price returned."""
        for side in ("call", "put"):
            amer = american_price(S, K, T, 0.01, sigma, 0.05, side)
            euro = european_price(S, K, T, 0.01, sigma, 0.05, side)
            assert amer == euro

    def test_call_price_positive(self):
        assert american_price(S, K, T, r, sigma, q, "call") > 0

    def test_put_price_positive(self):
        assert american_price(S, K, T, r, sigma, q, "put") > 0

    def test_call_increasing_in_vol(self):
        prices = [american_price(S, K, T, r, v, q, "call") for v in (0.1, 0.2, 0.4, 0.8)]
        assert all(a < b for a, b in zip(prices, prices[1:]))

    def test_returns_python_float(self):
        assert isinstance(american_price(S, K, T, r, sigma, q, "put"), float)


class TestOptionSide:

    @pytest.mark.parametrize("alias", ["call", "CALL", "c", "calls", " Call "])
    def test_call_aliases(self, alias):
        assert normalize_side(alias) == "call"

    @pytest.mark.parametrize("alias", ["put", "P", "puts"])
    def test_put_aliases(self, alias):
        assert normalize_side(alias) == "put"

    def test_invalid_side_raises(self):
        with pytest.raises(InvalidOptionSide):
            american_price(S, K, T, r, sigma, q, "straddle")

    def test_invalid_side_is_value_error(self):
        with pytest.raises(ValueError):
            european_price(S, K, T, r, sigma, q, "invalid")

    def test_implied_vol_rejects_invalid_side(self):
        with pytest.raises(InvalidOptionSide):
            implied_vol(5.0, S, K, r, T, q, "forward")


class TestDegenerateInputs:
    """NaN/inf are propagated, not caught."""

    def test_zero_expiry_atm_is_nan(self):
        assert np.isnan(american_price(S, K, 0.0, r, sigma, q, "call"))

    def test_zero_vol_does_not_raise(self):
        result = american_price(S, 90.0, T, r, 0.0, q, "call")
        assert isinstance(result, float)

    def test_zero_vol_zero_expiry_is_nan(self):
        assert np.isnan(european_price(S, K, 0.0, r, 0.0, q, "put"))


class TestImpliedVol:

    @pytest.mark.parametrize("K_test,T_test,vol,side", [
        (100.0, 0.25, 0.20, "call"),
        (100.0, 0.50, 0.05, "call"),
        (80.0, 0.50, 0.30, "call"),
        (125.0, 1.00, 0.25, "call"),
        (100.0, 2.00, 3.00, "call"),
        (100.0, 0.01, 1.00, "call"),
        (110.0, 0.75, 0.40, "put"),
        (90.0, 0.25, 0.35, "put"),
        (150.0, 1.50, 0.80, "put"),
        (60.0, 0.10, 2.00, "put"),
    ])
    def test_round_trip(self, K_test, T_test, vol, side):
        price = american_price(S, K_test, T_test, r, vol, q, side)
        recovered = implied_vol(price, S, K_test, r, T_test, q, side)
        assert abs(recovered - vol) < 1e-4

    def test_zero_price_collapses_to_lower_bracket(self):
        """No failure signal: a zero price comes back at the bottom of the bracket."""
        result = implied_vol(0.0, S, K, r, T, q, "call")
        assert 0 < result < 1e-4

    def test_unreachable_price_pins_upper_bracket(self):
        result = implied_vol(150.0, S, K, r, T, q, "call")
        assert result > 9.99

    def test_single_iteration_returns_bracket_midpoint(self):
        """One step: the 5.0 midpoint overprices, so the bracket halves downward."""
        price = american_price(S, K, T, r, sigma, q, "call")
        result = implied_vol(price, S, K, r, T, q, "call", max_iter=1)
        first_mid = (1e-5 + 10.0) / 2
        assert result == pytest.approx((1e-5 + first_mid) / 2)

    def test_custom_bracket(self):
        price = american_price(S, K, T, r, 0.3, q, "put")
        result = implied_vol(price, S, K, r, T, q, "put", vol_lower=0.25, vol_upper=0.35)
        assert abs(result - 0.3) < 1e-6

    def test_bid_mid_ask_ordering(self):
        """Higher price -> higher vol."""
        mid = american_price(S, K, T, r, sigma, q, "call")
        vols = [implied_vol(p, S, K, r, T, q, "call") for p in (mid - 0.1, mid, mid + 0.1)]
        assert vols[0] < vols[1] < vols[2]
