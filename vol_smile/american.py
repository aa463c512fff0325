"""
American option pricing (Barone-Adesi-Whaley) and implied volatility
inversion.

The normal CDF is built on a fixed polynomial approximation of the
error function rather than scipy.stats.norm, so the pricer is
self-contained and its behaviour is identical on every platform. The IV
solver is plain bisection: slower than Newton but it never diverges and
always hands back a number.

Degenerate inputs (sigma -> 0, T -> 0) are NOT guarded. The arithmetic
runs on numpy floats, so they come out as NaN/inf instead of raising.

References:
    Abramowitz, M. & Stegun, I. (1964). Handbook of Mathematical Functions, 7.1.26.
    Barone-Adesi, G. & Whaley, R. E. (1987). Efficient Analytic Approximation
    of American Option Values. The Journal of Finance, 42(2), 301-320.
"""

import numpy as np

from . import config


class InvalidOptionSide(ValueError):
    """Raised when an option side is neither a call nor a put."""


_CALL_ALIASES = ("c", "call", "calls")
_PUT_ALIASES = ("p", "put", "puts")

# Abramowitz & Stegun 7.1.26
_ERF_A = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)
_ERF_P = 0.3275911


def normalize_side(option_type: str) -> str:
    """Map any accepted spelling to "call" or "put"."""
    side = str(option_type).strip().lower()
    if side in _CALL_ALIASES:
        return "call"
    if side in _PUT_ALIASES:
        return "put"
    raise InvalidOptionSide(f"Unknown option_type: {option_type!r}. Use 'call' or 'put'.")


# ════════════════════════════════════════════════════════════════════════
#  NORMAL DISTRIBUTION
# ════════════════════════════════════════════════════════════════════════

def erf(x):
    """
    Error function, five-coefficient rational approximation.

    Max absolute error ~1.5e-7. Odd by construction: erf(-x) == -erf(x)
    bitwise for x != 0.
    Works on scalars and numpy arrays.
    """
    x = np.asarray(x, dtype=float)
    sign = np.where(x >= 0, 1.0, -1.0)
    ax = np.abs(x)

    a1, a2, a3, a4, a5 = _ERF_A
    t = 1.0 / (1.0 + _ERF_P * ax)
    poly = ((((a5 * t + a4) * t + a3) * t + a2) * t + a1) * t
    y = 1.0 - poly * np.exp(-ax * ax)
    return sign * y


def norm_cdf(x):
    """Standard normal CDF via the erf approximation."""
    return 0.5 * (1.0 + erf(np.asarray(x, dtype=float) / np.sqrt(2.0)))


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def _d1_d2(S, K, T, r, sigma, q):
    vol_sqrt_t = sigma * np.sqrt(T)
    _d1 = (np.log(S / K) + (r - q + 0.5 * sigma**2) * T) / vol_sqrt_t
    return _d1, _d1 - vol_sqrt_t


def european_price(S: float, K: float, T: float, r: float, sigma: float,
                   q: float = 0.0, option_type: str = "call") -> float:
    """
    European price under Black-Scholes-Merton with dividend yield q.

    Parameters
    ----------
    S : spot price
    K : strike price
    T : time to expiry in years
    r : risk-free rate (annualized, continuous compounding)
    sigma : volatility (annualized)
    q : continuous dividend yield (default 0)
    option_type : "call" or "put"

    Returns
    -------
    float
    """
    side = normalize_side(option_type)
    S, K, T, sigma = (np.float64(v) for v in (S, K, T, sigma))

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        _d1, _d2 = _d1_d2(S, K, T, r, sigma, q)
        if side == "call":
            price = S * np.exp(-q * T) * norm_cdf(_d1) - K * np.exp(-r * T) * norm_cdf(_d2)
        else:
            price = K * np.exp(-r * T) * norm_cdf(-_d2) - S * np.exp(-q * T) * norm_cdf(-_d1)
    return float(price)


def american_price(S: float, K: float, T: float, r: float, sigma: float,
                   q: float = 0.0, option_type: str = "call") -> float:
    """
    American option price under the Barone-Adesi-Whaley approximation.

    The early-exercise premium is A2 * (S / S*)^q2 on top of the European
    price, where S* is the critical underlying level past which immediate
    exercise is worth more than holding:

        M  = 2(r - q) / sigma^2
        n  = 2(r - q - sigma^2 / 2) / sigma^2
        q2 = (-(n - 1) - sqrt((n - 1)^2 + 4M)) / 2

    When q >= r, or q2 < 0, early exercise is never optimal (or the
    approximation is undefined) and the European price is returned as is.
    Note that q2 < 0 whenever M > 0, so with positive carry the European
    branch is always taken.

    Parameters
    ----------
    S, K, T, r, sigma, q : as in european_price
    option_type : "call" or "put" (aliases "c", "calls", "p", "puts")

    Returns
    -------
    float : option value; NaN/inf for degenerate sigma or T

    Raises
    ------
    InvalidOptionSide : option_type is neither a call nor a put
    """
    side = normalize_side(option_type)
    euro = european_price(S, K, T, r, sigma, q, side)

    if q >= r:
        return euro

    S, K, sigma = np.float64(S), np.float64(K), np.float64(sigma)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        M = 2.0 * (r - q) / sigma**2
        n = 2.0 * (r - q - 0.5 * sigma**2) / sigma**2
        q2 = (-(n - 1.0) - np.sqrt((n - 1.0)**2 + 4.0 * M)) / 2.0

        if q2 < 0:
            return euro

        if side == "call":
            s_crit = K / (1.0 - 1.0 / q2)
            if S >= s_crit:
                return float(S - K)
            A2 = (s_crit - K) * s_crit**(-q2)
        else:
            s_crit = K / (1.0 + 1.0 / q2)
            if S <= s_crit:
                return float(K - S)
            A2 = (K - s_crit) * s_crit**(-q2)

        return float(euro + A2 * (S / s_crit)**q2)


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED VOLATILITY
# ════════════════════════════════════════════════════════════════════════

def implied_vol(
    market_price: float,
    S: float,
    K: float,
    r: float,
    T: float,
    q: float = 0.0,
    option_type: str = "call",
    max_iter: int = None,
    tol: float = None,
    vol_lower: float = None,
    vol_upper: float = None,
) -> float:
    """
    Invert the BAW price by bisection on volatility.

    The bracket is narrowed toward whichever half contains the target:
    a model price above the market price moves the upper bound down,
    anything else moves the lower bound up. Stops early once the price
    matches within tol or the bracket is narrower than tol.

    There is no failure signal. If the target lies outside the prices
    reachable on [vol_lower, vol_upper] the result piles up against the
    corresponding bound. A zero price is not always one of those: far out
    of the money the model price drops below tol at an ordinary vol, and
    that vol is returned. Callers should screen non-positive prices
    before trusting the result.

    Parameters
    ----------
    market_price : observed option price (bid, ask or mid)
    S : spot price
    K : strike
    r : risk-free rate
    T : time to expiry (years)
    q : dividend yield
    option_type : "call" or "put"
    max_iter : iteration budget (default: config.IV_MAX_ITER)
    tol : price / bracket tolerance (default: config.IV_TOL)
    vol_lower, vol_upper : bracket (default: config.IV_LOWER, config.IV_UPPER)

    Returns
    -------
    float : implied volatility
    """
    if max_iter is None:
        max_iter = config.IV_MAX_ITER
    if tol is None:
        tol = config.IV_TOL
    lower = config.IV_LOWER if vol_lower is None else vol_lower
    upper = config.IV_UPPER if vol_upper is None else vol_upper

    side = normalize_side(option_type)

    for _ in range(max_iter):
        mid_vol = (lower + upper) / 2.0
        price = american_price(S, K, T, r, mid_vol, q, side)

        if abs(price - market_price) < tol:
            return mid_vol

        if price > market_price:
            upper = mid_vol
        else:
            lower = mid_vol

        if upper - lower < tol:
            break

    return (lower + upper) / 2.0
