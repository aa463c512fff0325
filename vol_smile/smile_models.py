"""
Parametric smile families.

Every model maps log-moneyness k to an implied volatility through a
fixed 5-parameter vector:

    RFV   (a + b*k + c*k^2) / (1 + d*k + e*k^2)       rational function
    SLV   a + b*k + c*k^2 + d*k^3 + e*k^4              quartic polynomial
    SABR  alpha * (1 + beta*k + rho*k^2 + nu*k^3 + f0*k^4)
    SVI   a + b * (rho * (k - m) + sqrt((k - m)^2 + sigma^2))

SABR here is a quartic reparametrization that borrows the parameter
names, not the Hagan et al. asymptotic expansion. SVI is the raw form
from Gatheral (2004) but applied to volatility directly instead of total
variance.

None of the models validate their parameter domains. RFV can have poles
inside the fitting range; see rfv_denominator and the calibration module.
"""

from enum import Enum
from typing import Callable, Dict, Tuple, Union

import numpy as np

from . import config


class ModelKind(str, Enum):
    RFV = "RFV"
    SLV = "SLV"
    SABR = "SABR"
    SVI = "SVI"


PARAM_NAMES: Dict[ModelKind, Tuple[str, ...]] = {
    ModelKind.RFV: ("a", "b", "c", "d", "e"),
    ModelKind.SLV: ("a", "b", "c", "d", "e"),
    ModelKind.SABR: ("alpha", "beta", "rho", "nu", "f0"),
    ModelKind.SVI: ("a", "b", "rho", "m", "sigma"),
}


# ════════════════════════════════════════════════════════════════════════
#  MODELS
# ════════════════════════════════════════════════════════════════════════

def rfv_denominator(k: np.ndarray, params) -> np.ndarray:
    """1 + d*k + e*k^2, the part of RFV that can vanish."""
    _, _, _, d, e = params
    return 1.0 + d * k + e * k**2


def rfv_model(k: np.ndarray, params) -> np.ndarray:
    """Rational function volatility."""
    a, b, c, _, _ = params
    return (a + b * k + c * k**2) / rfv_denominator(k, params)


def slv_model(k: np.ndarray, params) -> np.ndarray:
    """Quartic polynomial in k."""
    a, b, c, d, e = params
    return a + b * k + c * k**2 + d * k**3 + e * k**4


def sabr_model(k: np.ndarray, params) -> np.ndarray:
    """Quartic scaled by the level alpha."""
    alpha, beta, rho, nu, f0 = params
    return alpha * (1.0 + beta * k + rho * k**2 + nu * k**3 + f0 * k**4)


def svi_model(k: np.ndarray, params) -> np.ndarray:
    """
    Raw SVI shape evaluated as a volatility.

    With rho = 0 the curve is symmetric around m; the wings grow like
    b * (1 +/- rho) * |k - m|.
    """
    a, b, rho, m, sigma = params
    return a + b * (rho * (k - m) + np.sqrt((k - m)**2 + sigma**2))


MODELS: Dict[ModelKind, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    ModelKind.RFV: rfv_model,
    ModelKind.SLV: slv_model,
    ModelKind.SABR: sabr_model,
    ModelKind.SVI: svi_model,
}


# ════════════════════════════════════════════════════════════════════════
#  DISPATCH
# ════════════════════════════════════════════════════════════════════════

def resolve_model(kind: Union[ModelKind, str]) -> ModelKind:
    """Accept a ModelKind or its name in any case."""
    if isinstance(kind, ModelKind):
        return kind
    try:
        return ModelKind(str(kind).strip().upper())
    except ValueError:
        valid = ", ".join(m.value for m in ModelKind)
        raise ValueError(f"Unknown model kind: {kind!r}. Use one of {valid}.") from None


def get_model(kind: Union[ModelKind, str]) -> Callable[[np.ndarray, np.ndarray], np.ndarray]:
    return MODELS[resolve_model(kind)]


def evaluate_model(kind: Union[ModelKind, str], k, params) -> np.ndarray:
    """
    Evaluate a smile model elementwise.

    Parameters
    ----------
    kind : model tag (ModelKind or "RFV" / "SLV" / "SABR" / "SVI")
    k : log-moneyness, scalar or array
    params : 5 model parameters

    Returns
    -------
    np.ndarray : volatilities, same shape as k

    Raises
    ------
    ValueError : unknown kind or params not of length 5
    """
    model = get_model(kind)
    params = np.asarray(params, dtype=float)
    if params.shape != (config.N_PARAMS,):
        raise ValueError(f"Expected {config.N_PARAMS} parameters, got shape {params.shape}")
    k = np.asarray(k, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return model(k, params)
