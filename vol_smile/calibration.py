"""
Smile calibration: weighted least squares over the smile model family.

The objective is the spread-weighted squared error against mid vols,

    f(theta) = sum_i w_i * (model(k_i; theta) - mid_i)^2,
    w_i      = 1 / (ask_i - bid_i + eps)

so strikes with a tight bid/ask (a more trustworthy mid) pull harder on
the fit. A zero-spread quote gets weight 1/eps and effectively pins the
curve. A crossed quote (ask < bid) gets a negative weight; inputs are
not cleaned here.

The gradient is a forward difference, one bump per parameter, reusing
the unbumped value. It is only as good as the objective is smooth,
which is why RFV poles are penalized by default (see _pole_penalty).

Every fit starts from the same initial guess whatever the model, and is
unbounded unless the caller passes bounds. The optimizer's final point is
returned even when it reports failure; that case is logged, not raised.
"""

import logging
from typing import Callable, Optional, Sequence, Union

import numpy as np
from scipy.optimize import OptimizeResult

from . import config
from .optimizer import minimize
from .smile_models import ModelKind, get_model, resolve_model, rfv_denominator

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════
#  OBJECTIVE
# ════════════════════════════════════════════════════════════════════════

def spread_weights(bid: np.ndarray, ask: np.ndarray, spread_eps: float = None) -> np.ndarray:
    """w = 1 / (ask - bid + eps)."""
    if spread_eps is None:
        spread_eps = config.SPREAD_EPSILON
    return 1.0 / (np.asarray(ask, dtype=float) - np.asarray(bid, dtype=float) + spread_eps)


def weighted_sse(
    params: np.ndarray,
    k: np.ndarray,
    mid: np.ndarray,
    bid: np.ndarray,
    ask: np.ndarray,
    model: Callable[[np.ndarray, np.ndarray], np.ndarray],
    spread_eps: float = None,
) -> float:
    """
    Spread-weighted sum of squared residuals of model vs mid vols.

    Parameters
    ----------
    params : model parameters
    k : log-moneyness of each quote
    mid, bid, ask : implied vols at mid, bid and ask
    model : smile function k, params -> vols
    spread_eps : added to every spread (default: config.SPREAD_EPSILON)

    Returns
    -------
    float : objective value (NaN/inf if the model blows up)
    """
    weights = spread_weights(bid, ask, spread_eps)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        residuals = model(k, params) - mid
        return float(np.sum(weights * residuals**2))


def _pole_penalty(params: np.ndarray, k: np.ndarray) -> float:
    """
    Quadratic penalty on |RFV denominator| dropping below POLE_MARGIN.

    Sampled on a dense grid over the data range plus the data points, so
    a pole sneaking in between two strikes is still seen.
    """
    lo, hi = np.min(k), np.max(k)
    grid = np.concatenate([np.linspace(lo, hi, config.POLE_GRID_POINTS), k])
    shortfall = np.maximum(0.0, config.POLE_MARGIN - np.abs(rfv_denominator(grid, params)))
    return config.POLE_PENALTY * float(np.sum(shortfall**2))


def finite_difference_gradient(
    func: Callable[[np.ndarray], float],
    params: np.ndarray,
    f0: float,
    step: float = None,
) -> np.ndarray:
    """Forward-difference gradient; f0 must be func(params)."""
    if step is None:
        step = config.FD_STEP
    params = np.asarray(params, dtype=float)
    grad = np.empty_like(params)
    for i in range(params.size):
        bumped = params.copy()
        bumped[i] += step
        grad[i] = (func(bumped) - f0) / step
    return grad


def build_objective(
    k: np.ndarray,
    mid: np.ndarray,
    bid: np.ndarray,
    ask: np.ndarray,
    kind: Union[ModelKind, str],
    reject_poles: bool = True,
    spread_eps: float = None,
    fd_step: float = None,
) -> Callable[[np.ndarray], tuple]:
    """
    Objective-and-gradient closure in the form the optimizer expects.

    Returns a callable params -> (f, grad).
    """
    kind = resolve_model(kind)
    model = get_model(kind)
    k = np.asarray(k, dtype=float)
    mid = np.asarray(mid, dtype=float)
    bid = np.asarray(bid, dtype=float)
    ask = np.asarray(ask, dtype=float)
    penalize = reject_poles and kind == ModelKind.RFV and k.size > 0

    def objective(params):
        f = weighted_sse(params, k, mid, bid, ask, model, spread_eps)
        if penalize:
            f += _pole_penalty(params, k)
        return f

    def objective_and_grad(params):
        f = objective(params)
        return f, finite_difference_gradient(objective, params, f, fd_step)

    return objective_and_grad


# ════════════════════════════════════════════════════════════════════════
#  FITTING
# ════════════════════════════════════════════════════════════════════════

def calibrate_full(
    k: Sequence[float],
    mid: Sequence[float],
    bid: Sequence[float],
    ask: Sequence[float],
    kind: Union[ModelKind, str],
    initial_guess: Optional[Sequence[float]] = None,
    bounds: Optional[Sequence] = None,
    reject_poles: bool = True,
    maxiter: int = None,
    ftol: float = None,
    gtol: float = None,
) -> OptimizeResult:
    """
    Fit a smile model and return the full optimizer result.

    Same arguments as calibrate. Use this when the caller wants status,
    objective value and evaluation counts rather than just the point.
    """
    kind = resolve_model(kind)
    if initial_guess is None:
        initial_guess = config.INITIAL_GUESS
    x0 = np.asarray(initial_guess, dtype=float)
    if x0.shape != (config.N_PARAMS,):
        raise ValueError(f"Expected {config.N_PARAMS} initial values, got shape {x0.shape}")
    if bounds is None:
        bounds = [(-np.inf, np.inf)] * config.N_PARAMS

    objective = build_objective(k, mid, bid, ask, kind, reject_poles=reject_poles)
    result = minimize(objective, x0, bounds, maxiter=maxiter, ftol=ftol, gtol=gtol)

    if result.status != 0:
        logger.warning("%s calibration did not converge: %s (nit=%d, f=%.6g)",
                       kind.value, result.message, result.nit, result.fun)
    else:
        logger.debug("%s calibration: %s nit=%d nfev=%d f=%.6g",
                     kind.value, result.message, result.nit, result.nfev, result.fun)
    return result


def calibrate(
    k: Sequence[float],
    mid: Sequence[float],
    bid: Sequence[float],
    ask: Sequence[float],
    kind: Union[ModelKind, str],
    initial_guess: Optional[Sequence[float]] = None,
    bounds: Optional[Sequence] = None,
    reject_poles: bool = True,
    maxiter: int = None,
    ftol: float = None,
    gtol: float = None,
) -> np.ndarray:
    """
    Fit one smile model to bid/mid/ask implied vols.

    Parameters
    ----------
    k : log-moneyness of each strike (normalized strikes, see
        smile_builder.log_moneyness)
    mid, bid, ask : implied vols at the mid, bid and ask prices
    kind : "RFV", "SLV", "SABR" or "SVI"
    initial_guess : 5 starting values (default: config.INITIAL_GUESS)
    bounds : (lo, hi) per parameter (default: unbounded)
    reject_poles : penalize RFV denominators near zero on the fitting range
    maxiter, ftol, gtol : optimizer overrides (defaults in config)

    Returns
    -------
    np.ndarray : the 5 fitted parameters, whether or not the optimizer
                 converged (non-convergence is logged as a warning)
    """
    result = calibrate_full(k, mid, bid, ask, kind, initial_guess=initial_guess,
                            bounds=bounds, reject_poles=reject_poles,
                            maxiter=maxiter, ftol=ftol, gtol=gtol)
    return result.x
