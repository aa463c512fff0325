"""
Limited-memory BFGS with box constraints.

A compact L-BFGS-B style minimizer: the search direction comes from the
usual two-loop recursion over the last few (step, gradient change) pairs,
and bounds are handled by projection rather than by the generalized
Cauchy point of the full L-BFGS-B algorithm:

    1. direction p = -H g from the two-loop recursion
    2. zero the components of p that are fixed (lo == hi) or that push
       a variable already sitting on a bound further outside
    3. backtracking line search (step halving) with Armijo sufficient
       decrease and a curvature condition, clipping every trial point
       into the box. A trial point that was clipped onto the box needs
       only Armijo
    4. store (s, y) only when y's > 0 so the implicit inverse Hessian
       stays positive definite

Non-convergence is reported in the result (status 1), never raised. A
failed line search ends the run immediately.

The result is a scipy.optimize.OptimizeResult, so it reads the same as
scipy.optimize.minimize output (x, fun, jac, nfev, nit, status, success,
message).

References:
    Nocedal, J. & Wright, S. (2006). Numerical Optimization, 2nd ed., ch. 7.
    Byrd, R. H., Lu, P., Nocedal, J. & Zhu, C. (1995). A Limited Memory
    Algorithm for Bound Constrained Optimization.
"""

import logging
from collections import deque
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import OptimizeResult

from . import config

logger = logging.getLogger(__name__)

ObjectiveAndGrad = Callable[[np.ndarray], Tuple[float, np.ndarray]]

MSG_GTOL = "Optimization terminated successfully (gtol)."
MSG_FTOL = "Optimization terminated successfully (ftol)."
MSG_LINESEARCH = "Line search failed."
MSG_MAXITER = "Maximum number of iterations exceeded."


def _split_bounds(bounds: Optional[Sequence], n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Turn [(lo, hi), ...] with None for 'unbounded' into two arrays."""
    lower = np.full(n, -np.inf)
    upper = np.full(n, np.inf)
    if bounds is None:
        return lower, upper
    if len(bounds) != n:
        raise ValueError(f"Got {len(bounds)} bounds for {n} variables")
    for i, (lo, hi) in enumerate(bounds):
        if lo is not None:
            lower[i] = lo
        if hi is not None:
            upper[i] = hi
        if lower[i] > upper[i]:
            raise ValueError(f"Lower bound above upper bound for variable {i}: {lo} > {hi}")
    return lower, upper


def _two_loop(grad: np.ndarray, history: deque) -> np.ndarray:
    """Apply the L-BFGS inverse Hessian approximation to grad."""
    q = grad.copy()
    alphas = []
    for s, y, rho in reversed(history):
        a = rho * np.dot(s, q)
        q -= a * y
        alphas.append(a)

    # scale H0 by the most recent curvature estimate
    if history:
        s, y, _ = history[-1]
        q *= np.dot(s, y) / np.dot(y, y)

    for (s, y, rho), a in zip(history, reversed(alphas)):
        b = rho * np.dot(y, q)
        q += s * (a - b)
    return q


def _project_direction(p: np.ndarray, x: np.ndarray,
                       lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    p = p.copy()
    p[lower == upper] = 0.0
    p[(x <= lower) & (p < 0)] = 0.0
    p[(x >= upper) & (p > 0)] = 0.0
    return p


def _update_history(history: deque, s: np.ndarray, y: np.ndarray) -> bool:
    """Store (s, y, 1/y's) only when y's > CURVATURE_EPS. Returns whether it was stored."""
    ys = np.dot(y, s)
    if ys > config.CURVATURE_EPS:
        history.append((s, y, 1.0 / ys))
        return True
    return False


def projected_gradient(grad: np.ndarray, x: np.ndarray,
                       lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    """Gradient with components that point out of an active bound removed."""
    return -_project_direction(-grad, x, lower, upper)


def minimize(
    fun: ObjectiveAndGrad,
    x0: Sequence[float],
    bounds: Optional[Sequence] = None,
    maxiter: int = None,
    ftol: float = None,
    gtol: float = None,
    maxcor: int = None,
    max_linesearch: int = None,
    c1: float = None,
    c2: float = None,
) -> OptimizeResult:
    """
    Bound-constrained minimization with limited-memory BFGS.

    Parameters
    ----------
    fun : callable x -> (f, grad)
    x0 : starting point; clipped into the bounds
    bounds : sequence of (lo, hi) per variable, None for unbounded
             (default: no bounds at all)
    maxiter : iteration cap (default: config.LBFGS_MAXITER)
    ftol : stop when |f_k - f_{k+1}| < ftol * (1 + |f|) (default: config.LBFGS_FTOL)
    gtol : stop when the projected gradient inf-norm < gtol (default: config.LBFGS_GTOL)
    maxcor : number of correction pairs kept (default: config.LBFGS_MAXCOR)
    max_linesearch : step halvings per line search (default: config.LBFGS_MAX_LINESEARCH)
    c1, c2 : Armijo and curvature constants (default: config.ARMIJO_C1, config.WOLFE_C2)

    Returns
    -------
    OptimizeResult with fields
        x       : final point (best effort even on failure)
        fun     : objective at x
        jac     : gradient at x
        nfev    : objective evaluations
        nit     : completed iterations
        status  : 0 converged, 1 line search failure or maxiter
        success : status == 0
        message : human-readable reason
    """
    maxiter = config.LBFGS_MAXITER if maxiter is None else maxiter
    ftol = config.LBFGS_FTOL if ftol is None else ftol
    gtol = config.LBFGS_GTOL if gtol is None else gtol
    maxcor = config.LBFGS_MAXCOR if maxcor is None else maxcor
    max_linesearch = config.LBFGS_MAX_LINESEARCH if max_linesearch is None else max_linesearch
    c1 = config.ARMIJO_C1 if c1 is None else c1
    c2 = config.WOLFE_C2 if c2 is None else c2

    x = np.asarray(x0, dtype=float).copy()
    n = x.size
    lower, upper = _split_bounds(bounds, n)
    x = np.clip(x, lower, upper)

    f, grad = fun(x)
    grad = np.asarray(grad, dtype=float)
    nfev = 1

    history = deque(maxlen=maxcor)
    status, message = 1, MSG_MAXITER
    nit = 0

    if np.max(np.abs(projected_gradient(grad, x, lower, upper)), initial=0.0) < gtol:
        status, message = 0, MSG_GTOL
        maxiter = 0

    while nit < maxiter:
        p = -_two_loop(grad, history)
        p = _project_direction(p, x, lower, upper)

        slope = np.dot(grad, p)
        if slope >= 0:
            # no descent left after projection; use projected steepest descent
            p = _project_direction(-grad, x, lower, upper)
            slope = np.dot(grad, p)

        step = 1.0
        accepted = False
        for _ in range(max_linesearch):
            x_trial = x + step * p
            x_new = np.clip(x_trial, lower, upper)
            clipped = not np.array_equal(x_new, x_trial)
            f_new, grad_new = fun(x_new)
            grad_new = np.asarray(grad_new, dtype=float)
            nfev += 1

            # clipped trial: curvature is not checked
            if f_new <= f + c1 * step * slope and (clipped or np.dot(grad_new, p) >= c2 * slope):
                accepted = True
                break
            step *= 0.5

        if not accepted:
            status, message = 1, MSG_LINESEARCH
            break

        nit += 1
        _update_history(history, x_new - x, grad_new - grad)

        f_prev = f
        x, f, grad = x_new, f_new, grad_new

        if np.max(np.abs(projected_gradient(grad, x, lower, upper)), initial=0.0) < gtol:
            status, message = 0, MSG_GTOL
            break

        if abs(f - f_prev) < ftol * (1.0 + abs(f)):
            status, message = 0, MSG_FTOL
            break

    logger.debug("minimize: %s nit=%d nfev=%d f=%.6g", message, nit, nfev, f)

    return OptimizeResult(
        x=x,
        fun=f,
        jac=grad,
        nfev=nfev,
        nit=nit,
        status=status,
        success=status == 0,
        message=message,
    )
