"""
Global configuration for the smile fitting pipeline.

Keeps all magic numbers in one place. Every function that uses one of
these takes a keyword override defaulting to None, so per-call changes
never require editing this file.
"""


# ── market parameters (synthetic runs) ───────────────────────────────────
SPOT = 566.35                   # underlying level for the synthetic chain
RISK_FREE_RATE = 0.0486         # annualized, continuous compounding
DIVIDEND_YIELD = 0.0035         # continuous dividend yield
TIME_TO_EXPIRY = 0.0157         # ~4 trading days, in years
OPTION_SIDE = "call"


# ── synthetic chain shape ────────────────────────────────────────────────
SYNTH_ATM_VOL = 0.18            # vol at K = S
SYNTH_SKEW = -0.35              # slope of vol in log(K/S)
SYNTH_SMILE = 1.8               # curvature of vol in log(K/S)
SYNTH_STRIKE_BOUND = 0.06       # strikes span S * (1 +/- bound)
SYNTH_STRIKE_STEP = 2.5         # strike spacing in price units
SYNTH_SPREAD_PCT = 0.04         # bid/ask spread as a fraction of extrinsic value
SYNTH_MIN_TICK = 0.01           # spread floor
SYNTH_NOISE_STD = 0.0           # vol noise std; 0 keeps the chain exact
SEED = 42


# ── implied vol inversion ────────────────────────────────────────────────
IV_LOWER = 1e-5                 # bisection bracket
IV_UPPER = 10.0
IV_MAX_ITER = 100
IV_TOL = 1e-8                   # on price difference and bracket width


# ── data cleaning ────────────────────────────────────────────────────────
MIN_IV = 0.01                   # anything below is a collapsed bisection
MAX_IV = 5.0                    # anything above is noise


# ── calibration ──────────────────────────────────────────────────────────
# same starting point for every model kind
INITIAL_GUESS = (0.2, 0.3, 0.1, 0.2, 0.1)
SPREAD_EPSILON = 1e-8           # w = 1 / (ask - bid + eps)
FD_STEP = 1e-8                  # forward-difference step for the gradient
N_PARAMS = 5

# RFV denominator guard
POLE_PENALTY = 1e6
POLE_MARGIN = 0.05              # |1 + d*k + e*k^2| below this is penalized
POLE_GRID_POINTS = 64           # samples of the fitting domain


# ── optimizer (L-BFGS-B) ─────────────────────────────────────────────────
LBFGS_MAXITER = 15000
LBFGS_FTOL = 1e-8               # relative change in f
LBFGS_GTOL = 1e-5               # projected gradient inf-norm
LBFGS_MAXCOR = 10               # history pairs kept
LBFGS_MAX_LINESEARCH = 20       # step halvings per iteration
ARMIJO_C1 = 1e-4
WOLFE_C2 = 0.9
CURVATURE_EPS = 1e-10           # skip updates with y's below this


# ── display grid ─────────────────────────────────────────────────────────
CURVE_POINTS = 200
