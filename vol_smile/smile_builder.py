"""
Smile construction: from one expiry's (strike, bid, ask) quotes to a
fitted smile curve.

The pipeline:
    1. Invert bid, mid and ask prices to implied vols (BAW bisection)
    2. Drop rows whose vols collapsed onto the bisection bracket
    3. Rescale strikes to [0.5, 1.5] and take logs, so the fitted
       parameters are on the same scale whatever the price level
    4. Calibrate a smile model to the spread-weighted mid vols
    5. Evaluate the fitted model on a dense strike grid for display

Steps 1-2 return DataFrames; step 4 returns a SmileFit that remembers
the strike range it was normalized with, so it can be evaluated at
absolute strikes afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

import numpy as np
import pandas as pd
from scipy.optimize import OptimizeResult

from . import config
from .american import implied_vol
from .calibration import calibrate_full
from .data_feed import MarketParams, Quote, quotes_to_frame
from .smile_models import PARAM_NAMES, ModelKind, evaluate_model, resolve_model

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════
#  MONEYNESS
# ════════════════════════════════════════════════════════════════════════

def normalize_strikes(strikes, strike_min: float = None, strike_max: float = None) -> np.ndarray:
    """
    Min-max rescale strikes onto [0.5, 1.5].

    strike_min / strike_max default to the data range; pass them to map
    new strikes with an existing fit's scaling. A zero-width range maps
    every strike to 1.0 (log-moneyness 0).
    """
    strikes = np.asarray(strikes, dtype=float)
    if strike_min is None:
        strike_min = strikes.min()
    if strike_max is None:
        strike_max = strikes.max()
    width = strike_max - strike_min
    if width <= 0:
        return np.ones_like(strikes)
    return (strikes - strike_min) / width + 0.5


def log_moneyness(strikes, strike_min: float = None, strike_max: float = None) -> np.ndarray:
    """
    k = ln(normalized strike).

    Defined for strikes above strike_min - (strike_max - strike_min) / 2.
    At that point k is -inf, and below it NaN; neither warns.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.log(normalize_strikes(strikes, strike_min, strike_max))


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED VOLS
# ════════════════════════════════════════════════════════════════════════

def compute_smile_vols(
    quotes: Union[Iterable[Quote], pd.DataFrame],
    market: MarketParams,
    max_iter: int = None,
    tol: float = None,
) -> pd.DataFrame:
    """
    Implied vols at bid, mid and ask for every quote.

    Parameters
    ----------
    quotes : Quote objects, or a DataFrame with columns [strike, bid, ask]
    market : spot, rate, dividend yield, expiry and side
    max_iter, tol : bisection overrides (defaults in config)

    Returns
    -------
    DataFrame with columns
        [strike, bid, ask, mid, bid_iv, mid_iv, ask_iv, x_norm, log_moneyness]
    sorted by strike
    """
    if isinstance(quotes, pd.DataFrame):
        df = quotes[["strike", "bid", "ask"]].astype(float).copy()
        df["mid"] = 0.5 * (df["bid"] + df["ask"])
        df = df.sort_values("strike").reset_index(drop=True)
    else:
        df = quotes_to_frame(quotes)

    def invert(price, K):
        return implied_vol(price, market.spot, K, market.rate, market.time_to_expiry,
                           market.dividend_yield, market.side, max_iter=max_iter, tol=tol)

    for col in ("bid", "mid", "ask"):
        df[f"{col}_iv"] = [invert(p, K) for p, K in zip(df[col], df["strike"])]

    df["x_norm"] = normalize_strikes(df["strike"].values)
    df["log_moneyness"] = np.log(df["x_norm"].values)
    return df


def clean_smile_data(df: pd.DataFrame, min_iv: float = None, max_iv: float = None) -> pd.DataFrame:
    """
    Drop quotes that cannot be trusted for fitting.

    A row goes if any of bid, mid or ask is not a positive price, or if
    any of the three vols is non-finite or outside [min_iv, max_iv]. The
    price screen matters because the bisection never fails: a zero bid
    far out of the money inverts to an ordinary-looking vol, while a
    price below the European lower bound sticks to the bottom of the
    bracket. Moneyness is recomputed on the surviving strikes.
    """
    if min_iv is None:
        min_iv = config.MIN_IV
    if max_iv is None:
        max_iv = config.MAX_IV

    prices = df[["bid", "mid", "ask"]]
    iv = df[["bid_iv", "mid_iv", "ask_iv"]]
    mask = (prices > 0).all(axis=1)
    mask &= np.isfinite(iv).all(axis=1) & (iv >= min_iv).all(axis=1) & (iv <= max_iv).all(axis=1)
    dropped = int((~mask).sum())
    if dropped:
        logger.info("Dropped %d of %d quotes with non-positive prices or degenerate vols",
                    dropped, len(df))

    out = df[mask].reset_index(drop=True)
    if len(out):
        out["x_norm"] = normalize_strikes(out["strike"].values)
        out["log_moneyness"] = np.log(out["x_norm"].values)
    return out


# ════════════════════════════════════════════════════════════════════════
#  FITTING
# ════════════════════════════════════════════════════════════════════════

@dataclass
class SmileFit:
    """A calibrated smile for one expiry."""

    model: ModelKind
    params: np.ndarray
    result: OptimizeResult
    strike_min: float
    strike_max: float
    rmse: float

    def evaluate(self, strikes) -> np.ndarray:
        """
        Model vols at absolute strikes, using the fit's normalization.

        Strikes more than half the fitted range below strike_min come back
        as NaN or inf (see log_moneyness).
        """
        k = log_moneyness(strikes, self.strike_min, self.strike_max)
        return evaluate_model(self.model, k, self.params)

    def param_dict(self) -> Dict[str, float]:
        return dict(zip(PARAM_NAMES[self.model], (float(p) for p in self.params)))

    @property
    def converged(self) -> bool:
        return self.result.status == 0


def fit_smile(df: pd.DataFrame, model: Union[ModelKind, str], **calibrate_kwargs) -> SmileFit:
    """
    Calibrate one smile model to the output of compute_smile_vols.

    Extra keyword arguments go to calibration.calibrate_full
    (initial_guess, bounds, reject_poles, maxiter, ftol, gtol).
    """
    if df.empty:
        raise ValueError("No quotes to fit")
    model = resolve_model(model)

    strikes = df["strike"].values
    k = log_moneyness(strikes)
    mid = df["mid_iv"].values

    result = calibrate_full(k, mid, df["bid_iv"].values, df["ask_iv"].values,
                            model, **calibrate_kwargs)

    fitted = evaluate_model(model, k, result.x)
    rmse = float(np.sqrt(np.mean((fitted - mid)**2)))

    return SmileFit(
        model=model,
        params=result.x,
        result=result,
        strike_min=float(strikes.min()),
        strike_max=float(strikes.max()),
        rmse=rmse,
    )


def fit_all_models(df: pd.DataFrame, **calibrate_kwargs) -> pd.DataFrame:
    """
    Fit every model kind to the same smile, one row per model.

    Columns: model, rmse, status, message, nit, plus the five parameters
    as p0..p4. Each fit is independent of the others.
    """
    rows = []
    for kind in ModelKind:
        fit = fit_smile(df, kind, **calibrate_kwargs)
        row = {
            "model": kind.value,
            "rmse": fit.rmse,
            "status": fit.result.status,
            "message": fit.result.message,
            "nit": fit.result.nit,
        }
        row.update({f"p{i}": float(p) for i, p in enumerate(fit.params)})
        rows.append(row)
    return pd.DataFrame(rows)


def smile_curve(fit: SmileFit, n_points: int = None,
                strike_min: Optional[float] = None,
                strike_max: Optional[float] = None) -> pd.DataFrame:
    """
    Dense (strike, log_moneyness, iv) grid of the fitted smile.

    Defaults to the fit's own strike range with config.CURVE_POINTS
    points.
    """
    if n_points is None:
        n_points = config.CURVE_POINTS
    lo = fit.strike_min if strike_min is None else strike_min
    hi = fit.strike_max if strike_max is None else strike_max

    strikes = np.linspace(lo, hi, n_points)
    k = log_moneyness(strikes, fit.strike_min, fit.strike_max)
    return pd.DataFrame({
        "strike": strikes,
        "log_moneyness": k,
        "iv": evaluate_model(fit.model, k, fit.params),
    })


def compute_smile_statistics(df: pd.DataFrame, spot: float) -> dict:
    """
    Summary statistics for one expiry's smile.

    Returns
    -------
    dict with keys:
        n_points      : number of quotes
        strike_range  : (min, max)
        iv_range      : (min, max) of mid vols
        mean_spread   : average ask_iv - bid_iv
        atm_iv        : mid vol at the strike closest to spot
    """
    stats = {
        "n_points": len(df),
        "strike_range": (df["strike"].min(), df["strike"].max()),
        "iv_range": (df["mid_iv"].min(), df["mid_iv"].max()),
        "mean_spread": float((df["ask_iv"] - df["bid_iv"]).mean()) if len(df) else np.nan,
    }
    if len(df):
        atm_idx = (df["strike"] - spot).abs().idxmin()
        stats["atm_iv"] = float(df.loc[atm_idx, "mid_iv"])
    else:
        stats["atm_iv"] = np.nan
    return stats
