"""
Input data model and an offline quote source.

Live quote and rate providers are outside this package: whatever fetches
an option chain only has to hand over (strike, bid, ask) triples for one
expiry plus the scalar market parameters below.

For offline runs and tests, generate_synthetic_quotes prices a known
smile with the BAW pricer and wraps each price in a proportional bid/ask
spread, so the true vols are known in advance.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from . import config
from .american import american_price, normalize_side


@dataclass(frozen=True)
class Quote:
    """One traded contract for one expiry."""

    strike: float
    bid: float
    ask: float

    @property
    def mid(self) -> float:
        return 0.5 * (self.bid + self.ask)


@dataclass(frozen=True)
class MarketParams:
    """Scalars shared by every quote of one expiry."""

    spot: float
    rate: float
    dividend_yield: float
    time_to_expiry: float  # years
    side: str = "call"

    def __post_init__(self):
        if self.spot <= 0:
            raise ValueError(f"spot must be positive, got {self.spot}")
        if self.time_to_expiry <= 0:
            raise ValueError(f"time_to_expiry must be positive, got {self.time_to_expiry}")
        # frozen: bypass __setattr__ to store the canonical spelling
        object.__setattr__(self, "side", normalize_side(self.side))


def default_market() -> MarketParams:
    """Market parameters from config."""
    return MarketParams(
        spot=config.SPOT,
        rate=config.RISK_FREE_RATE,
        dividend_yield=config.DIVIDEND_YIELD,
        time_to_expiry=config.TIME_TO_EXPIRY,
        side=config.OPTION_SIDE,
    )


def quotes_to_frame(quotes: Iterable[Quote]) -> pd.DataFrame:
    """DataFrame with columns [strike, bid, ask, mid], sorted by strike."""
    rows = [{"strike": q.strike, "bid": q.bid, "ask": q.ask, "mid": q.mid} for q in quotes]
    df = pd.DataFrame(rows, columns=["strike", "bid", "ask", "mid"])
    return df.sort_values("strike").reset_index(drop=True)


def synthetic_vol(strikes: np.ndarray, spot: float, atm_vol: float,
                  skew: float, smile: float) -> np.ndarray:
    """Parabola in m = ln(K/S): atm + skew*m + smile*m^2."""
    m = np.log(np.asarray(strikes, dtype=float) / spot)
    return atm_vol + skew * m + smile * m**2


def generate_synthetic_quotes(
    market: Optional[MarketParams] = None,
    strikes: Optional[np.ndarray] = None,
    atm_vol: float = None,
    skew: float = None,
    smile: float = None,
    spread_pct: float = None,
    noise_std: float = None,
    seed: Optional[int] = None,
) -> List[Quote]:
    """
    Price a parabolic smile and quote it with a bid/ask spread.

    Parameters
    ----------
    market : market parameters (default: default_market())
    strikes : absolute strikes. Default: config.SYNTH_STRIKE_STEP spacing
              across S * (1 +/- config.SYNTH_STRIKE_BOUND)
    atm_vol, skew, smile : smile shape (defaults: config.SYNTH_*)
    spread_pct : spread as a fraction of the extrinsic value, floored at
                 config.SYNTH_MIN_TICK (default: config.SYNTH_SPREAD_PCT)
    noise_std : std of gaussian noise added to each vol before pricing
                (default: config.SYNTH_NOISE_STD)
    seed : random seed for the noise (default: config.SEED)

    Returns
    -------
    list of Quote, ascending strike. With zero noise the mid of every
    quote with a positive bid is exactly the fair price.
    """
    if market is None:
        market = default_market()
    if atm_vol is None:
        atm_vol = config.SYNTH_ATM_VOL
    if skew is None:
        skew = config.SYNTH_SKEW
    if smile is None:
        smile = config.SYNTH_SMILE
    if spread_pct is None:
        spread_pct = config.SYNTH_SPREAD_PCT
    if noise_std is None:
        noise_std = config.SYNTH_NOISE_STD

    rng = np.random.default_rng(config.SEED if seed is None else seed)

    S = market.spot
    if strikes is None:
        lo = np.floor(S * (1 - config.SYNTH_STRIKE_BOUND) / config.SYNTH_STRIKE_STEP)
        hi = np.ceil(S * (1 + config.SYNTH_STRIKE_BOUND) / config.SYNTH_STRIKE_STEP)
        strikes = np.arange(lo, hi + 1) * config.SYNTH_STRIKE_STEP
    strikes = np.asarray(strikes, dtype=float)

    vols = synthetic_vol(strikes, S, atm_vol, skew, smile)
    if noise_std > 0:
        vols = vols + rng.normal(0.0, noise_std, size=vols.shape)
    vols = np.clip(vols, config.MIN_IV, config.MAX_IV)

    quotes = []
    for K, sigma in zip(strikes, vols):
        price = american_price(S, K, market.time_to_expiry, market.rate, sigma,
                               market.dividend_yield, market.side)
        intrinsic = max(S - K, 0.0) if market.side == "call" else max(K - S, 0.0)
        half = 0.5 * max(spread_pct * (price - intrinsic), config.SYNTH_MIN_TICK)
        quotes.append(Quote(strike=float(K), bid=max(price - half, 0.0), ask=price + half))
    return quotes
