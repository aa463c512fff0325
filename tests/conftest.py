"""
Shared test fixtures and pytest configuration.
"""

import pytest
import numpy as np

from vol_smile.data_feed import MarketParams, generate_synthetic_quotes


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure test reproducibility."""
    np.random.seed(42)
    yield


@pytest.fixture
def market():
    """Quarter-dated call on a $100 underlying."""
    return MarketParams(spot=100.0, rate=0.05, dividend_yield=0.01,
                        time_to_expiry=0.25, side="call")


@pytest.fixture
def synthetic_quotes(market):
    """Noise-free chain from 85 to 115 in steps of 2.5."""
    strikes = np.arange(85.0, 115.0 + 1e-9, 2.5)
    return generate_synthetic_quotes(market, strikes=strikes, atm_vol=0.22,
                                     skew=-0.3, smile=1.0, noise_std=0.0)
