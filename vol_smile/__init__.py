"""
vol-smile-fitter
================
Implied volatility smile extraction and parametric smile fitting for a
single option expiry.

Modules:
    american       - BAW American pricing, implied vol bisection
    smile_models   - RFV / SLV / SABR / SVI smile functions
    optimizer      - Bound-constrained L-BFGS minimizer
    calibration    - Spread-weighted least-squares smile calibration
    data_feed      - Quote / market inputs and a synthetic chain
    smile_builder  - Quotes -> implied vols -> fitted smile curve
    config         - Global constants and defaults
"""

__version__ = "0.1.0"
