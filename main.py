#!/usr/bin/env python3
"""
main.py: run the smile fitting pipeline on a synthetic option chain.

Usage:
    python main.py                          # SVI fit, default market
    python main.py --model all              # compare all four models
    python main.py --model RFV --side put --spot 100 --expiry 0.25
"""

import argparse
import logging
import sys
import time

import numpy as np

from vol_smile import config
from vol_smile.data_feed import MarketParams, generate_synthetic_quotes
from vol_smile.smile_builder import (
    clean_smile_data, compute_smile_statistics, compute_smile_vols,
    fit_all_models, fit_smile, smile_curve,
)
from vol_smile.smile_models import ModelKind


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Fit an implied volatility smile.")
    p.add_argument("--model", type=str.upper, default="SVI",
                   choices=[m.value for m in ModelKind] + ["ALL"])
    p.add_argument("--side", choices=["call", "put"], default=config.OPTION_SIDE)
    p.add_argument("--spot", type=float, default=config.SPOT)
    p.add_argument("--rate", type=float, default=config.RISK_FREE_RATE)
    p.add_argument("--div", type=float, default=config.DIVIDEND_YIELD)
    p.add_argument("--expiry", type=float, default=config.TIME_TO_EXPIRY,
                   help="time to expiry in years")
    p.add_argument("--noise", type=float, default=config.SYNTH_NOISE_STD,
                   help="std of vol noise in the synthetic chain")
    p.add_argument("--seed", type=int, default=config.SEED)
    p.add_argument("--points", type=int, default=config.CURVE_POINTS,
                   help="size of the fitted curve grid")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"\n{'='*60}")
    print(f"  Implied Volatility Smile Fitter")
    print(f"  Model: {args.model}  |  Side: {args.side}  |  T: {args.expiry:.4f}y")
    print(f"{'='*60}\n")

    # step 1: quotes
    t0 = time.time()
    print("[1/3] Generating option chain...")
    try:
        market = MarketParams(spot=args.spot, rate=args.rate, dividend_yield=args.div,
                              time_to_expiry=args.expiry, side=args.side)
    except ValueError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)
    quotes = generate_synthetic_quotes(market, noise_std=args.noise, seed=args.seed)

    # step 2: implied vols
    print("\n[2/3] Inverting prices to implied vols...")
    raw = compute_smile_vols(quotes, market)
    df = clean_smile_data(raw)
    if df.empty:
        print("\n  ERROR: no quotes left after cleaning")
        sys.exit(1)

    stats = compute_smile_statistics(df, market.spot)
    print(f"       Spot: ${market.spot:.2f}")
    print(f"       Quotes: {stats['n_points']} (of {len(raw)})")
    print(f"       Strike range: ${stats['strike_range'][0]:.1f} - ${stats['strike_range'][1]:.1f}")
    print(f"       IV range: {stats['iv_range'][0]:.1%} - {stats['iv_range'][1]:.1%}")
    if not np.isnan(stats["atm_iv"]):
        print(f"       ATM IV: {stats['atm_iv']:.1%}")

    # step 3: calibration
    print("\n[3/3] Calibrating...")
    if args.model == "ALL":
        table = fit_all_models(df)
        print(table[["model", "rmse", "status", "nit", "message"]].to_string(index=False))
    else:
        fit = fit_smile(df, args.model)
        for name, value in fit.param_dict().items():
            print(f"       {name:>6} = {value: .6f}")
        print(f"       RMSE: {fit.rmse:.2e}  |  {fit.result.message}")

        curve = smile_curve(fit, n_points=args.points)
        print(f"       Curve: {len(curve)} points, "
              f"IV {curve['iv'].min():.1%} - {curve['iv'].max():.1%}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.1f}s.\n")


if __name__ == "__main__":
    main()
