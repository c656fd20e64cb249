from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence, TextIO

from pricepath.config import Config, load_config, load_env
from pricepath.engine import Engine, build_provider
from pricepath.errors import ConfigOutOfRange, LockPoisoning
from pricepath.providers.base import CandleProvider
from pricepath.schemas import InsufficientData


log = logging.getLogger("pricepath")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pricepath",
        description="Fetch recent candles, estimate volatility, and print a simulated mean-reverting price path.",
    )
    ap.add_argument("--config", default=None, help="YAML config path (default: $PRICEPATH_CONFIG or config/config.yaml)")
    ap.add_argument("--periods", type=int, default=None, help="Retention window in buckets (1..740)")
    ap.add_argument("--theta", type=float, default=None, help="Mean reversion speed (0 < theta <= 5)")
    ap.add_argument("--time-period", default=None, help="second | minute | hour | day")
    ap.add_argument("--steps", type=int, default=None, help="Number of simulated steps")
    ap.add_argument("--seed", type=int, default=None, help="Seed for the path simulator")
    ap.add_argument("--provider", choices=["kraken", "simulated"], default=None)
    return ap


def configure_logging(level: str) -> None:
    lvl = logging.getLevelName(str(level).upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    # stdout carries the path only
    logging.basicConfig(
        level=lvl,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run(cfg: Config, provider: Optional[CandleProvider] = None, out: Optional[TextIO] = None) -> int:
    provider = provider or build_provider(cfg.provider)
    engine = Engine(cfg=cfg, provider=provider)
    try:
        await engine.refresh()
    finally:
        await provider.aclose()

    result = engine.forecast()
    if isinstance(result, InsufficientData):
        print(f"Cannot simulate a price path: {result.reason}", file=sys.stderr)
        return 1

    for i, price in enumerate(result.prices):
        print(f"Period: {i}: {price:.2f}", file=out or sys.stdout)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_env()
    try:
        cfg = load_config(
            args.config,
            overrides={
                "forecast.periods": args.periods,
                "forecast.speed_theta": args.theta,
                "forecast.time_period": args.time_period,
                "forecast.steps": args.steps,
                "forecast.seed": args.seed,
                "provider.type": args.provider,
            },
        )
    except ConfigOutOfRange as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(cfg.app.log_level)
    log.debug(
        "No of periods %s, Time period %s",
        cfg.forecast.periods,
        cfg.forecast.time_period,
    )

    try:
        return asyncio.run(run(cfg))
    except LockPoisoning as e:
        print(f"Fatal: {e}", file=sys.stderr)
        return 1
