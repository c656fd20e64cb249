from __future__ import annotations

import math
import random
from typing import Optional


def ou_process(
    initial_price: float,
    theta: float,
    mu: float,
    sigma: float,
    dt: float,
    steps: int,
    rng: Optional[random.Random] = None,
) -> list[float]:
    """
    Discrete Ornstein-Uhlenbeck path (Euler-Maruyama):

        p[t+1] = p[t] + theta * (mu - p[t]) * dt + sigma * z * sqrt(dt),  z ~ N(0, 1)

    Returns steps + 1 prices; the first is `initial_price` untouched.
    Inputs are not validated: theta <= 0 or dt <= 0 must be rejected by the caller.
    Pass a seeded `rng` for a reproducible path.
    """
    if rng is None:
        rng = random.Random()

    prices = [initial_price]
    sqrt_dt = math.sqrt(dt)
    last = initial_price
    for _ in range(int(steps)):
        noise = rng.gauss(0.0, 1.0)
        last = last + theta * (mu - last) * dt + sigma * noise * sqrt_dt
        prices.append(last)
    return prices


def expected_path(initial_price: float, theta: float, mu: float, dt: float, steps: int) -> list[float]:
    """The noise-free (sigma = 0) trajectory of `ou_process`."""
    prices = [initial_price]
    last = initial_price
    for _ in range(int(steps)):
        last = last + theta * (mu - last) * dt
        prices.append(last)
    return prices
