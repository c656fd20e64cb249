from __future__ import annotations

import math
import random
from datetime import datetime, timezone
from typing import Callable, Optional

from pricepath.config import SimulatedProviderConfig
from pricepath.providers.base import CandleProvider
from pricepath.rounding import period_delta, round_to_period
from pricepath.schemas import Granularity, Sample


class SimulatedProvider(CandleProvider):
    """
    Geometric random walk, one sample per period ending at the current one.
    Useful for offline demos and tests. Each call continues the walk from the
    last price it produced.
    """

    def __init__(
        self,
        cfg: SimulatedProviderConfig,
        count: int = 720,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._cfg = cfg
        self._count = int(count)
        self._rng = random.Random(cfg.seed)
        self._price = float(cfg.start_price)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _step(self) -> float:
        # dt=1 step; r ~ N(drift, vol)
        r = float(self._rng.gauss(mu=self._cfg.drift, sigma=self._cfg.volatility))
        self._price = max(0.01, self._price * math.exp(r))
        return self._price

    async def get_samples(self, granularity: Granularity) -> list[Sample]:
        step = period_delta(granularity)
        top = round_to_period(self._clock(), granularity)
        start = top - step * (self._count - 1)
        return [Sample(ts=start + step * i, price=self._step()) for i in range(self._count)]
