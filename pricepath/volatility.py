from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional, Sequence

from pricepath.schemas import InsufficientData, Stat
from pricepath.store import Bucket, TimeBucketStore


log = logging.getLogger(__name__)


def sample_std(values: Sequence[float]) -> Stat:
    """
    Sample standard deviation (divisor n - 1).

    A single observation has no measurable dispersion and yields 0.0;
    an empty input yields InsufficientData.
    """
    n = len(values)
    if n == 0:
        return InsufficientData("no observed prices in window")
    if n == 1:
        return 0.0

    mean = math.fsum(values) / n
    ss = math.fsum((float(v) - mean) ** 2 for v in values)
    return math.sqrt(ss / (n - 1))


def _derived_price(bucket: Bucket) -> Optional[float]:
    # derived price is the observation itself
    return bucket.observed


def stamp_derived(store: TimeBucketStore) -> tuple[tuple[datetime, Bucket], ...]:
    """Write each bucket's derived price and return the view it was written into."""
    return store.derive(_derived_price)


def observed_std(snap: Sequence[tuple[datetime, Bucket]]) -> Stat:
    observed = [float(b.observed) for _, b in snap if b.observed is not None]
    sd = sample_std(observed)
    log.debug("Volatility over %d/%d buckets: %s", len(observed), len(snap), sd)
    return sd


def estimate_volatility(store: TimeBucketStore) -> Stat:
    """
    Dispersion of the observed prices currently in the store.

    Also stamps each bucket that has an observation with its derived price,
    in the same write section the prices are read in. The aggregator reads
    those back.
    """
    return observed_std(stamp_derived(store))
