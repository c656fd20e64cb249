from __future__ import annotations

from datetime import datetime
from typing import Sequence

from pricepath.schemas import InsufficientData, PriceSummary, Stat
from pricepath.store import Bucket, TimeBucketStore


Snapshot = Sequence[tuple[datetime, Bucket]]


def _latest(snap: Snapshot) -> Stat:
    if not snap:
        return InsufficientData("store is empty")
    # snapshots are ordered oldest -> newest
    _, bucket = snap[-1]
    if bucket.derived is not None:
        return float(bucket.derived)
    if bucket.observed is not None:
        return float(bucket.observed)
    return InsufficientData("no price in the latest bucket")


def _mean(snap: Snapshot) -> Stat:
    s = 0.0
    n = 0
    for _, bucket in snap:
        if bucket.derived is None:
            continue
        s += float(bucket.derived)
        n += 1
    if not n:
        return InsufficientData("no derived prices in window")
    return s / n


def latest_price(store: TimeBucketStore) -> Stat:
    return _latest(store.snapshot())


def mean_price(store: TimeBucketStore) -> Stat:
    return _mean(store.snapshot())


def summarize_snapshot(snap: Snapshot) -> PriceSummary | InsufficientData:
    latest = _latest(snap)
    if isinstance(latest, InsufficientData):
        return latest
    mean = _mean(snap)
    if isinstance(mean, InsufficientData):
        return mean
    return PriceSummary(latest=latest, mean=mean)


def summarize(store: TimeBucketStore) -> PriceSummary | InsufficientData:
    """Latest and mean price taken from the same snapshot."""
    return summarize_snapshot(store.snapshot())
