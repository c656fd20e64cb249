from __future__ import annotations

import bisect
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Iterator, Mapping, Optional

from pricepath.errors import LockPoisoning
from pricepath.rounding import period_delta, round_to_period
from pricepath.schemas import Granularity, Sample


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bucket:
    observed: Optional[float] = None
    derived: Optional[float] = None


class RWLock:
    """
    Reader/writer lock: any number of readers or a single writer.
    Waiting writers block new readers so a steady read load cannot starve ingestion.
    Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TimeBucketStore:
    """
    Ordered map of period-start timestamp -> Bucket, shared between the ingestion
    path and the statistics readers.

    Keys are kept in a sorted list next to the dict, so "oldest" and "latest" are
    list ends and eviction never re-sorts. All mutation happens under the write side
    of an RWLock; `ingest` applies a batch of upserts and the trim as one unit.
    A write section that raises leaves the store poisoned: every later access
    raises LockPoisoning.
    """

    def __init__(self) -> None:
        self._lock = RWLock()
        self._buckets: dict[datetime, Bucket] = {}
        self._keys: list[datetime] = []
        self._granularity: Optional[Granularity] = None
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def _check(self) -> None:
        if self._poisoned:
            raise LockPoisoning("Lock poisoning detected: bucket store was left mid-update")

    @contextmanager
    def _reading(self) -> Iterator[None]:
        with self._lock.read():
            self._check()
            yield

    @contextmanager
    def _writing(self) -> Iterator[None]:
        with self._lock.write():
            self._check()
            try:
                yield
            except BaseException:
                self._poisoned = True
                raise

    def _round(self, ts: datetime) -> datetime:
        if self._granularity is None:
            raise RuntimeError("TimeBucketStore.initialize() must run before ingestion")
        return round_to_period(ts, self._granularity)

    # -- unlocked helpers; callers hold the write lock --

    def _upsert(self, key: datetime, price: float) -> None:
        b = self._buckets.get(key)
        if b is None:
            bisect.insort(self._keys, key)
            self._buckets[key] = Bucket(observed=price, derived=None)
        else:
            self._buckets[key] = Bucket(observed=price, derived=b.derived)

    def _trim(self, max_periods: int) -> int:
        excess = len(self._keys) - max_periods
        if excess <= 0:
            return 0
        for k in self._keys[:excess]:
            del self._buckets[k]
        del self._keys[:excess]
        return excess

    # -- public API --

    def initialize(self, periods: int, granularity: Granularity, now: datetime) -> None:
        """
        Reset to `periods` empty buckets ending at the period containing `now`
        and walking backwards one period at a time.
        """
        if periods < 1:
            raise ValueError("periods must be at least 1")
        step = period_delta(granularity)
        top = round_to_period(now, granularity)
        keys = [top - step * i for i in range(periods)]
        keys.reverse()

        with self._writing():
            self._granularity = granularity
            self._keys = keys
            self._buckets = {k: Bucket() for k in keys}
        log.debug("Initialized %d %s buckets ending %s", periods, granularity, top.isoformat())

    def upsert(self, ts: datetime, observed_price: float) -> None:
        key = self._round(ts)
        price = float(observed_price)
        with self._writing():
            self._upsert(key, price)

    def trim(self, max_periods: int) -> int:
        """Evict the oldest keys until at most `max_periods` remain. Returns the number evicted."""
        if max_periods < 1:
            raise ValueError("max_periods must be at least 1")
        with self._writing():
            return self._trim(max_periods)

    def ingest(self, samples: Iterable[Sample], max_periods: int) -> int:
        """
        Upsert every sample and trim to `max_periods` under a single write
        acquisition, so readers see either none or all of it.
        Returns the number of samples applied.
        """
        if max_periods < 1:
            raise ValueError("max_periods must be at least 1")
        # Round and coerce before taking the lock; a bad sample must not poison the store.
        rows = [(self._round(s.ts), float(s.price)) for s in samples]

        with self._writing():
            for key, price in rows:
                self._upsert(key, price)
            evicted = self._trim(max_periods)
            size = len(self._keys)
        log.debug("Ingested %d samples, evicted %d, store size %d", len(rows), evicted, size)
        return len(rows)

    def set_derived(self, values: Mapping[datetime, Optional[float]]) -> None:
        """Write derived prices. Keys no longer in the store are ignored."""
        with self._writing():
            for key, derived in values.items():
                b = self._buckets.get(key)
                if b is not None:
                    self._buckets[key] = Bucket(observed=b.observed, derived=derived)

    def derive(self, transform: Callable[[Bucket], Optional[float]]) -> tuple[tuple[datetime, Bucket], ...]:
        """
        Recompute every bucket's derived price from the bucket itself and return
        the resulting view, all under one write acquisition. Statistics read from
        the returned view match what was stamped.
        """
        with self._writing():
            for key in self._keys:
                b = self._buckets[key]
                self._buckets[key] = Bucket(observed=b.observed, derived=transform(b))
            return tuple((k, self._buckets[k]) for k in self._keys)

    def snapshot(self) -> tuple[tuple[datetime, Bucket], ...]:
        """Consistent (key, bucket) view, oldest first."""
        with self._reading():
            return tuple((k, self._buckets[k]) for k in self._keys)

    def keys(self) -> list[datetime]:
        with self._reading():
            return list(self._keys)

    def get(self, key: datetime) -> Optional[Bucket]:
        with self._reading():
            return self._buckets.get(key)

    def __len__(self) -> int:
        with self._reading():
            return len(self._keys)
