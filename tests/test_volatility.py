from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from pricepath.schemas import InsufficientData, Sample
from pricepath.store import TimeBucketStore
from pricepath.volatility import estimate_volatility, observed_std, sample_std, stamp_derived


T = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
H = timedelta(hours=1)


def test_textbook_sample_std() -> None:
    # mean 3, squared deviations sum to 10, divisor n-1 = 4
    assert sample_std([1.0, 2.0, 3.0, 4.0, 5.0]) == pytest.approx(math.sqrt(2.5))


def test_constant_series_has_zero_dispersion() -> None:
    assert sample_std([7.25] * 20) == 0.0


def test_single_value_is_zero() -> None:
    assert sample_std([100.0]) == 0.0


def test_empty_is_insufficient() -> None:
    out = sample_std([])
    assert isinstance(out, InsufficientData)
    assert out.reason


def test_estimate_over_store_skips_empty_buckets() -> None:
    store = TimeBucketStore()
    store.initialize(8, "hour", T)
    store.ingest([Sample(T - H * i, float(v)) for i, v in enumerate([5, 4, 3, 2, 1])], 8)

    sd = estimate_volatility(store)
    assert sd == pytest.approx(math.sqrt(2.5))


def test_estimate_writes_derived_price() -> None:
    store = TimeBucketStore()
    store.initialize(4, "hour", T)
    store.ingest([Sample(T, 10.0), Sample(T - H, 12.0)], 4)

    estimate_volatility(store)

    snap = dict(store.snapshot())
    assert snap[T].derived == 10.0
    assert snap[T - H].derived == 12.0
    assert snap[T - 2 * H].derived is None
    assert snap[T - 3 * H].derived is None


def test_estimate_on_empty_store_is_insufficient() -> None:
    store = TimeBucketStore()
    store.initialize(3, "day", T)
    assert isinstance(estimate_volatility(store), InsufficientData)
    assert all(b.derived is None for _, b in store.snapshot())


def test_estimate_overwrites_stale_derived_price() -> None:
    store = TimeBucketStore()
    store.initialize(3, "hour", T)
    store.set_derived({T: 999.0})
    store.upsert(T, 100.0)
    assert store.get(T).derived == 999.0  # type: ignore[union-attr]

    assert estimate_volatility(store) == 0.0
    assert store.get(T).derived == 100.0  # type: ignore[union-attr]


def test_stamp_derived_view_matches_store() -> None:
    store = TimeBucketStore()
    store.initialize(3, "hour", T)
    store.ingest([Sample(T, 2.0), Sample(T - 2 * H, 4.0)], 3)

    view = stamp_derived(store)
    assert view == store.snapshot()
    assert observed_std(view) == pytest.approx(math.sqrt(2.0))
