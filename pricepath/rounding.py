from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pricepath.schemas import Granularity


_DELTAS: dict[str, timedelta] = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
}


def period_delta(granularity: Granularity) -> timedelta:
    try:
        return _DELTAS[granularity]
    except KeyError:
        raise ValueError(f"Unknown time period: {granularity!r}") from None


def as_utc(ts: datetime) -> datetime:
    # naive timestamps are taken to be UTC already
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def round_to_period(ts: datetime, granularity: Granularity) -> datetime:
    """
    Truncate `ts` to the start of its enclosing period.

    Pure and idempotent: round_to_period(round_to_period(t, g), g) == round_to_period(t, g).
    The result is always timezone-aware UTC.
    """
    t = as_utc(ts)
    if granularity == "second":
        return t.replace(microsecond=0)
    if granularity == "minute":
        return t.replace(second=0, microsecond=0)
    if granularity == "hour":
        return t.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return t.replace(hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown time period: {granularity!r}")
