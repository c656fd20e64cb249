from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Union


Granularity = Literal["second", "minute", "hour", "day"]


@dataclass(frozen=True)
class Sample:
    ts: datetime
    price: float


@dataclass(frozen=True)
class InsufficientData:
    """
    Explicit "no value" result for a statistic that has nothing to work on.
    Callers decide whether to abort or substitute a default.
    """

    reason: str = "no qualifying samples"


# A statistic either has a value or says why it does not.
Stat = Union[float, InsufficientData]


def is_insufficient(value: object) -> bool:
    return isinstance(value, InsufficientData)


@dataclass(frozen=True)
class PriceSummary:
    latest: float
    mean: float


@dataclass(frozen=True)
class Forecast:
    initial_price: float
    mu: float
    sigma: float
    theta: float
    dt: float
    prices: list[float] = field(default_factory=list)
