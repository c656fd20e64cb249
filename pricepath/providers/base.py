from __future__ import annotations

from abc import ABC, abstractmethod

from pricepath.schemas import Granularity, Sample


class CandleProvider(ABC):
    @abstractmethod
    async def get_samples(self, granularity: Granularity) -> list[Sample]:
        """
        Timestamped prices, oldest first, one per candle of the given granularity.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
