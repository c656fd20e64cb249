from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pricepath.aggregator import summarize_snapshot
from pricepath.config import Config, ProviderConfig
from pricepath.errors import FetchFailure, UnsupportedGranularity
from pricepath.providers.base import CandleProvider
from pricepath.providers.kraken import KrakenProvider
from pricepath.providers.simulated import SimulatedProvider
from pricepath.schemas import Forecast, InsufficientData
from pricepath.simulator import ou_process
from pricepath.store import TimeBucketStore
from pricepath.volatility import observed_std, stamp_derived


log = logging.getLogger(__name__)


def build_provider(cfg: ProviderConfig) -> CandleProvider:
    if cfg.type == "kraken":
        return KrakenProvider(cfg.kraken)
    if cfg.type == "simulated":
        return SimulatedProvider(cfg.simulated)
    raise ValueError(f"Unsupported provider: {cfg.type}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Engine:
    """
    One bucket store, one data source. `refresh` pulls candles into the store;
    `forecast` turns the current window into a simulated mean-reverting path.
    """

    def __init__(
        self,
        cfg: Config,
        provider: CandleProvider,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.cfg = cfg
        self.provider = provider
        self._rng = rng if rng is not None else random.Random(cfg.forecast.seed)
        self._clock = clock or _utcnow

        self.store = TimeBucketStore()
        self.store.initialize(cfg.forecast.periods, cfg.forecast.time_period, self._clock())

        self._task: Optional[asyncio.Task[None]] = None
        self._stop = asyncio.Event()
        self._last_ok_ts: Optional[str] = None
        self._last_err: Optional[str] = None
        self._refresh_count = 0

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is None:
            return
        try:
            await self._task
        except Exception:
            log.exception("Refresh loop ended with an error")
        finally:
            self._task = None

    async def refresh(self) -> bool:
        """
        One update cycle. The fetch runs with no lock held; only the upsert+trim
        is done under the store's write lock. Fetch problems are logged and leave
        the store as it was.
        """
        granularity = self.cfg.forecast.time_period
        try:
            samples = await self.provider.get_samples(granularity)
        except (UnsupportedGranularity, FetchFailure) as e:
            self._last_err = f"{type(e).__name__}: {e}"
            log.warning("Fetch skipped, store unchanged: %s", self._last_err)
            return False

        log.debug("Fetched %d samples", len(samples))
        self.store.ingest(samples, self.cfg.forecast.periods)
        self._last_ok_ts = self._clock().isoformat()
        self._last_err = None
        self._refresh_count += 1
        return True

    def forecast(self) -> Forecast | InsufficientData:
        # one view for sigma, latest and mean
        snap = stamp_derived(self.store)
        sigma = observed_std(snap)
        if isinstance(sigma, InsufficientData):
            return sigma
        summary = summarize_snapshot(snap)
        if isinstance(summary, InsufficientData):
            return summary

        fc = self.cfg.forecast
        log.debug(
            "SD: %s, latest %s, avg %s, theta %s",
            sigma,
            summary.latest,
            summary.mean,
            fc.speed_theta,
        )
        prices = ou_process(
            initial_price=summary.latest,
            theta=fc.speed_theta,
            mu=summary.mean,
            sigma=sigma,
            dt=fc.dt,
            steps=fc.steps,
            rng=self._rng,
        )
        return Forecast(
            initial_price=summary.latest,
            mu=summary.mean,
            sigma=sigma,
            theta=fc.speed_theta,
            dt=fc.dt,
            prices=prices,
        )

    def health(self) -> dict[str, Any]:
        return {
            "ts": _utcnow().isoformat(),
            "engine_task_running": self._task is not None and not self._task.done(),
            "time_period": self.cfg.forecast.time_period,
            "periods": self.cfg.forecast.periods,
            "store_size": len(self.store),
            "last_ok_ts": self._last_ok_ts,
            "last_error": self._last_err,
            "refresh_count": self._refresh_count,
        }

    def snapshot(self) -> dict[str, Any]:
        buckets = [
            {"ts": k.isoformat(), "observed": b.observed, "derived": b.derived}
            for k, b in self.store.snapshot()
        ]
        return {
            "ts": _utcnow().isoformat(),
            "time_period": self.cfg.forecast.time_period,
            "periods": self.cfg.forecast.periods,
            "filled": sum(1 for b in buckets if b["observed"] is not None),
            "buckets": buckets,
        }

    async def _run_loop(self) -> None:
        interval = float(self.cfg.app.interval_seconds)

        while not self._stop.is_set():
            start = asyncio.get_running_loop().time()
            try:
                await self.refresh()
            except Exception:
                # LockPoisoning or anything unexpected: the store is no longer trustworthy.
                log.exception("Refresh loop stopped")
                raise

            elapsed = asyncio.get_running_loop().time() - start
            sleep_for = max(0.0, interval - elapsed)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=sleep_for)
            except asyncio.TimeoutError:
                pass
