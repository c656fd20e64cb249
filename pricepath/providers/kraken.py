from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import httpx

from pricepath.config import KrakenProviderConfig
from pricepath.errors import FetchFailure, UnsupportedGranularity
from pricepath.providers.base import CandleProvider
from pricepath.schemas import Granularity, Sample


log = logging.getLogger(__name__)

# Kraken OHLC intervals are given in minutes; there are no sub-minute candles.
INTERVAL_MINUTES: dict[str, int] = {
    "minute": 1,
    "hour": 60,
    "day": 1440,
}


def interval_minutes(granularity: str) -> int:
    try:
        return INTERVAL_MINUTES[granularity]
    except KeyError:
        raise UnsupportedGranularity(granularity) from None


def _num(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None:
        return None
    if not isinstance(v, (int, float, str)):
        return None
    try:
        f = float(v)
    except (ValueError, OverflowError):
        return None
    # "nan" / "inf" parse fine but would poison every statistic downstream
    return f if math.isfinite(f) else None


def _ts(v: Any) -> Optional[datetime]:
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, int):
        secs = v
    elif isinstance(v, float) and v.is_integer():
        secs = int(v)
    elif isinstance(v, str):
        try:
            secs = int(v.strip())
        except ValueError:
            return None
    else:
        return None
    try:
        return datetime.fromtimestamp(secs, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_ohlc_rows(rows: Iterable[Any]) -> list[Sample]:
    """
    Kraken candle rows are [time, open, high, low, close, vwap, volume, count],
    numbers or numeric strings. Each usable row becomes a Sample priced at the
    close-weighted average (open + high + close + close) / 4. Short or
    unparsable rows are skipped.
    """
    out: list[Sample] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            continue
        ts = _ts(row[0])
        if ts is None:
            continue
        open_p, high_p, close_p = _num(row[1]), _num(row[2]), _num(row[4])
        if open_p is None or high_p is None or close_p is None:
            continue
        price = (open_p + high_p + close_p + close_p) / 4.0
        out.append(Sample(ts=ts, price=price))
    return out


class KrakenProvider(CandleProvider):
    """
    OHLC candles from Kraken.

    Endpoint:
      /0/public/OHLC?pair=PAXGUSD&interval=60
    Response:
      {"error": [], "result": {"<pair>": [[...], ...], "last": 1700000000}}
    Kraken may key the series under its own pair name (e.g. "XXBTZUSD" for "XBTUSD"),
    so when the configured name is absent the single non-"last" series is used.
    """

    def __init__(self, cfg: KrakenProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cfg = cfg
        kwargs: dict[str, Any] = dict(
            base_url=cfg.base_url,
            timeout=httpx.Timeout(cfg.timeout_seconds),
            headers={
                "User-Agent": "pricepath/0.1",
                "Accept": "application/json",
            },
        )
        if transport is not None:
            kwargs["transport"] = transport
        elif cfg.proxy:
            kwargs["proxy"] = cfg.proxy
        self._client = httpx.AsyncClient(**kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _series(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise FetchFailure(f"Unexpected Kraken response: {payload!r}"[:300])
        errors = payload.get("error") or []
        if errors:
            raise FetchFailure(f"Kraken API error: {', '.join(str(e) for e in errors)}")

        result = payload.get("result")
        if not isinstance(result, dict):
            raise FetchFailure("Kraken response has no 'result' object")

        series = result.get(self._cfg.pair)
        if series is None:
            others = [k for k in result if k != "last"]
            if len(others) == 1:
                series = result[others[0]]
        if not isinstance(series, list):
            raise FetchFailure(f"No OHLC data found for pair {self._cfg.pair}")
        return series

    async def get_samples(self, granularity: Granularity) -> list[Sample]:
        # Fails fast, before any request.
        interval = interval_minutes(granularity)
        params = {"pair": self._cfg.pair, "interval": interval}
        try:
            r = await self._client.get("/0/public/OHLC", params=params)
            r.raise_for_status()
            payload = r.json()
        except httpx.HTTPError as e:
            raise FetchFailure(f"Kraken request failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise FetchFailure(f"Kraken returned invalid JSON: {e}") from e

        rows = self._series(payload)
        samples = parse_ohlc_rows(rows)
        log.debug("Kraken %s %s: %d rows, %d usable", self._cfg.pair, granularity, len(rows), len(samples))
        return samples
