from __future__ import annotations

from fastapi.testclient import TestClient

from pricepath.config import Config, ForecastConfig, SimulatedProviderConfig
from pricepath.main import create_app
from pricepath.providers.simulated import SimulatedProvider


def _client(periods: int = 12, steps: int = 8) -> TestClient:
    cfg = Config(forecast=ForecastConfig(periods=periods, time_period="day", steps=steps, seed=2))
    provider = SimulatedProvider(SimulatedProviderConfig(seed=4), count=40)
    # not used as a context manager: the background refresh loop stays off
    return TestClient(create_app(cfg=cfg, provider=provider))


def test_health_and_snapshot_before_refresh() -> None:
    client = _client()

    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["store_size"] == 12
    assert body["refresh_count"] == 0

    r = client.get("/api/snapshot")
    assert r.status_code == 200
    snap = r.json()
    assert len(snap["buckets"]) == 12
    assert snap["filled"] == 0


def test_forecast_unavailable_until_data_arrives() -> None:
    client = _client()
    r = client.get("/api/forecast")
    assert r.status_code == 503
    assert r.json()["error"] == "insufficient_data"


def test_refresh_then_forecast() -> None:
    client = _client(steps=8)

    r = client.post("/api/refresh")
    assert r.status_code == 200
    assert r.json()["updated"] is True

    r = client.get("/api/forecast")
    assert r.status_code == 200
    body = r.json()
    assert len(body["prices"]) == 9
    assert len(body["expected"]) == 9
    assert body["prices"][0] == body["initial_price"]
    assert body["expected"][0] == body["initial_price"]
    assert body["sigma"] >= 0

    snap = client.get("/api/snapshot").json()
    assert snap["filled"] == 12
    assert all(b["derived"] == b["observed"] for b in snap["buckets"])


class CrashingProvider(SimulatedProvider):
    def __init__(self) -> None:
        super().__init__(SimulatedProviderConfig(seed=4), count=4)
        self.closed = False

    async def get_samples(self, granularity):  # type: ignore[override]
        raise KeyError("boom")

    async def aclose(self) -> None:
        self.closed = True


def test_shutdown_closes_provider_after_loop_crash() -> None:
    cfg = Config(forecast=ForecastConfig(periods=3, time_period="day", steps=2, seed=2))
    cfg.app.interval_seconds = 0.01
    provider = CrashingProvider()

    # as a context manager: startup runs the loop, which dies on the first refresh
    with TestClient(create_app(cfg=cfg, provider=provider)) as client:
        assert client.get("/api/snapshot").status_code == 200
    assert provider.closed
