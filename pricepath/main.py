from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from pricepath.config import Config, load_config, load_env
from pricepath.engine import Engine, build_provider
from pricepath.providers.base import CandleProvider
from pricepath.schemas import InsufficientData
from pricepath.simulator import expected_path


log = logging.getLogger("uvicorn.error")


def create_app(cfg: Optional[Config] = None, provider: Optional[CandleProvider] = None) -> FastAPI:
    if cfg is None:
        load_env()
        cfg = load_config()
    if provider is None:
        provider = build_provider(cfg.provider)

    engine = Engine(cfg=cfg, provider=provider)

    app = FastAPI(title="Price Path Forecaster", version="0.1.0")
    app.state.cfg = cfg
    app.state.engine = engine

    @app.on_event("startup")
    async def _startup() -> None:
        engine.start()
        log.info(
            "Refresh loop started: %s x %s every %ss",
            cfg.forecast.periods,
            cfg.forecast.time_period,
            cfg.app.interval_seconds,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        try:
            await engine.stop()
        finally:
            await provider.aclose()

    @app.get("/api/health")
    async def health() -> dict:
        return engine.health()

    @app.get("/api/snapshot")
    async def snapshot() -> dict:
        return engine.snapshot()

    @app.post("/api/refresh")
    async def refresh() -> dict:
        ok = await engine.refresh()
        return {"updated": ok, "health": engine.health()}

    @app.get("/api/forecast")
    async def forecast():
        result = engine.forecast()
        if isinstance(result, InsufficientData):
            return JSONResponse(status_code=503, content={"error": "insufficient_data", "reason": result.reason})
        body = asdict(result)
        body["expected"] = expected_path(result.initial_price, result.theta, result.mu, result.dt, len(result.prices) - 1)
        return body

    return app


app = create_app()
