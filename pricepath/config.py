from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from pricepath.errors import ConfigOutOfRange
from pricepath.schemas import Granularity


class SimulatedProviderConfig(BaseModel):
    start_price: float = 100.0
    drift: float = 0.0
    volatility: float = 0.01
    seed: Optional[int] = None


class KrakenProviderConfig(BaseModel):
    """
    Kraken public REST API. No key required for OHLC.
    """

    base_url: str = "https://api.kraken.com"
    pair: str = "PAXGUSD"
    timeout_seconds: float = 10.0
    # Optional proxy (e.g. "http://127.0.0.1:7890")
    proxy: Optional[str] = None


class ProviderConfig(BaseModel):
    type: Literal["kraken", "simulated"] = "kraken"
    kraken: KrakenProviderConfig = Field(default_factory=KrakenProviderConfig)
    simulated: SimulatedProviderConfig = Field(default_factory=SimulatedProviderConfig)


class ForecastConfig(BaseModel):
    # retention window, in buckets
    periods: int = Field(default=100, gt=0, lt=741)
    # mean reversion speed
    speed_theta: float = Field(default=0.5, gt=0, le=5)
    time_period: Granularity = "hour"
    dt: float = Field(default=1.0 / 60.0, gt=0)
    steps: int = Field(default=60, ge=0)
    seed: Optional[int] = None


class AppConfig(BaseModel):
    interval_seconds: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"


class Config(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)


DEFAULT_CONFIG_PATH = (Path(__file__).resolve().parent.parent / "config" / "config.yaml").resolve()

# env var -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "NO_OF_PERIODS": ("forecast", "periods"),
    "SPEED_THETA": ("forecast", "speed_theta"),
    "TIME_PERIOD": ("forecast", "time_period"),
    "LOG_LEVEL": ("app", "log_level"),
}

_RANGE_MESSAGES: dict[tuple[str, str], str] = {
    ("forecast", "periods"): "NO_OF_PERIODS must be an integer greater than 0 and less than 741",
    ("forecast", "speed_theta"): "SPEED_THETA must be a number greater than 0 and less than or equal to 5",
    ("forecast", "time_period"): "TIME_PERIOD must be one of: 'second', 'minute', 'hour', or 'day'",
}


def config_path_from_env() -> Path:
    p = os.getenv("PRICEPATH_CONFIG")
    if not p:
        return DEFAULT_CONFIG_PATH
    return Path(p).expanduser().resolve()


def load_env() -> None:
    """Pull a local .env into the process environment without clobbering real env vars."""
    load_dotenv(override=False)


def _read_yaml(p: Path) -> dict[str, Any]:
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigOutOfRange(f"Config file {p} must contain a mapping at the top level")
    return data


def _set(data: dict[str, Any], section: str, field: str, value: Any) -> None:
    sec = data.get(section)
    if not isinstance(sec, dict):
        sec = {}
        data[section] = sec
    sec[field] = value


def _describe(err: ValidationError) -> str:
    msgs: list[str] = []
    for e in err.errors():
        loc = tuple(str(x) for x in e.get("loc", ()))
        msg = _RANGE_MESSAGES.get(loc[:2]) if len(loc) >= 2 else None
        if msg is None:
            msg = f"{'.'.join(loc) or 'config'}: {e.get('msg')}"
        if msg not in msgs:
            msgs.append(msg)
    return "; ".join(msgs)


def load_config(
    config_path: str | Path | None = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Config:
    """
    YAML file, then environment (NO_OF_PERIODS, SPEED_THETA, TIME_PERIOD, LOG_LEVEL),
    then explicit `overrides` keyed "section.field". Any value out of range raises
    ConfigOutOfRange.
    """
    p = Path(config_path) if config_path is not None else config_path_from_env()
    data = _read_yaml(p)

    environ = os.environ if env is None else env
    for name, (section, field) in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if raw is not None and raw.strip() != "":
            _set(data, section, field, raw.strip())

    for dotted, value in (overrides or {}).items():
        if value is None:
            continue
        section, _, field = dotted.partition(".")
        _set(data, section, field, value)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigOutOfRange(_describe(e)) from e
