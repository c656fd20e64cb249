from __future__ import annotations

import asyncio
import re
from pathlib import Path

import pytest

from pricepath import cli
from pricepath.config import Config, ForecastConfig
from pricepath.errors import FetchFailure, LockPoisoning
from pricepath.providers.base import CandleProvider
from pricepath.schemas import Granularity, Sample


LINE = re.compile(r"^Period: (\d+): -?\d+\.\d{2}$")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("NO_OF_PERIODS", "SPEED_THETA", "TIME_PERIOD", "LOG_LEVEL", "PRICEPATH_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def missing(tmp_path: Path) -> str:
    return str(tmp_path / "none.yaml")


class _Failing(CandleProvider):
    def __init__(self) -> None:
        self.closed = False

    async def get_samples(self, granularity: Granularity) -> list[Sample]:
        raise FetchFailure("offline")

    async def aclose(self) -> None:
        self.closed = True


def test_prints_path_lines(missing: str, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        ["--config", missing, "--provider", "simulated", "--time-period", "day", "--periods", "30", "--steps", "5", "--seed", "3"]
    )
    out = capsys.readouterr().out.strip().splitlines()

    assert code == 0
    assert len(out) == 6
    assert [int(LINE.match(line).group(1)) for line in out] == list(range(6))  # type: ignore[union-attr]


@pytest.mark.parametrize(
    "args, needle",
    [
        (["--periods", "0"], "NO_OF_PERIODS"),
        (["--periods", "741"], "NO_OF_PERIODS"),
        (["--theta", "0"], "SPEED_THETA"),
        (["--theta", "5.5"], "SPEED_THETA"),
        (["--time-period", "week"], "TIME_PERIOD"),
    ],
)
def test_config_range_violation_exits_nonzero(
    missing: str, capsys: pytest.CaptureFixture[str], args: list[str], needle: str
) -> None:
    code = cli.main(["--config", missing, *args])
    captured = capsys.readouterr()
    assert code == 2
    assert needle in captured.err
    assert captured.out == ""


def test_env_range_violation_exits_nonzero(
    missing: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("SPEED_THETA", "9")
    assert cli.main(["--config", missing]) == 2
    assert "SPEED_THETA" in capsys.readouterr().err


def test_insufficient_data_aborts_explicitly(capsys: pytest.CaptureFixture[str]) -> None:
    provider = _Failing()
    cfg = Config(forecast=ForecastConfig(periods=5))
    code = asyncio.run(cli.run(cfg, provider=provider))

    captured = capsys.readouterr()
    assert code == 1
    assert provider.closed
    assert "Cannot simulate" in captured.err
    assert captured.out == ""


def test_lock_poisoning_is_fatal(
    missing: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    async def poisoned(cfg: Config) -> int:
        raise LockPoisoning("Lock poisoning detected.")

    monkeypatch.setattr(cli, "run", poisoned)
    assert cli.main(["--config", missing, "--provider", "simulated"]) == 1
    assert "Lock poisoning" in capsys.readouterr().err
