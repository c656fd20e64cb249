from __future__ import annotations


class ConfigOutOfRange(ValueError):
    """A configuration value is outside its documented range. Fatal."""


class UnsupportedGranularity(ValueError):
    """The data source cannot serve the requested period granularity."""

    def __init__(self, granularity: str):
        super().__init__(f"Unsupported time period for candle data: {granularity!r}")
        self.granularity = granularity


class FetchFailure(RuntimeError):
    """Network error, bad status, or a response that does not match the expected schema."""


class LockPoisoning(RuntimeError):
    """The bucket store was left mid-mutation and can no longer be trusted."""
