# Copyright (c) Syntropy Systems
"""Pydantic models for candidate configurations, trials and benchmark rows."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from pydantic import Field, field_validator

from .base import BlocktuneBaseModel, FrozenModel


class Configuration(FrozenModel):
    """One fully-specified set of kernel parameters.

    ``values`` keeps declaration order; the header and the trial log both
    rely on it. It is a read-only view so a recorded trial cannot be edited.
    """

    values: Mapping[str, int]
    feature_enabled: bool = True

    @field_validator("values", mode="after")
    @classmethod
    def _read_only(cls, v: Mapping[str, int]) -> Mapping[str, int]:
        return MappingProxyType(dict(v))

    def __getitem__(self, name: str) -> int:
        return self.values[name]

    def label(self) -> str:
        """Return a short human-readable form, e.g. ``row=4, col=128``."""
        return ", ".join(f"{k}={v}" for k, v in self.values.items())


class TrialOutcome(str, Enum):
    """Why a trial does or does not carry a metric."""

    OK = "ok"
    BUILD_ERROR = "build_error"
    BENCHMARK_ERROR = "benchmark_error"
    NO_METRIC = "no_metric"


class Trial(FrozenModel):
    """Result of building and benchmarking one candidate."""

    index: int
    configuration: Configuration
    metric: float | None = None
    outcome: TrialOutcome = TrialOutcome.OK
    timestamp: str
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        """Return whether this trial produced a usable metric."""
        return self.metric is not None


class LogRow(BlocktuneBaseModel):
    """One row read back from a trial log file."""

    index: int
    values: dict[str, int]
    metric: float | None = None


class BenchRow(BlocktuneBaseModel):
    """One result row of llama-bench style tabular output."""

    cells: list[str] = Field(default_factory=list)
    test: str
    threads: int | None = None
    value: float
    stddev: float | None = None
