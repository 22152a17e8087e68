# Copyright (c) Syntropy Systems
"""Exception hierarchy for blocktune.

Per-candidate errors (``BuildError``, ``BenchmarkError``) are caught by the
search controller and recorded as invalid trials. Everything else is fatal to
the run and surfaces at the CLI with a non-zero exit status.
"""
from __future__ import annotations


class BlocktuneError(Exception):
    """Base class for blocktune errors."""


class ConfigError(BlocktuneError):
    """blocktune.yaml is missing or invalid."""


class BuildError(BlocktuneError):
    """The kernel build failed for the currently applied header."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class BenchmarkError(BlocktuneError):
    """The benchmark command could not be run or exited non-zero."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class EmptySearchSpaceError(BlocktuneError):
    """The candidate space has no candidates."""


class ArtifactWriteError(BlocktuneError):
    """The configuration header could not be written."""


class RestoreError(BlocktuneError):
    """The original configuration header could not be put back.

    The build tree may now be left on a configuration nobody chose.
    """


class TrialLogError(BlocktuneError):
    """The trial log is unreadable or its columns do not match."""
