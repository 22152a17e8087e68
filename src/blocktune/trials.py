# Copyright (c) Syntropy Systems
"""Append-only CSV trial log."""
from __future__ import annotations

import csv
import io
import logging
import os
from typing import TYPE_CHECKING

from blocktune.errors import TrialLogError
from blocktune.header import atomic_write
from blocktune.models.trial import LogRow

if TYPE_CHECKING:
    from pathlib import Path

    from blocktune.models.trial import Trial

logger = logging.getLogger(__name__)

INVALID_METRIC = "NA"


def _format_row(cells: list[str]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(cells)
    return buf.getvalue()


def _format_metric(metric: float | None) -> str:
    return INVALID_METRIC if metric is None else repr(float(metric))


class TrialLog:
    """Durable, ordered record of every trial.

    One CSV row per trial: parameter values in declaration order followed by
    the metric (``NA`` when invalid). Each row goes out as a single write
    followed by fsync, so a crash can lose the row in flight but never
    damages the rows before it.
    """

    path: Path
    param_names: list[str]
    metric_name: str
    _trials: list[Trial]
    _ready: bool

    def __init__(
        self,
        path: Path,
        param_names: list[str],
        metric_name: str = "tokens_per_second",
    ) -> None:
        self.path = path
        self.param_names = list(param_names)
        self.metric_name = metric_name
        self._trials = []
        self._ready = False

    @property
    def columns(self) -> list[str]:
        return [*self.param_names, self.metric_name]

    def open(self, fresh: bool = True) -> None:  # noqa: FBT001, FBT002
        """Prepare the log file.

        Args:
            fresh: Start a new log with just the header row. Otherwise keep
                existing rows; their columns must match.

        """
        header = _format_row(self.columns)
        if fresh or not self.path.exists() or self.path.stat().st_size == 0:
            try:
                atomic_write(self.path, header.encode())
            except OSError as e:
                msg = f"Cannot create trial log {self.path}: {e}"
                raise TrialLogError(msg) from e
            self._ready = True
            return

        existing = read_header(self.path)
        if existing != self.columns:
            msg = (
                f"Trial log {self.path} has columns {existing}, "
                f"expected {self.columns}; use a new log file"
            )
            raise TrialLogError(msg)

        # Isolate a torn final line left by a crash
        with self.path.open("rb") as f:
            _ = f.seek(-1, os.SEEK_END)
            last = f.read(1)
        if last != b"\n":
            self._write("\n")
        self._ready = True

    def append(self, trial: Trial) -> None:
        """Durably append one trial.

        A log that was never opened is opened on first use, keeping any rows
        already in the file.
        """
        if not self._ready:
            self.open(fresh=False)
        cells = [str(trial.configuration.values[name]) for name in self.param_names]
        cells.append(_format_metric(trial.metric))
        try:
            self._write(_format_row(cells))
        except OSError as e:
            msg = f"Cannot append to trial log {self.path}: {e}"
            raise TrialLogError(msg) from e
        self._trials.append(trial)

    def all(self) -> list[Trial]:
        """Trials appended through this log, in arrival order."""
        return list(self._trials)

    def __len__(self) -> int:
        return len(self._trials)

    def _write(self, text: str) -> None:
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            _ = os.write(fd, text.encode())
            os.fsync(fd)
        finally:
            os.close(fd)


def read_header(path: Path) -> list[str]:
    """Return the column names of a trial log."""
    try:
        with path.open(newline="", encoding="utf-8") as f:
            header = next(csv.reader(f), None)
    except OSError as e:
        msg = f"Cannot read trial log {path}: {e}"
        raise TrialLogError(msg) from e
    if not header:
        msg = f"Trial log {path} is empty"
        raise TrialLogError(msg)
    return header


def read_log(path: Path) -> tuple[list[str], list[LogRow]]:
    """Read a trial log, tolerating a torn final line.

    Returns (parameter names, rows). Rows that do not parse are skipped.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Cannot read trial log {path}: {e}"
        raise TrialLogError(msg) from e

    lines = text.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines = lines[:-1]
    records = list(csv.reader(lines))
    if not records or not records[0]:
        msg = f"Trial log {path} is empty"
        raise TrialLogError(msg)

    header = records[0]
    param_names = header[:-1]
    rows: list[LogRow] = []
    for record in records[1:]:
        if len(record) != len(header):
            continue
        try:
            values = {name: int(cell) for name, cell in zip(param_names, record)}
            metric = None if record[-1] == INVALID_METRIC else float(record[-1])
        except ValueError:
            logger.debug("Skipping unparsable trial log row: %r", record)
            continue
        rows.append(LogRow(index=len(rows), values=values, metric=metric))
    return param_names, rows


def best_from_log(path: Path) -> LogRow | None:
    """Best row of a trial log; ties go to the earliest row."""
    _, rows = read_log(path)
    best: LogRow | None = None
    best_metric = 0.0
    for row in rows:
        if row.metric is None:
            continue
        if best is None or row.metric > best_metric:
            best, best_metric = row, row.metric
    return best
