# Copyright (c) Syntropy Systems
"""Scrape throughput numbers out of llama-bench style tables."""
from __future__ import annotations

import logging
import re

from blocktune.models.trial import BenchRow

logger = logging.getLogger(__name__)

UNCERTAINTY_MARKER = "±"
_SEPARATOR_CELL = re.compile(r"^:?-+:?$")


def split_row(line: str) -> list[str] | None:
    """Split a pipe-delimited table line into stripped cells.

    Returns None for lines that are not table rows, including the
    ``|---|---|`` separator under the header.
    """
    if "|" not in line:
        return None
    cells = [cell.strip() for cell in line.strip().split("|")]
    if cells and not cells[0]:
        cells = cells[1:]
    if cells and not cells[-1]:
        cells = cells[:-1]
    if not cells or all(_SEPARATOR_CELL.match(cell) for cell in cells if cell):
        return None
    return cells


def _parse_measurement(cell: str) -> tuple[float, float | None] | None:
    value_part, _, stddev_part = cell.partition(UNCERTAINTY_MARKER)
    try:
        value = float(value_part.strip())
    except ValueError:
        return None
    try:
        stddev: float | None = float(stddev_part.strip())
    except ValueError:
        stddev = None
    return value, stddev


def _row_matches(line: str, cells: list[str], workload: str | None, iteration: str | None) -> bool:
    if workload and workload.casefold() not in line.casefold():
        return False
    return not iteration or iteration in cells


def _to_bench_row(cells: list[str], iteration: str | None) -> BenchRow | None:
    perf_idx = next(
        (i for i, cell in enumerate(cells) if UNCERTAINTY_MARKER in cell), None
    )
    if perf_idx is None:
        return None
    measurement = _parse_measurement(cells[perf_idx])
    if measurement is None:
        return None

    # Test label sits just before the measurement unless told otherwise
    test_idx = cells.index(iteration) if iteration and iteration in cells else perf_idx - 1
    if test_idx < 0:
        return None
    threads = None
    if test_idx > 0 and cells[test_idx - 1].isdigit():
        threads = int(cells[test_idx - 1])

    value, stddev = measurement
    return BenchRow(
        cells=cells,
        test=cells[test_idx],
        threads=threads,
        value=value,
        stddev=stddev,
    )


def parse_bench_rows(
    text: str,
    workload: str | None = None,
    iteration: str | None = None,
) -> list[BenchRow]:
    """Return every measurement row, optionally filtered.

    Args:
        text: Raw benchmark output
        workload: Substring the row must contain (e.g. "bitnet")
        iteration: Exact cell the row must contain (e.g. "pp128")

    """
    rows: list[BenchRow] = []
    for line in text.splitlines():
        cells = split_row(line)
        if cells is None or not _row_matches(line, cells, workload, iteration):
            continue
        row = _to_bench_row(cells, iteration)
        if row is not None:
            rows.append(row)
    return rows


class MetricExtractor:
    """Turns raw benchmark text into one throughput number."""

    workload: str
    iteration: str

    def __init__(self, workload: str = "bitnet", iteration: str = "pp128") -> None:
        self.workload = workload
        self.iteration = iteration

    def extract(self, text: str) -> float | None:
        """Return the value before ``±`` in the first matching row.

        None means no usable signal: no output, no matching row, or a
        malformed number in the matching row.
        """
        for line in text.splitlines():
            cells = split_row(line)
            if cells is None or not _row_matches(line, cells, self.workload, self.iteration):
                continue
            perf_cell = next((c for c in cells if UNCERTAINTY_MARKER in c), None)
            if perf_cell is None:
                continue
            measurement = _parse_measurement(perf_cell)
            if measurement is None:
                logger.debug("Malformed measurement cell: %r", perf_cell)
                return None
            return measurement[0]
        return None
