# Copyright (c) Syntropy Systems
"""Tests for the CSV trial log."""

from pathlib import Path

import pytest

from blocktune.errors import TrialLogError
from blocktune.models.trial import Configuration, Trial, TrialOutcome
from blocktune.trials import TrialLog, best_from_log, read_header, read_log


def make_trial(index: int, row: int, col: int, metric: float | None) -> Trial:
    return Trial(
        index=index,
        configuration=Configuration(values={"row": row, "col": col}),
        metric=metric,
        outcome=TrialOutcome.OK if metric is not None else TrialOutcome.NO_METRIC,
        timestamp="2026-01-01T00:00:00Z",
    )


class TestTrialLog:
    """Tests for writing the log."""

    def test_header_row(self, trial_log: TrialLog) -> None:
        """Columns are parameters in order, then the metric."""
        assert trial_log.path.read_text() == "row,col,tokens_per_second\n"
        assert read_header(trial_log.path) == ["row", "col", "tokens_per_second"]

    def test_append_rows(self, trial_log: TrialLog) -> None:
        """One row per trial, invalid metrics as NA."""
        trial_log.append(make_trial(0, 2, 64, 128.0))
        trial_log.append(make_trial(1, 2, 128, None))
        trial_log.append(make_trial(2, 4, 64, 256.5))

        assert trial_log.path.read_text().splitlines() == [
            "row,col,tokens_per_second",
            "2,64,128.0",
            "2,128,NA",
            "4,64,256.5",
        ]
        assert [t.index for t in trial_log.all()] == [0, 1, 2]
        assert len(trial_log) == 3

    def test_fresh_truncates(self, trial_log: TrialLog) -> None:
        """Opening fresh drops earlier rows."""
        trial_log.append(make_trial(0, 2, 64, 1.0))

        trial_log.open(fresh=True)

        _, rows = read_log(trial_log.path)
        assert rows == []

    def test_append_mode_keeps_rows(self, trial_log: TrialLog) -> None:
        """Appending to an existing log keeps prior rows."""
        trial_log.append(make_trial(0, 2, 64, 1.0))

        again = TrialLog(trial_log.path, ["row", "col"])
        again.open(fresh=False)
        again.append(make_trial(0, 4, 64, 2.0))

        _, rows = read_log(trial_log.path)
        assert [r.metric for r in rows] == [1.0, 2.0]

    def test_append_mode_column_mismatch(self, trial_log: TrialLog) -> None:
        """Changed parameters need a new log."""
        other = TrialLog(trial_log.path, ["row", "col", "parallel"])

        with pytest.raises(TrialLogError, match="columns"):
            other.open(fresh=False)

    def test_append_after_torn_line(self, trial_log: TrialLog) -> None:
        """A torn final line from a crash is isolated, not extended."""
        trial_log.append(make_trial(0, 2, 64, 1.0))
        with trial_log.path.open("a") as f:
            _ = f.write("4,12")

        again = TrialLog(trial_log.path, ["row", "col"])
        again.open(fresh=False)
        again.append(make_trial(0, 4, 128, 3.0))

        _, rows = read_log(trial_log.path)
        assert [(r.values, r.metric) for r in rows] == [
            ({"row": 2, "col": 64}, 1.0),
            ({"row": 4, "col": 128}, 3.0),
        ]

    def test_append_without_open_writes_header(self, temp_dir: Path) -> None:
        """First append on an unopened log lays down the header row."""
        log = TrialLog(temp_dir / "log.csv", ["row", "col"])

        log.append(make_trial(0, 2, 64, 128.0))
        log.append(make_trial(1, 4, 64, 256.0))

        assert log.path.read_text().splitlines() == [
            "row,col,tokens_per_second",
            "2,64,128.0",
            "4,64,256.0",
        ]

    def test_append_without_open_keeps_existing(self, trial_log: TrialLog) -> None:
        """An unopened log over an existing file continues it."""
        trial_log.append(make_trial(0, 2, 64, 1.0))

        again = TrialLog(trial_log.path, ["row", "col"])
        again.append(make_trial(0, 4, 64, 2.0))

        names, rows = read_log(trial_log.path)
        assert names == ["row", "col"]
        assert [r.metric for r in rows] == [1.0, 2.0]

    def test_recorded_configuration_is_read_only(self, trial_log: TrialLog) -> None:
        """Trials cannot be edited after they are logged."""
        trial = make_trial(0, 2, 64, 1.0)
        trial_log.append(trial)

        with pytest.raises(TypeError):
            trial.configuration.values["row"] = 99  # pyright: ignore[reportIndexIssue]

        assert trial_log.all()[0].configuration["row"] == 2


class TestReadLog:
    """Tests for reading the log back."""

    def test_ignores_torn_final_line(self, temp_dir: Path) -> None:
        """A final line without newline is not trusted."""
        path = temp_dir / "log.csv"
        _ = path.write_text("row,col,tokens_per_second\n2,64,10.0\n4,128,51")

        names, rows = read_log(path)

        assert names == ["row", "col"]
        assert len(rows) == 1
        assert rows[0].metric == 10.0

    def test_skips_bad_rows(self, temp_dir: Path) -> None:
        """Rows with wrong width or bad numbers are skipped."""
        path = temp_dir / "log.csv"
        _ = path.write_text("row,col,tokens_per_second\n2,64\nx,64,1.0\n4,64,NA\n")

        _, rows = read_log(path)

        assert len(rows) == 1
        assert rows[0].values == {"row": 4, "col": 64}
        assert rows[0].metric is None

    def test_missing_file(self, temp_dir: Path) -> None:
        """Missing log is a TrialLogError."""
        with pytest.raises(TrialLogError):
            _ = read_log(temp_dir / "missing.csv")

    def test_reads_original_format(self, temp_dir: Path) -> None:
        """Logs from the shell tuner (0 for no metric) read fine."""
        path = temp_dir / "tuning_log.csv"
        _ = path.write_text(
            "row_block,col_block,parallel_size,tokens_per_second\n"
            "2,64,2,0\n"
            "4,128,4,75.44\n"
        )

        names, rows = read_log(path)

        assert names == ["row_block", "col_block", "parallel_size"]
        assert rows[1].values == {"row_block": 4, "col_block": 128, "parallel_size": 4}


class TestBestFromLog:
    """Tests for picking the winner from a log."""

    def test_best(self, trial_log: TrialLog) -> None:
        """Highest metric wins."""
        trial_log.append(make_trial(0, 2, 64, 128.0))
        trial_log.append(make_trial(1, 4, 128, 512.0))
        trial_log.append(make_trial(2, 4, 64, None))

        best = best_from_log(trial_log.path)

        assert best is not None
        assert best.values == {"row": 4, "col": 128}
        assert best.metric == 512.0

    def test_tie_keeps_first(self, trial_log: TrialLog) -> None:
        """Ties go to the earliest row."""
        trial_log.append(make_trial(0, 2, 128, 256.0))
        trial_log.append(make_trial(1, 4, 64, 256.0))

        best = best_from_log(trial_log.path)

        assert best is not None
        assert best.index == 0

    def test_no_valid_rows(self, trial_log: TrialLog) -> None:
        """All-NA log has no best."""
        trial_log.append(make_trial(0, 2, 64, None))

        assert best_from_log(trial_log.path) is None
