# Copyright (c) Syntropy Systems
"""Tests for benchmark output parsing."""

from blocktune.extract import MetricExtractor, parse_bench_rows, split_row

LLAMA_BENCH_OUTPUT = """\
build: 3947 (406a5036) with clang version 18.1.3 for x86_64-pc-linux-gnu
| model                          |       size |     params | backend    | threads |          test |                  t/s |
| ------------------------------ | ---------: | ---------: | ---------- | ------: | ------------: | -------------------: |
| bitnet-b1.58 2B I2_S - 2 bpw ternary |   1.71 GiB |     2.74 B | CPU        |       1 |         pp128 |         20.31 ± 0.08 |
| bitnet-b1.58 2B I2_S - 2 bpw ternary |   1.71 GiB |     2.74 B | CPU        |       1 |         tg128 |         15.02 ± 0.11 |
| bitnet-b1.58 2B I2_S - 2 bpw ternary |   1.71 GiB |     2.74 B | CPU        |       4 |         pp128 |         75.44 ± 1.90 |
| bitnet-b1.58 2B I2_S - 2 bpw ternary |   1.71 GiB |     2.74 B | CPU        |       4 |         tg128 |         41.87 ± 0.35 |

build: 3947 (406a5036)
"""


class TestMetricExtractor:
    """Tests for the scalar metric."""

    def test_simple_row(self) -> None:
        """Value before the uncertainty marker, uncertainty dropped."""
        extractor = MetricExtractor("bitnet", "pp128")
        assert extractor.extract("... | bitnet | pp128 | 42.50 ± 1.20 |") == 42.50

    def test_no_matching_row(self) -> None:
        """Text without the workload/iteration row gives None."""
        extractor = MetricExtractor("bitnet", "pp128")

        assert extractor.extract("... | llama | pp128 | 42.50 ± 1.20 |") is None
        assert extractor.extract("... | bitnet | tg128 | 42.50 ± 1.20 |") is None
        assert extractor.extract("nothing to see here") is None

    def test_empty_output(self) -> None:
        """No output gives None."""
        assert MetricExtractor().extract("") is None

    def test_malformed_value(self) -> None:
        """A matching row with a non-number gives None."""
        extractor = MetricExtractor("bitnet", "pp128")
        assert extractor.extract("| bitnet | pp128 | fast ± 1.20 |") is None

    def test_row_without_uncertainty_skipped(self) -> None:
        """Rows without a value ± stddev cell are not measurements."""
        text = "| bitnet | pp128 | 42.50 |\n| bitnet | pp128 | 30.00 ± 0.50 |"
        assert MetricExtractor("bitnet", "pp128").extract(text) == 30.0

    def test_first_match_wins(self) -> None:
        """The first matching row is the metric."""
        extractor = MetricExtractor("bitnet", "pp128")
        assert extractor.extract(LLAMA_BENCH_OUTPUT) == 20.31

    def test_iteration_is_exact_cell(self) -> None:
        """pp128 does not match a pp1280 cell."""
        extractor = MetricExtractor("bitnet", "pp128")
        assert extractor.extract("| bitnet | pp1280 | 9.00 ± 0.10 |") is None

    def test_workload_case_insensitive(self) -> None:
        """Workload matching ignores case."""
        extractor = MetricExtractor("BitNet", "tg128")
        assert extractor.extract(LLAMA_BENCH_OUTPUT) == 15.02


class TestParseBenchRows:
    """Tests for structured rows."""

    def test_all_rows(self) -> None:
        """Every measurement row is returned with threads and stddev."""
        rows = parse_bench_rows(LLAMA_BENCH_OUTPUT, workload="bitnet")

        assert [(r.threads, r.test, r.value, r.stddev) for r in rows] == [
            (1, "pp128", 20.31, 0.08),
            (1, "tg128", 15.02, 0.11),
            (4, "pp128", 75.44, 1.90),
            (4, "tg128", 41.87, 0.35),
        ]

    def test_filter_iteration(self) -> None:
        """Iteration filter keeps only that test."""
        rows = parse_bench_rows(LLAMA_BENCH_OUTPUT, iteration="tg128")
        assert [r.value for r in rows] == [15.02, 41.87]

    def test_skips_header_and_separator(self) -> None:
        """Header and separator lines are not measurements."""
        assert parse_bench_rows("| model | test | t/s |\n| --- | ---: | ---: |") == []


class TestSplitRow:
    """Tests for table line splitting."""

    def test_split(self) -> None:
        """Edge pipes are dropped, cells are stripped."""
        assert split_row("| a |  b | c |") == ["a", "b", "c"]

    def test_not_a_row(self) -> None:
        """Lines without pipes and separator lines are not rows."""
        assert split_row("plain text") is None
        assert split_row("|---|:---:|") is None
