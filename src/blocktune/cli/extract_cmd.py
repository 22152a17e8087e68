# Copyright (c) Syntropy Systems
"""blocktune extract command."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from blocktune.config import find_project_dir, load_config
from blocktune.errors import ConfigError
from blocktune.extract import MetricExtractor, parse_bench_rows

console = Console()


def _defaults() -> tuple[str, str]:
    if find_project_dir() is None:
        return "bitnet", "pp128"
    try:
        bench = load_config().bench
    except ConfigError:
        return "bitnet", "pp128"
    return bench.workload, bench.iteration_type


def extract(
    output_file: Path = typer.Argument(
        ...,
        help="Saved benchmark output",
        exists=True,
        dir_okay=False,
    ),
    workload: str | None = typer.Option(
        None,
        "--workload", "-w",
        help="Row must contain this text (default: from blocktune.yaml or 'bitnet')",
    ),
    iteration: str | None = typer.Option(
        None,
        "--iteration", "-i",
        help="Row must have this test cell (default: from blocktune.yaml or 'pp128')",
    ),
) -> None:
    """Parse benchmark output and print the rows and the tuning metric."""
    default_workload, default_iteration = _defaults()
    workload = workload or default_workload
    iteration = iteration or default_iteration

    text = output_file.read_text(encoding="utf-8", errors="replace")

    rows = parse_bench_rows(text, workload=workload)
    if rows:
        table = Table(title=f"Benchmark rows ({workload})")
        table.add_column("Threads", justify="right")
        table.add_column("Test")
        table.add_column("Value", justify="right")
        table.add_column("Std Dev", justify="right")
        for row in rows:
            table.add_row(
                str(row.threads) if row.threads is not None else "-",
                row.test,
                f"{row.value}",
                f"{row.stddev}" if row.stddev is not None else "-",
            )
        console.print(table)

    metric = MetricExtractor(workload, iteration).extract(text)
    if metric is None:
        console.print(f"[yellow]No {iteration} measurement for {workload}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[green]{iteration}:[/green] {metric}")
