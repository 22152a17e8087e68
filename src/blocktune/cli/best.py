# Copyright (c) Syntropy Systems
"""blocktune best command."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from blocktune.config import load_config
from blocktune.errors import ConfigError, TrialLogError
from blocktune.trials import read_log

console = Console()


def resolve_log_path(log_file: Path | None) -> Path:
    """Use the given log, or the one named in blocktune.yaml."""
    if log_file is not None:
        return log_file
    return load_config().log_path


def best(
    log_file: Path | None = typer.Argument(
        None,
        help="Trial log CSV (default: log from blocktune.yaml)",
    ),
    top: int = typer.Option(
        5,
        "--top", "-k",
        help="Number of rows to show",
    ),
) -> None:
    """Show the best configurations recorded in a trial log."""
    try:
        path = resolve_log_path(log_file)
        param_names, rows = read_log(path)
    except (ConfigError, TrialLogError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    valid = [r for r in rows if r.metric is not None]
    if not valid:
        console.print(f"[yellow]No trials with a metric in {path}[/yellow]")
        return

    # Stable sort keeps the earliest row first among ties
    ranked = sorted(valid, key=lambda r: -(r.metric or 0.0))

    table = Table(title=f"Best of {len(rows)} trials ({path.name})")
    table.add_column("Rank", style="dim")
    table.add_column("Trial", style="dim")
    for name in param_names:
        table.add_column(name)
    table.add_column("Metric", justify="right")

    for rank, row in enumerate(ranked[:top], start=1):
        table.add_row(
            str(rank),
            str(row.index),
            *(str(row.values[name]) for name in param_names),
            f"{row.metric}",
        )

    console.print(table)
    failed = len(rows) - len(valid)
    if failed:
        console.print(f"[dim]{failed} trial(s) without a metric[/dim]")
