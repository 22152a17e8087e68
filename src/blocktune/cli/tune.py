# Copyright (c) Syntropy Systems
"""blocktune tune command."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from blocktune.config import TuneConfig, load_config
from blocktune.errors import (
    ArtifactWriteError,
    BuildError,
    ConfigError,
    EmptySearchSpaceError,
    RestoreError,
    TrialLogError,
)
from blocktune.extract import MetricExtractor
from blocktune.header import ConfigWriter
from blocktune.runner import BenchmarkRunner, BuildRunner, KernelEvaluator
from blocktune.search import SearchController, SearchOutcome
from blocktune.trials import TrialLog

if TYPE_CHECKING:
    from blocktune.models.trial import Trial

console = Console()

EXIT_CONFIG = 1
EXIT_ARTIFACT_WRITE = 2
EXIT_RESTORE_FAILED = 3
EXIT_INTERRUPTED = 130


def _show_candidates(config: TuneConfig) -> None:
    space = config.space
    table = Table(title=f"Candidates ({len(space)})")
    table.add_column("#", style="dim")
    for param in space.parameters:
        table.add_column(f"{param.name} ({param.macro})")

    for i, candidate in enumerate(space.candidates()):
        table.add_row(str(i), *(str(v) for v in candidate.values.values()))

    console.print(table)


def _print_trial(total: int, metric_name: str):
    def callback(trial: Trial, best: Trial | None) -> None:
        prefix = f"[dim][{trial.index + 1}/{total}][/dim] {trial.configuration.label()}"
        if trial.metric is None:
            console.print(f"{prefix} -> [yellow]{trial.outcome.value}[/yellow]")
        elif best is trial:
            console.print(f"{prefix} -> [green]{trial.metric} {metric_name}[/green] [bold]new best[/bold]")
        else:
            console.print(f"{prefix} -> {trial.metric} {metric_name}")

    return callback


def _show_outcome(outcome: SearchOutcome, config: TuneConfig) -> None:
    valid = sum(1 for t in outcome.trials if t.is_valid)
    console.print(
        f"\n[bold]{len(outcome.trials)}[/bold] of {outcome.candidates} candidates tried, "
        f"{valid} with a metric"
    )
    console.print(f"  [dim]log:[/dim] {config.log_path}")

    if outcome.best is None:
        console.print("[yellow]No improvement found[/yellow]; original header kept")
        return

    console.print(f"[green]Best configuration:[/green] {outcome.best.configuration.label()}")
    console.print(f"[green]Best performance:[/green] {outcome.best.metric} {config.metric_name}")
    console.print(f"  [dim]applied to:[/dim] {config.header_path}")


def tune(
    config_file: Path | None = typer.Option(
        None,
        "--config", "-c",
        help="Path to blocktune.yaml (default: nearest one walking up)",
        exists=True,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run", "-n",
        help="List candidates without building anything",
    ),
    append: bool = typer.Option(
        False,
        "--append",
        help="Keep existing rows in the trial log instead of starting fresh",
    ),
    skip_configure: bool = typer.Option(
        False,
        "--skip-configure",
        help="Do not run the build configure step first",
    ),
) -> None:
    """Search for the fastest GEMM block-size configuration.

    Every candidate is written to the header, rebuilt and benchmarked. The
    best one is left applied. If the run is interrupted the original header
    is put back.
    """
    try:
        config = load_config(config_file)
    except ConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG) from e

    space = config.space
    if len(space) == 0:
        console.print("[red]Error:[/red] candidate space is empty")
        raise typer.Exit(EXIT_CONFIG)

    _show_candidates(config)
    if dry_run:
        console.print("\n[yellow]Dry run - nothing built[/yellow]")
        return

    run_dir = config.stats_path / f"tune-{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    grace = float(config.kill_grace_period)
    builder = BuildRunner(config.build, config.project_dir, run_dir, grace)
    evaluator = KernelEvaluator(
        builder,
        BenchmarkRunner(config.bench, config.project_dir, run_dir, grace),
        MetricExtractor(config.bench.workload, config.bench.iteration_type),
        run_dir,
    )
    writer = ConfigWriter(config.header_path, space)
    log = TrialLog(config.log_path, space.names, config.metric_name)
    controller = SearchController(
        writer,
        log,
        on_trial=_print_trial(len(space), config.metric_name),
    )

    console.print(f"\n[blue]Tuning {len(space)} candidates[/blue] [dim](logs: {run_dir})[/dim]")

    try:
        if not skip_configure:
            builder.configure(run_dir / "configure.log")
        log.open(fresh=not append)
        outcome = controller.run(space, evaluator)
    except RestoreError as e:
        console.print("[bold red]ROLLBACK FAILED:[/bold red] the original configuration header was not restored")
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(EXIT_RESTORE_FAILED) from e
    except KeyboardInterrupt as e:
        console.print("\n[yellow]Interrupted; original configuration header restored[/yellow]")
        raise typer.Exit(EXIT_INTERRUPTED) from e
    except ArtifactWriteError as e:
        console.print(f"[red]Cannot write configuration header:[/red] {e}")
        raise typer.Exit(EXIT_ARTIFACT_WRITE) from e
    except (BuildError, TrialLogError, EmptySearchSpaceError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG) from e

    _show_outcome(outcome, config)

    if outcome.improved and config.rebuild_after_apply:
        console.print("[blue]Rebuilding with best configuration...[/blue]")
        try:
            builder.build(run_dir / "final-build.log")
        except BuildError as e:
            console.print(f"[yellow]Warning:[/yellow] final rebuild failed: {e}")
        else:
            console.print("[green]Rebuilt with best configuration[/green]")
