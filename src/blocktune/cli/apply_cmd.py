# Copyright (c) Syntropy Systems
"""blocktune apply command."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from blocktune.config import load_config
from blocktune.errors import ArtifactWriteError, BuildError, ConfigError, TrialLogError
from blocktune.header import ConfigWriter
from blocktune.models.trial import Configuration
from blocktune.runner import BuildRunner
from blocktune.trials import best_from_log

console = Console()


def apply(
    log_file: Path | None = typer.Argument(
        None,
        help="Trial log CSV (default: log from blocktune.yaml)",
    ),
    rebuild: bool | None = typer.Option(
        None,
        "--rebuild/--no-rebuild",
        help="Rebuild after writing the header (default: rebuild_after_apply)",
    ),
) -> None:
    """Write the best configuration from a trial log to the header."""
    try:
        config = load_config()
        path = log_file or config.log_path
        row = best_from_log(path)
    except (ConfigError, TrialLogError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if row is None:
        console.print(f"[yellow]No trials with a metric in {path}[/yellow]; header unchanged")
        raise typer.Exit(1)

    space = config.space
    configuration = Configuration(values=row.values, feature_enabled=space.feature_enabled)
    if not space.contains(configuration):
        console.print(
            f"[red]Error:[/red] {configuration.label()} does not match the parameters "
            "in blocktune.yaml"
        )
        raise typer.Exit(1)

    writer = ConfigWriter(config.header_path, space)
    try:
        writer.apply(
            configuration,
            comments=[f"Best performance: {row.metric} {config.metric_name}"],
        )
    except ArtifactWriteError as e:
        console.print(f"[red]Cannot write configuration header:[/red] {e}")
        raise typer.Exit(2) from e

    console.print(f"[green]Applied:[/green] {configuration.label()} ({row.metric} {config.metric_name})")
    console.print(f"  [dim]header:[/dim] {config.header_path}")

    if rebuild is None:
        rebuild = config.rebuild_after_apply
    if not rebuild:
        return

    logs_dir = config.stats_path
    builder = BuildRunner(config.build, config.project_dir, logs_dir, float(config.kill_grace_period))
    console.print("[blue]Rebuilding...[/blue]")
    try:
        builder.build(logs_dir / "apply-build.log")
    except BuildError as e:
        console.print(f"[red]Build failed:[/red] {e}")
        raise typer.Exit(1) from e
    console.print("[green]Rebuilt with best configuration[/green]")
