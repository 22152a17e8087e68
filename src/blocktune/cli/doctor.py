# Copyright (c) Syntropy Systems
"""blocktune doctor command."""
from __future__ import annotations

import os
import shutil
from typing import TYPE_CHECKING

from rich.console import Console

from blocktune.config import find_project_dir, load_config
from blocktune.errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

console = Console()


def _resolve_tool(argv0: str, project_dir: Path) -> str | None:
    """Find an executable on PATH or relative to the project."""
    if os.sep in argv0 or argv0.startswith("."):
        candidate = project_dir / argv0
        return str(candidate) if candidate.is_file() else None
    return shutil.which(argv0)


def doctor() -> None:
    """Check the tuning setup and diagnose issues.

    Verifies:
    - blocktune.yaml exists and parses
    - build and benchmark tools are available
    - the model file exists
    - the header and stats locations are writable
    """
    issues: list[str] = []
    warnings: list[str] = []

    project_dir = find_project_dir()
    if project_dir is None:
        console.print("[red]✗[/red] No blocktune.yaml found")
        console.print("  Run [bold]blocktune init[/bold] to create one")
        return

    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]✗[/red] Config error: {e}")
        return

    console.print(f"[green]✓[/green] Project: {project_dir}")
    console.print(
        f"[green]✓[/green] Candidate space: {len(config.space)} candidates "
        f"over {', '.join(config.space.names) or 'no parameters'}"
    )
    if len(config.space) == 0:
        issues.append("Candidate space is empty")

    # Build tool
    build_tool = config.build.command[0]
    if _resolve_tool(build_tool, project_dir):
        console.print(f"[green]✓[/green] Build tool: {build_tool}")
    else:
        console.print(f"[red]✗[/red] Build tool not found: {build_tool}")
        issues.append(f"Build tool missing: {build_tool}")

    # Benchmark binary
    bench_tool = config.bench.command[0]
    if _resolve_tool(bench_tool, project_dir):
        console.print(f"[green]✓[/green] Benchmark: {bench_tool}")
    else:
        console.print(f"[yellow]⚠[/yellow] Benchmark not built yet: {bench_tool}")
        warnings.append(f"Benchmark missing: {bench_tool}")

    # Model
    model_path = project_dir / config.bench.model
    if model_path.is_file():
        size_mib = model_path.stat().st_size / 1024 / 1024
        console.print(f"[green]✓[/green] Model: {config.bench.model} ({size_mib:.2f} MiB)")
    else:
        console.print(f"[red]✗[/red] Model not found: {config.bench.model}")
        issues.append("Model missing")

    # Header
    header = config.header_path
    header_dir = header.parent
    if header_dir.is_dir() and os.access(header_dir, os.W_OK):
        state = "exists" if header.exists() else "will be created"
        console.print(f"[green]✓[/green] Header: {config.header} ({state})")
    else:
        console.print(f"[red]✗[/red] Header directory not writable: {header_dir}")
        issues.append("Header directory not writable")

    # Stats directory
    if config.stats_path.is_dir():
        file_count = len(list(config.stats_path.iterdir()))
        console.print(f"[green]✓[/green] Stats directory: {file_count} files")
    else:
        console.print(f"[dim]•[/dim] Stats directory will be created: {config.stats_dir}")

    console.print(
        f"[dim]•[/dim] Benchmark threads: {config.bench.thread_count}, "
        f"iteration: {config.bench.iteration_type}"
    )

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
    elif warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
