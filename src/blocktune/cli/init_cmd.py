# Copyright (c) Syntropy Systems
"""blocktune init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from blocktune.config import CONFIG_FILENAME, DEFAULT_CONFIG

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Project root to initialize (default: current directory)",
    ),
) -> None:
    """Create a default blocktune.yaml.

    The default searches ROW_BLOCK_SIZE, COL_BLOCK_SIZE and PARALLEL_SIZE
    (27 candidates) with a cmake build and llama-bench.
    """
    target = path.resolve()
    config_path = target / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {config_path}")
        return

    target.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as f:
        yaml.dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized blocktune project:[/green] {target}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]header:[/dim] {target / str(DEFAULT_CONFIG['header'])}")
