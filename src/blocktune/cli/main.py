# Copyright (c) Syntropy Systems
"""Main CLI entry point for blocktune."""

import logging

import typer
from rich.logging import RichHandler

from blocktune.cli.apply_cmd import apply
from blocktune.cli.best import best
from blocktune.cli.doctor import doctor
from blocktune.cli.extract_cmd import extract
from blocktune.cli.init_cmd import init
from blocktune.cli.tune import tune

app = typer.Typer(
    name="blocktune",
    help=(
        "GEMM block-size auto-tuning. Rebuild, benchmark, "
        "keep the fastest kernel configuration."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug logging",
    ),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(init)
_ = app.command()(tune)
_ = app.command()(best)
_ = app.command(name="apply")(apply)
_ = app.command(name="extract")(extract)
_ = app.command()(doctor)


if __name__ == "__main__":
    app()
