# Copyright (c) Syntropy Systems
"""Configuration management for blocktune."""
from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

from blocktune.errors import ConfigError
from blocktune.space import DEFAULT_FEATURE_FLAG, CandidateSpace

CONFIG_FILENAME = "blocktune.yaml"

# Written by `blocktune init`; mirrors the reference BitNet tuning setup.
DEFAULT_CONFIG: dict[str, object] = {
    "header": "include/gemm-config.h",
    "stats_dir": "stats",
    "log": "stats/tuning_log.csv",
    "metric_name": "tokens_per_second",
    "feature_flag": DEFAULT_FEATURE_FLAG,
    "feature_enabled": True,
    "kill_grace_period": 10,
    "rebuild_after_apply": True,
    "parameters": {
        "row_block": {"macro": "ROW_BLOCK_SIZE", "values": [2, 4, 8]},
        "col_block": {"macro": "COL_BLOCK_SIZE", "values": [64, 128, 256]},
        "parallel_size": {"macro": "PARALLEL_SIZE", "values": [2, 4, 8]},
    },
    "build": {
        "configure": "cmake -B build -DCMAKE_BUILD_TYPE=Release",
        "command": "cmake --build build --config Release -j",
    },
    "bench": {
        "command": "./build/bin/llama-bench",
        "model": "models/BitNet-b1.58-2B-4T/ggml-model-i2_s_embed_i2_s.gguf",
        "prompt_length": 128,
        "gen_length": 0,
        "threads": None,
        "extra_args": ["-ngl", "0"],
        "workload": "bitnet",
    },
}


@dataclass
class BuildSettings:
    """How to rebuild the kernel."""

    command: list[str]
    configure_command: list[str] | None = None


@dataclass
class BenchSettings:
    """How to run the fixed benchmark workload."""

    command: list[str]
    model: str
    prompt_length: int = 128
    gen_length: int = 0
    threads: int | None = None
    extra_args: list[str] = field(default_factory=list)
    workload: str = "bitnet"
    iteration: str | None = None

    @property
    def thread_count(self) -> int:
        """Configured thread count, or the machine's CPU count."""
        return self.threads or os.cpu_count() or 8

    @property
    def iteration_type(self) -> str:
        """Row label to look for, e.g. ``pp128``."""
        return self.iteration or f"pp{self.prompt_length}"

    def argv(self) -> list[str]:
        """Full benchmark command line."""
        return [
            *self.command,
            "-m", self.model,
            "-p", str(self.prompt_length),
            "-n", str(self.gen_length),
            "-t", str(self.thread_count),
            *self.extra_args,
        ]


@dataclass
class TuneConfig:
    """Configuration for a tuning run.

    Relative paths are resolved against ``project_dir``.
    """

    project_dir: Path
    space: CandidateSpace
    build: BuildSettings
    bench: BenchSettings
    header: Path = Path("include/gemm-config.h")
    stats_dir: Path = Path("stats")
    log: Path = Path("stats/tuning_log.csv")
    metric_name: str = "tokens_per_second"

    # Grace period before SIGKILL after SIGTERM (seconds)
    kill_grace_period: int = 10

    # Rebuild once more after the best header is applied
    rebuild_after_apply: bool = True

    @property
    def header_path(self) -> Path:
        return self.project_dir / self.header

    @property
    def log_path(self) -> Path:
        return self.project_dir / self.log

    @property
    def stats_path(self) -> Path:
        return self.project_dir / self.stats_dir


def find_project_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest directory containing blocktune.yaml by walking up.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        if (current / CONFIG_FILENAME).is_file():
            return current
        current = current.parent

    # Check root
    if (current / CONFIG_FILENAME).is_file():
        return current

    return None


def require_project_dir() -> Path:
    """Get the project directory or raise an error if not found."""
    project_dir = find_project_dir()
    if project_dir is None:
        msg = f"No {CONFIG_FILENAME} found. Run 'blocktune init' first."
        raise ConfigError(msg)
    return project_dir


def _parse_command(value: object, key: str) -> list[str]:
    if isinstance(value, str):
        argv = shlex.split(value)
    elif isinstance(value, list) and all(
        isinstance(v, str) for v in cast("list[object]", value)
    ):
        argv = cast("list[str]", value)
    else:
        msg = f"'{key}' must be a command string or a list of strings"
        raise ConfigError(msg)
    if not argv:
        msg = f"'{key}' must not be empty"
        raise ConfigError(msg)
    return argv


def _section(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    if not isinstance(value, dict):
        msg = f"{CONFIG_FILENAME} must have a '{key}' section"
        raise ConfigError(msg)
    return cast("dict[str, object]", value)


def _optional_int(data: dict[str, object], key: str, default: int | None) -> int | None:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"'{key}' must be an integer"
        raise ConfigError(msg)
    return value


def _int(data: dict[str, object], key: str, default: int) -> int:
    value = _optional_int(data, key, default)
    return default if value is None else value


def parse_config(data: dict[str, object], project_dir: Path) -> TuneConfig:
    """Build a TuneConfig from already-loaded YAML data."""
    feature_flag = data.get("feature_flag", DEFAULT_FEATURE_FLAG)
    if not isinstance(feature_flag, str) or not feature_flag:
        msg = "'feature_flag' must be a non-empty string"
        raise ConfigError(msg)
    feature_enabled = data.get("feature_enabled", True)
    if not isinstance(feature_enabled, bool):
        msg = "'feature_enabled' must be true or false"
        raise ConfigError(msg)

    if "parameters" not in data:
        msg = f"{CONFIG_FILENAME} must have a 'parameters' section"
        raise ConfigError(msg)
    space = CandidateSpace.from_dict(
        data["parameters"],
        feature_flag=feature_flag,
        feature_enabled=feature_enabled,
    )

    build_data = _section(data, "build")
    configure = build_data.get("configure")
    build = BuildSettings(
        command=_parse_command(build_data.get("command"), "build.command"),
        configure_command=(
            _parse_command(configure, "build.configure") if configure else None
        ),
    )

    bench_data = _section(data, "bench")
    model = bench_data.get("model")
    if not isinstance(model, str) or not model:
        msg = "'bench.model' must be a path"
        raise ConfigError(msg)
    extra_args = bench_data.get("extra_args", [])
    if not isinstance(extra_args, list):
        msg = "'bench.extra_args' must be a list"
        raise ConfigError(msg)
    iteration = bench_data.get("iteration")
    bench = BenchSettings(
        command=_parse_command(bench_data.get("command"), "bench.command"),
        model=model,
        prompt_length=_int(bench_data, "prompt_length", 128),
        gen_length=_int(bench_data, "gen_length", 0),
        threads=_optional_int(bench_data, "threads", None),
        extra_args=[str(a) for a in cast("list[object]", extra_args)],
        workload=str(bench_data.get("workload", "bitnet")),
        iteration=str(iteration) if iteration is not None else None,
    )

    config = TuneConfig(project_dir=project_dir, space=space, build=build, bench=bench)

    header = data.get("header")
    if isinstance(header, str):
        config.header = Path(header)
    stats_dir = data.get("stats_dir")
    if isinstance(stats_dir, str):
        config.stats_dir = Path(stats_dir)
    log = data.get("log")
    if isinstance(log, str):
        config.log = Path(log)
    metric_name = data.get("metric_name")
    if isinstance(metric_name, str) and metric_name:
        config.metric_name = metric_name
    config.kill_grace_period = _int(data, "kill_grace_period", config.kill_grace_period)
    rebuild = data.get("rebuild_after_apply")
    if isinstance(rebuild, bool):
        config.rebuild_after_apply = rebuild

    return config


def load_config(path: Path | None = None) -> TuneConfig:
    """Load configuration from blocktune.yaml.

    Looks for config in:
    1. Provided path
    2. Nearest blocktune.yaml walking up from the working directory
    """
    if path is None:
        path = require_project_dir() / CONFIG_FILENAME

    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        msg = f"Cannot read {path}: {e}"
        raise ConfigError(msg) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping"
        raise ConfigError(msg)

    return parse_config(cast("dict[str, object]", data), path.resolve().parent)
