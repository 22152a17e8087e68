# Copyright (c) Syntropy Systems
"""Pytest fixtures for blocktune tests."""

import json
import os
import sys
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import yaml

from blocktune.header import ConfigWriter
from blocktune.space import CandidateSpace, ParameterSpec
from blocktune.trials import TrialLog

# Store original cwd at module load time
_original_cwd = Path.cwd()

# Stands in for `cmake --build`: compiles the header into build/kernel.json
FAKE_BUILD = """\
import json, pathlib, re, sys
header = pathlib.Path("include/gemm-config.h").read_text()
values = {}
for name, value in re.findall(r"#define (\\w+) (\\d+)", header):
    values.setdefault(name, int(value))
spec = json.loads(pathlib.Path("tools.json").read_text())
key = [values["ROW_BLOCK_SIZE"], values["COL_BLOCK_SIZE"]]
if key in spec.get("fail_builds", []):
    print("error: kernel does not compile")
    sys.exit(1)
pathlib.Path("build").mkdir(exist_ok=True)
pathlib.Path("build/kernel.json").write_text(json.dumps(values))
print("[100%] Built target ggml")
"""

# Stands in for llama-bench: throughput is ROW_BLOCK_SIZE * COL_BLOCK_SIZE
FAKE_BENCH = """\
import json, pathlib, sys, time
sys.stdout.reconfigure(encoding="utf-8")
values = json.loads(pathlib.Path("build/kernel.json").read_text())
spec = json.loads(pathlib.Path("tools.json").read_text())
key = [values["ROW_BLOCK_SIZE"], values["COL_BLOCK_SIZE"]]
time.sleep(spec.get("sleep", 0))
if key in spec.get("silent", []):
    sys.exit(0)
threads = sys.argv[sys.argv.index("-t") + 1]
score = values["ROW_BLOCK_SIZE"] * values["COL_BLOCK_SIZE"]
print("| model                          |       size |     params | backend    | threads |          test |                  t/s |")
print("| ------------------------------ | ---------: | ---------: | ---------- | ------: | ------------: | -------------------: |")
print(f"| bitnet-b1.58 2B I2_S - 2 bpw ternary | 1.71 GiB | 2.74 B | CPU | {threads} | pp128 | {score:.2f} ± 1.20 |")
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def space() -> CandidateSpace:
    """Two-parameter space: row in {2, 4}, col in {64, 128}."""
    return CandidateSpace(
        parameters=[
            ParameterSpec(name="row", values=[2, 4], macro="ROW_BLOCK_SIZE"),
            ParameterSpec(name="col", values=[64, 128], macro="COL_BLOCK_SIZE"),
        ],
    )


@pytest.fixture
def header_path(temp_dir: Path) -> Path:
    """Header location with some pre-existing content."""
    path = temp_dir / "include" / "gemm-config.h"
    path.parent.mkdir(parents=True)
    _ = path.write_bytes(b"// hand-written\n#define ROW_BLOCK_SIZE 2\r\n")
    return path


@pytest.fixture
def writer(header_path: Path, space: CandidateSpace) -> ConfigWriter:
    """ConfigWriter for the test header."""
    return ConfigWriter(header_path, space)


@pytest.fixture
def trial_log(temp_dir: Path, space: CandidateSpace) -> TrialLog:
    """Freshly opened trial log."""
    log = TrialLog(temp_dir / "stats" / "tuning_log.csv", space.names)
    log.open()
    return log


def write_project(root: Path, tools: dict[str, object] | None = None) -> Path:
    """Lay out a tunable project driven by the fake build and bench tools."""
    _ = (root / "fake_build.py").write_text(FAKE_BUILD)
    _ = (root / "fake_bench.py").write_text(FAKE_BENCH)
    _ = (root / "tools.json").write_text(json.dumps(tools or {}))
    (root / "include").mkdir(exist_ok=True)
    _ = (root / "include" / "gemm-config.h").write_text("// original\n")
    (root / "models").mkdir(exist_ok=True)
    _ = (root / "models" / "model.gguf").write_bytes(b"GGUF")

    config = {
        "header": "include/gemm-config.h",
        "stats_dir": "stats",
        "log": "stats/tuning_log.csv",
        "parameters": {
            "row_block": {"macro": "ROW_BLOCK_SIZE", "values": [2, 4]},
            "col_block": {"macro": "COL_BLOCK_SIZE", "values": [64, 128]},
        },
        "build": {"command": [sys.executable, "fake_build.py"]},
        "bench": {
            "command": [sys.executable, "fake_bench.py"],
            "model": "models/model.gguf",
            "prompt_length": 128,
            "threads": 4,
            "workload": "bitnet",
        },
        "kill_grace_period": 1,
    }
    config_path = root / "blocktune.yaml"
    with config_path.open("w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
    return config_path


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[..., Path]:
    """Factory laying out a fake-tool project in temp_dir (cwd unchanged)."""

    def _make(tools: dict[str, object] | None = None) -> Path:
        _ = write_project(temp_dir, tools)
        return temp_dir

    return _make


@pytest.fixture
def project(temp_dir: Path) -> Generator[Path, None, None]:
    """A tunable project in a temp dir, with cwd switched into it."""
    _ = write_project(temp_dir)
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)
