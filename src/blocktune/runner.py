# Copyright (c) Syntropy Systems
"""Build and benchmark process runners with orphan prevention."""
from __future__ import annotations

import contextlib
import ctypes
import logging
import os
import signal
import subprocess
import sys
import time
from typing import IO, TYPE_CHECKING

from blocktune.errors import BenchmarkError, BuildError

if TYPE_CHECKING:
    from pathlib import Path

    from blocktune.config import BenchSettings, BuildSettings
    from blocktune.extract import MetricExtractor
    from blocktune.models.trial import Configuration

logger = logging.getLogger(__name__)


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so child dies when parent dies.

    This prevents orphan builds when the tuner crashes.
    Only works on Linux.
    """
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        # Can't set PDEATHSIG, continue without it
        return


class ProcessRunner:
    """Runs one external command with proper process management.

    Features:
    - Uses start_new_session=True for reliable process group
    - Sets PDEATHSIG on Linux to prevent orphans
    - Captures stdout/stderr to a log file
    - Provides graceful and forceful termination
    """

    command_argv: list[str]
    workdir: Path
    output_path: Path
    env: dict[str, str]
    _process: subprocess.Popen[bytes] | None
    _exit_code: int | None
    _output_file: IO[str] | None

    def __init__(
        self,
        command_argv: list[str],
        workdir: Path,
        output_path: Path,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize a process runner.

        Args:
            command_argv: Command as list of argv tokens (no shell)
            workdir: Working directory to run the command in
            output_path: File receiving combined stdout/stderr
            env: Additional environment variables

        """
        self.command_argv = command_argv
        self.workdir = workdir
        self.output_path = output_path

        # Merge environment
        self.env = os.environ.copy()
        if env:
            self.env.update(env)

        self._process = None
        self._exit_code = None
        self._output_file = None

    def start(self) -> None:
        """Start the process."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._output_file = self.output_path.open("w")

        try:
            self._process = subprocess.Popen(  # noqa: S603
                self.command_argv,
                stdout=self._output_file,
                stderr=subprocess.STDOUT,
                env=self.env,
                cwd=str(self.workdir),
                start_new_session=True,  # Creates new process group
                preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError:
            self._cleanup()
            raise

    def wait(self) -> int:
        """Wait for the process to finish and return exit code."""
        if self._process is None:
            return self._exit_code or 0

        code = self._process.wait()
        self._exit_code = code
        self._cleanup()
        return code

    def kill(self, grace_period: float = 10.0) -> int:
        """Kill the process.

        First sends SIGTERM to the process group, waits for grace_period,
        then sends SIGKILL if still alive.

        Args:
            grace_period: Seconds to wait after SIGTERM before SIGKILL

        Returns:
            Exit code (negative signal number if killed)

        """
        if self._process is None:
            return self._exit_code or 0

        # Already finished?
        if self._process.poll() is not None:
            exit_code = self._process.returncode or 0
            self._exit_code = exit_code
            self._cleanup()
            return exit_code

        try:
            pgid = os.getpgid(self._process.pid)
        except (OSError, ProcessLookupError):
            # Process already gone
            self._cleanup()
            return self._exit_code or -signal.SIGKILL

        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGTERM)

        deadline = time.time() + grace_period
        while time.time() < deadline:
            if self._process.poll() is not None:
                exit_code = self._process.returncode or 0
                self._exit_code = exit_code
                self._cleanup()
                return exit_code
            time.sleep(0.1)

        # Still alive - SIGKILL
        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGKILL)

        with contextlib.suppress(subprocess.TimeoutExpired):
            _ = self._process.wait(timeout=5.0)

        exit_code = self._process.returncode or -signal.SIGKILL
        self._exit_code = exit_code
        self._cleanup()
        return exit_code

    def run(self, grace_period: float = 10.0) -> int:
        """Start, block until exit, and return the exit code.

        If the wait is interrupted (Ctrl-C, termination signal) the process
        group is killed before the interruption propagates.
        """
        self.start()
        try:
            return self.wait()
        except BaseException:
            _ = self.kill(grace_period=grace_period)
            raise

    def _cleanup(self) -> None:
        """Cleanup resources."""
        if self._output_file:
            with contextlib.suppress(Exception):
                self._output_file.close()
            self._output_file = None

    @property
    def pid(self) -> int | None:
        """Get the process ID."""
        if self._process is None:
            return None
        return self._process.pid

    @property
    def exit_code(self) -> int | None:
        """Get the exit code if finished."""
        return self._exit_code

    @property
    def is_running(self) -> bool:
        """Check if the process is still running."""
        if self._process is None:
            return False
        return self._process.poll() is None


class BuildRunner:
    """Rebuilds the kernel against whatever header is currently applied."""

    def __init__(
        self,
        settings: BuildSettings,
        workdir: Path,
        logs_dir: Path,
        kill_grace_period: float = 10.0,
    ) -> None:
        self.settings = settings
        self.workdir = workdir
        self.logs_dir = logs_dir
        self.kill_grace_period = kill_grace_period

    def _run(self, argv: list[str], output_path: Path, what: str) -> None:
        runner = ProcessRunner(argv, self.workdir, output_path)
        try:
            exit_code = runner.run(grace_period=self.kill_grace_period)
        except OSError as e:
            msg = f"Cannot start {what} command {argv[0]!r}: {e}"
            raise BuildError(msg) from e
        if exit_code != 0:
            msg = f"{what.capitalize()} failed with exit code {exit_code} (see {output_path})"
            raise BuildError(msg, exit_code=exit_code)

    def configure(self, output_path: Path | None = None) -> None:
        """Run the one-time configure step, if any."""
        if not self.settings.configure_command:
            return
        logger.info("Configuring build: %s", " ".join(self.settings.configure_command))
        self._run(
            self.settings.configure_command,
            output_path or self.logs_dir / "configure.log",
            "configure",
        )

    def build(self, output_path: Path | None = None) -> None:
        """Rebuild; raises BuildError on failure."""
        self._run(
            self.settings.command,
            output_path or self.logs_dir / "build.log",
            "build",
        )


class BenchmarkRunner:
    """Runs the fixed benchmark workload against the rebuilt binary."""

    def __init__(
        self,
        settings: BenchSettings,
        workdir: Path,
        logs_dir: Path,
        kill_grace_period: float = 10.0,
    ) -> None:
        self.settings = settings
        self.workdir = workdir
        self.logs_dir = logs_dir
        self.kill_grace_period = kill_grace_period

    def run(self, output_path: Path | None = None) -> str:
        """Run the benchmark and return its combined output text."""
        output_path = output_path or self.logs_dir / "bench.log"
        argv = self.settings.argv()
        runner = ProcessRunner(argv, self.workdir, output_path)
        try:
            exit_code = runner.run(grace_period=self.kill_grace_period)
        except OSError as e:
            msg = f"Cannot start benchmark command {argv[0]!r}: {e}"
            raise BenchmarkError(msg) from e
        if exit_code != 0:
            msg = f"Benchmark failed with exit code {exit_code} (see {output_path})"
            raise BenchmarkError(msg, exit_code=exit_code)
        return output_path.read_text(encoding="utf-8", errors="replace")


class KernelEvaluator:
    """Build, benchmark and extract for the currently applied candidate.

    Each call gets its own ``trial-NNN`` log directory.
    """

    def __init__(
        self,
        builder: BuildRunner,
        bench: BenchmarkRunner,
        extractor: MetricExtractor,
        logs_dir: Path,
    ) -> None:
        self.builder = builder
        self.bench = bench
        self.extractor = extractor
        self.logs_dir = logs_dir
        self._count = 0

    def __call__(self, configuration: Configuration) -> float | None:
        trial_dir = self.logs_dir / f"trial-{self._count:03d}"
        self._count += 1
        logger.debug("Evaluating %s in %s", configuration.label(), trial_dir)

        self.builder.build(trial_dir / "build.log")
        output = self.bench.run(trial_dir / "bench.log")
        return self.extractor.extract(output)
