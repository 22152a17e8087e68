# Copyright (c) Syntropy Systems
"""GEMM configuration header rendering and atomic writes."""
from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import TYPE_CHECKING

from blocktune.errors import ArtifactWriteError

if TYPE_CHECKING:
    from pathlib import Path

    from blocktune.models.trial import Configuration
    from blocktune.space import CandidateSpace

logger = logging.getLogger(__name__)

GENERATED_BANNER = "// Auto-generated by blocktune"


@dataclass(frozen=True)
class ArtifactSnapshot:
    """Header bytes captured before a search, or None if it did not exist."""

    content: bytes | None

    @property
    def absent(self) -> bool:
        return self.content is None


def render_header(
    configuration: Configuration,
    space: CandidateSpace,
    comments: list[str] | None = None,
) -> str:
    """Render a configuration as the C header consumed by the build.

    The same block of defines is emitted on both sides of the feature-flag
    guard; the flag itself is defined only when enabled.
    """
    lines = [GENERATED_BANNER]
    lines.extend(f"// {comment}" for comment in comments or [])
    flag = space.feature_flag
    if configuration.feature_enabled:
        lines.append(f"#define {flag}")

    defines = [
        f"    #define {space.macro_for(name)} {value}"
        for name, value in configuration.values.items()
    ]
    lines.append(f"#if defined({flag})")
    lines.extend(defines)
    lines.append("#else")
    lines.extend(defines)
    lines.append("#endif")
    return "\n".join(lines) + "\n"


def atomic_write(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` so readers see old or new, never half."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = path.stat().st_mode & 0o777
    except FileNotFoundError:
        mode = 0o644
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), mode)
            _ = f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class ConfigWriter:
    """Writes candidate configurations to the build's header file."""

    path: Path
    space: CandidateSpace

    def __init__(self, path: Path, space: CandidateSpace) -> None:
        self.path = path
        self.space = space

    def snapshot(self) -> ArtifactSnapshot:
        """Capture the header as it is now."""
        try:
            return ArtifactSnapshot(self.path.read_bytes())
        except FileNotFoundError:
            return ArtifactSnapshot(None)
        except OSError as e:
            msg = f"Cannot read configuration header {self.path}: {e}"
            raise ArtifactWriteError(msg) from e

    def apply(
        self,
        configuration: Configuration,
        comments: list[str] | None = None,
    ) -> None:
        """Regenerate the header for ``configuration``, replacing any content."""
        text = render_header(configuration, self.space, comments)
        try:
            atomic_write(self.path, text.encode())
        except OSError as e:
            msg = f"Cannot write configuration header {self.path}: {e}"
            raise ArtifactWriteError(msg) from e
        logger.debug("Applied %s to %s", configuration.label(), self.path)

    def restore(self, snapshot: ArtifactSnapshot) -> None:
        """Put back a snapshot; removes the header if it was absent.

        Raises OSError on failure; the rollback guard decides how to report it.
        """
        if snapshot.content is None:
            with contextlib.suppress(FileNotFoundError):
                self.path.unlink()
        else:
            atomic_write(self.path, snapshot.content)
