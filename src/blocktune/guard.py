# Copyright (c) Syntropy Systems
"""Rollback guard that restores the original header on abnormal exit."""
from __future__ import annotations

import atexit
import logging
import signal
import threading
from enum import Enum
from typing import TYPE_CHECKING, Callable, Union

from typing_extensions import Self

from blocktune.errors import RestoreError

if TYPE_CHECKING:
    from types import FrameType, TracebackType

    from blocktune.header import ArtifactSnapshot, ConfigWriter

logger = logging.getLogger(__name__)

_SignalHandler = Union[Callable[..., object], int, None]

# SIGINT already raises KeyboardInterrupt
GUARDED_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None))
    if sig is not None
)


class TerminationRequested(KeyboardInterrupt):
    """Raised in the main thread when a termination signal arrives."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Received signal {signum}")
        self.signum = signum


class GuardState(str, Enum):
    """Rollback guard lifecycle."""

    IDLE = "idle"
    ARMED = "armed"
    DISARMED = "disarmed"
    RESTORED = "restored"


class RollbackGuard:
    """Holds the pre-search header and puts it back unless disarmed.

    Armed on entry. The search controller disarms it after the final header
    is written; every other way out (exception, Ctrl-C, SIGTERM/SIGHUP,
    interpreter exit) restores the snapshot. Disarmed and restored are
    terminal, and a disarmed guard never restores.
    """

    writer: ConfigWriter
    install_signal_handlers: bool
    _state: GuardState
    _snapshot: ArtifactSnapshot | None
    _previous_handlers: dict[int, _SignalHandler]

    def __init__(
        self,
        writer: ConfigWriter,
        install_signal_handlers: bool = True,  # noqa: FBT001, FBT002
    ) -> None:
        self.writer = writer
        self.install_signal_handlers = install_signal_handlers
        self._state = GuardState.IDLE
        self._snapshot = None
        self._previous_handlers = {}

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def snapshot(self) -> ArtifactSnapshot | None:
        """The held original header, while armed."""
        return self._snapshot

    def arm(self) -> ArtifactSnapshot:
        """Snapshot the current header and start guarding it."""
        if self._state is not GuardState.IDLE:
            msg = f"Cannot arm a guard in state {self._state.value}"
            raise RuntimeError(msg)

        self._snapshot = self.writer.snapshot()
        self._state = GuardState.ARMED
        _ = atexit.register(self._atexit_restore)
        if self.install_signal_handlers:
            self._install_handlers()

        logger.debug(
            "Rollback guard armed for %s (%s)",
            self.writer.path,
            "absent" if self._snapshot.absent else f"{len(self._snapshot.content or b'')} bytes",
        )
        return self._snapshot

    def disarm(self) -> None:
        """Release the snapshot; the current header is meant to stay."""
        if self._state is not GuardState.ARMED:
            msg = f"Cannot disarm a guard in state {self._state.value}"
            raise RuntimeError(msg)

        self._state = GuardState.DISARMED
        self._snapshot = None
        self._release()
        logger.debug("Rollback guard disarmed")

    def restore(self) -> bool:
        """Write the original header back if still armed.

        Returns True if a restore happened. Raises RestoreError if the
        header could not be put back.
        """
        if self._state is not GuardState.ARMED or self._snapshot is None:
            return False

        try:
            self.writer.restore(self._snapshot)
        except OSError as e:
            msg = (
                f"Failed to restore original configuration header {self.writer.path}: {e}. "
                "The build may now use a configuration from the search."
            )
            raise RestoreError(msg) from e

        self._state = GuardState.RESTORED
        self._snapshot = None
        self._release()
        logger.info("Restored original configuration header %s", self.writer.path)
        return True

    def _release(self) -> None:
        atexit.unregister(self._atexit_restore)
        self._restore_handlers()

    def _atexit_restore(self) -> None:
        """Restore on interpreter exit if nothing else did."""
        try:
            _ = self.restore()
        except RestoreError:
            logger.critical("Rollback guard could not restore header at exit", exc_info=True)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        _ = frame
        raise TerminationRequested(signum)

    def _install_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in GUARDED_SIGNALS:
            self._previous_handlers[sig] = signal.getsignal(sig)
            _ = signal.signal(sig, self._handle_signal)

    def _restore_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            _ = signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def __enter__(self) -> Self:
        """Context manager entry - arm the guard."""
        _ = self.arm()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - restore unless disarmed."""
        if self._state is GuardState.ARMED:
            if exc_type is not None:
                logger.warning("Search ended abnormally (%s); restoring header", exc_type.__name__)
            _ = self.restore()
