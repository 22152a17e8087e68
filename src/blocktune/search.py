# Copyright (c) Syntropy Systems
"""Grid search over kernel configurations."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from blocktune.errors import BenchmarkError, BuildError, EmptySearchSpaceError, RestoreError
from blocktune.guard import RollbackGuard
from blocktune.models.trial import Configuration, Trial, TrialOutcome

if TYPE_CHECKING:
    from blocktune.header import ConfigWriter
    from blocktune.space import CandidateSpace
    from blocktune.trials import TrialLog

logger = logging.getLogger(__name__)

Evaluate = Callable[[Configuration], Optional[float]]
TrialCallback = Callable[[Trial, Optional[Trial]], None]


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class SearchOutcome:
    """What a completed search found and left behind."""

    best: Trial | None
    trials: list[Trial] = field(default_factory=list)
    candidates: int = 0

    @property
    def improved(self) -> bool:
        """False means no candidate produced a usable metric."""
        return self.best is not None

    @property
    def final_configuration(self) -> Configuration | None:
        """Configuration left in the header, or None if the original was kept."""
        return self.best.configuration if self.best else None


class SearchController:
    """Drives apply -> build -> benchmark -> extract for every candidate.

    Candidates run strictly one after another since they share one header
    and one binary.
    """

    writer: ConfigWriter
    log: TrialLog
    on_trial: TrialCallback | None
    _guard: RollbackGuard | None
    _best: Trial | None

    def __init__(
        self,
        writer: ConfigWriter,
        log: TrialLog,
        guard: RollbackGuard | None = None,
        on_trial: TrialCallback | None = None,
    ) -> None:
        self.writer = writer
        self.log = log
        self.on_trial = on_trial
        self._guard = guard
        self._best = None

    @property
    def best(self) -> Trial | None:
        return self._best

    def run(self, space: CandidateSpace, evaluate: Evaluate) -> SearchOutcome:
        """Evaluate every candidate and leave the best one applied.

        Build and benchmark failures are recorded as invalid trials. If no
        trial yields a metric the original header is kept. Any exception that
        escapes (including Ctrl-C) leaves the original header restored.
        """
        total = len(space)
        if total == 0:
            msg = "Candidate space is empty; every parameter needs at least one value"
            raise EmptySearchSpaceError(msg)

        guard = self._guard or RollbackGuard(self.writer)
        self._best = None

        with guard:
            for index, candidate in enumerate(space.candidates()):
                logger.info("[%d/%d] Testing %s", index + 1, total, candidate.label())
                trial = self._evaluate_one(index, candidate, evaluate)
                self.log.append(trial)
                if self._consider(trial):
                    logger.info("New best: %s -> %s", candidate.label(), trial.metric)
                if self.on_trial is not None:
                    self.on_trial(trial, self._best)

            self._finalize(guard)

        return SearchOutcome(best=self._best, trials=self.log.all(), candidates=total)

    def _evaluate_one(
        self,
        index: int,
        candidate: Configuration,
        evaluate: Evaluate,
    ) -> Trial:
        self.writer.apply(candidate)

        metric: float | None = None
        error: str | None = None
        try:
            metric = evaluate(candidate)
        except BuildError as e:
            logger.warning("Build failed for %s: %s", candidate.label(), e)
            outcome, error = TrialOutcome.BUILD_ERROR, str(e)
        except BenchmarkError as e:
            logger.warning("Benchmark failed for %s: %s", candidate.label(), e)
            outcome, error = TrialOutcome.BENCHMARK_ERROR, str(e)
        else:
            if metric is not None and math.isnan(metric):
                metric = None
            if metric is None:
                logger.warning("No metric found for %s", candidate.label())
                outcome = TrialOutcome.NO_METRIC
            else:
                outcome = TrialOutcome.OK

        return Trial(
            index=index,
            configuration=candidate,
            metric=metric,
            outcome=outcome,
            timestamp=utcnow(),
            error=error,
        )

    def _consider(self, trial: Trial) -> bool:
        """Update the best trial; strictly greater wins, ties keep the first."""
        if trial.metric is None:
            return False
        if self._best is None or self._best.metric is None or trial.metric > self._best.metric:
            self._best = trial
            return True
        return False

    def _finalize(self, guard: RollbackGuard) -> None:
        best = self._best
        if best is not None:
            self.writer.apply(
                best.configuration,
                comments=[f"Best performance: {best.metric} {self.log.metric_name}"],
            )
        else:
            logger.warning("No candidate produced a metric; keeping original header")
            snapshot = guard.snapshot
            if snapshot is not None:
                try:
                    self.writer.restore(snapshot)
                except OSError as e:
                    msg = f"Failed to restore original configuration header {self.writer.path}: {e}"
                    raise RestoreError(msg) from e
        guard.disarm()
