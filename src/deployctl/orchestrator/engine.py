"""Sequential run coordinator for multi-target deployments."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from ..backups import RegistrySnapshotter
from ..state.records import DeploymentRecordStore
from .invoker import INTERRUPTED_REASON, TargetInvoker
from .models import AttemptResult, RunReport, Target, build_targets
from .reconciler import ResultReconciler

logger = logging.getLogger(__name__)


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class RunOrchestrator:
    """Drive snapshot, per-target attempts and reconciliation for one run.

    Targets are attempted strictly one after another in declared order; the
    deployment action may share signing credentials across targets, so there
    is no concurrency. Setup failures (snapshot, deployments directory)
    propagate as :class:`~deployctl.errors.FatalSetupError`; target failures
    never do.
    """

    def __init__(
        self,
        snapshotter: RegistrySnapshotter,
        records: DeploymentRecordStore,
        invoker: TargetInvoker,
        reconciler: ResultReconciler | None = None,
    ) -> None:
        """Wire the run's collaborators."""
        self._snapshotter = snapshotter
        self._records = records
        self._invoker = invoker
        self._reconciler = reconciler or ResultReconciler(records)

    def run(self, targets: Iterable[str | Target]) -> RunReport:
        """Deploy to every target in order and return the reconciled report."""
        start = time.perf_counter()
        frozen = build_targets(targets)

        backup = self._snapshotter.snapshot()
        self._records.ensure_root()

        attempts: list[AttemptResult] = []
        interrupted = False
        for target in frozen:
            try:
                attempts.append(self._invoker.attempt(target))
            except KeyboardInterrupt:
                logger.warning(
                    "Run interrupted while deploying to %s; %d target(s) not attempted.",
                    target.name,
                    len(frozen) - target.position - 1,
                )
                attempts.append(AttemptResult.failed(target, INTERRUPTED_REASON))
                interrupted = True
                break

        outcomes = {attempt.target.position: attempt for attempt in attempts}
        summary = self._reconciler.summarize(frozen, outcomes)
        logger.info(
            "Run finished: %d succeeded, %d failed across %d target(s).",
            summary.succeeded,
            summary.failed,
            len(frozen),
        )
        return RunReport(
            targets=frozen,
            backup=backup,
            attempts=tuple(attempts),
            summary=summary,
            interrupted=interrupted,
            metadata={"duration_ms": _duration_ms(start), "target_count": len(frozen)},
        )


__all__ = ["RunOrchestrator"]
