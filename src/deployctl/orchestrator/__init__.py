"""Multi-target deployment orchestration."""

from __future__ import annotations

from .engine import RunOrchestrator
from .invoker import (
    INTERRUPTED_REASON,
    NullReporter,
    ProgressReporter,
    TargetInvoker,
    describe_failure,
)
from .models import (
    AttemptResult,
    RunOutcome,
    RunReport,
    SummaryEntry,
    SummaryReport,
    SummaryStatus,
    Target,
    build_targets,
)
from .reconciler import MISSING_RECORD_DETAIL, NOT_ATTEMPTED_DETAIL, ResultReconciler

__all__ = [
    "AttemptResult",
    "INTERRUPTED_REASON",
    "MISSING_RECORD_DETAIL",
    "NOT_ATTEMPTED_DETAIL",
    "NullReporter",
    "ProgressReporter",
    "ResultReconciler",
    "RunOrchestrator",
    "RunOutcome",
    "RunReport",
    "SummaryEntry",
    "SummaryReport",
    "SummaryStatus",
    "Target",
    "TargetInvoker",
    "build_targets",
    "describe_failure",
]
