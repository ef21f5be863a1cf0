"""Reconcile declared targets against persisted deployment records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from ..errors import RecordReadError
from ..state.records import DeploymentRecordStore
from .models import (
    AttemptResult,
    RunOutcome,
    SummaryEntry,
    SummaryReport,
    SummaryStatus,
    Target,
    build_targets,
)

logger = logging.getLogger(__name__)

MISSING_RECORD_DETAIL = "Deployment failed or not attempted"
NOT_ATTEMPTED_DETAIL = "Not attempted"


class ResultReconciler:
    """Build the post-run summary purely from on-disk evidence.

    A missing record cannot tell "failed" apart from "never attempted". When
    the caller passes the attempt outcomes of the current run, they refine
    the detail text of missing records but never override the record itself.
    """

    def __init__(self, records: DeploymentRecordStore) -> None:
        """Store the record store used for lookups."""
        self._records = records

    def summarize(
        self,
        targets: Iterable[str | Target],
        outcomes: Mapping[int, AttemptResult] | None = None,
    ) -> SummaryReport:
        """Return one entry per declared target, in declared order.

        *outcomes* maps target positions to the attempt made during this run.
        """
        frozen = build_targets(targets)
        return SummaryReport(
            entries=tuple(self._reconcile(target, outcomes) for target in frozen)
        )

    def _reconcile(
        self,
        target: Target,
        outcomes: Mapping[int, AttemptResult] | None,
    ) -> SummaryEntry:
        try:
            record = self._records.read(target.name)
        except RecordReadError as exc:
            logger.warning("Unreadable deployment record for %s: %s", target.name, exc)
            return SummaryEntry(target=target, status=SummaryStatus.FAILED, detail=str(exc))

        if record is not None:
            return SummaryEntry(
                target=target,
                status=SummaryStatus.SUCCEEDED,
                detail=record.identifier,
            )
        return SummaryEntry(
            target=target,
            status=SummaryStatus.FAILED,
            detail=_missing_detail(target, outcomes),
        )


def _missing_detail(target: Target, outcomes: Mapping[int, AttemptResult] | None) -> str:
    if outcomes is None:
        return MISSING_RECORD_DETAIL
    attempt = outcomes.get(target.position)
    if attempt is None:
        return NOT_ATTEMPTED_DETAIL
    if attempt.outcome is RunOutcome.FAILED:
        return f"Deployment failed: {attempt.reason}"
    return "Deployment reported success but wrote no record"


__all__ = [
    "MISSING_RECORD_DETAIL",
    "NOT_ATTEMPTED_DETAIL",
    "ResultReconciler",
]
