"""Data models shared by the deployment orchestrator."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..backups import BackupArtifact


class RunOutcome(str, Enum):
    """Result of a single deployment attempt."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SummaryStatus(str, Enum):
    """Status reported for a target once a run has been reconciled."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def glyph(self) -> str:
        """Return the status glyph used in human-readable output."""
        return "✅" if self is SummaryStatus.SUCCEEDED else "❌"


@dataclass(frozen=True, slots=True)
class Target:
    """A deployment destination and its position in the declared order."""

    name: str
    position: int

    def __str__(self) -> str:
        """Return the target name."""
        return self.name


def build_targets(entries: Iterable[str | Target]) -> tuple[Target, ...]:
    """Freeze *entries* into positioned targets, preserving order and duplicates."""
    targets: list[Target] = []
    for position, entry in enumerate(entries):
        name = entry.name if isinstance(entry, Target) else str(entry)
        name = name.strip()
        if not name:
            raise ValueError(f"Target at position {position} has an empty name.")
        targets.append(Target(name=name, position=position))
    return tuple(targets)


@dataclass(frozen=True, slots=True)
class AttemptResult:
    """Outcome of invoking the deployment action for one target."""

    target: Target
    outcome: RunOutcome
    reason: str | None = None
    duration_ms: int | None = None

    @classmethod
    def succeeded(cls, target: Target, *, duration_ms: int | None = None) -> AttemptResult:
        """Return a successful attempt for *target*."""
        return cls(target=target, outcome=RunOutcome.SUCCEEDED, duration_ms=duration_ms)

    @classmethod
    def failed(
        cls,
        target: Target,
        reason: str,
        *,
        duration_ms: int | None = None,
    ) -> AttemptResult:
        """Return a failed attempt for *target* carrying *reason*."""
        return cls(
            target=target,
            outcome=RunOutcome.FAILED,
            reason=reason,
            duration_ms=duration_ms,
        )

    @property
    def ok(self) -> bool:
        """Return ``True`` when the attempt succeeded."""
        return self.outcome is RunOutcome.SUCCEEDED

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "target": self.target.name,
            "position": self.target.position,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class SummaryEntry:
    """Reconciled status for a single declared target."""

    target: Target
    status: SummaryStatus
    detail: str

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "target": self.target.name,
            "position": self.target.position,
            "status": self.status.value,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class SummaryReport:
    """Ordered reconciliation of declared targets against persisted records."""

    entries: tuple[SummaryEntry, ...] = ()

    @property
    def succeeded(self) -> int:
        """Return the number of targets with a valid deployment record."""
        return sum(1 for entry in self.entries if entry.status is SummaryStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        """Return the number of targets without a valid deployment record."""
        return len(self.entries) - self.succeeded

    def __iter__(self) -> Iterator[SummaryEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "totals": {
                "targets": len(self.entries),
                "succeeded": self.succeeded,
                "failed": self.failed,
            },
        }


@dataclass(frozen=True)
class RunReport:
    """Everything a single orchestrator run produced."""

    targets: tuple[Target, ...]
    backup: BackupArtifact | None
    attempts: tuple[AttemptResult, ...]
    summary: SummaryReport
    interrupted: bool = False
    metadata: dict[str, object] = field(default_factory=dict)

    @property
    def not_attempted(self) -> Sequence[Target]:
        """Return targets skipped because the run was interrupted."""
        attempted = len(self.attempts)
        return self.targets[attempted:]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "targets": [target.name for target in self.targets],
            "backup": self.backup.to_dict() if self.backup is not None else None,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "summary": self.summary.to_dict(),
            "interrupted": self.interrupted,
            "not_attempted": [target.name for target in self.not_attempted],
            "metadata": dict(self.metadata),
        }


__all__ = [
    "AttemptResult",
    "RunOutcome",
    "RunReport",
    "SummaryEntry",
    "SummaryReport",
    "SummaryStatus",
    "Target",
    "build_targets",
]
