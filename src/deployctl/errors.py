"""Exception hierarchy shared by the orchestrator and its collaborators.

Two channels are kept apart on purpose: :class:`FatalSetupError` subclasses
abort a run, while :class:`TargetDeploymentError` and :class:`RecordReadError`
are always converted into data at the narrowest boundary.
"""
from __future__ import annotations


class DeployctlError(RuntimeError):
    """Base class for deployctl errors."""


class FatalSetupError(DeployctlError):
    """Raised when a run cannot start safely."""


class SnapshotError(FatalSetupError):
    """Raised when the registry file cannot be backed up."""


class SetupError(FatalSetupError):
    """Raised when run prerequisites (directories) cannot be prepared."""


class TargetDeploymentError(DeployctlError):
    """Raised by deployment actions when a single target fails."""

    def __init__(self, target: str, message: str) -> None:
        """Store the failing *target* alongside the human-readable *message*."""
        super().__init__(message)
        self.target = target


class RecordReadError(DeployctlError):
    """Raised when a deployment record is missing fields or cannot be parsed."""

    def __init__(self, path: object, message: str) -> None:
        """Store the offending record *path* alongside *message*."""
        super().__init__(message)
        self.path = path


__all__ = [
    "DeployctlError",
    "FatalSetupError",
    "RecordReadError",
    "SetupError",
    "SnapshotError",
    "TargetDeploymentError",
]
