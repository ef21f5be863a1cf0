"""Helpers for reading per-target deployment records.

Records live at ``{deployments_dir}/{target}/deployment.json`` and are
written exclusively by the external deployment action. deployctl only ever
reads them: to reconcile a run's outcome and to build the deployment
database during ``backup create``.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import RecordReadError, SetupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    """Parsed deployment record for a single target."""

    target: str
    path: Path
    identifier: str
    payload: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "target": self.target,
            "path": str(self.path),
            "identifier": self.identifier,
            "payload": dict(self.payload),
        }


@dataclass(frozen=True)
class DeploymentRecordStore:
    """Locate and parse deployment records under *root*."""

    root: Path
    file_name: str = "deployment.json"
    identifier_field: str = "ArbitrageExecutor"

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", self.root.expanduser())

    def ensure_root(self) -> None:
        """Create the deployments directory if it does not yet exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SetupError(f"Failed to prepare deployments directory {self.root}: {exc}") from exc

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def path_for(self, target: str) -> Path:
        """Return the record path for *target*."""
        return self.root / target / self.file_name

    def exists(self, target: str) -> bool:
        """Return ``True`` when a record file is present for *target*."""
        return self.path_for(target).is_file()

    def read(self, target: str) -> DeploymentRecord | None:
        """Return the record for *target*, or ``None`` when it does not exist.

        Raises :class:`RecordReadError` when the file exists but cannot be
        read, is not a JSON object, or lacks a non-empty identifier field.
        """
        path = self.path_for(target)
        if not path.is_file():
            return None
        data = self._load(path)
        identifier = data.get(self.identifier_field)
        if identifier is None or (isinstance(identifier, str) and not identifier.strip()):
            raise RecordReadError(
                path,
                f"Deployment record {path} has no '{self.identifier_field}' value.",
            )
        return DeploymentRecord(
            target=target,
            path=path,
            identifier=str(identifier),
            payload=data,
        )

    def load_payload(self, target: str) -> dict[str, object] | None:
        """Return the raw record payload for *target* without field checks."""
        path = self.path_for(target)
        if not path.is_file():
            return None
        return self._load(path)

    def _load(self, path: Path) -> dict[str, object]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RecordReadError(path, f"Malformed deployment record {path}: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise RecordReadError(path, f"Unable to read deployment record {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise RecordReadError(path, f"Deployment record {path} must be a JSON object.")
        return dict(data)

    def discover_targets(self) -> list[str]:
        """Return target names that have a record file, sorted by name."""
        if not self.root.is_dir():
            return []
        return sorted(
            child.name
            for child in self.root.iterdir()
            if child.is_dir() and (child / self.file_name).is_file()
        )

    def collect(self) -> tuple[dict[str, dict[str, object]], dict[str, str]]:
        """Return ``(records, errors)`` for every record found on disk.

        ``records`` maps target to its raw payload; ``errors`` maps target to
        the reason its record was skipped.
        """
        records: dict[str, dict[str, object]] = {}
        errors: dict[str, str] = {}
        for target in self.discover_targets():
            try:
                payload = self.load_payload(target)
            except RecordReadError as exc:
                logger.warning("Skipping deployment record for %s: %s", target, exc)
                errors[target] = str(exc)
                continue
            if payload is not None:
                records[target] = payload
        return records, errors


__all__ = ["DeploymentRecord", "DeploymentRecordStore"]
