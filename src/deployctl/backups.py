"""Registry snapshots plus the JSON index of every backup artifact.

:class:`RegistrySnapshotter` copies the address registry file into the
backups directory before a deployment run touches any target. Every artifact
(snapshot or archive) is recorded in ``backups.json`` by
:class:`BackupsRegistry`.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import secrets
import shutil
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .errors import SnapshotError

logger = logging.getLogger(__name__)

SNAPSHOT_KIND = "registry-snapshot"
ARCHIVE_KIND = "archive"
DEPLOYMENT_DB_KIND = "deployment-db"


class BackupError(RuntimeError):
    """Raised when backup operations fail."""


class BackupRegistryError(BackupError):
    """Raised when backup index interactions fail."""


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def backup_timestamp(moment: datetime | None = None) -> str:
    """Return a filesystem-safe ISO-8601 timestamp (``:`` and ``.`` become ``-``)."""
    current = moment or datetime.now(tz=UTC)
    iso = current.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


def file_checksum(path: Path) -> str:
    """Return the SHA-256 checksum for *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(frozen=True, slots=True)
class BackupArtifact:
    """Point-in-time copy of a file produced by a backup step."""

    source: Path
    path: Path
    created_at: str
    size_bytes: int
    checksum: str

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "source": str(self.source),
            "path": str(self.path),
            "created_at": self.created_at,
            "size_bytes": self.size_bytes,
            "checksum": {"algorithm": "sha256", "value": self.checksum},
        }


@dataclass(slots=True)
class BackupsRegistry:
    """Manage the JSON backup index under the backups directory."""

    root: Path
    index: Path

    def __post_init__(self) -> None:
        """Normalise root/index paths after initialisation."""
        self.root = self.root.expanduser()
        self.index = self.index.expanduser()

    # Basic helpers -------------------------------------------------
    def ensure_root(self) -> None:
        """Ensure the backup root directory exists."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - permissions env-specific
            raise BackupRegistryError(f"Failed to prepare backup root {self.root}: {exc}") from exc

    def read(self) -> dict[str, object]:
        """Return the parsed backups index (empty structure when missing)."""
        if not self.index.exists():
            return {"backups": []}
        try:
            text = self.index.read_text(encoding="utf-8")
            data = json.loads(text)
        except FileNotFoundError:
            return {"backups": []}
        except json.JSONDecodeError as exc:
            raise BackupRegistryError(f"Backup index corrupted ({self.index}): {exc}") from exc
        if not isinstance(data, Mapping):
            raise BackupRegistryError(f"Backup index must be a JSON object ({self.index}).")
        return dict(data)

    def write(self, payload: Mapping[str, object]) -> None:
        """Atomically persist *payload* to the backups index."""
        self.ensure_root()
        self.index.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(self.index.parent),
            prefix=f".{self.index.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=False)
                handle.write("\n")
            os.replace(tmp_path, self.index)
        except OSError as exc:
            raise BackupRegistryError(f"Failed to write backup index: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def append(self, entry: Mapping[str, object]) -> None:
        """Append *entry* to the backups index."""
        data = self.read()
        backups = data.get("backups")
        if isinstance(backups, list):
            updated: list[object] = list(backups)
        else:
            updated = []
        updated.append(dict(entry))
        self.write({"backups": updated})

    def list_entries(self, *, kind: str | None = None) -> list[dict[str, object]]:
        """Return backup entries, optionally filtered by *kind*."""
        data = self.read()
        backups = data.get("backups", [])
        entries: list[dict[str, object]] = []
        if isinstance(backups, list):
            for item in backups:
                if not isinstance(item, Mapping):
                    continue
                if kind is not None and item.get("kind") != kind:
                    continue
                entries.append(dict(item))
        return entries

    # Utility helpers -----------------------------------------------
    def generate_identifier(self, label: str) -> str:
        """Return a unique backup identifier for *label*."""
        timestamp = datetime.now(tz=UTC).strftime("%Y%m%d-%H%M%S")
        token = secrets.token_hex(3)
        safe_label = "".join(
            char if char.isalnum() or char in {"-", "_"} else "-" for char in label
        )
        return f"{timestamp}-{safe_label}-{token}"


@dataclass(slots=True)
class BackupEntryBuilder:
    """Helper for constructing backup index entries."""

    kind: str
    path: Path
    checksum: str
    size_bytes: int
    source: Path | None = None
    algorithm: str | None = None
    message: str | None = None
    labels: Iterable[str] | None = None

    def build(self, *, backup_id: str) -> dict[str, object]:
        """Return the JSON-serialisable entry for the backup index."""
        entry: dict[str, object] = {
            "id": backup_id,
            "kind": self.kind,
            "created_at": _now_iso(),
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "checksum": {"algorithm": "sha256", "value": self.checksum},
            "metadata": {"labels": list(self.labels or [])},
        }
        if self.source is not None:
            entry["source"] = str(self.source)
        if self.algorithm is not None:
            entry["algorithm"] = self.algorithm
        if self.message:
            entry["message"] = self.message
        return entry


@dataclass(slots=True)
class RegistrySnapshotter:
    """Copy the registry file into the backups directory once per run.

    A missing registry is a valid first-deploy state and produces no backup.
    Two snapshots taken within the same millisecond share a file name and the
    later one overwrites the earlier.
    """

    registry_file: Path
    backups_dir: Path
    index: BackupsRegistry | None = None

    def destination_for(self, moment: datetime | None = None) -> Path:
        """Return the backup path the registry would be copied to at *moment*."""
        stem = self.registry_file.stem
        suffix = self.registry_file.suffix
        return self.backups_dir / f"{stem}-{backup_timestamp(moment)}{suffix}"

    def snapshot(self) -> BackupArtifact | None:
        """Back up the registry file, returning ``None`` when it does not exist."""
        source = self.registry_file
        if not source.exists():
            logger.info("Registry file %s not found; skipping snapshot.", source)
            return None

        destination = self.destination_for()
        try:
            self.backups_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
            size_bytes = destination.stat().st_size
            checksum = file_checksum(destination)
        except OSError as exc:
            raise SnapshotError(
                f"Failed to back up registry {source} to {destination}: {exc}"
            ) from exc

        artifact = BackupArtifact(
            source=source,
            path=destination,
            created_at=_now_iso(),
            size_bytes=size_bytes,
            checksum=checksum,
        )
        logger.info("Backed up registry %s to %s", source, destination)
        if self.index is not None:
            self._record(self.index, artifact)
        return artifact

    def _record(self, index: BackupsRegistry, artifact: BackupArtifact) -> None:
        entry = BackupEntryBuilder(
            kind=SNAPSHOT_KIND,
            path=artifact.path,
            checksum=artifact.checksum,
            size_bytes=artifact.size_bytes,
            source=artifact.source,
            labels=["pre-deploy"],
        ).build(backup_id=index.generate_identifier(artifact.source.stem))
        try:
            index.append(entry)
        except BackupRegistryError as exc:
            raise SnapshotError(f"Backup written but index update failed: {exc}") from exc


__all__ = [
    "ARCHIVE_KIND",
    "BackupArtifact",
    "BackupEntryBuilder",
    "BackupError",
    "BackupRegistryError",
    "BackupsRegistry",
    "DEPLOYMENT_DB_KIND",
    "RegistrySnapshotter",
    "SNAPSHOT_KIND",
    "backup_timestamp",
    "file_checksum",
]
