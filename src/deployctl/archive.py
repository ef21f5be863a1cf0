"""Archive helpers for ``deployctl backup create``.

Each configured project path is packed into a tar archive next to a
``.sha256`` checksum file, and every readable deployment record is collected
into a single ``deployment-db-<timestamp>.json``. All artifacts are appended
to the backups index.
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .backups import (
    ARCHIVE_KIND,
    DEPLOYMENT_DB_KIND,
    BackupEntryBuilder,
    BackupError,
    BackupsRegistry,
    backup_timestamp,
    file_checksum,
)
from .state.records import DeploymentRecordStore

logger = logging.getLogger(__name__)


def resolve_algorithm(preference: str) -> str:
    """Map the configured compression *preference* to a concrete algorithm."""
    if preference == "auto":
        return "gzip"
    if preference in {"gzip", "none"}:
        return preference
    raise BackupError(f"Unsupported compression algorithm '{preference}'.")


def compression_extension(algorithm: str) -> str:
    """Return the archive file extension for *algorithm*."""
    if algorithm == "gzip":
        return "tar.gz"
    return "tar"


def archive_label(relative: str) -> str:
    """Return a filesystem-safe archive label for a project-relative path."""
    cleaned = relative.strip().strip("/")
    return "".join(char if char.isalnum() or char in {"-", "_"} else "-" for char in cleaned)


def create_archive(
    source_dir: Path,
    archive_path: Path,
    algorithm: str,
    compression_level: int | None,
) -> None:
    """Create an archive from *source_dir* at *archive_path*."""
    tar_bin = shutil.which("tar")
    if tar_bin is None:
        raise BackupError("The 'tar' command is required to create archives.")

    env = os.environ.copy()
    cmd: list[str] = [tar_bin]

    if algorithm == "gzip":
        cmd.extend(["-czf", str(archive_path)])
        if compression_level is not None:
            env["GZIP"] = f"-{compression_level}"
    else:
        cmd.extend(["-cf", str(archive_path)])

    cmd.extend(["-C", str(source_dir.parent), source_dir.name])

    result = subprocess.run(  # noqa: S603, S607 - controlled command execution
        cmd,
        capture_output=True,
        text=True,
        env=env,
        check=False,
    )
    if result.returncode != 0:
        message = result.stderr or result.stdout or "tar command failed"
        raise BackupError(message.strip())


def write_checksum_file(archive_path: Path, checksum: str) -> Path:
    """Write ``<archive>.sha256`` and return the checksum path."""
    checksum_path = archive_path.with_name(f"{archive_path.name}.sha256")
    checksum_path.write_text(f"{checksum}  {archive_path.name}\n", encoding="utf-8")
    return checksum_path


@dataclass(slots=True)
class BackupSetResult:
    """Artifacts written (and paths skipped) by :func:`create_backup_set`."""

    timestamp: str
    entries: list[dict[str, object]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    record_errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "timestamp": self.timestamp,
            "entries": list(self.entries),
            "skipped": list(self.skipped),
            "record_errors": dict(self.record_errors),
        }


def create_backup_set(
    *,
    project_root: Path,
    paths: Sequence[str],
    records: DeploymentRecordStore,
    index: BackupsRegistry,
    algorithm: str,
    compression_level: int | None = None,
) -> BackupSetResult:
    """Archive *paths* and write the deployment database into the backups root."""
    index.ensure_root()
    timestamp = backup_timestamp()
    result = BackupSetResult(timestamp=timestamp)
    extension = compression_extension(algorithm)

    for relative in paths:
        source = project_root / relative
        if not source.exists():
            logger.info("Skipping backup of %s - path does not exist", relative)
            result.skipped.append(relative)
            continue
        archive_path = index.root / f"{archive_label(relative)}-{timestamp}.{extension}"
        create_archive(source, archive_path, algorithm, compression_level)
        checksum = file_checksum(archive_path)
        write_checksum_file(archive_path, checksum)
        entry = BackupEntryBuilder(
            kind=ARCHIVE_KIND,
            path=archive_path,
            checksum=checksum,
            size_bytes=archive_path.stat().st_size,
            source=source,
            algorithm=algorithm,
        ).build(backup_id=index.generate_identifier(archive_label(relative)))
        index.append(entry)
        result.entries.append(entry)
        logger.info("Backup of %s created: %s", relative, archive_path)

    database, errors = records.collect()
    result.record_errors.update(errors)
    db_path = index.root / f"deployment-db-{timestamp}.json"
    try:
        db_path.write_text(json.dumps(database, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise BackupError(f"Failed to write deployment database {db_path}: {exc}") from exc
    db_entry = BackupEntryBuilder(
        kind=DEPLOYMENT_DB_KIND,
        path=db_path,
        checksum=file_checksum(db_path),
        size_bytes=db_path.stat().st_size,
        source=records.root,
        labels=sorted(database),
    ).build(backup_id=index.generate_identifier("deployment-db"))
    index.append(db_entry)
    result.entries.append(db_entry)
    logger.info("Deployment database created: %s (%d target(s))", db_path, len(database))
    return result


__all__ = [
    "BackupSetResult",
    "archive_label",
    "compression_extension",
    "create_archive",
    "create_backup_set",
    "resolve_algorithm",
    "write_checksum_file",
]
