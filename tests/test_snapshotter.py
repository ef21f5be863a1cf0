"""Tests for the pre-run registry snapshot."""
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from deployctl import backups as backups_module
from deployctl.backups import (
    SNAPSHOT_KIND,
    BackupsRegistry,
    RegistrySnapshotter,
    backup_timestamp,
    file_checksum,
)
from deployctl.errors import FatalSetupError, SnapshotError

REGISTRY_CONTENT = "export const addresses = { goerli: '0xabc' };\n"


def _registry_file(tmp_path: Path) -> Path:
    path = tmp_path / "src" / "utils" / "blockchain" / "contractAddresses.ts"
    path.parent.mkdir(parents=True)
    path.write_text(REGISTRY_CONTENT, encoding="utf-8")
    return path


def test_backup_timestamp_is_filesystem_safe() -> None:
    moment = datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=UTC)
    assert backup_timestamp(moment) == "2024-05-01T10-20-30-123Z"


def test_destination_preserves_stem_and_suffix(tmp_path: Path) -> None:
    snapshotter = RegistrySnapshotter(
        registry_file=tmp_path / "contractAddresses.ts",
        backups_dir=tmp_path / "backups",
    )
    moment = datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=UTC)
    destination = snapshotter.destination_for(moment)
    assert destination == tmp_path / "backups" / "contractAddresses-2024-05-01T10-20-30-123Z.ts"


def test_snapshot_skips_missing_registry(tmp_path: Path) -> None:
    """A first deployment has no registry yet and must not create backups."""
    backups_dir = tmp_path / "backups"
    snapshotter = RegistrySnapshotter(
        registry_file=tmp_path / "contractAddresses.ts",
        backups_dir=backups_dir,
    )

    assert snapshotter.snapshot() is None
    assert not backups_dir.exists()


def test_snapshot_creates_backup_directory_and_copies_bytes(tmp_path: Path) -> None:
    registry_file = _registry_file(tmp_path)
    backups_dir = tmp_path / "nested" / "backups"
    snapshotter = RegistrySnapshotter(registry_file=registry_file, backups_dir=backups_dir)

    artifact = snapshotter.snapshot()

    assert artifact is not None
    assert artifact.source == registry_file
    assert artifact.path.parent == backups_dir
    assert artifact.path.name.startswith("contractAddresses-")
    assert artifact.path.suffix == ".ts"
    assert artifact.path.read_text(encoding="utf-8") == REGISTRY_CONTENT
    assert artifact.size_bytes == len(REGISTRY_CONTENT.encode("utf-8"))
    assert artifact.checksum == file_checksum(registry_file)
    # The source must be left untouched.
    assert registry_file.read_text(encoding="utf-8") == REGISTRY_CONTENT


def test_snapshot_records_index_entry(tmp_path: Path) -> None:
    registry_file = _registry_file(tmp_path)
    backups_dir = tmp_path / "backups"
    index = BackupsRegistry(backups_dir, backups_dir / "backups.json")
    snapshotter = RegistrySnapshotter(
        registry_file=registry_file,
        backups_dir=backups_dir,
        index=index,
    )

    artifact = snapshotter.snapshot()

    assert artifact is not None
    entries = index.list_entries(kind=SNAPSHOT_KIND)
    assert len(entries) == 1
    assert entries[0]["path"] == str(artifact.path)
    assert entries[0]["source"] == str(registry_file)
    assert entries[0]["metadata"] == {"labels": ["pre-deploy"]}


def test_snapshot_copy_failure_is_fatal(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    registry_file = _registry_file(tmp_path)

    def fail_copy(src: object, dst: object) -> None:
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(backups_module.shutil, "copyfile", fail_copy)
    snapshotter = RegistrySnapshotter(registry_file=registry_file, backups_dir=tmp_path / "backups")

    with pytest.raises(SnapshotError) as excinfo:
        snapshotter.snapshot()

    assert isinstance(excinfo.value, FatalSetupError)
    assert "read-only filesystem" in str(excinfo.value)


def test_snapshot_directory_collision_is_fatal(tmp_path: Path) -> None:
    """A regular file where the backups directory should be aborts the snapshot."""
    registry_file = _registry_file(tmp_path)
    blocker = tmp_path / "backups"
    blocker.write_text("not a directory", encoding="utf-8")
    snapshotter = RegistrySnapshotter(registry_file=registry_file, backups_dir=blocker)

    with pytest.raises(SnapshotError):
        snapshotter.snapshot()
