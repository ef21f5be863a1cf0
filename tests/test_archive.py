"""Tests for ``backup create`` archive helpers."""
from __future__ import annotations

import json
import shutil
import tarfile
from pathlib import Path

import pytest

from deployctl.archive import (
    archive_label,
    compression_extension,
    create_backup_set,
    resolve_algorithm,
)
from deployctl.backups import (
    ARCHIVE_KIND,
    DEPLOYMENT_DB_KIND,
    BackupError,
    BackupsRegistry,
    file_checksum,
)
from deployctl.state import DeploymentRecordStore

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="requires tar")


def test_resolve_algorithm() -> None:
    assert resolve_algorithm("auto") == "gzip"
    assert resolve_algorithm("none") == "none"
    with pytest.raises(BackupError):
        resolve_algorithm("zstd")


def test_compression_extension() -> None:
    assert compression_extension("gzip") == "tar.gz"
    assert compression_extension("none") == "tar"


def test_archive_label_is_filesystem_safe() -> None:
    assert archive_label("src/utils/blockchain") == "src-utils-blockchain"
    assert archive_label("/deployments/") == "deployments"


@requires_tar
def test_create_backup_set_archives_paths_and_records(tmp_path: Path, write_record) -> None:
    project = tmp_path / "project"
    (project / "src" / "contracts").mkdir(parents=True)
    (project / "src" / "contracts" / "Executor.sol").write_text("contract X {}\n", encoding="utf-8")
    deployments = project / "deployments"
    write_record("goerli", {"ArbitrageExecutor": "0x1"}, root=deployments)
    write_record("mumbai", {"FlashLoan": "0x2"}, root=deployments)
    write_record("broken", root=deployments, raw="{nope")

    backups_root = tmp_path / "backups"
    index = BackupsRegistry(backups_root, backups_root / "backups.json")
    records = DeploymentRecordStore(deployments)

    result = create_backup_set(
        project_root=project,
        paths=["src/contracts", "deployments", "src/config"],
        records=records,
        index=index,
        algorithm="gzip",
    )

    assert result.skipped == ["src/config"]
    assert list(result.record_errors) == ["broken"]

    archives = index.list_entries(kind=ARCHIVE_KIND)
    assert len(archives) == 2
    contracts_archive = Path(str(archives[0]["path"]))
    assert contracts_archive.name == f"src-contracts-{result.timestamp}.tar.gz"
    assert archives[0]["algorithm"] == "gzip"
    with tarfile.open(contracts_archive, "r:gz") as archive:
        assert "contracts/Executor.sol" in archive.getnames()
    checksum_file = contracts_archive.with_name(f"{contracts_archive.name}.sha256")
    assert checksum_file.read_text(encoding="utf-8").split()[0] == file_checksum(contracts_archive)

    (database_entry,) = index.list_entries(kind=DEPLOYMENT_DB_KIND)
    database_path = Path(str(database_entry["path"]))
    assert database_path.name == f"deployment-db-{result.timestamp}.json"
    assert json.loads(database_path.read_text(encoding="utf-8")) == {
        "goerli": {"ArbitrageExecutor": "0x1"},
        "mumbai": {"FlashLoan": "0x2"},
    }
    assert database_entry["metadata"] == {"labels": ["goerli", "mumbai"]}


@requires_tar
def test_create_backup_set_without_records_writes_empty_database(tmp_path: Path) -> None:
    backups_root = tmp_path / "backups"
    index = BackupsRegistry(backups_root, backups_root / "backups.json")

    result = create_backup_set(
        project_root=tmp_path,
        paths=[],
        records=DeploymentRecordStore(tmp_path / "deployments"),
        index=index,
        algorithm="none",
    )

    (entry,) = result.entries
    assert entry["kind"] == DEPLOYMENT_DB_KIND
    assert json.loads(Path(str(entry["path"])).read_text(encoding="utf-8")) == {}
