"""Tests for the deployment record store."""
from __future__ import annotations

from pathlib import Path

import pytest

from deployctl.errors import RecordReadError, SetupError
from deployctl.state import DeploymentRecordStore


def test_path_for_uses_target_directory(tmp_path: Path) -> None:
    store = DeploymentRecordStore(tmp_path / "deployments")
    assert store.path_for("goerli") == tmp_path / "deployments" / "goerli" / "deployment.json"


def test_read_returns_none_when_record_missing(tmp_path: Path) -> None:
    store = DeploymentRecordStore(tmp_path / "deployments")
    assert store.exists("goerli") is False
    assert store.read("goerli") is None


def test_read_returns_identifier(tmp_path: Path, write_record) -> None:
    write_record("goerli", {"ArbitrageExecutor": "0xabc", "FlashLoan": "0xdef"})
    store = DeploymentRecordStore(tmp_path / "deployments")

    record = store.read("goerli")

    assert record is not None
    assert record.target == "goerli"
    assert record.identifier == "0xabc"
    assert record.payload["FlashLoan"] == "0xdef"
    assert store.exists("goerli") is True


def test_read_honours_custom_identifier_field(tmp_path: Path, write_record) -> None:
    write_record("mainnet", {"addr": 1234})
    store = DeploymentRecordStore(tmp_path / "deployments", identifier_field="addr")

    record = store.read("mainnet")

    assert record is not None
    assert record.identifier == "1234"


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("{not json", "Malformed deployment record"),
        ("[1, 2, 3]", "must be a JSON object"),
        ('{"other": "0x1"}', "has no 'ArbitrageExecutor' value"),
        ('{"ArbitrageExecutor": "  "}', "has no 'ArbitrageExecutor' value"),
    ],
)
def test_read_rejects_invalid_records(
    tmp_path: Path,
    write_record,
    raw: str,
    message: str,
) -> None:
    path = write_record("sepolia", raw=raw)
    store = DeploymentRecordStore(tmp_path / "deployments")

    with pytest.raises(RecordReadError) as excinfo:
        store.read("sepolia")

    assert message in str(excinfo.value)
    assert excinfo.value.path == path


def test_ensure_root_raises_setup_error_when_path_is_file(tmp_path: Path) -> None:
    blocker = tmp_path / "deployments"
    blocker.write_text("", encoding="utf-8")
    store = DeploymentRecordStore(blocker)

    with pytest.raises(SetupError):
        store.ensure_root()


def test_discover_targets_lists_directories_with_records(tmp_path: Path, write_record) -> None:
    write_record("sepolia", {"ArbitrageExecutor": "0x2"})
    write_record("goerli", {"ArbitrageExecutor": "0x1"})
    (tmp_path / "deployments" / "empty").mkdir()
    store = DeploymentRecordStore(tmp_path / "deployments")

    assert store.discover_targets() == ["goerli", "sepolia"]


def test_discover_targets_without_root(tmp_path: Path) -> None:
    store = DeploymentRecordStore(tmp_path / "missing")
    assert store.discover_targets() == []


def test_collect_skips_unreadable_records(tmp_path: Path, write_record) -> None:
    write_record("goerli", {"ArbitrageExecutor": "0x1"})
    write_record("mumbai", {"FlashLoan": "0x9"})
    write_record("broken", raw="{oops")
    store = DeploymentRecordStore(tmp_path / "deployments")

    records, errors = store.collect()

    assert records == {
        "goerli": {"ArbitrageExecutor": "0x1"},
        "mumbai": {"FlashLoan": "0x9"},
    }
    assert list(errors) == ["broken"]
    assert "Malformed deployment record" in errors["broken"]
