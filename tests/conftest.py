"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path

import pytest


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


RecordWriter = Callable[..., Path]


@pytest.fixture
def write_record(tmp_path: Path) -> RecordWriter:
    """Return a helper that writes ``deployments/<target>/deployment.json``."""

    def _write(
        target: str,
        payload: object | None = None,
        *,
        root: Path | None = None,
        raw: str | None = None,
    ) -> Path:
        base = root if root is not None else tmp_path / "deployments"
        path = base / target / "deployment.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        if raw is not None:
            path.write_text(raw, encoding="utf-8")
        else:
            path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write
