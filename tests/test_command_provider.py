"""Tests for the shell-command deployment action."""
from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from deployctl.config import ActionConfig
from deployctl.errors import TargetDeploymentError
from deployctl.providers import (
    TARGET_ENV_VAR,
    CommandDeploymentAction,
    DeploymentActionError,
)
from deployctl.providers import command as command_module

pytestmark = pytest.mark.skipif(shutil.which("sh") is None, reason="requires /bin/sh")


def _script(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "deploy.sh"
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(0o755)
    return path


def test_argv_substitutes_target_placeholder() -> None:
    action = CommandDeploymentAction(
        command=("npx", "hardhat", "run", "scripts/deploy.js", "--network", "{target}"),
    )
    assert action.argv_for("goerli") == [
        "npx",
        "hardhat",
        "run",
        "scripts/deploy.js",
        "--network",
        "goerli",
    ]


def test_empty_command_rejected() -> None:
    with pytest.raises(ValueError):
        CommandDeploymentAction(command=())


def test_from_config_copies_action_settings(tmp_path: Path) -> None:
    config = ActionConfig(command=("deploy", "{target}"), timeout=30.0, capture_output=True)
    action = CommandDeploymentAction.from_config(config, cwd=tmp_path)
    assert action.command == ("deploy", "{target}")
    assert action.timeout == 30.0
    assert action.capture_output is True
    assert action.cwd == tmp_path


def test_successful_command_writes_record(tmp_path: Path) -> None:
    script = _script(
        tmp_path,
        'mkdir -p "deployments/$1"\n'
        'printf \'{"ArbitrageExecutor": "0x%s", "env": "%s"}\' "$1" "$'
        + TARGET_ENV_VAR
        + '" > "deployments/$1/deployment.json"\n',
    )
    action = CommandDeploymentAction(command=("/bin/sh", str(script), "{target}"), cwd=tmp_path)

    action("goerli")

    record = json.loads((tmp_path / "deployments" / "goerli" / "deployment.json").read_text())
    assert record == {"ArbitrageExecutor": "0xgoerli", "env": "goerli"}


def test_failing_command_raises_with_captured_output(tmp_path: Path) -> None:
    script = _script(tmp_path, 'echo "insufficient funds on $1" >&2\nexit 3\n')
    action = CommandDeploymentAction(
        command=("/bin/sh", str(script), "{target}"),
        cwd=tmp_path,
        capture_output=True,
    )

    with pytest.raises(DeploymentActionError) as excinfo:
        action("mainnet")

    error = excinfo.value
    assert isinstance(error, TargetDeploymentError)
    assert error.target == "mainnet"
    assert error.returncode == 3
    assert "(exit 3)" in str(error)
    assert "insufficient funds on mainnet" in str(error)


def test_missing_binary_raises(tmp_path: Path) -> None:
    action = CommandDeploymentAction(command=(str(tmp_path / "no-such-tool"), "{target}"))

    with pytest.raises(DeploymentActionError) as excinfo:
        action("goerli")

    assert "not found" in str(excinfo.value)
    assert excinfo.value.returncode is None


@pytest.mark.mutation_timeout
def test_timeout_raises(tmp_path: Path) -> None:
    script = _script(tmp_path, "exec sleep 5\n")
    action = CommandDeploymentAction(
        command=("/bin/sh", str(script), "{target}"),
        timeout=0.2,
        capture_output=True,
    )

    with pytest.raises(DeploymentActionError) as excinfo:
        action("goerli")

    assert "timed out after 0.2s" in str(excinfo.value)


def test_env_override_is_used(tmp_path: Path) -> None:
    out = tmp_path / "env.txt"
    script = _script(tmp_path, f'printf "%s|%s" "$DEPLOY_SECRET" "${TARGET_ENV_VAR}" > "{out}"\n')
    action = CommandDeploymentAction(
        command=("/bin/sh", str(script)),
        env={"PATH": "/usr/bin:/bin", "DEPLOY_SECRET": "s3cret"},
    )

    action("sepolia")

    assert out.read_text(encoding="utf-8") == "s3cret|sepolia"


def test_stdout_to_stderr_redirects_child_output(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def fake_run(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls.append(kwargs)
        return subprocess.CompletedProcess(args, 0, None, None)

    monkeypatch.setattr(command_module.subprocess, "run", fake_run)

    CommandDeploymentAction(command=("deploy", "{target}"), stdout_to_stderr=True)("goerli")
    CommandDeploymentAction(
        command=("deploy", "{target}"),
        stdout_to_stderr=True,
        capture_output=True,
    )("goerli")
    CommandDeploymentAction(command=("deploy", "{target}"))("goerli")

    assert calls[0]["stdout"] == 2
    assert calls[0]["capture_output"] is False
    assert calls[1]["stdout"] is None
    assert calls[1]["capture_output"] is True
    assert calls[2]["stdout"] is None
