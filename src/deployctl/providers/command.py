"""Deployment action provider that shells out once per target."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..config import TARGET_PLACEHOLDER, ActionConfig
from ..errors import TargetDeploymentError

logger = logging.getLogger(__name__)

TARGET_ENV_VAR = "DEPLOYCTL_TARGET"
_OUTPUT_TAIL_CHARS = 500
_STDERR_FD = 2


class DeploymentAction(Protocol):
    """Callable that deploys a single target and raises on failure."""

    def __call__(self, target: str) -> None:
        """Deploy *target*; on success the action persists its record."""


class DeploymentActionError(TargetDeploymentError):
    """Raised when the external deployment command fails for a target."""

    def __init__(
        self,
        target: str,
        message: str,
        *,
        returncode: int | None = None,
    ) -> None:
        """Store the command's *returncode* alongside the message."""
        super().__init__(target, message)
        self.returncode = returncode


@dataclass(slots=True)
class CommandDeploymentAction:
    """Run ``command`` (with ``{target}`` substituted) for each target.

    With ``stdout_to_stderr`` the child's standard output is sent to this
    process's stderr so that machine-readable output on stdout stays clean.
    It has no effect when ``capture_output`` is set.
    """

    command: Sequence[str]
    cwd: Path | None = None
    timeout: float | None = None
    capture_output: bool = False
    env: Mapping[str, str] | None = None
    stdout_to_stderr: bool = False
    _base_env: dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate the command template."""
        if not self.command:
            raise ValueError("Deployment command must contain at least one token.")
        self._base_env = dict(os.environ if self.env is None else self.env)

    @classmethod
    def from_config(
        cls,
        action: ActionConfig,
        *,
        cwd: Path | None = None,
        stdout_to_stderr: bool = False,
    ) -> CommandDeploymentAction:
        """Build an action from the resolved ``action`` configuration block."""
        return cls(
            command=action.command,
            cwd=cwd,
            timeout=action.timeout,
            capture_output=action.capture_output,
            stdout_to_stderr=stdout_to_stderr,
        )

    def argv_for(self, target: str) -> list[str]:
        """Return the command line for *target*."""
        return [token.replace(TARGET_PLACEHOLDER, target) for token in self.command]

    def __call__(self, target: str) -> None:
        """Run the deployment command for *target*, raising on failure."""
        args = self.argv_for(target)
        env = dict(self._base_env)
        env[TARGET_ENV_VAR] = target
        logger.info("Running deployment command for %s: %s", target, " ".join(args))
        stdout_target = _STDERR_FD if self.stdout_to_stderr and not self.capture_output else None
        try:
            result = subprocess.run(  # noqa: S603 - operator-configured command
                args,
                cwd=str(self.cwd) if self.cwd is not None else None,
                env=env,
                capture_output=self.capture_output,
                stdout=stdout_target,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise DeploymentActionError(target, f"{args[0]} not found: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DeploymentActionError(
                target,
                f"{' '.join(args)} timed out after {self.timeout:g}s",
            ) from exc
        except OSError as exc:
            raise DeploymentActionError(target, f"Failed to launch {args[0]}: {exc}") from exc

        if result.returncode != 0:
            stdout = (result.stdout or "") if self.capture_output else ""
            stderr = (result.stderr or "") if self.capture_output else ""
            output = stderr.strip() or stdout.strip()
            message = f"Command failed: {' '.join(args)} (exit {result.returncode})"
            if output:
                message = f"{message}: {output[-_OUTPUT_TAIL_CHARS:]}"
            raise DeploymentActionError(target, message, returncode=result.returncode)


__all__ = [
    "CommandDeploymentAction",
    "DeploymentAction",
    "DeploymentActionError",
    "TARGET_ENV_VAR",
]
