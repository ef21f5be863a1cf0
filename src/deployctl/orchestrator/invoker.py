"""Single-target invocation with failure isolation.

:class:`TargetInvoker` is the boundary where a deployment failure stops being
an exception and becomes data: whatever the action raises is converted into
an :class:`~deployctl.orchestrator.models.AttemptResult`.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol

from ..errors import TargetDeploymentError
from ..providers.command import DeploymentAction
from .models import AttemptResult, Target

logger = logging.getLogger(__name__)

INTERRUPTED_REASON = "interrupted"


class ProgressReporter(Protocol):
    """Receives per-target progress notifications."""

    def attempt_started(self, target: Target) -> None:
        """Called before the deployment action runs."""

    def attempt_succeeded(self, target: Target) -> None:
        """Called after the deployment action returned."""

    def attempt_failed(self, target: Target, reason: str) -> None:
        """Called after the deployment action failed."""


class NullReporter:
    """Reporter that discards every notification."""

    def attempt_started(self, target: Target) -> None:
        """Ignore the start notification."""

    def attempt_succeeded(self, target: Target) -> None:
        """Ignore the success notification."""

    def attempt_failed(self, target: Target, reason: str) -> None:
        """Ignore the failure notification."""


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def describe_failure(exc: BaseException) -> str:
    """Return a human-readable reason for *exc*."""
    message = str(exc).strip()
    if isinstance(exc, TargetDeploymentError) and message:
        return message
    if message:
        return f"{type(exc).__name__}: {message}"
    return type(exc).__name__


class TargetInvoker:
    """Invoke the deployment action for exactly one target per call."""

    def __init__(
        self,
        action: DeploymentAction,
        reporter: ProgressReporter | None = None,
    ) -> None:
        """Store the deployment *action* and optional progress *reporter*."""
        self._action = action
        self._reporter: ProgressReporter = reporter or NullReporter()

    def attempt(self, target: Target) -> AttemptResult:
        """Run the action once for *target*; never raises on action failure.

        ``KeyboardInterrupt`` is reported as a failure and then re-raised so the
        caller can stop the run.
        """
        self._reporter.attempt_started(target)
        logger.info("Deploying to %s", target.name)
        start = time.perf_counter()
        try:
            self._action(target.name)
        except KeyboardInterrupt:
            logger.warning("Deployment to %s interrupted", target.name)
            self._reporter.attempt_failed(target, INTERRUPTED_REASON)
            raise
        except Exception as exc:  # noqa: BLE001 - one target's failure is data
            reason = describe_failure(exc)
            result = AttemptResult.failed(target, reason, duration_ms=_duration_ms(start))
            logger.error("Failed to deploy to %s: %s", target.name, reason)
            self._reporter.attempt_failed(target, reason)
            return result
        result = AttemptResult.succeeded(target, duration_ms=_duration_ms(start))
        logger.info("Successfully deployed to %s", target.name)
        self._reporter.attempt_succeeded(target)
        return result


__all__ = [
    "INTERRUPTED_REASON",
    "NullReporter",
    "ProgressReporter",
    "TargetInvoker",
    "describe_failure",
]
