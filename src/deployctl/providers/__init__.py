"""Provider interfaces for deployctl."""
from __future__ import annotations

from .command import (
    TARGET_ENV_VAR,
    CommandDeploymentAction,
    DeploymentAction,
    DeploymentActionError,
)

__all__ = [
    "CommandDeploymentAction",
    "DeploymentAction",
    "DeploymentActionError",
    "TARGET_ENV_VAR",
]
