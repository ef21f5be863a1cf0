"""Read-only access to persisted per-target deployment records."""
from __future__ import annotations

from .records import DeploymentRecord, DeploymentRecordStore

__all__ = ["DeploymentRecord", "DeploymentRecordStore"]
