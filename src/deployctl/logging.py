"""Structured operation logging for deployctl.

Every CLI command runs inside :meth:`StructuredLogger.operation`, which
appends one JSON record to ``operations.jsonl`` and mirrors a short line to
the human-readable ``deployctl.log``. Library modules keep using
``logging.getLogger(__name__)``; their records land in ``deployctl.log`` as
well because the file handler is attached to the ``deployctl`` logger.

Logging must never break a command: when the log directory is unavailable or
a write fails, the logger disables itself and operations continue silently.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from . import __version__

OPERATIONS_LOG_NAME = "operations.jsonl"
HUMAN_LOG_NAME = "deployctl.log"
PACKAGE_LOGGER_NAME = "deployctl"
_HANDLER_MARKER = "_deployctl_structured_handler"

_LOG = logging.getLogger(f"{PACKAGE_LOGGER_NAME}.operations")


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    """Return a JSON-safe representation of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collect steps and the final result for a single logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None,
        target: Mapping[str, object] | None,
    ) -> None:
        """Initialise the scope for *command*."""
        self._logger = logger
        self.command = command
        self.operation_id = uuid.uuid4().hex[:12]
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started = time.perf_counter()
        self._started_at = _now_iso()

    def step(self, name: str, **data: object) -> None:
        """Record an intermediate step."""
        entry: dict[str, object] = {"name": name, "timestamp": _now_iso()}
        if data:
            entry["data"] = _sanitize(data)
        self.steps.append(entry)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] | None = None,
        backups: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            backups=backups,
            context=context,
            rc=0,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        backups: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int = 0,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            backups=backups,
            context=context,
            rc=rc,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
        rc: int = 1,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=changed,
            warnings=None,
            errors=list(errors) if errors else [message],
            backups=None,
            context=context,
            rc=rc,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Iterable[str] | None,
        errors: Iterable[str] | None,
        backups: Iterable[str] | None,
        context: Mapping[str, object] | None,
        rc: int,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": _sanitize(list(warnings or [])),
            "errors": _sanitize(list(errors or [])),
            "backups": _sanitize(list(backups or [])),
            "context": _sanitize(dict(context or {})),
            "rc": rc,
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON record persisted for this operation."""
        return {
            "timestamp": self._started_at,
            "operation_id": self.operation_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": self.steps,
            "result": self.result,
            "context": {"deployctl_version": __version__},
            "duration_ms": int((time.perf_counter() - self._started) * 1000),
        }


class StructuredLogger:
    """Write JSONL operation records and a human-readable log file."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging when it cannot be created."""
        self._log_dir = log_dir.expanduser()
        self._operations_log_path = self._log_dir / OPERATIONS_LOG_NAME
        self._human_log_path = self._log_dir / HUMAN_LOG_NAME
        self._enabled = True
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False
            return
        self._attach_handler()

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the JSONL operations log."""
        return self._operations_log_path

    @property
    def human_log_path(self) -> Path:
        """Return the path of the human-readable log."""
        return self._human_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{command} aborted: {exc!r}")
            raise
        finally:
            if scope.result is None:
                scope.success(f"{command} completed.")
            self._write(scope)

    def _attach_handler(self) -> None:
        package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
        for existing in list(package_logger.handlers):
            if getattr(existing, _HANDLER_MARKER, False):
                package_logger.removeHandler(existing)
                existing.close()
        try:
            handler = logging.FileHandler(self._human_log_path, encoding="utf-8")
        except OSError:
            self._enabled = False
            return
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        setattr(handler, _HANDLER_MARKER, True)
        package_logger.addHandler(handler)
        if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
            package_logger.setLevel(logging.INFO)

    def _write(self, scope: OperationScope) -> None:
        if not self._enabled:
            return
        record = scope.to_record()
        try:
            line = json.dumps(record, sort_keys=False)
        except (TypeError, ValueError):
            self._enabled = False
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.write("\n")
        except OSError:
            self._enabled = False
            return
        result = record["result"] or {}
        _LOG.info(
            "%s [%s] %s: %s",
            scope.command,
            scope.operation_id,
            result.get("status", "unknown"),
            result.get("message", ""),
        )


__all__ = ["OperationScope", "StructuredLogger"]
