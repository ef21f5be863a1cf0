"""Configuration loader for deployctl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``./deployctl.yml`` (or an override path).
3. Environment variables prefixed with ``DEPLOYCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export DEPLOYCTL_ACTION__TIMEOUT=600
    export DEPLOYCTL_TARGETS='[goerli, mumbai]'

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
flow-style lists are parsed naturally. Relative paths are resolved against
``project_root``. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load deployctl configuration. Install with "
        "`pip install deployctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "DEPLOYCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {
    CONFIG_ENV_VAR,
    f"{ENV_PREFIX}TARGET",
}
TARGET_PLACEHOLDER = "{target}"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class RecordConfig:
    """Layout of the per-target deployment records."""

    file_name: str = "deployment.json"
    identifier_field: str = "ArbitrageExecutor"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"file_name": self.file_name, "identifier_field": self.identifier_field}


@dataclass(frozen=True)
class ActionConfig:
    """External deployment action invoked once per target."""

    command: tuple[str, ...]
    timeout: float | None = None
    capture_output: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "command": list(self.command),
            "timeout": self.timeout,
            "capture_output": self.capture_output,
        }


@dataclass(frozen=True)
class BackupConfig:
    """Backup index and archive defaults."""

    index: Path
    compression: str = "auto"
    compression_level: int | None = None
    paths: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "index": str(self.index),
            "compression": {
                "algorithm": self.compression,
                "level": self.compression_level,
            },
            "paths": list(self.paths),
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for deployctl."""

    config_file: Path
    project_root: Path
    registry_file: Path
    backups_dir: Path
    deployments_dir: Path
    logs_dir: Path
    targets: tuple[str, ...]
    record: RecordConfig
    action: ActionConfig
    backups: BackupConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "project_root": str(self.project_root),
            "registry_file": str(self.registry_file),
            "backups_dir": str(self.backups_dir),
            "deployments_dir": str(self.deployments_dir),
            "logs_dir": str(self.logs_dir),
            "targets": list(self.targets),
            "record": self.record.to_dict(),
            "action": self.action.to_dict(),
            "backups": self.backups.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "deployctl.yml",
    "project_root": ".",
    "registry_file": "src/utils/blockchain/contractAddresses.ts",
    "backups_dir": "backups",
    "deployments_dir": "deployments",
    "logs_dir": "logs",
    "targets": [
        "ethereum",
        "polygon",
        "bsc",
        "arbitrum",
        "optimism",
        "goerli",
        "mumbai",
        "bsc-testnet",
    ],
    "record": {
        "file_name": "deployment.json",
        "identifier_field": "ArbitrageExecutor",
    },
    "action": {
        "command": ["npx", "hardhat", "run", "scripts/deploy.js", "--network", TARGET_PLACEHOLDER],
        "timeout": None,
        "capture_output": False,
    },
    "backups": {
        "index": None,  # derived from backups_dir when absent
        "compression": {
            "algorithm": "auto",
            "level": None,
        },
        "paths": [
            "src/utils/blockchain",
            "src/utils/contracts",
            "src/contracts",
            "deployments",
            "src/config",
        ],
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_BACKUP_COMPRESSION = {"auto", "gzip", "none"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    targets = raw.get("targets")
    if targets is not None:
        for index, entry in enumerate(_as_sequence(targets, "targets")):
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"targets[{index}] must be a non-empty string.")

    record = raw.get("record")
    if record is not None:
        record_map = _as_dict(record, "record")
        unknown = set(record_map.keys()) - {"file_name", "identifier_field"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown record configuration keys: {joined}.")

    action = raw.get("action")
    if action is not None:
        action_map = _as_dict(action, "action")
        unknown = set(action_map.keys()) - {"command", "timeout", "capture_output"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown action configuration keys: {joined}.")
        command = action_map.get("command")
        if command is not None:
            tokens = _as_sequence(command, "action.command")
            if not tokens:
                raise ConfigError("action.command must contain at least one token.")
            for index, token in enumerate(tokens):
                if not isinstance(token, str):
                    raise ConfigError(f"action.command[{index}] must be a string.")
        timeout = action_map.get("timeout")
        if timeout is not None:
            _expect_positive_float(timeout, "action.timeout", default=1.0)

    backups = raw.get("backups")
    if backups is not None:
        backups_map = _as_dict(backups, "backups")
        unknown = set(backups_map.keys()) - {"index", "compression", "paths"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown backups configuration keys: {joined}.")

        compression_map = _as_dict(backups_map.get("compression"), "backups.compression")
        unknown_comp = set(compression_map.keys()) - {"algorithm", "level"}
        if unknown_comp:
            joined = ", ".join(sorted(unknown_comp))
            raise ConfigError(f"Unknown backups compression keys: {joined}.")

        algorithm = str(compression_map.get("algorithm", "auto"))
        if algorithm not in ALLOWED_BACKUP_COMPRESSION:
            allowed = ", ".join(sorted(ALLOWED_BACKUP_COMPRESSION))
            raise ConfigError(
                f"Unsupported backup compression '{algorithm}'. Allowed: {allowed}."
            )

        paths = backups_map.get("paths")
        if paths is not None:
            for index, entry in enumerate(_as_sequence(paths, "backups.paths")):
                if not isinstance(entry, str) or not entry.strip():
                    raise ConfigError(f"backups.paths[{index}] must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    project_root = _to_path(raw.get("project_root"))
    registry_file = _resolve(project_root, raw.get("registry_file"))
    backups_dir = _resolve(project_root, raw.get("backups_dir"))
    deployments_dir = _resolve(project_root, raw.get("deployments_dir"))
    logs_dir = _resolve(project_root, raw.get("logs_dir"))

    targets = tuple(
        str(entry).strip() for entry in _as_sequence(raw.get("targets", []), "targets")
    )

    record_mapping = _as_dict(raw.get("record"), "record")
    record = RecordConfig(
        file_name=_expect_non_empty(
            record_mapping.get("file_name", "deployment.json"), "record.file_name"
        ),
        identifier_field=_expect_non_empty(
            record_mapping.get("identifier_field", "ArbitrageExecutor"),
            "record.identifier_field",
        ),
    )

    action_mapping = _as_dict(raw.get("action"), "action")
    timeout_raw = action_mapping.get("timeout")
    action = ActionConfig(
        command=tuple(
            str(token) for token in _as_sequence(action_mapping.get("command"), "action.command")
        ),
        timeout=(
            None
            if timeout_raw is None
            else _expect_positive_float(timeout_raw, "action.timeout", default=1.0)
        ),
        capture_output=_expect_bool(
            action_mapping.get("capture_output"), "action.capture_output", default=False
        ),
    )

    backups_mapping = _as_dict(raw.get("backups"), "backups")
    index_value = backups_mapping.get("index")
    backups_index = (
        _resolve(project_root, index_value) if index_value else backups_dir / "backups.json"
    )
    compression_mapping = _as_dict(backups_mapping.get("compression"), "backups.compression")
    compression_level_raw = compression_mapping.get("level")
    compression_level: int | None = None
    if compression_level_raw is not None:
        parsed_level = _expect_int(compression_level_raw, "backups.compression.level", default=1)
        if parsed_level <= 0:
            raise ConfigError(
                "backups.compression.level must be greater than zero when specified."
            )
        compression_level = parsed_level

    backups = BackupConfig(
        index=backups_index,
        compression=str(compression_mapping.get("algorithm", "auto")),
        compression_level=compression_level,
        paths=tuple(
            str(entry).strip()
            for entry in _as_sequence(backups_mapping.get("paths", []), "backups.paths")
        ),
    )

    return AppConfig(
        config_file=config_file,
        project_root=project_root,
        registry_file=registry_file,
        backups_dir=backups_dir,
        deployments_dir=deployments_dir,
        logs_dir=logs_dir,
        targets=targets,
        record=record,
        action=action,
        backups=backups,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _resolve(root: Path, value: object) -> Path:
    path = _to_path(value)
    if path.is_absolute():
        return path
    return root / path


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "ALLOWED_BACKUP_COMPRESSION",
    "ActionConfig",
    "AppConfig",
    "BackupConfig",
    "ConfigError",
    "RecordConfig",
    "load_config",
]
