"""Configuration defaults and strict validation for ``sqlift.toml``.

Validation reports every problem at once as structured issues (dotted field
path plus message) and returns a normalized copy of the payload.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from sqlift.connection import DEFAULT_BUSY_TIMEOUT_MS, JOURNAL_MODES, MEMORY_PATH, OpenMode

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("database", "path"),
    ("database", "migrations"),
    ("logging", "log_dir"),
)


class DatabaseConfig(TypedDict):
    path: str
    mode: str
    busy_timeout_ms: int
    foreign_keys: bool
    journal_mode: NotRequired[str]
    migrations: NotRequired[str]


class LoggingSection(TypedDict):
    level: str
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class SqliftConfig(TypedDict):
    database: DatabaseConfig
    logging: LoggingSection


DEFAULT_CONFIG: Final[SqliftConfig] = {
    "database": {
        "path": "sqlift.db",
        "mode": OpenMode.READ_WRITE_CREATE.value,
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
        "foreign_keys": True,
    },
    "logging": {
        "level": "INFO",
        "log_dir": "logs",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SqliftConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, {"database", "logging"}, "", issues)
    _require_keys(root, {"database", "logging"}, "", issues)

    normalized: dict[str, Any] = {}
    database = _as_object(root["database"], "database", issues) if "database" in root else None
    if database is not None:
        normalized["database"] = _validate_database(database, "database", issues)
    logging_section = _as_object(root["logging"], "logging", issues) if "logging" in root else None
    if logging_section is not None:
        normalized["logging"] = _validate_logging(logging_section, "logging", issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=issues.items())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_database(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    required = {"path", "mode", "busy_timeout_ms", "foreign_keys"}
    _reject_unknown_keys(payload, required | {"journal_mode", "migrations"}, path, issues)
    _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}

    if "path" in payload:
        parsed_path = _as_path_text(payload["path"], _join(path, "path"), issues)
        if parsed_path is not None:
            out["path"] = parsed_path

    if "mode" in payload:
        parsed_mode = _as_enum(
            payload["mode"],
            _join(path, "mode"),
            issues,
            allowed_values=tuple(mode.value for mode in OpenMode),
        )
        if parsed_mode is not None:
            out["mode"] = parsed_mode

    if "busy_timeout_ms" in payload:
        parsed_timeout = _as_int(
            payload["busy_timeout_ms"], _join(path, "busy_timeout_ms"), issues, minimum=0
        )
        if parsed_timeout is not None:
            out["busy_timeout_ms"] = parsed_timeout

    if "foreign_keys" in payload:
        parsed_fk = _as_bool(payload["foreign_keys"], _join(path, "foreign_keys"), issues)
        if parsed_fk is not None:
            out["foreign_keys"] = parsed_fk

    if "journal_mode" in payload:
        raw_journal = payload["journal_mode"]
        parsed_journal = _as_enum(
            raw_journal.strip().lower() if isinstance(raw_journal, str) else raw_journal,
            _join(path, "journal_mode"),
            issues,
            allowed_values=JOURNAL_MODES,
        )
        if parsed_journal is not None:
            out["journal_mode"] = parsed_journal

    if "migrations" in payload:
        parsed_migrations = _as_path_text(payload["migrations"], _join(path, "migrations"), issues)
        if parsed_migrations is not None:
            out["migrations"] = parsed_migrations

    if out.get("mode") == OpenMode.MEMORY.value and out.get("path") == MEMORY_PATH:
        issues.add(_join(path, "mode"), f"mode 'memory' requires a named path, not {MEMORY_PATH}")

    return out


def _validate_logging(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"level", "log_dir", "log_to_stdout", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}

    if "level" in payload:
        raw_level = payload["level"]
        parsed_level = _as_enum(
            raw_level.strip().upper() if isinstance(raw_level, str) else raw_level,
            _join(path, "level"),
            issues,
            allowed_values=LOG_LEVELS,
        )
        if parsed_level is not None:
            out["level"] = parsed_level

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir

    for flag in ("log_to_stdout", "redact_secrets"):
        if flag in payload:
            parsed_flag = _as_bool(payload[flag], _join(path, flag), issues)
            if parsed_flag is not None:
                out[flag] = parsed_flag

    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _deep_copy_mapping(payload: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in payload.items()}


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, Mapping):
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DatabaseConfig",
    "LoggingSection",
    "SqliftConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
