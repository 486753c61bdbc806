"""Runtime config loader.

Effective config is built from defaults, the TOML file, ``SQLIFT_``
environment variables and CLI overrides, in increasing precedence. Relative
paths resolve against the directory of the config file.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from sqlift.config.schema import PATH_FIELDS, assert_valid_config, default_config, merge_config
from sqlift.connection import MEMORY_PATH, ConnectionOptions, OpenMode

DEFAULT_CONFIG_FILE: Final[str] = "sqlift.toml"
ENV_PREFIX: Final[str] = "SQLIFT_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _text(raw: str) -> str:
    return raw


def _integer(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _flag(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


# Every overridable field: (section, key) -> parser for its env var text.
CONFIG_FIELDS: Final[dict[tuple[str, str], Callable[[str], object]]] = {
    ("database", "path"): _text,
    ("database", "mode"): _text,
    ("database", "busy_timeout_ms"): _integer,
    ("database", "foreign_keys"): _flag,
    ("database", "journal_mode"): _text,
    ("database", "migrations"): _text,
    ("logging", "level"): _text,
    ("logging", "log_dir"): _text,
    ("logging", "log_to_stdout"): _flag,
    ("logging", "redact_secrets"): _flag,
}


def env_var_name(section: str, key: str) -> str:
    """``("database", "busy_timeout_ms")`` -> ``SQLIFT_DATABASE_BUSY_TIMEOUT_MS``."""

    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence: CLI > env > file > defaults.

    ``cli_overrides`` keys are ``section.key`` names such as ``database.path``;
    ``None`` values are ignored so argparse defaults can be passed through.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = os.environ if environ is None else environ

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_payload))

    merged = merge_config(merged, _env_overrides(env_map))
    merged = merge_config(merged, _cli_overrides(cli_overrides or {}))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve the configured path fields against ``base_dir``."""

    normalized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = normalized.get(section)
        if isinstance(table, dict) and isinstance(table.get(key), str):
            table[key] = _resolve_path_text(table[key], base_dir)
    return normalized


def connection_options_from_config(config: Mapping[str, Any]) -> ConnectionOptions:
    """Build connection options from the ``[database]`` table of a loaded config."""

    database = config.get("database", {})
    if not isinstance(database, Mapping):
        raise ConfigLoadError("config section 'database' must be an object")
    defaults = ConnectionOptions()
    return ConnectionOptions(
        mode=OpenMode(database.get("mode", defaults.mode.value)),
        busy_timeout_ms=int(database.get("busy_timeout_ms", defaults.busy_timeout_ms)),
        foreign_keys=bool(database.get("foreign_keys", defaults.foreign_keys)),
        journal_mode=database.get("journal_mode"),
    )


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    overrides: dict[str, dict[str, object]] = {}
    for (section, key), parse in CONFIG_FIELDS.items():
        name = env_var_name(section, key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = parse(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {section}.{key} {exc}") from None
        overrides.setdefault(section, {})[key] = value
    return overrides


def _cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, dict[str, object]]:
    overrides: dict[str, dict[str, object]] = {}
    for dotted, value in cli_overrides.items():
        if value is None:
            continue
        section, _, key = dotted.partition(".")
        if (section, key) not in CONFIG_FIELDS:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        overrides.setdefault(section, {})[key] = value
    return overrides


def _resolve_path_text(raw: str, base_dir: Path) -> str:
    if raw == MEMORY_PATH:
        return raw
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "CONFIG_FIELDS",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "connection_options_from_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
