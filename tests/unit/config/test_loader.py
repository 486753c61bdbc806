"""
sqlift: unit tests for config loader

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping and type coercion, including optional fields.
- Path normalization relative to the config file, with ``:memory:`` kept verbatim.
- Translation of the ``[database]`` table into connection options.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from sqlift.config.loader import (
    CONFIG_FIELDS,
    ConfigLoadError,
    connection_options_from_config,
    env_var_name,
    load_config,
    normalize_paths,
)
from sqlift.config.schema import ConfigValidationError
from sqlift.connection import ConnectionOptions, OpenMode


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[database]
busy_timeout_ms = 100
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"SQLIFT_DATABASE_BUSY_TIMEOUT_MS": "200"})
    cli_loaded = load_config(
        config_path,
        environ={"SQLIFT_DATABASE_BUSY_TIMEOUT_MS": "200"},
        cli_overrides={"database.busy_timeout_ms": 300},
    )

    assert default_loaded["database"]["busy_timeout_ms"] == 5000
    assert file_loaded["database"]["busy_timeout_ms"] == 100
    assert env_loaded["database"]["busy_timeout_ms"] == 200
    assert cli_loaded["database"]["busy_timeout_ms"] == 300


def test_env_overrides_coerce_to_field_types(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "SQLIFT_DATABASE_FOREIGN_KEYS": "off",
            "SQLIFT_DATABASE_MODE": "rw",
            "SQLIFT_DATABASE_JOURNAL_MODE": "WAL",
            "SQLIFT_LOGGING_LEVEL": "debug",
            "SQLIFT_LOGGING_LOG_TO_STDOUT": "yes",
            "SQLIFT_UNRELATED": "ignored",
        },
    )

    assert loaded["database"]["foreign_keys"] is False
    assert loaded["database"]["mode"] == "rw"
    assert loaded["database"]["journal_mode"] == "wal"
    assert loaded["logging"]["level"] == "DEBUG"
    assert loaded["logging"]["log_to_stdout"] is True


@pytest.mark.parametrize(
    ("env_name", "raw", "fragment"),
    [
        ("SQLIFT_DATABASE_BUSY_TIMEOUT_MS", "soon", "must be an integer"),
        ("SQLIFT_DATABASE_FOREIGN_KEYS", "maybe", "must be a boolean"),
    ],
)
def test_env_overrides_reject_uncoercible_values(
    tmp_path: Path, env_name: str, raw: str, fragment: str
) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=fragment):
        load_config(config_path, environ={env_name: raw})


def test_cli_overrides_skip_none_values(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, '[database]\npath = "from-file.db"\n')

    loaded = load_config(
        config_path,
        environ={},
        cli_overrides={"database.path": None, "database.migrations": "m.yaml"},
    )

    assert loaded["database"]["path"] == (tmp_path.resolve() / "from-file.db").as_posix()
    assert loaded["database"]["migrations"] == (tmp_path.resolve() / "m.yaml").as_posix()


def test_relative_paths_resolve_against_config_directory(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "sqlift.toml"
    _write_config(
        config_path,
        """
[database]
path = "../data/app.db"

[logging]
log_dir = "state/logs"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    root = tmp_path.resolve()
    assert loaded["database"]["path"] == (root / "data" / "app.db").as_posix()
    assert loaded["logging"]["log_dir"] == (root / "conf" / "state" / "logs").as_posix()


def test_memory_path_is_not_normalized(tmp_path: Path) -> None:
    normalized = normalize_paths(
        {"database": {"path": ":memory:"}, "logging": {"log_dir": "/abs/logs"}},
        base_dir=tmp_path,
    )

    assert normalized["database"]["path"] == ":memory:"
    assert normalized["logging"]["log_dir"] == "/abs/logs"


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    loaded = load_config(environ={})

    assert loaded["database"]["mode"] == "rwc"
    assert loaded["database"]["path"] == (tmp_path.resolve() / "sqlift.db").as_posix()


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_a_load_error(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, "[database\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_invalid_values_surface_as_validation_error(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, '[database]\nmode = "append"\n')

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    assert [issue.path for issue in excinfo.value.issues] == ["database.mode"]


def test_repeated_loads_are_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, '[logging]\nlevel = "warning"\n')

    first = load_config(config_path, environ={"SQLIFT_DATABASE_MODE": "ro"})
    second = load_config(config_path, environ={"SQLIFT_DATABASE_MODE": "ro"})

    assert first == second


def test_connection_options_from_loaded_config(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(
        config_path,
        """
[database]
mode = "ro"
busy_timeout_ms = 250
foreign_keys = false
journal_mode = "TRUNCATE"
""".strip(),
    )

    options = connection_options_from_config(load_config(config_path, environ={}))

    assert options == ConnectionOptions(
        mode=OpenMode.READ_ONLY,
        busy_timeout_ms=250,
        foreign_keys=False,
        journal_mode="truncate",
    )


def test_connection_options_defaults_and_bad_section() -> None:
    assert connection_options_from_config({}) == ConnectionOptions()

    with pytest.raises(ConfigLoadError, match="'database' must be an object"):
        connection_options_from_config({"database": "sqlite"})


def test_every_config_field_has_an_env_override(tmp_path: Path) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, "")

    assert env_var_name("database", "busy_timeout_ms") == "SQLIFT_DATABASE_BUSY_TIMEOUT_MS"
    loaded = load_config(
        config_path,
        environ={
            "SQLIFT_DATABASE_PATH": "/srv/app.db",
            "SQLIFT_DATABASE_MIGRATIONS": "/srv/migrations.yaml",
            "SQLIFT_LOGGING_LOG_DIR": "/var/log/sqlift",
            "SQLIFT_LOGGING_REDACT_SECRETS": "0",
        },
    )

    assert {section for section, _ in CONFIG_FIELDS} == {"database", "logging"}
    assert loaded["database"]["path"] == "/srv/app.db"
    assert loaded["database"]["migrations"] == "/srv/migrations.yaml"
    assert loaded["logging"]["log_dir"] == "/var/log/sqlift"
    assert loaded["logging"]["redact_secrets"] is False


@pytest.mark.parametrize("key", ["database", "database.", "database.colour", "paths.db"])
def test_unknown_cli_override_keys_are_rejected(tmp_path: Path, key: str) -> None:
    config_path = tmp_path / "sqlift.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="invalid CLI override key"):
        load_config(config_path, environ={}, cli_overrides={key: "x"})
