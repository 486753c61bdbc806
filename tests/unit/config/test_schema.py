"""
sqlift: unit tests for config schema validation

Purpose
- Validate strict config schema behavior and structured errors.

What this test file should cover
- Validates the repository's live sqlift.toml successfully.
- Rejects unknown keys and invalid types with actionable paths.
- Normalizes case-insensitive enum fields.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from sqlift.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

REPO_ROOT = Path(__file__).resolve().parents[3]


def _load_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    assert isinstance(data, dict)
    return data


def test_sqlift_toml_validates_successfully() -> None:
    config = merge_config(default_config(), _load_toml(REPO_ROOT / "sqlift.toml"))

    result = validate_config(config)

    assert result.is_valid
    assert result.issues == ()
    assert result.config is not None
    assert result.config["database"]["journal_mode"] == "wal"


def test_defaults_validate_and_are_isolated_copies() -> None:
    first = default_config()
    first["database"]["path"] = "mutated.db"

    assert default_config()["database"]["path"] == "sqlift.db"
    assert validate_config(default_config()).is_valid


def test_unknown_and_missing_fields_report_paths() -> None:
    config = merge_config(default_config(), {"database": {"pool_size": 4}, "extra": {}})
    del config["logging"]["level"]

    result = validate_config(config)

    assert not result.is_valid
    assert result.config is None
    assert [(issue.path, issue.message) for issue in result.issues] == [
        ("extra", "unknown field"),
        ("database.pool_size", "unknown field"),
        ("logging.level", "missing required field"),
    ]


@pytest.mark.parametrize(
    ("overlay", "path", "fragment"),
    [
        ({"database": {"busy_timeout_ms": -1}}, "database.busy_timeout_ms", "must be >= 0"),
        ({"database": {"busy_timeout_ms": True}}, "database.busy_timeout_ms", "expected integer"),
        ({"database": {"foreign_keys": "yes"}}, "database.foreign_keys", "expected boolean"),
        ({"database": {"path": "  "}}, "database.path", "must not be empty"),
        ({"database": {"journal_mode": "fast"}}, "database.journal_mode", "invalid value"),
        ({"database": {"mode": "memory", "path": ":memory:"}}, "database.mode", "named path"),
        ({"logging": {"level": "TRACE"}}, "logging.level", "expected one of"),
        ({"logging": {"log_dir": 7}}, "logging.log_dir", "expected string"),
    ],
)
def test_invalid_values_report_actionable_paths(
    overlay: dict[str, object], path: str, fragment: str
) -> None:
    result = validate_config(merge_config(default_config(), overlay))

    assert [issue.path for issue in result.issues] == [path]
    assert fragment in result.issues[0].message


def test_enum_fields_are_normalized() -> None:
    normalized = assert_valid_config(
        merge_config(
            default_config(),
            {"database": {"journal_mode": " WAL "}, "logging": {"level": "debug"}},
        )
    )

    assert normalized["database"]["journal_mode"] == "wal"
    assert normalized["logging"]["level"] == "DEBUG"


def test_non_mapping_root_is_rejected() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(["database"])

    assert excinfo.value.issues[0].path == "<root>"
    assert "invalid config" in str(excinfo.value)


def test_merge_config_is_deep_and_non_destructive() -> None:
    base = default_config()
    merged = merge_config(base, {"database": {"path": "other.db"}})

    assert merged["database"]["path"] == "other.db"
    assert merged["database"]["mode"] == "rwc"
    assert base["database"]["path"] == "sqlift.db"
