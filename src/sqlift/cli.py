"""Command-line interface router for sqlift."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import structlog

from sqlift.config import (
    ConfigLoadError,
    ConfigValidationError,
    connection_options_from_config,
    load_config,
)
from sqlift.connection import MEMORY_PATH, Connection, ConnectionOptions, OpenMode
from sqlift.migrations import (
    Migration,
    apply_migrations,
    load_migrations,
    pending_migrations,
    read_schema_version,
)
from sqlift.observability.logging import get_logger, setup_logging, shutdown_logging

_logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="sqlift",
        description=(
            "sqlift: SQLite schema migrations keyed by a single version counter.\n\n"
            "Common workflows:\n"
            "  sqlift migrate --db app.db --migrations migrations.yaml\n"
            "  sqlift migrate --dry-run --json\n"
            "  sqlift version --db app.db\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to sqlift TOML config (default: ./sqlift.toml if present).",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Database path; overrides [database].path.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate -------------------------------------------------------------
    migrate_parser = subparsers.add_parser(
        "migrate",
        parents=[common],
        help="Apply pending migrations",
        description=(
            "Bring the database schema up to the number of configured migrations.\n\n"
            "Examples:\n"
            "  sqlift migrate --migrations migrations.yaml\n"
            "  sqlift migrate --dry-run\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    migrate_parser.add_argument(
        "--migrations",
        dest="migrations_path",
        default=None,
        help="YAML migrations file; overrides [database].migrations.",
    )
    migrate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report pending migrations without mutating the database.",
    )
    migrate_parser.set_defaults(handler=_cmd_migrate)

    # version -------------------------------------------------------------
    version_parser = subparsers.add_parser(
        "version",
        parents=[common],
        help="Show the persisted schema version",
        description="Print the schema version recorded in the database without migrating it.",
    )
    version_parser.set_defaults(handler=_cmd_version)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_migrate(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args,
        overrides={
            "database.path": _cli_path(getattr(args, "db_path", None)),
            "database.migrations": _cli_path(getattr(args, "migrations_path", None)),
        },
    )
    db_path = _database_path(config)
    options = connection_options_from_config(config)
    dry_run = bool(getattr(args, "dry_run", False))

    with _logging_session(config), structlog.contextvars.bound_contextvars(
        command="migrate", db_path=db_path
    ):
        migrations = _configured_migrations(config)
        if dry_run:
            current_version = _inspect_version(db_path, options, migrations)
        else:
            with Connection.open(db_path, options, migrations=None) as conn:
                previous_version = read_schema_version(conn)
                current_version = apply_migrations(conn, migrations)
            _logger.info(
                "sqlift_migrate_completed",
                previous_schema_version=previous_version,
                schema_version=current_version,
            )

    target_version = len(migrations)
    payload: dict[str, Any] = {
        "db_path": db_path,
        "dry_run": dry_run,
        "schema_version": current_version,
        "target_schema_version": target_version,
        "pending_migrations": target_version - current_version,
        "up_to_date": current_version == target_version,
        "migrations": _migration_rows(migrations, current_version),
    }
    if getattr(args, "json", False):
        _emit_json(payload)
    else:
        _emit_migrate_text(payload)
    return 0


def _cmd_version(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args, overrides={"database.path": _cli_path(getattr(args, "db_path", None))}
    )
    db_path = _database_path(config)
    options = connection_options_from_config(config)

    with _logging_session(config), structlog.contextvars.bound_contextvars(
        command="version", db_path=db_path
    ):
        version = _inspect_version(db_path, options, None)

    payload: dict[str, Any] = {"db_path": db_path, "schema_version": version}
    if getattr(args, "json", False):
        _emit_json(payload)
    else:
        print(f"db_path: {db_path}")
        print(f"schema_version: {version}")
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cli_path(value: object) -> str | None:
    """Resolve a path given on the command line against the working directory."""

    if not isinstance(value, str):
        return None
    if value == MEMORY_PATH:
        return value
    return Path(value).expanduser().resolve().as_posix()


def _load_effective_config(
    args: argparse.Namespace, *, overrides: Mapping[str, object]
) -> dict[str, Any]:
    config_path = getattr(args, "config_path", None)
    try:
        return load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


@contextmanager
def _logging_session(config: Mapping[str, Any]) -> Iterator[None]:
    logging_section = config.get("logging")
    setup_logging(logging_section if isinstance(logging_section, Mapping) else None)
    try:
        yield
    finally:
        shutdown_logging()


def _database_path(config: Mapping[str, Any]) -> str:
    database = config.get("database")
    path = database.get("path") if isinstance(database, Mapping) else None
    if not isinstance(path, str):
        raise CLIError("config field 'database.path' must be a string", exit_code=2)
    return path


def _configured_migrations(config: Mapping[str, Any]) -> tuple[Migration, ...]:
    database = config.get("database")
    migrations_path = database.get("migrations") if isinstance(database, Mapping) else None
    if migrations_path is None:
        return ()
    return load_migrations(Path(migrations_path))


def _inspect_version(
    db_path: str,
    options: ConnectionOptions,
    migrations: Sequence[Migration] | None,
) -> int:
    """Read the schema version without creating or mutating the database.

    When ``migrations`` is given, a persisted version ahead of the list is
    rejected the same way a real migration run would reject it.
    """

    if db_path == MEMORY_PATH or not Path(db_path).exists():
        return 0
    read_only = replace(options, mode=OpenMode.READ_ONLY, journal_mode=None)
    with Connection.open(db_path, read_only, migrations=None) as conn:
        if migrations is not None:
            pending_migrations(conn, migrations)
        return read_schema_version(conn)


def _migration_rows(
    migrations: Sequence[Migration], current_version: int
) -> list[dict[str, object]]:
    return [
        {
            "version": version,
            "name": migration.name,
            "steps": len(migration.steps),
            "status": "applied" if version <= current_version else "pending",
        }
        for version, migration in enumerate(migrations, start=1)
    ]


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _emit_migrate_text(payload: Mapping[str, Any]) -> None:
    print(f"db_path: {payload['db_path']}")
    print(f"dry_run: {payload['dry_run']}")
    print(f"schema_version: {payload['schema_version']}")
    print(f"target_schema_version: {payload['target_schema_version']}")
    print(f"pending_migrations: {payload['pending_migrations']}")
    print(f"up_to_date: {payload['up_to_date']}")
    print("migrations:")
    for row in payload["migrations"]:
        label = f" ({row['name']})" if row["name"] else ""
        print(f"  v{row['version']}: {row['status']}{label}")


__all__ = ["CLIError", "build_parser", "run_cli"]
