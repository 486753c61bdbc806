"""Schema migrations keyed by a single persisted version counter.

The Nth migration in the supplied list corresponds to schema version N. The
current version lives in the ``_schema`` table under the singleton key
``handle = 0``; each migration runs in its own transaction together with the
version bump, so a failing migration leaves both schema and counter untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final, LiteralString, TypeAlias, cast

import yaml

from sqlift.errors import SQLBindingError, SQLMigrationError
from sqlift.observability.logging import get_logger
from sqlift.values import (
    SQLParam,
    SQLParams,
    StatementLike,
    check_parameters,
    kind_of,
    statement_text,
)

if TYPE_CHECKING:
    from sqlift.connection import Connection

SCHEMA_TABLE: Final[str] = "_schema"
SCHEMA_HANDLE: Final[int] = 0

_CREATE_SCHEMA_TABLE_SQL: Final = """
CREATE TABLE IF NOT EXISTS _schema (
    handle INTEGER PRIMARY KEY,
    version INTEGER
)
"""
_SCHEMA_TABLE_EXISTS_SQL: Final = (
    "SELECT 1 AS present FROM sqlite_master WHERE type = 'table' AND name = ?"
)
_SELECT_VERSION_SQL: Final = "SELECT version FROM _schema WHERE handle = ?"
_UPSERT_VERSION_SQL: Final = """
INSERT INTO _schema (handle, version)
VALUES (?1, ?2)
ON CONFLICT (handle) DO UPDATE SET version = excluded.version
"""

_logger = get_logger(__name__)


class MigrationFileError(ValueError):
    """Raised when a migrations document cannot be read or is malformed."""


@dataclass(frozen=True, slots=True)
class MigrationStep:
    """One statement executed as part of a migration, with its parameters."""

    statement: StatementLike
    parameters: tuple[SQLParam, ...] = ()

    def __post_init__(self) -> None:
        statement_text(self.statement)
        object.__setattr__(self, "parameters", check_parameters(self.parameters))


@dataclass(frozen=True, slots=True)
class Migration:
    """Ordered, non-empty list of steps that moves the schema forward by one version."""

    steps: tuple[MigrationStep, ...]
    name: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.steps, (str, MigrationStep)):
            raise TypeError("steps must be a sequence; use as_migration() for a single statement")
        steps = tuple(_as_step(step) for step in self.steps)
        if not steps:
            raise ValueError("Cannot create empty migration")
        object.__setattr__(self, "steps", steps)

    @classmethod
    def of(cls, *statements: StatementLike | MigrationStep, name: str | None = None) -> Migration:
        """Build a migration from statements given in execution order."""

        return cls(steps=tuple(_as_step(statement) for statement in statements), name=name)


MigrationLike: TypeAlias = (
    Migration | MigrationStep | StatementLike | Sequence[StatementLike | MigrationStep]
)


def as_migration(value: MigrationLike) -> Migration:
    """Coerce a migration, a single statement, or a sequence of statements."""

    if isinstance(value, Migration):
        return value
    if isinstance(value, MigrationStep):
        return Migration(steps=(value,))
    if isinstance(value, str) or not isinstance(value, Sequence):
        return Migration(steps=(_as_step(cast("StatementLike", value)),))
    return Migration(steps=tuple(_as_step(item) for item in value))


def read_schema_version(connection: Connection) -> int:
    """Return the persisted schema version without creating the version table.

    A database that was never migrated reports version ``0``.
    """

    if connection.fetch_one(_SCHEMA_TABLE_EXISTS_SQL, (SCHEMA_TABLE,)) is None:
        return 0
    return _current_version(connection)


def apply_migrations(connection: Connection, migrations: Iterable[MigrationLike]) -> int:
    """Apply every migration not yet accounted for and return the resulting version.

    Raises ``SQLMigrationError`` without touching the database when the
    persisted version is ahead of the supplied list. A failing migration is
    rolled back and stops the run; its error propagates with a note naming
    the schema version it was meant to produce.
    """

    resolved = tuple(as_migration(migration) for migration in migrations)
    target_version = len(resolved)

    connection.execute(_CREATE_SCHEMA_TABLE_SQL)
    current_version = _current_version(connection)

    if current_version > target_version:
        raise SQLMigrationError(
            f"Invalid schema version, provided: {target_version}, existing: {current_version}"
        )
    if current_version == target_version:
        _logger.debug(
            "sqlite_migrations_up_to_date",
            path=connection.path,
            schema_version=current_version,
        )
        return current_version

    for version, migration in enumerate(resolved[current_version:], start=current_version + 1):
        try:
            connection.with_transaction(_migration_unit(migration, version))
        except Exception as exc:
            exc.add_note(f"while migrating {connection.path} to schema version {version}")
            raise
        _logger.info(
            "sqlite_migration_applied",
            path=connection.path,
            schema_version=version,
            migration_name=migration.name,
            step_count=len(migration.steps),
        )
    return target_version


def pending_migrations(
    connection: Connection, migrations: Iterable[MigrationLike]
) -> tuple[Migration, ...]:
    """Return the migrations that would run against ``connection``, without applying them.

    Raises ``SQLMigrationError`` for a regressed list, like :func:`apply_migrations`.
    """

    resolved = tuple(as_migration(migration) for migration in migrations)
    current_version = read_schema_version(connection)
    if current_version > len(resolved):
        raise SQLMigrationError(
            f"Invalid schema version, provided: {len(resolved)}, existing: {current_version}"
        )
    return resolved[current_version:]


def load_migrations(path: Path | str) -> tuple[Migration, ...]:
    """Load an ordered migrations list from a YAML document.

    The document is either a sequence or a mapping with a ``migrations``
    sequence. Each entry is a statement string, a list of statement strings,
    or a mapping with ``steps`` and an optional ``name``. A step is a string
    or a mapping with ``statement`` and optional ``parameters``.
    """

    source = Path(path)
    try:
        with source.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except OSError as exc:
        raise MigrationFileError(f"{source}: unable to read migrations ({exc})") from exc
    except yaml.YAMLError as exc:
        raise MigrationFileError(f"{source}: invalid YAML ({exc})") from exc

    if isinstance(loaded, Mapping):
        unknown = sorted(str(key) for key in loaded if key != "migrations")
        if unknown:
            raise MigrationFileError(f"{source.name}: unexpected top-level keys: {unknown}")
        loaded = loaded.get("migrations")
    if loaded is None:
        return ()
    if not _is_sequence(loaded):
        raise MigrationFileError(
            f"{source.name}: expected a sequence of migrations, got {type(loaded).__name__}"
        )

    items = cast("Sequence[object]", loaded)
    return tuple(
        _parse_migration(item, location=f"{source.name}[{index}]")
        for index, item in enumerate(items)
    )


def _migration_unit(migration: Migration, version: int) -> Callable[[Connection], None]:
    def apply(conn: Connection) -> None:
        for step in migration.steps:
            conn.execute(step.statement, step.parameters)
        conn.execute(_UPSERT_VERSION_SQL, (SCHEMA_HANDLE, version))

    return apply


def _current_version(connection: Connection) -> int:
    row = connection.fetch_one(_SELECT_VERSION_SQL, (SCHEMA_HANDLE,))
    if row is None:
        return 0
    version = row.get_integer("version")
    if version is None:
        raise SQLMigrationError(f"{SCHEMA_TABLE}.version must be an integer")
    return version


def _as_step(value: StatementLike | MigrationStep) -> MigrationStep:
    if isinstance(value, MigrationStep):
        return value
    return MigrationStep(statement=value)


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _parse_migration(value: object, *, location: str) -> Migration:
    if isinstance(value, str):
        return Migration(steps=(_parse_step(value, location=location),))
    if _is_sequence(value):
        return _build_migration(cast("Sequence[object]", value), name=None, location=location)
    if not isinstance(value, Mapping):
        raise MigrationFileError(
            f"{location}: expected a statement, a list of statements or a mapping, "
            f"got {type(value).__name__}"
        )

    unknown = sorted(str(key) for key in value if key not in {"name", "steps"})
    if unknown:
        raise MigrationFileError(f"{location}: unexpected fields: {unknown}")
    name = value.get("name")
    if name is not None and not isinstance(name, str):
        raise MigrationFileError(f"{location}.name: expected a string")
    steps = value.get("steps")
    if not _is_sequence(steps):
        raise MigrationFileError(f"{location}.steps: expected a sequence of steps")
    return _build_migration(cast("Sequence[object]", steps), name=name, location=location)


def _build_migration(steps: Sequence[object], *, name: str | None, location: str) -> Migration:
    if not steps:
        raise MigrationFileError(f"{location}: migration has no steps")
    return Migration(
        steps=tuple(
            _parse_step(step, location=f"{location}.steps[{index}]")
            for index, step in enumerate(steps)
        ),
        name=name,
    )


def _parse_step(value: object, *, location: str) -> MigrationStep:
    if isinstance(value, str):
        return MigrationStep(statement=_as_statement(value, location=location))
    if not isinstance(value, Mapping):
        raise MigrationFileError(
            f"{location}: expected a statement or a mapping, got {type(value).__name__}"
        )

    unknown = sorted(str(key) for key in value if key not in {"statement", "parameters"})
    if unknown:
        raise MigrationFileError(f"{location}: unexpected fields: {unknown}")
    statement = value.get("statement")
    if not isinstance(statement, str):
        raise MigrationFileError(f"{location}.statement: expected a string")
    raw_parameters = value.get("parameters", [])
    if not _is_sequence(raw_parameters):
        raise MigrationFileError(f"{location}.parameters: expected a sequence")
    parameters = cast("Sequence[object]", raw_parameters)
    for index, parameter in enumerate(parameters):
        if kind_of(parameter) is None:
            raise MigrationFileError(
                f"{location}.parameters[{index}]: unsupported value type "
                f"{type(parameter).__name__}"
            )
    try:
        return MigrationStep(
            statement=_as_statement(statement, location=location),
            parameters=tuple(cast("SQLParams", parameters)),
        )
    except SQLBindingError as exc:
        raise MigrationFileError(f"{location}.parameters: {exc.message}") from exc


def _as_statement(text: str, *, location: str) -> LiteralString:
    if not text.strip():
        raise MigrationFileError(f"{location}: statement is empty")
    # Statements from a migrations file are trusted the same way as source literals.
    return cast("LiteralString", text)


__all__ = [
    "SCHEMA_HANDLE",
    "SCHEMA_TABLE",
    "Migration",
    "MigrationFileError",
    "MigrationLike",
    "MigrationStep",
    "apply_migrations",
    "as_migration",
    "load_migrations",
    "pending_migrations",
    "read_schema_version",
]
