"""SQLite connection handle: statement execution, row fetching, transactions.

Every engine call goes through :meth:`Connection._run`, which owns the
prepare -> bind -> step -> finalize sequence for one statement and converts
each engine failure into exactly one :class:`~sqlift.errors.SQLError`.

A ``Connection`` is not internally synchronized. Callers sharing one across
threads must serialize access themselves.
"""

from __future__ import annotations

import sqlite3
import weakref
from collections.abc import Callable, Iterable, Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final, TypeVar, overload

from sqlift.errors import (
    ENGINE_ERRORS,
    SQLBindingError,
    SQLConnectionError,
    SQLError,
    SQLExecutionError,
    SQLStatementError,
)
from sqlift.migrations import MigrationLike, apply_migrations, read_schema_version
from sqlift.observability.logging import get_logger
from sqlift.row import Row
from sqlift.values import SQLParams, StatementLike, check_parameters, statement_text

T = TypeVar("T")

MEMORY_PATH: Final[str] = ":memory:"
TEMPORARY_PATH: Final[str] = ""
DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
JOURNAL_MODES: Final[tuple[str, ...]] = ("delete", "truncate", "persist", "memory", "wal", "off")

_BEGIN_SQL: Final = "BEGIN TRANSACTION;"
_ROLLBACK_SQL: Final = "ROLLBACK TRANSACTION;"
_END_SQL: Final = "END TRANSACTION;"

_BINDING_SUBSTRINGS: Final[tuple[str, ...]] = (
    "incorrect number of bindings",
    "error binding parameter",
    "binding parameter",
)
_UNEXPECTED_ROW_MESSAGE: Final[str] = (
    "Statement execution method is not intended to load data, please use fetch instead."
)

_logger = get_logger(__name__)


class OpenMode(StrEnum):
    """SQLite open modes, expressed as URI ``mode`` values."""

    READ_ONLY = "ro"
    READ_WRITE = "rw"
    READ_WRITE_CREATE = "rwc"
    MEMORY = "memory"


@dataclass(frozen=True, slots=True)
class ConnectionOptions:
    """Open-time settings applied to every new connection."""

    mode: OpenMode = OpenMode.READ_WRITE_CREATE
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    foreign_keys: bool = True
    journal_mode: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.mode, OpenMode):
            try:
                object.__setattr__(self, "mode", OpenMode(self.mode))
            except ValueError as exc:
                allowed = ", ".join(mode.value for mode in OpenMode)
                raise ValueError(f"mode must be one of: {allowed}; got {self.mode!r}") from exc
        if self.busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if self.journal_mode is not None:
            normalized = self.journal_mode.strip().lower()
            if normalized not in JOURNAL_MODES:
                allowed = ", ".join(JOURNAL_MODES)
                raise ValueError(
                    f"journal_mode must be one of: {allowed}; got {self.journal_mode!r}"
                )
            object.__setattr__(self, "journal_mode", normalized)


class _StepTracker:
    """Trace hook that records whether the current statement started stepping.

    Kept separate from ``Connection`` so the raw handle never references it.
    """

    __slots__ = ("stepped",)

    def __init__(self) -> None:
        self.stepped = False

    def __call__(self, _sql: str) -> None:
        self.stepped = True


class Connection:
    """Instance of an open SQLite database.

    Use :meth:`open` to construct one. The underlying handle is released
    exactly once: by :meth:`close`, by leaving a ``with`` block, or when the
    connection object is garbage collected.
    """

    def __init__(self, raw: sqlite3.Connection, *, path: str, options: ConnectionOptions) -> None:
        self._raw = raw
        self._path = path
        self._options = options
        self._steps = _StepTracker()
        self._finalizer = weakref.finalize(self, raw.close)
        raw.set_trace_callback(self._steps)

    @classmethod
    def open(
        cls,
        path: str | Path = MEMORY_PATH,
        options: ConnectionOptions | None = None,
        migrations: Iterable[MigrationLike] | None = (),
    ) -> Connection:
        """Open a database and bring its schema up to date.

        ``":memory:"`` opens a private in-memory database and ``""`` a private
        temporary on-disk one, deleted on close. Migrations are
        applied in order; entries already counted by the persisted schema
        version are skipped. Passing ``migrations=None`` attaches to the
        database without touching the version table, which read-only
        inspection needs. The handle is closed before any failure propagates.
        """

        resolved_options = options if options is not None else ConnectionOptions()
        raw = _open_raw(path, resolved_options)
        connection = cls(raw, path=str(path), options=resolved_options)
        try:
            connection._configure()
            if migrations is None:
                version = read_schema_version(connection)
            else:
                version = apply_migrations(connection, migrations)
        except BaseException:
            connection.close()
            raise
        _logger.debug(
            "sqlite_connection_opened",
            path=connection.path,
            mode=resolved_options.mode.value,
            schema_version=version,
        )
        return connection

    @property
    def path(self) -> str:
        return self._path

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def in_transaction(self) -> bool:
        return self._require_open().in_transaction

    def close(self) -> None:
        """Release the database handle. Calling this more than once is a no-op."""

        if self._finalizer.alive:
            self._finalizer()
            _logger.debug("sqlite_connection_closed", path=self._path)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Connection path={self._path!r} {state}>"

    # ------------------------------------------------------------------
    # Statement execution
    # ------------------------------------------------------------------

    def execute(self, statement: StatementLike, params: SQLParams = ()) -> None:
        """Run a statement that produces no rows.

        Raises ``SQLExecutionError`` if the statement yields a row; use
        :meth:`fetch` for queries.
        """

        with self._run(statement, params) as cursor:
            if cursor.fetchone() is not None:
                raise SQLExecutionError(_UNEXPECTED_ROW_MESSAGE)

    @overload
    def fetch(self, statement: StatementLike, params: SQLParams = ...) -> list[Row]: ...

    @overload
    def fetch(
        self,
        statement: StatementLike,
        params: SQLParams = ...,
        *,
        mapping: Callable[[list[Row]], Iterable[T]],
    ) -> list[T]: ...

    def fetch(
        self,
        statement: StatementLike,
        params: SQLParams = (),
        *,
        mapping: Callable[[list[Row]], Iterable[T]] | None = None,
    ) -> list[Row] | list[T]:
        """Run a query and return every produced row in order.

        When ``mapping`` is given it receives the full row list and its
        result is returned as a list.
        """

        with self._run(statement, params) as cursor:
            names = _column_names(cursor)
            rows = [Row.from_engine(names, values) for values in cursor.fetchall()]
        if mapping is None:
            return rows
        return list(mapping(rows))

    def fetch_one(self, statement: StatementLike, params: SQLParams = ()) -> Row | None:
        """Return the first produced row, or ``None`` for an empty result."""

        rows = self.fetch(statement, params)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Begin a transaction. Transactions do not nest."""

        self.execute(_BEGIN_SQL)

    def rollback(self) -> None:
        self.execute(_ROLLBACK_SQL)

    def end(self) -> None:
        """Commit the current transaction."""

        self.execute(_END_SQL)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run the block inside a transaction, rolling back if it raises or the commit fails."""

        self.begin()
        try:
            yield self
        except BaseException as exc:
            self._rollback_after_failure(exc)
            raise
        try:
            self.end()
        except SQLError as exc:
            # A refused COMMIT leaves the transaction open.
            if self.in_transaction:
                self._rollback_after_failure(exc)
            raise

    def with_transaction(self, unit_of_work: Callable[[Connection], T]) -> T:
        """Run ``unit_of_work`` in a transaction with automatic rollback on failure.

        The original failure is always the one re-raised. A failing rollback
        is attached to it as a note and logged.
        """

        with self.transaction() as conn:
            return unit_of_work(conn)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _configure(self) -> None:
        raw = self._require_open()
        pragmas = [
            f"PRAGMA busy_timeout={int(self._options.busy_timeout_ms)}",
            f"PRAGMA foreign_keys={'ON' if self._options.foreign_keys else 'OFF'}",
        ]
        if self._options.journal_mode is not None:
            pragmas.append(f"PRAGMA journal_mode={self._options.journal_mode}")
        for pragma in pragmas:
            try:
                raw.execute(pragma).fetchall()
            except ENGINE_ERRORS as exc:
                raise SQLConnectionError.from_engine(
                    exc, message=f"Unable to configure database at {self._path}: {exc}"
                ) from exc

    def _require_open(self) -> sqlite3.Connection:
        if not self._finalizer.alive:
            raise SQLConnectionError(f"Connection to {self._path} is closed")
        return self._raw

    @contextmanager
    def _run(self, statement: StatementLike, params: SQLParams) -> Iterator[sqlite3.Cursor]:
        text = statement_text(statement)
        values = check_parameters(params)
        raw = self._require_open()
        with closing(raw.cursor()) as cursor:
            self._steps.stepped = False
            try:
                cursor.execute(text, values)
            except ENGINE_ERRORS + (OverflowError, UnicodeEncodeError) as exc:
                raise self._classify(exc) from exc
            try:
                yield cursor
            except ENGINE_ERRORS as exc:
                raise SQLExecutionError.from_engine(exc) from exc

    def _classify(self, exc: BaseException) -> SQLError:
        if self._steps.stepped:
            return SQLExecutionError.from_engine(exc)
        if isinstance(exc, (OverflowError, UnicodeEncodeError)):
            return SQLBindingError.from_engine(exc, message=f"Error binding parameter: {exc}")
        message = str(exc)
        lowered = message.lower()
        if isinstance(exc, (sqlite3.ProgrammingError, sqlite3.InterfaceError)) and any(
            fragment in lowered for fragment in _BINDING_SUBSTRINGS
        ):
            if "incorrect number of bindings" in lowered:
                message = f"parameter count mismatch: {message}"
            return SQLBindingError.from_engine(exc, message=message)
        return SQLStatementError.from_engine(exc)

    def _rollback_after_failure(self, exc: BaseException) -> None:
        try:
            self.rollback()
        except SQLError as rollback_exc:
            exc.add_note(f"rollback after failure also failed: {rollback_exc.message}")
            _logger.warning(
                "sqlite_transaction_rollback_failed",
                path=self._path,
                error=rollback_exc.message,
                original_error=type(exc).__name__,
            )


def _open_raw(path: str | Path, options: ConnectionOptions) -> sqlite3.Connection:
    target, uri = _database_target(path, options.mode)
    try:
        return sqlite3.connect(
            target,
            timeout=options.busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
            uri=uri,
            cached_statements=128,
        )
    except ENGINE_ERRORS as exc:
        raise SQLConnectionError.from_engine(
            exc, message=f"Unable to open database at: {path} ({exc})"
        ) from exc


def _database_target(path: str | Path, mode: OpenMode) -> tuple[str, bool]:
    # ":memory:" and "" are private databases that only plain filenames can name.
    if str(path) in (MEMORY_PATH, TEMPORARY_PATH):
        return str(path), False
    if mode is OpenMode.MEMORY:
        return f"file:{Path(path).name}?mode=memory", True
    resolved = Path(path).expanduser().resolve()
    return f"{resolved.as_uri()}?mode={mode.value}", True


def _column_names(cursor: sqlite3.Cursor) -> tuple[str, ...]:
    description = cursor.description or ()
    return tuple(str(column[0]) for column in description)


__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "JOURNAL_MODES",
    "MEMORY_PATH",
    "TEMPORARY_PATH",
    "Connection",
    "ConnectionOptions",
    "OpenMode",
]
