"""Error taxonomy for statement execution and schema migrations."""

from __future__ import annotations

import sqlite3
from typing import Self


class SQLError(RuntimeError):
    """Base class for every recoverable database error raised by sqlift.

    ``message`` carries the engine diagnostic where one exists. ``code`` and
    ``code_name`` mirror ``sqlite3.Error.sqlite_errorcode`` /
    ``sqlite_errorname`` when the failure originated in the engine.
    """

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        code_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.code_name = code_name

    @classmethod
    def from_engine(cls, exc: BaseException, *, message: str | None = None) -> Self:
        code = getattr(exc, "sqlite_errorcode", None)
        code_name = getattr(exc, "sqlite_errorname", None)
        return cls(
            message if message is not None else (str(exc) or "Unknown failure reason"),
            code=code if isinstance(code, int) else None,
            code_name=code_name if isinstance(code_name, str) else None,
        )


class SQLConnectionError(SQLError):
    """Raised when the database cannot be opened or the connection is closed."""


class SQLStatementError(SQLError):
    """Raised when statement text cannot be prepared."""


class SQLBindingError(SQLError):
    """Raised on parameter count mismatch or a rejected parameter value."""


class SQLExecutionError(SQLError):
    """Raised when stepping a prepared statement fails."""


class SQLMigrationError(SQLError):
    """Raised when the persisted schema version exceeds the supplied migrations."""


class UnsupportedColumnTypeError(BaseException):
    """The engine produced a value outside the supported kinds.

    Not a recoverable error: it derives from ``BaseException`` so ordinary
    ``except Exception`` handlers do not absorb it. An open transaction is
    still rolled back on the way out.
    """

    def __init__(self, column: str, value_type: type) -> None:
        super().__init__(
            f"Encountered unsupported SQLite column type for {column!r}: {value_type.__name__}"
        )
        self.column = column
        self.value_type = value_type


ENGINE_ERRORS: tuple[type[BaseException], ...] = (sqlite3.Error, sqlite3.Warning)


__all__ = [
    "ENGINE_ERRORS",
    "SQLBindingError",
    "SQLConnectionError",
    "SQLError",
    "SQLExecutionError",
    "SQLMigrationError",
    "SQLStatementError",
    "UnsupportedColumnTypeError",
]
