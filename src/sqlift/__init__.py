"""sqlift: typed, injection-safe SQLite access with versioned schema migrations.

Importing the package has no side effects: no database is opened and no
logging handlers are installed.
"""

from sqlift.connection import (
    DEFAULT_BUSY_TIMEOUT_MS,
    MEMORY_PATH,
    Connection,
    ConnectionOptions,
    OpenMode,
)
from sqlift.errors import (
    SQLBindingError,
    SQLConnectionError,
    SQLError,
    SQLExecutionError,
    SQLMigrationError,
    SQLStatementError,
    UnsupportedColumnTypeError,
)
from sqlift.migrations import (
    Migration,
    MigrationFileError,
    MigrationLike,
    MigrationStep,
    apply_migrations,
    as_migration,
    load_migrations,
    pending_migrations,
    read_schema_version,
)
from sqlift.row import Row
from sqlift.values import SQLParam, SQLParams, SQLValue, Statement, StatementLike, ValueKind

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "MEMORY_PATH",
    "Connection",
    "ConnectionOptions",
    "Migration",
    "MigrationFileError",
    "MigrationLike",
    "MigrationStep",
    "OpenMode",
    "Row",
    "SQLBindingError",
    "SQLConnectionError",
    "SQLError",
    "SQLExecutionError",
    "SQLMigrationError",
    "SQLParam",
    "SQLParams",
    "SQLStatementError",
    "SQLValue",
    "Statement",
    "StatementLike",
    "UnsupportedColumnTypeError",
    "ValueKind",
    "__version__",
    "apply_migrations",
    "as_migration",
    "load_migrations",
    "pending_migrations",
    "read_schema_version",
]
