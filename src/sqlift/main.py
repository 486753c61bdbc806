"""Console entrypoint: runs the CLI and maps failures to exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING, Final

from sqlift.cli import run_cli
from sqlift.config import ConfigLoadError, ConfigValidationError
from sqlift.errors import SQLError, SQLMigrationError
from sqlift.migrations import MigrationFileError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit codes of the ``sqlift`` command."""

    SUCCESS = 0
    MIGRATION_REJECTED = 1
    CONFIG_ERROR = 2
    DATABASE_ERROR = 3
    INTERNAL_ERROR = 4


# First match wins, so the more specific SQLError subclass comes first.
EXIT_CODE_ROUTES: Final[tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]] = (
    ((SQLMigrationError,), ExitCode.MIGRATION_REJECTED),
    ((ConfigLoadError, ConfigValidationError, MigrationFileError), ExitCode.CONFIG_ERROR),
    ((SQLError,), ExitCode.DATABASE_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run ``sqlift`` and return its exit code; never raises."""

    try:
        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - process boundary
        code = exit_code_for(exc)
        _report(exc, code)
        return int(code)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Exit code for ``exc``, looking through its explicit and implicit causes."""

    for link in _causes(exc):
        for types, code in EXIT_CODE_ROUTES:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


def _as_exit_code(code: object) -> int:
    if code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(code, int) and code in ExitCode._value2member_map_:
        return code
    if isinstance(code, str) and code.strip():
        print(code.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
        return
    lines = [f"error: {str(exc).strip() or type(exc).__name__}"]
    lines.extend(str(note) for note in getattr(exc, "__notes__", ()))
    print("\n".join(lines), file=sys.stderr)


__all__ = ["EXIT_CODE_ROUTES", "ExitCode", "cli_entrypoint", "exit_code_for"]
