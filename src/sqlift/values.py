"""Bindable values and trusted statement text."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final, LiteralString, TypeAlias

from sqlift.errors import SQLBindingError

SQLValue: TypeAlias = int | float | str | bytes | None
SQLParam: TypeAlias = int | float | str | bytes | bytearray | memoryview | bool | None
SQLParams: TypeAlias = Sequence[SQLParam]

INT64_MIN: Final[int] = -(2**63)
INT64_MAX: Final[int] = 2**63 - 1


class ValueKind(StrEnum):
    """Tag of a value exchanged with the engine."""

    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BLOB = "blob"
    NULL = "null"


@dataclass(frozen=True, slots=True)
class Statement:
    """Immutable SQL text built from a literal.

    Static type checkers only accept a ``LiteralString`` here, so statements
    cannot be assembled from runtime data. At runtime the text is treated as
    already trusted.
    """

    text: LiteralString

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError(f"statement text must be str, got {type(self.text).__name__}")

    def __str__(self) -> str:
        return self.text


StatementLike: TypeAlias = Statement | LiteralString


def statement_text(statement: StatementLike) -> str:
    if isinstance(statement, Statement):
        return statement.text
    if isinstance(statement, str):
        return statement
    raise TypeError(f"expected Statement or literal str, got {type(statement).__name__}")


def kind_of(value: object) -> ValueKind | None:
    """Return the value kind for ``value`` or ``None`` when it is not bindable."""

    if value is None:
        return ValueKind.NULL
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.REAL
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BLOB
    return None


def check_parameters(params: SQLParams) -> tuple[SQLParam, ...]:
    """Validate parameters against the closed set of bindable kinds.

    Positions in error messages are 1-based, matching placeholder numbering.
    The first rejected value aborts validation.
    """

    if isinstance(params, (str, bytes, bytearray, memoryview)):
        raise SQLBindingError(
            f"parameters must be a sequence of values, got a single {type(params).__name__}"
        )
    checked: list[SQLParam] = []
    for position, value in enumerate(params, start=1):
        if kind_of(value) is None:
            raise SQLBindingError(
                f"Error binding parameter {position}: type {type(value).__name__!r} is not supported"
            )
        if isinstance(value, int) and not INT64_MIN <= value <= INT64_MAX:
            raise SQLBindingError(
                f"Error binding parameter {position}: integer {value} does not fit in 64 bits"
            )
        if isinstance(value, str):
            try:
                value.encode("utf-8")
            except UnicodeEncodeError as exc:
                raise SQLBindingError(
                    f"Error binding parameter {position}: text is not valid UTF-8 ({exc.reason})"
                ) from exc
        checked.append(value)
    return tuple(checked)


__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "SQLParam",
    "SQLParams",
    "SQLValue",
    "Statement",
    "StatementLike",
    "ValueKind",
    "check_parameters",
    "kind_of",
    "statement_text",
]
