"""Materialized result rows with typed accessors."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType

from sqlift.errors import UnsupportedColumnTypeError
from sqlift.values import SQLValue, ValueKind, kind_of


class Row(Mapping[str, SQLValue]):
    """Single result row keyed by column name.

    Column order is not preserved. Typed accessors return ``None`` when the
    column is missing or holds a value of another kind; the only coercion is
    ``get_bool``, which reads an integer column by nonzero test.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, SQLValue]) -> None:
        self._values: Mapping[str, SQLValue] = MappingProxyType(dict(values))

    @classmethod
    def from_engine(cls, names: Sequence[str], values: Sequence[object]) -> Row:
        """Build a row from a raw engine tuple, enforcing the supported kinds."""

        decoded: dict[str, SQLValue] = {}
        for name, value in zip(names, values, strict=True):
            kind = kind_of(value)
            if kind is None or isinstance(value, (bool, bytearray, memoryview)):
                raise UnsupportedColumnTypeError(name, type(value))
            decoded[name] = value  # type: ignore[assignment]
        return cls(decoded)

    def __getitem__(self, column: str) -> SQLValue:
        return self._values[column]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in sorted(self._values.items()))
        return f"Row({fields})"

    @property
    def columns(self) -> frozenset[str]:
        return frozenset(self._values)

    def kind(self, column: str) -> ValueKind | None:
        """Return the stored value kind, or ``None`` for a missing column."""

        if column not in self._values:
            return None
        return kind_of(self._values[column])

    def get_text(self, column: str) -> str | None:
        value = self._values.get(column)
        return value if isinstance(value, str) else None

    def get_integer(self, column: str) -> int | None:
        value = self._values.get(column)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    def get_real(self, column: str) -> float | None:
        value = self._values.get(column)
        return value if isinstance(value, float) else None

    def get_blob(self, column: str) -> bytes | None:
        value = self._values.get(column)
        return value if isinstance(value, bytes) else None

    def get_bool(self, column: str) -> bool | None:
        integer = self.get_integer(column)
        if integer is None:
            return None
        return integer != 0


__all__ = ["Row"]
