"""Unit tests for result rows and typed accessors."""

from __future__ import annotations

import pytest

from sqlift.errors import UnsupportedColumnTypeError
from sqlift.row import Row
from sqlift.values import ValueKind


def _row() -> Row:
    return Row.from_engine(
        ("id", "name", "score", "payload", "flag", "missing"),
        (7, "seven", 7.5, b"\x07", 0, None),
    )


def test_typed_accessors_require_matching_kind() -> None:
    row = _row()

    assert row.get_integer("id") == 7
    assert row.get_text("name") == "seven"
    assert row.get_real("score") == 7.5
    assert row.get_blob("payload") == b"\x07"

    assert row.get_text("id") is None
    assert row.get_integer("name") is None
    assert row.get_integer("score") is None
    assert row.get_real("id") is None
    assert row.get_blob("name") is None


def test_missing_column_and_null_yield_none() -> None:
    row = _row()

    assert row.get_text("nope") is None
    assert row.get_integer("missing") is None
    assert row.kind("nope") is None
    assert row.kind("missing") is ValueKind.NULL
    assert "missing" in row
    assert row["missing"] is None


def test_bool_accessor_reads_integers_by_nonzero_test() -> None:
    row = Row.from_engine(("zero", "five", "negative", "text"), (0, 5, -1, "1"))

    assert row.get_bool("zero") is False
    assert row.get_bool("five") is True
    assert row.get_bool("negative") is True
    assert row.get_bool("text") is None
    assert row.get_bool("absent") is None


def test_row_is_an_immutable_mapping() -> None:
    row = _row()

    assert row.columns == frozenset({"id", "name", "score", "payload", "flag", "missing"})
    assert len(row) == 6
    assert dict(row)["name"] == "seven"
    assert row == Row(
        {"id": 7, "name": "seven", "score": 7.5, "payload": b"\x07", "flag": 0, "missing": None}
    )
    with pytest.raises(TypeError):
        row["id"] = 8  # type: ignore[index]


def test_duplicate_column_names_keep_last_value() -> None:
    row = Row.from_engine(("v", "v"), (1, 2))

    assert row.get_integer("v") == 2
    assert len(row) == 1


def test_repr_is_sorted_by_column() -> None:
    row = Row.from_engine(("b", "a"), (2, "x"))

    assert repr(row) == "Row(a='x', b=2)"


@pytest.mark.parametrize("value", [True, bytearray(b"x"), 1 + 2j, object()])
def test_unsupported_engine_values_abort(value: object) -> None:
    with pytest.raises(UnsupportedColumnTypeError) as excinfo:
        Row.from_engine(("c",), (value,))

    assert excinfo.value.column == "c"
    assert excinfo.value.value_type is type(value)
    assert not isinstance(excinfo.value, Exception)


def test_mismatched_engine_tuple_length_is_rejected() -> None:
    with pytest.raises(ValueError):
        Row.from_engine(("a", "b"), (1,))
