"""Forward-only, read-only cursor over a materialized Redash result."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union

from redash_dal.errors import ColumnNotFoundError, IllegalStateError, UnsupportedOperationError
from redash_dal.query_result import Column, ColumnMeta, QueryResult, Row, build_column_meta
from redash_dal.semantic_types import (
    coerce_value,
    to_bool,
    to_date,
    to_datetime,
    to_decimal,
    to_float,
    to_int,
    to_text,
    to_time,
)

T = TypeVar("T")
ColumnRef = Union[str, int]

# Mutating and scrolling operations a full tabular-access surface would
# expose; all of them are rejected uniformly.
UNSUPPORTED_CURSOR_OPERATIONS = frozenset(
    {
        "update_value",
        "update_null",
        "update_row",
        "insert_row",
        "delete_row",
        "refresh_row",
        "cancel_row_updates",
        "move_to_insert_row",
        "move_to_current_row",
        "previous",
        "first",
        "last",
        "absolute",
        "relative",
        "before_first",
        "after_last",
    }
)


class UnsupportedOperationsMixin:
    """Route every name in ``_unsupported_operations`` to UnsupportedOperationError."""

    _unsupported_operations: frozenset = frozenset()

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name in type(self)._unsupported_operations:

            def _reject(*args: Any, **kwargs: Any) -> Any:
                raise UnsupportedOperationError(name)

            return _reject
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")


class ResultCursor(UnsupportedOperationsMixin):
    """Iterate a QueryResult one row at a time with typed column accessors.

    The cursor starts before the first row. ``advance()`` moves forward and
    reports whether a row is available; once exhausted it stays exhausted.
    Columns are addressed by name or by 1-based index.
    """

    _unsupported_operations = UNSUPPORTED_CURSOR_OPERATIONS

    def __init__(self, result: QueryResult) -> None:
        """Take ownership of a materialized result."""
        self._result = result
        self._position = -1
        self._closed = False
        self._was_null = False

    @property
    def columns(self) -> List[Column]:
        """Return the result columns."""
        return list(self._result.columns)

    @property
    def row_count(self) -> int:
        """Return the number of rows in the result."""
        return self._result.row_count

    @property
    def row_number(self) -> int:
        """Return the 1-based current row number, or 0 when not on a row."""
        return self._position + 1 if self._on_row() else 0

    @property
    def closed(self) -> bool:
        """Return True once ``close()`` was called."""
        return self._closed

    @property
    def is_before_first(self) -> bool:
        """Return True before the first ``advance()``."""
        return not self._closed and self._position < 0

    @property
    def is_exhausted(self) -> bool:
        """Return True once advanced past the last row or closed."""
        return self._closed or self._position >= self._result.row_count

    def advance(self) -> bool:
        """Move to the next row; return False once the rows are used up."""
        if self.is_exhausted:
            return False
        self._position += 1
        return self._position < self._result.row_count

    def close(self) -> None:
        """Release the result; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._position = self._result.row_count
        self._result = QueryResult(columns=self._result.columns, rows=[])

    def __enter__(self) -> "ResultCursor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __iter__(self) -> Iterator[Row]:
        while self.advance():
            yield self.current_row()

    def was_null(self) -> bool:
        """Return True when the most recently read cell was null."""
        return self._was_null

    def find_column(self, name: str) -> int:
        """Return the 1-based index of column ``name``."""
        self._check_open()
        return self._result.column_index(name) + 1

    def column_metadata(self) -> List[ColumnMeta]:
        """Return normalized metadata for each column."""
        self._check_open()
        return [build_column_meta(column) for column in self._result.columns]

    def current_row(self) -> Dict[str, Any]:
        """Return the current row with each value coerced to its column type."""
        row = self._current()
        return {
            column.name: coerce_value(row.get(column.name), column.semantic_type)
            for column in self._result.columns
        }

    def get_value(self, column: ColumnRef) -> Any:
        """Return the cell coerced by its column's semantic type."""
        target = self._resolve(column)
        raw = self._read(target)
        return None if raw is None else coerce_value(raw, target.semantic_type)

    def get_str(self, column: ColumnRef) -> Optional[str]:
        """Return the cell as text."""
        return self._typed(column, to_text)

    def get_int(self, column: ColumnRef) -> Optional[int]:
        """Return the cell as an integer."""
        return self._typed(column, to_int)

    def get_float(self, column: ColumnRef) -> Optional[float]:
        """Return the cell as a float."""
        return self._typed(column, to_float)

    def get_decimal(self, column: ColumnRef, scale: Optional[int] = None) -> Optional[Decimal]:
        """Return the cell as a Decimal, optionally quantized to ``scale`` places."""
        value = self._typed(column, to_decimal)
        if value is None or scale is None:
            return value
        return value.quantize(Decimal(1).scaleb(-scale))

    def get_bool(self, column: ColumnRef) -> Optional[bool]:
        """Return the cell as a boolean."""
        return self._typed(column, to_bool)

    def get_date(self, column: ColumnRef) -> Optional[dt.date]:
        """Return the cell parsed as a calendar date."""
        return self._typed(column, to_date)

    def get_datetime(self, column: ColumnRef) -> Optional[dt.datetime]:
        """Return the cell parsed as a datetime."""
        return self._typed(column, to_datetime)

    def get_time(self, column: ColumnRef) -> Optional[dt.time]:
        """Return the cell parsed as a time of day."""
        return self._typed(column, to_time)

    def _typed(self, column: ColumnRef, convert: Callable[[Any], T]) -> Optional[T]:
        raw = self._read(self._resolve(column))
        return None if raw is None else convert(raw)

    def _read(self, column: Column) -> Any:
        raw = self._current().get(column.name)
        self._was_null = raw is None
        return raw

    def _resolve(self, column: ColumnRef) -> Column:
        self._check_open()
        if isinstance(column, bool):
            raise ColumnNotFoundError(f"Invalid column reference: {column!r}")
        if isinstance(column, int):
            if not 1 <= column <= self._result.column_count:
                raise ColumnNotFoundError(f"Column index out of range: {column}")
            return self._result.columns[column - 1]
        return self._result.column(column)

    def _current(self) -> Row:
        self._check_open()
        if self._position < 0:
            raise IllegalStateError("Cursor is before the first row; call advance() first.")
        if not self._on_row():
            raise IllegalStateError("Cursor is past the last row.")
        return self._result.rows[self._position]

    def _on_row(self) -> bool:
        return 0 <= self._position < self._result.row_count

    def _check_open(self) -> None:
        if self._closed:
            raise IllegalStateError("Cursor is closed.")
