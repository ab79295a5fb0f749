"""Semantic column types reported by Redash and their value coercion rules.

Redash tags every result column with a loose type name. Cells arrive as raw
JSON values whose shape does not always match the tag (numbers as text,
booleans as ``"true"``), so coercion runs lazily when a value is read rather
than when the result is materialized.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from redash_dal.errors import ConversionError


class SemanticType(str, Enum):
    """Fixed set of column type categories used for coercion."""

    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    DATE = "date"
    DATETIME = "datetime"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "SemanticType":
        """Map a Redash column type tag to a semantic type (default string)."""
        if not tag:
            return cls.STRING
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return cls.STRING

    @property
    def python_type(self) -> type:
        """Return the Python type values of this column read back as."""
        return _PYTHON_TYPES[self]

    @property
    def display_size(self) -> int:
        """Return a reasonable display width for values of this type."""
        return _DISPLAY_SIZES[self]

    @property
    def is_signed(self) -> bool:
        """Return True for numeric types."""
        return self in (SemanticType.INTEGER, SemanticType.FLOAT)


_PYTHON_TYPES = {
    SemanticType.INTEGER: int,
    SemanticType.FLOAT: float,
    SemanticType.BOOLEAN: bool,
    SemanticType.STRING: str,
    SemanticType.DATE: dt.date,
    SemanticType.DATETIME: dt.datetime,
}

_DISPLAY_SIZES = {
    SemanticType.INTEGER: 11,
    SemanticType.FLOAT: 24,
    SemanticType.BOOLEAN: 5,
    SemanticType.STRING: 50,
    SemanticType.DATE: 10,
    SemanticType.DATETIME: 26,
}

_TRUE_TEXT = {"true", "1", "yes", "t", "y"}
_FALSE_TEXT = {"false", "0", "no", "f", "n"}


def coerce_value(value: Any, semantic_type: SemanticType) -> Any:
    """Apply the column's coercion rule to a raw JSON cell value.

    ``None`` passes through for every type. Dates and datetimes stay text here;
    calendar parsing happens in the typed accessors.
    """
    if value is None:
        return None
    if semantic_type == SemanticType.INTEGER:
        return to_int(value)
    if semantic_type == SemanticType.FLOAT:
        return to_float(value)
    if semantic_type == SemanticType.BOOLEAN:
        return to_bool(value)
    return to_text(value)


def to_text(value: Any) -> str:
    """Render a raw value as text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_int(value: Any) -> int:
    """Parse a raw value as a whole number."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ConversionError(f"Cannot convert value to integer: {value!r}")
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        raise ConversionError(f"Cannot convert value to integer: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ConversionError(f"Cannot convert value to integer: {value!r}") from None
        if number.is_finite() and number == number.to_integral_value():
            return int(number)
    raise ConversionError(f"Cannot convert value to integer: {value!r}")


def to_float(value: Any) -> float:
    """Parse a raw value as a floating-point number."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ConversionError(f"Cannot convert value to float: {value!r}")


def to_decimal(value: Any) -> Decimal:
    """Parse a raw value as an exact decimal."""
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, (int, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            pass
    raise ConversionError(f"Cannot convert value to decimal: {value!r}")


def to_bool(value: Any) -> bool:
    """Parse a raw value as a boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    raise ConversionError(f"Cannot convert value to boolean: {value!r}")


def to_datetime(value: Any) -> dt.datetime:
    """Parse an ISO-8601 text value (``T`` or space separated) as a datetime."""
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return dt.datetime.fromisoformat(text)
        except ValueError:
            pass
    raise ConversionError(f"Cannot convert value to datetime: {value!r}")


def to_date(value: Any) -> dt.date:
    """Parse a text value as a calendar date.

    Datetime text is accepted and truncated to its date part.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return dt.date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return to_datetime(text).date()
        except ConversionError:
            pass
    raise ConversionError(f"Cannot convert value to date: {value!r}")


def to_time(value: Any) -> dt.time:
    """Parse a text value as a time of day (datetime text keeps its time part)."""
    if isinstance(value, dt.time):
        return value
    if isinstance(value, dt.datetime):
        return value.timetz()
    if isinstance(value, str):
        text = value.strip()
        try:
            return dt.time.fromisoformat(text)
        except ValueError:
            pass
        try:
            return to_datetime(text).timetz()
        except ConversionError:
            pass
    raise ConversionError(f"Cannot convert value to time: {value!r}")
