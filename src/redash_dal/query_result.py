from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from redash_dal.errors import ColumnNotFoundError, RemoteError
from redash_dal.semantic_types import SemanticType

Row = Dict[str, Any]
ColumnMeta = Dict[str, Any]


@dataclass(frozen=True)
class Column:
    """A named, typed column of a Redash query result."""

    name: str
    type_tag: Optional[str] = None

    @property
    def semantic_type(self) -> SemanticType:
        """Return the semantic type derived from the Redash type tag."""
        return SemanticType.from_tag(self.type_tag)


@dataclass
class QueryResult:
    """Container for materialized rows with their column list."""

    columns: List[Column]
    rows: List[Row] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        """Return the number of rows."""
        return len(self.rows)

    @property
    def column_count(self) -> int:
        """Return the number of columns."""
        return len(self.columns)

    @property
    def column_names(self) -> List[str]:
        """Return column names in result order."""
        return [column.name for column in self.columns]

    def column(self, name: str) -> Column:
        """Return the column with ``name``."""
        for column in self.columns:
            if column.name == name:
                return column
        raise ColumnNotFoundError(f"Column not found: {name}")

    def column_index(self, name: str) -> int:
        """Return the 0-based index of ``name``."""
        for index, column in enumerate(self.columns):
            if column.name == name:
                return index
        raise ColumnNotFoundError(f"Column not found: {name}")

    @classmethod
    def from_records(
        cls, column_name: str, values: Sequence[Any], type_tag: str = "string"
    ) -> "QueryResult":
        """Build a one-column result from plain values."""
        return cls(
            columns=[Column(column_name, type_tag)],
            rows=[{column_name: value} for value in values],
        )


def build_column_meta(column: Column) -> ColumnMeta:
    """Return a normalized column metadata payload."""
    semantic_type = column.semantic_type
    return {
        "name": column.name,
        "type": semantic_type.value,
        "db_type": column.type_tag,
        "python_type": semantic_type.python_type,
        "nullable": True,
        "signed": semantic_type.is_signed,
        "display_size": semantic_type.display_size,
    }


def parse_query_result(payload: Mapping[str, Any]) -> QueryResult:
    """Materialize ``{"query_result": {"data": {columns, rows}}}`` into a QueryResult.

    Cells are kept as raw JSON values; keys absent from a row become ``None``.
    """
    query_result = payload.get("query_result") if isinstance(payload, Mapping) else None
    if not isinstance(query_result, Mapping):
        raise RemoteError("No query results found in response")
    data = query_result.get("data")
    if not isinstance(data, Mapping):
        raise RemoteError("No data found in query results")
    raw_columns = data.get("columns")
    raw_rows = data.get("rows")
    if not isinstance(raw_columns, list) or not isinstance(raw_rows, list):
        raise RemoteError("Invalid query results format")

    columns = [
        Column(str(col.get("name")), col.get("type"))
        for col in raw_columns
        if isinstance(col, Mapping)
    ]
    rows: List[Row] = []
    for raw_row in raw_rows:
        source = raw_row if isinstance(raw_row, Mapping) else {}
        rows.append({column.name: source.get(column.name) for column in columns})
    return QueryResult(columns=columns, rows=rows)
