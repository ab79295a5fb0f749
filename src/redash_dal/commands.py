"""Classify caller query text into the small set of supported commands.

Accepted shapes (keywords are case-insensitive, surrounding whitespace ignored):

- ``SHOW DATABASES`` lists Redash data sources.
- ``SHOW TABLES`` lists saved Redash queries.
- ``EXPLAIN <text>`` runs ``EXPLAIN <text>`` against the first data source.
- ``SELECT ... FROM query_<id> ...`` runs the saved query ``<id>``.
- any other ``SELECT ...`` runs the text as an ad-hoc query.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from redash_dal.errors import QuerySyntaxError

Params = Dict[str, Any]
RawParams = Optional[Union[Mapping[str, Any], Sequence[Any]]]

_EXPLAIN_KEYWORD = "EXPLAIN"
_SELECT_KEYWORD = "SELECT"
_SHOW_DATABASES = "SHOW DATABASES"
_SHOW_TABLES = "SHOW TABLES"
_QUERY_ID_RE = re.compile(r"FROM\s+query_(\d+)\b", flags=re.IGNORECASE)


@dataclass(frozen=True)
class ListDataSources:
    """``SHOW DATABASES``."""


@dataclass(frozen=True)
class ListQueries:
    """``SHOW TABLES``."""


@dataclass(frozen=True)
class Explain:
    """``EXPLAIN <text>``; ``text`` excludes the keyword."""

    text: str


@dataclass(frozen=True)
class ExecuteById:
    """Run an existing saved query referenced as ``query_<id>``."""

    query_id: str
    params: Params = field(default_factory=dict)


@dataclass(frozen=True)
class ExecuteAdHoc:
    """Run the caller's SELECT text as a new named query."""

    text: str
    params: Params = field(default_factory=dict)


Command = Union[ListDataSources, ListQueries, Explain, ExecuteById, ExecuteAdHoc]


def normalize_params(params: RawParams) -> Params:
    """Return named parameters; positional values become ``p1..pN``."""
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return {str(key): value for key, value in params.items()}
    if isinstance(params, (str, bytes)):
        raise QuerySyntaxError("Query parameters must be a mapping or a sequence of values.")
    return {f"p{index}": value for index, value in enumerate(params, start=1)}


def find_query_id(text: str) -> Optional[str]:
    """Return the saved-query id referenced as ``FROM query_<digits>``, if any."""
    match = _QUERY_ID_RE.search(text)
    return match.group(1) if match else None


def classify(text: str, params: RawParams = None) -> Command:
    """Turn raw query text into a Command, rejecting unsupported text.

    The case-folded text is used only for keyword matching; the original text
    is kept for execution.
    """
    if not isinstance(text, str):
        raise QuerySyntaxError("Query text must be a string.")
    stripped = text.strip()
    keyword_view = stripped.upper()

    if keyword_view == _SHOW_DATABASES:
        return ListDataSources()
    if keyword_view == _SHOW_TABLES:
        return ListQueries()
    if keyword_view.startswith(_EXPLAIN_KEYWORD):
        return Explain(stripped[len(_EXPLAIN_KEYWORD) :].strip())
    if not keyword_view.startswith(_SELECT_KEYWORD):
        raise QuerySyntaxError(
            "Only SHOW DATABASES, SHOW TABLES, EXPLAIN, and SELECT are supported"
        )

    named_params = normalize_params(params)
    query_id = find_query_id(text)
    if query_id is not None:
        return ExecuteById(query_id, named_params)
    return ExecuteAdHoc(text, named_params)
