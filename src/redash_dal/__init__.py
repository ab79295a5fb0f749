"""Read-only Redash query execution and result access.

This package exposes the execution client, the forward-only result cursor and
a small DB-API style connection facade.
"""

from redash_dal.client import ConnectionTestResult, RedashApiClient
from redash_dal.config import RedashConfig
from redash_dal.cursor import ResultCursor
from redash_dal.dbapi import Connection, Cursor, connect
from redash_dal.errors import (
    AuthenticationError,
    ColumnNotFoundError,
    ConfigurationError,
    ConversionError,
    ErrorCategory,
    IllegalStateError,
    QuerySyntaxError,
    QueryTimeoutError,
    RedashError,
    RemoteError,
    TransportError,
    UnsupportedOperationError,
)
from redash_dal.query_result import Column, QueryResult
from redash_dal.semantic_types import SemanticType
from redash_dal.statement import RedashStatement

__all__ = [
    "AuthenticationError",
    "Column",
    "ColumnNotFoundError",
    "ConfigurationError",
    "Connection",
    "ConnectionTestResult",
    "ConversionError",
    "Cursor",
    "ErrorCategory",
    "IllegalStateError",
    "QueryResult",
    "QuerySyntaxError",
    "QueryTimeoutError",
    "RedashApiClient",
    "RedashConfig",
    "RedashError",
    "RedashStatement",
    "RemoteError",
    "ResultCursor",
    "SemanticType",
    "TransportError",
    "UnsupportedOperationError",
    "connect",
]
