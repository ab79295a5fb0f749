import logging
import time
from typing import Optional

from redash_dal.client import RedashApiClient
from redash_dal.commands import (
    Command,
    ExecuteAdHoc,
    ExecuteById,
    Explain,
    ListDataSources,
    ListQueries,
    RawParams,
    classify,
)
from redash_dal.cursor import ResultCursor
from redash_dal.errors import IllegalStateError, RemoteError
from redash_dal.models import DataSource
from redash_dal.query_result import QueryResult

logger = logging.getLogger(__name__)

DATABASE_COLUMN = "Database"
TABLES_COLUMN = "Tables_in_redash"
EXPLAIN_DESCRIPTION = "EXPLAIN query created via redash_dal"
AD_HOC_DESCRIPTION = "Query created via redash_dal"


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class RedashStatement:
    """Run query text through a client and hand back a ResultCursor.

    A statement keeps at most one open cursor; executing again closes the
    previous one first.
    """

    def __init__(self, client: RedashApiClient) -> None:
        self._client = client
        self._cursor: Optional[ResultCursor] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def current_cursor(self) -> Optional[ResultCursor]:
        """Return the cursor produced by the last ``execute``."""
        return self._cursor

    def execute(self, text: str, params: RawParams = None) -> ResultCursor:
        """Classify ``text``, run it, and return a cursor over the result."""
        if self._closed:
            raise IllegalStateError("Statement is closed.")
        self._close_cursor()

        command = classify(text, params)
        logger.debug("Executing %s command", type(command).__name__)
        self._cursor = ResultCursor(self._run(command))
        return self._cursor

    def close(self) -> None:
        """Close the statement and its current cursor; safe to call twice."""
        if self._closed:
            return
        self._close_cursor()
        self._closed = True

    def __enter__(self) -> "RedashStatement":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _run(self, command: Command) -> QueryResult:
        if isinstance(command, ListDataSources):
            names = [source.name for source in self._data_sources()]
            return QueryResult.from_records(DATABASE_COLUMN, names)
        if isinstance(command, ListQueries):
            queries = self._client.list_queries()
            if not queries:
                raise RemoteError("No queries available", operation="list_queries")
            return QueryResult.from_records(TABLES_COLUMN, [query.name for query in queries])
        if isinstance(command, Explain):
            source = self._first_data_source()
            query_id = self._client.create_named_query(
                f"EXPLAIN Query {_timestamp_ms()}",
                EXPLAIN_DESCRIPTION,
                source.id,
                f"EXPLAIN {command.text}",
            )
            return self._client.execute_by_id(query_id)
        if isinstance(command, ExecuteById):
            return self._client.execute_by_id(command.query_id, command.params)
        if isinstance(command, ExecuteAdHoc):
            source = self._first_data_source()
            return self._client.execute_ad_hoc(
                source.id,
                command.text,
                command.params,
                name=f"Query {_timestamp_ms()}",
                description=AD_HOC_DESCRIPTION,
            )
        raise IllegalStateError(f"Unhandled command: {command!r}")

    def _data_sources(self) -> list:
        sources = self._client.list_data_sources()
        if not sources:
            raise RemoteError("No data sources available", operation="list_data_sources")
        return sources

    def _first_data_source(self) -> DataSource:
        return self._data_sources()[0]

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
