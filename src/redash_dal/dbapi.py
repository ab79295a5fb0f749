"""PEP 249 style facade over RedashStatement.

Only the read path is implemented. Calls from the wider tabular-access
surface that make no sense for a read-only, forward-only driver raise
UnsupportedOperationError through a single ``__getattr__`` hook.
"""

import logging
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import httpx

from redash_dal.client import ConnectionTestResult, RedashApiClient
from redash_dal.commands import RawParams
from redash_dal.config import DEFAULT_PORT, RedashConfig
from redash_dal.cursor import ResultCursor, UnsupportedOperationsMixin
from redash_dal.errors import IllegalStateError, RedashError, UnsupportedOperationError
from redash_dal.statement import RedashStatement

logger = logging.getLogger(__name__)

apilevel = "2.0"
threadsafety = 1
paramstyle = "named"

Error = RedashError
NotSupportedError = UnsupportedOperationError

Description = Tuple[str, str, int, None, None, None, bool]

UNSUPPORTED_CONNECTION_OPERATIONS = frozenset(
    {
        "set_autocommit",
        "set_read_only",
        "set_catalog",
        "set_schema",
        "set_transaction_isolation",
        "set_savepoint",
        "release_savepoint",
        "prepare_call",
        "create_blob",
        "create_clob",
        "tpc_begin",
        "tpc_prepare",
        "tpc_commit",
        "tpc_rollback",
        "tpc_recover",
        "abort",
    }
)

UNSUPPORTED_STATEMENT_OPERATIONS = frozenset(
    {
        "add_batch",
        "clear_batch",
        "execute_batch",
        "execute_update",
        "get_generated_keys",
        "set_cursor_name",
        "set_fetch_direction",
        "set_max_field_size",
        "set_max_rows",
        "set_query_timeout",
        "set_escape_processing",
        "set_poolable",
        "cancel",
    }
)


class Cursor(UnsupportedOperationsMixin):
    """DB-API cursor returning rows as tuples in column order."""

    _unsupported_operations = UNSUPPORTED_STATEMENT_OPERATIONS

    def __init__(self, connection: "Connection") -> None:
        self._connection = connection
        self._statement = RedashStatement(connection.client)
        self._result: Optional[ResultCursor] = None
        self.arraysize = 1

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def closed(self) -> bool:
        return self._statement.closed

    @property
    def description(self) -> Optional[List[Description]]:
        """Return one 7-tuple per result column, or None before execute."""
        if self._result is None or self._result.closed:
            return None
        return [
            (
                meta["name"],
                meta["type"],
                meta["display_size"],
                None,
                None,
                None,
                meta["nullable"],
            )
            for meta in self._result.column_metadata()
        ]

    @property
    def rowcount(self) -> int:
        """Return the number of rows in the current result, or -1."""
        if self._result is None or self._result.closed:
            return -1
        return self._result.row_count

    def execute(self, operation: str, parameters: RawParams = None) -> "Cursor":
        """Run ``operation`` and make its rows available to the fetch methods."""
        self._check_usable()
        self._result = self._statement.execute(operation, parameters)
        return self

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        result = self._require_result()
        if not result.advance():
            return None
        return tuple(result.current_row().values())

    def fetchmany(self, size: Optional[int] = None) -> List[Tuple[Any, ...]]:
        limit = self.arraysize if size is None else size
        rows: List[Tuple[Any, ...]] = []
        while len(rows) < limit:
            row = self.fetchone()
            if row is None:
                break
            rows.append(row)
        return rows

    def fetchall(self) -> List[Tuple[Any, ...]]:
        rows: List[Tuple[Any, ...]] = []
        row = self.fetchone()
        while row is not None:
            rows.append(row)
            row = self.fetchone()
        return rows

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        row = self.fetchone()
        while row is not None:
            yield row
            row = self.fetchone()

    def setinputsizes(self, sizes: Sequence[Any]) -> None:
        """Accepted for compatibility; sizes are ignored."""

    def setoutputsize(self, size: int, column: Optional[int] = None) -> None:
        """Accepted for compatibility; sizes are ignored."""

    def executemany(self, operation: str, seq_of_parameters: Sequence[RawParams]) -> None:
        raise UnsupportedOperationError("executemany")

    def callproc(self, procname: str, parameters: Sequence[Any] = ()) -> None:
        raise UnsupportedOperationError("callproc")

    def nextset(self) -> None:
        raise UnsupportedOperationError("nextset")

    def scroll(self, value: int, mode: str = "relative") -> None:
        raise UnsupportedOperationError("scroll")

    def close(self) -> None:
        """Close the cursor and its result; safe to call more than once."""
        self._statement.close()
        self._result = None
        self._connection._forget(self)

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _check_usable(self) -> None:
        if self._statement.closed:
            raise IllegalStateError("Cursor is closed.")
        if self._connection.closed:
            raise IllegalStateError("Connection is closed.")

    def _require_result(self) -> ResultCursor:
        if self._statement.closed:
            raise IllegalStateError("Cursor is closed.")
        if self._result is None:
            raise IllegalStateError("No result available; call execute() first.")
        return self._result


class Connection(UnsupportedOperationsMixin):
    """A logical connection to one Redash server."""

    _unsupported_operations = UNSUPPORTED_CONNECTION_OPERATIONS

    def __init__(self, client: RedashApiClient) -> None:
        self._client = client
        self._cursors: List[Cursor] = []
        self._closed = False

    @property
    def client(self) -> RedashApiClient:
        return self._client

    @property
    def closed(self) -> bool:
        return self._closed

    def cursor(self) -> Cursor:
        """Return a new cursor bound to this connection."""
        if self._closed:
            raise IllegalStateError("Connection is closed.")
        cursor = Cursor(self)
        self._cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        """Nothing is ever written, so there is nothing to commit."""

    def rollback(self) -> None:
        raise UnsupportedOperationError("rollback")

    def test_connection(self, timeout: Optional[float] = None) -> ConnectionTestResult:
        """Probe the data source listing endpoint once."""
        if self._closed:
            raise IllegalStateError("Connection is closed.")
        return self._client.test_connection(timeout=timeout)

    def close(self) -> None:
        """Close open cursors and the HTTP client; safe to call twice."""
        if self._closed:
            return
        for cursor in list(self._cursors):
            cursor.close()
        self._cursors.clear()
        self._client.close()
        self._closed = True
        logger.debug("Closed Redash connection to %s:%s", self._client.host, self._client.port)

    def _forget(self, cursor: Cursor) -> None:
        if cursor in self._cursors:
            self._cursors.remove(cursor)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def connect(
    url: Optional[str] = None,
    *,
    api_key: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    config: Optional[RedashConfig] = None,
    http_client: Optional[httpx.Client] = None,
) -> Connection:
    """Open a Connection.

    The target comes from, in order: ``config``, ``url``, ``host``/``port``,
    and finally the ``REDASH_*`` environment variables.
    """
    if config is None:
        if url is not None:
            config = RedashConfig.from_url(url, api_key=api_key)
        elif host is not None:
            config = RedashConfig(
                host=host,
                api_key=api_key or "",
                port=DEFAULT_PORT if port is None else port,
            )
        else:
            config = RedashConfig.from_env()
    logger.debug("Opening Redash connection to %s:%s", config.host, config.port)
    return Connection(RedashApiClient(config, http_client=http_client))
