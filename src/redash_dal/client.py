import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from redash_dal.config import RedashConfig
from redash_dal.errors import (
    AuthenticationError,
    IllegalStateError,
    QueryTimeoutError,
    RemoteError,
    TransportError,
)
from redash_dal.models import DataSource, Job, JobStatus, QueryDefinition, QuerySummary
from redash_dal.query_result import QueryResult, parse_query_result
from redash_dal.tracing import trace_operation

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Any]]
JsonPayload = Union[Dict[str, Any], List[Any]]

AUTH_FAILURE_CODES = {401, 403}


@dataclass(frozen=True)
class ConnectionTestResult:
    """Result for a Redash test-connection probe."""

    ok: bool
    status: str
    status_code: Optional[int] = None
    message: Optional[str] = None


class RedashApiClient:
    """Synchronous client for the Redash submit/poll/fetch protocol.

    One client serves one logical connection and is not meant to be shared
    across threads. Every call blocks, including the job wait, which is
    bounded by ``max_poll_attempts * poll_interval_seconds``.
    """

    def __init__(
        self,
        config: RedashConfig,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the client from a validated config."""
        self._config = config
        self._poll_interval_seconds = config.poll_interval_seconds
        self._max_poll_attempts = config.max_poll_attempts
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(timeout=config.http_timeout_seconds)
        self._base_url = config.base_url
        self._headers = {"Authorization": f"Key {config.api_key}"}
        self._closed = False

    @classmethod
    def from_target(
        cls, host: str, api_key: str, port: int = 80, **kwargs: Any
    ) -> "RedashApiClient":
        """Build a client from host, port and API key."""
        return cls(RedashConfig(host=host, api_key=api_key, port=port), **kwargs)

    @property
    def config(self) -> RedashConfig:
        """Return the connection config."""
        return self._config

    @property
    def host(self) -> str:
        """Return the Redash host."""
        return self._config.host

    @property
    def port(self) -> int:
        """Return the Redash port."""
        return self._config.port

    def __enter__(self) -> "RedashApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client when owned (idempotent)."""
        if self._closed:
            return
        self._closed = True
        if self._owns_http_client:
            self._http.close()

    def test_connection(self, timeout: Optional[float] = None) -> ConnectionTestResult:
        """Probe the data-source listing endpoint once; never raises for remote failures."""
        if self._closed:
            return ConnectionTestResult(ok=False, status="error", message="Client is closed.")
        url = self._url("/data_sources")
        logger.info("Testing connection to Redash API at URL: %s", url)
        try:
            response = self._http.get(
                url,
                headers=self._headers,
                timeout=timeout if timeout is not None else self._config.http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("Error testing connection to Redash API: %s", exc)
            return ConnectionTestResult(ok=False, status="error", message=f"Connection error: {exc}")

        status_code = response.status_code
        logger.info("Received response with status code: %s", status_code)
        if status_code == 200:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, list):
                return ConnectionTestResult(ok=True, status="ok", status_code=status_code)
            return ConnectionTestResult(
                ok=False,
                status="error",
                status_code=status_code,
                message="Invalid response format from server",
            )
        if status_code in AUTH_FAILURE_CODES:
            return ConnectionTestResult(
                ok=False,
                status="auth_failed",
                status_code=status_code,
                message="Authentication failed - please check your API key",
            )
        return ConnectionTestResult(
            ok=False,
            status="error",
            status_code=status_code,
            message=f"Connection failed with status code {status_code}: {response.text}",
        )

    def list_data_sources(self) -> List[DataSource]:
        """Return the data sources visible to the API key, in service order."""
        payload = self._request("list_data_sources", "GET", "/data_sources")
        if not isinstance(payload, list):
            raise RemoteError(
                "Invalid data source listing format", operation="list_data_sources"
            )
        return [self._model(DataSource, item, "list_data_sources") for item in payload]

    def list_queries(self) -> List[QuerySummary]:
        """Return saved queries, in service order."""
        payload = self._request("list_queries", "GET", "/queries")
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise RemoteError("Invalid query listing format", operation="list_queries")
        return [self._model(QuerySummary, item, "list_queries") for item in results]

    def get_query(self, query_id: str) -> QueryDefinition:
        """Return the stored text and data source of a saved query."""
        payload = self._request("get_query", "GET", f"/queries/{query_id}", target_id=query_id)
        return self._model(QueryDefinition, payload, "get_query", target_id=query_id)

    def create_named_query(
        self, name: str, description: str, data_source_id: str, text: str
    ) -> str:
        """Persist a named query and return its id.

        Redash can only run persisted queries by id, so every ad-hoc execution
        leaves one of these behind; nothing here deletes them.
        """
        payload = self._request(
            "create_named_query",
            "POST",
            "/queries",
            json={
                "name": name,
                "description": description,
                "data_source_id": data_source_id,
                "query": text,
            },
            target_id=data_source_id,
        )
        query_id = payload.get("id") if isinstance(payload, dict) else None
        if query_id is None:
            raise RemoteError(
                "Created query response did not include an id",
                operation="create_named_query",
                target_id=data_source_id,
            )
        logger.debug("Created named query %s (%s)", query_id, name)
        return str(query_id)

    def execute_by_id(self, query_id: str, params: Params = None) -> QueryResult:
        """Run a saved query by id and return its materialized result."""
        started_at = time.monotonic()
        definition = self.get_query(query_id)
        logger.debug(
            "Executing query %s: [length: %s chars] against data source: %s",
            query_id,
            len(definition.query),
            definition.data_source_id,
        )
        result = trace_operation(
            "redash.query.execute",
            operation=lambda: self.execute_query(
                definition.data_source_id, definition.query, params
            ),
            sql=definition.query,
            target_id=query_id,
        )
        logger.debug(
            "Total execute_by_id operation took %.3fs", time.monotonic() - started_at
        )
        return result

    def execute_ad_hoc(
        self,
        data_source_id: str,
        text: str,
        params: Params = None,
        name: Optional[str] = None,
        description: str = "Query created via redash_dal",
    ) -> QueryResult:
        """Persist ``text`` as a new named query, then run it by id."""
        query_name = name or f"Query {int(time.time() * 1000)}"
        query_id = self.create_named_query(query_name, description, data_source_id, text)
        return self.execute_by_id(query_id, params)

    def execute_query(self, data_source_id: str, text: str, params: Params = None) -> QueryResult:
        """Submit text against a data source; wait on the job when one is returned."""
        started_at = time.monotonic()
        body: Dict[str, Any] = {"data_source_id": data_source_id, "query": text}
        if params:
            logger.info("With parameters: %s", dict(params))
            body["parameters"] = dict(params)

        payload = self._request(
            "submit", "POST", "/query_results", json=body, target_id=data_source_id
        )
        if not isinstance(payload, dict):
            raise RemoteError(
                "Invalid query submission response", operation="submit", target_id=data_source_id
            )

        job_payload = payload.get("job")
        if isinstance(job_payload, dict):
            job = self._job_from_payload(job_payload, None, "submit")
            logger.info(
                "Query executing asynchronously with job ID: %s",
                job.id,
                extra={"event": "redash_job_submitted", "job_id": job.id},
            )
            result = self.wait_for_job(job.id)
            logger.info(
                "Total query execution (including async wait) took %.3fs",
                time.monotonic() - started_at,
            )
            return result

        result = parse_query_result(payload)
        logger.debug(
            "Total synchronous query execution took %.3fs", time.monotonic() - started_at
        )
        return result

    def poll_job(self, job_id: str) -> Job:
        """Fetch the current state of a job (one HTTP call)."""
        payload = self._request("poll_job", "GET", f"/jobs/{job_id}", target_id=job_id)
        job_payload = payload.get("job") if isinstance(payload, dict) else None
        if not isinstance(job_payload, dict):
            raise RemoteError("Invalid job status response", operation="poll_job", target_id=job_id)
        return self._job_from_payload(job_payload, job_id, "poll_job")

    def fetch_result(self, query_result_id: str) -> QueryResult:
        """Fetch and materialize a stored query result."""
        payload = self._request(
            "fetch_result",
            "GET",
            f"/query_results/{query_result_id}",
            target_id=query_result_id,
        )
        return parse_query_result(payload)

    def wait_for_job(self, job_id: str) -> QueryResult:
        """Poll a job until it finishes, fails, or the attempt bound is reached.

        A transport failure on any single poll ends the wait immediately.
        """
        wait_started_at = time.monotonic()
        for attempt in range(1, self._max_poll_attempts + 1):
            poll_started_at = time.monotonic()
            job = trace_operation(
                "redash.query.poll",
                operation=lambda: self.poll_job(job_id),
                target_id=job_id,
            )
            logger.info(
                "Job %s status check #%s: %s (poll took %.3fs)",
                job_id,
                attempt,
                job.status.value,
                time.monotonic() - poll_started_at,
                extra={
                    "event": "redash_job_polled",
                    "job_id": job_id,
                    "attempt": attempt,
                    "status": job.status.value,
                },
            )

            if job.status == JobStatus.FINISHED:
                if not job.query_result_id:
                    raise RemoteError(
                        "Finished job did not include a query result id",
                        operation="wait_for_job",
                        target_id=job_id,
                    )
                logger.info(
                    "Query completed after %s attempts, total wait time: %.3fs",
                    attempt,
                    time.monotonic() - wait_started_at,
                )
                return trace_operation(
                    "redash.query.fetch",
                    operation=lambda: self.fetch_result(job.query_result_id),
                    target_id=job.query_result_id,
                )
            if job.status == JobStatus.FAILED:
                message = job.error or "Query execution failed"
                logger.error(
                    "Redash job %s failed: %s",
                    job_id,
                    message,
                    extra={"event": "redash_job_failed", "job_id": job_id},
                )
                raise RemoteError(message, operation="wait_for_job", target_id=job_id)

            if attempt < self._max_poll_attempts:
                self._sleep(self._poll_interval_seconds)

        logger.warning(
            "Redash job %s still pending after %s attempts.",
            job_id,
            self._max_poll_attempts,
            extra={"event": "redash_job_timeout", "job_id": job_id},
        )
        raise QueryTimeoutError(job_id, self._max_poll_attempts, self._poll_interval_seconds)

    def _check_open(self) -> None:
        if self._closed:
            raise IllegalStateError("Client is closed.")

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        target_id: Optional[str] = None,
    ) -> JsonPayload:
        self._check_open()
        try:
            response = self._http.request(
                method, self._url(path), headers=self._headers, json=json
            )
        except httpx.HTTPError as exc:
            logger.error("Redash %s request failed: %s", operation, exc)
            raise TransportError(
                f"Error during {operation}: {exc}", operation=operation, target_id=target_id
            ) from exc

        status_code = response.status_code
        if status_code in AUTH_FAILURE_CODES:
            raise AuthenticationError(
                _error_message(response) or "Authentication failed - please check your API key",
                operation=operation,
                target_id=target_id,
                status_code=status_code,
            )
        if not response.is_success:
            message = _error_message(response)
            logger.error("Redash %s failed with status %s: %s", operation, status_code, message)
            raise RemoteError(
                message, operation=operation, target_id=target_id, status_code=status_code
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                f"Invalid JSON in {operation} response",
                operation=operation,
                target_id=target_id,
                status_code=status_code,
            ) from exc

    def _model(self, model: Any, payload: Any, operation: str, target_id: Optional[str] = None):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise RemoteError(
                f"Invalid {operation} response: {exc.error_count()} validation error(s)",
                operation=operation,
                target_id=target_id,
            ) from exc

    def _job_from_payload(
        self, job_payload: Dict[str, Any], job_id: Optional[str], operation: str
    ) -> Job:
        data = dict(job_payload)
        if data.get("id") is None and job_id is not None:
            data["id"] = job_id
        return self._model(Job, data, operation, target_id=job_id)


def _error_message(response: httpx.Response) -> str:
    """Return the service-provided message (JSON ``message`` when present)."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text


__all__ = ["ConnectionTestResult", "RedashApiClient"]
