import httpx
import pytest

from redash_dal.client import RedashApiClient
from redash_dal.config import RedashConfig
from redash_dal.errors import (
    AuthenticationError,
    IllegalStateError,
    QueryTimeoutError,
    RemoteError,
    TransportError,
)
from tests._support.redash_fakes import request_json, result_payload

API = "/api"
SIMPLE_RESULT = result_payload([("n", "integer")], [{"n": 1}])


def _job(status, **extra):
    return 200, {"job": {"id": "job-1", "status": status, **extra}}


def test_requests_carry_api_key_header(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, [{"id": 1, "name": "pg"}]))

    sources = client.list_data_sources()

    assert [source.name for source in sources] == ["pg"]
    request = fake_redash.requests[0]
    assert request.headers["Authorization"] == "Key test-api-key"
    assert str(request.url) == "http://redash.example.com:5000/api/data_sources"


def test_execute_query_synchronous_result(client, fake_redash, sleeps):
    """A submission answered with a result needs no polling."""
    fake_redash.add("POST", f"{API}/query_results", (200, SIMPLE_RESULT))

    result = client.execute_query("1", "SELECT 1")

    assert result.rows == [{"n": 1}]
    assert fake_redash.calls("GET", f"{API}/jobs/job-1") == []
    assert sleeps == []
    body = request_json(fake_redash.requests[0])
    assert body == {"data_source_id": "1", "query": "SELECT 1"}


def test_execute_query_sends_parameters(client, fake_redash):
    fake_redash.add("POST", f"{API}/query_results", (200, SIMPLE_RESULT))

    client.execute_query("1", "SELECT {{ p1 }}", {"p1": 5})

    assert request_json(fake_redash.requests[0])["parameters"] == {"p1": 5}


def test_wait_for_job_finishes_on_third_poll(client, fake_redash, sleeps):
    fake_redash.add("POST", f"{API}/query_results", (200, {"job": {"id": "job-1", "status": 1}}))
    fake_redash.add(
        "GET",
        f"{API}/jobs/job-1",
        _job(1),
        _job(2),
        _job(3, query_result_id=77),
    )
    fake_redash.add("GET", f"{API}/query_results/77", (200, SIMPLE_RESULT))

    result = client.execute_query("1", "SELECT 1")

    assert result.rows == [{"n": 1}]
    assert len(fake_redash.calls("GET", f"{API}/jobs/job-1")) == 3
    assert sleeps == [5.0, 5.0]


def test_wait_for_job_failed_job_surfaces_service_message(client, fake_redash):
    fake_redash.add("GET", f"{API}/jobs/job-1", _job(4, error="division by zero"))

    with pytest.raises(RemoteError) as exc_info:
        client.wait_for_job("job-1")

    assert str(exc_info.value) == "division by zero"
    assert exc_info.value.target_id == "job-1"
    assert exc_info.value.operation == "wait_for_job"


def test_wait_for_job_failed_without_message(client, fake_redash):
    fake_redash.add("GET", f"{API}/jobs/job-1", _job("failed"))

    with pytest.raises(RemoteError, match="Query execution failed"):
        client.wait_for_job("job-1")


def test_wait_for_job_times_out_after_max_attempts(client, fake_redash, sleeps):
    fake_redash.add("GET", f"{API}/jobs/job-1", _job(2))

    with pytest.raises(QueryTimeoutError) as exc_info:
        client.wait_for_job("job-1")

    assert exc_info.value.attempts == 60
    assert exc_info.value.job_id == "job-1"
    assert len(fake_redash.calls("GET", f"{API}/jobs/job-1")) == 60
    assert len(sleeps) == 59
    assert set(sleeps) == {5.0}


def test_wait_for_job_uses_configured_bounds(fake_redash, sleeps):
    config = RedashConfig(
        host="h", api_key="k", poll_interval_seconds=0.5, max_poll_attempts=3
    )
    http_client = httpx.Client(transport=fake_redash.transport())
    client = RedashApiClient(config, http_client=http_client, sleep=sleeps.append)
    fake_redash.add("GET", f"{API}/jobs/j", (200, {"job": {"id": "j", "status": "started"}}))

    with pytest.raises(QueryTimeoutError):
        client.wait_for_job("j")

    assert sleeps == [0.5, 0.5]
    http_client.close()


def test_transport_failure_mid_poll_ends_wait(client, fake_redash, sleeps):
    fake_redash.add(
        "GET",
        f"{API}/jobs/job-1",
        _job(2),
        httpx.ConnectError("connection reset"),
    )

    with pytest.raises(TransportError) as exc_info:
        client.wait_for_job("job-1")

    assert exc_info.value.operation == "poll_job"
    assert exc_info.value.target_id == "job-1"
    assert len(fake_redash.calls("GET", f"{API}/jobs/job-1")) == 2
    assert sleeps == [5.0]


def test_finished_job_without_result_id_is_remote_error(client, fake_redash):
    fake_redash.add("GET", f"{API}/jobs/job-1", _job(3))

    with pytest.raises(RemoteError, match="query result id"):
        client.wait_for_job("job-1")


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failure_raises_authentication_error(client, fake_redash, status_code):
    fake_redash.add("GET", f"{API}/queries", (status_code, {"message": "Invalid API key"}))

    with pytest.raises(AuthenticationError) as exc_info:
        client.list_queries()

    assert exc_info.value.status_code == status_code
    assert str(exc_info.value) == "Invalid API key"


def test_non_success_status_raises_remote_error_with_service_message(client, fake_redash):
    fake_redash.add("POST", f"{API}/query_results", (400, {"message": "Query is invalid"}))

    with pytest.raises(RemoteError) as exc_info:
        client.execute_query("1", "SELECT nope")

    assert str(exc_info.value) == "Query is invalid"
    assert exc_info.value.status_code == 400
    assert exc_info.value.operation == "submit"


def test_non_json_error_body_is_kept_verbatim(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (502, "Bad Gateway"))

    with pytest.raises(RemoteError, match="^Bad Gateway$"):
        client.list_data_sources()


def test_invalid_json_body_is_remote_error(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, "not json"))

    with pytest.raises(RemoteError, match="Invalid JSON"):
        client.list_data_sources()


def test_list_queries_reads_results(client, fake_redash):
    fake_redash.add(
        "GET",
        f"{API}/queries",
        (200, {"count": 2, "results": [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]}),
    )

    queries = client.list_queries()

    assert [(query.id, query.name) for query in queries] == [("1", "a"), ("2", "b")]


def test_execute_by_id_fetches_definition_then_submits(client, fake_redash):
    fake_redash.add(
        "GET",
        f"{API}/queries/42",
        (200, {"id": 42, "name": "saved", "query": "SELECT n FROM t", "data_source_id": 3}),
    )
    fake_redash.add("POST", f"{API}/query_results", (200, SIMPLE_RESULT))

    result = client.execute_by_id("42", {"p1": 1})

    assert result.row_count == 1
    body = request_json(fake_redash.calls("POST", f"{API}/query_results")[0])
    assert body == {"data_source_id": "3", "query": "SELECT n FROM t", "parameters": {"p1": 1}}


def test_execute_by_id_unknown_query(client, fake_redash):
    fake_redash.add("GET", f"{API}/queries/9", (404, {"message": "Not Found"}))

    with pytest.raises(RemoteError) as exc_info:
        client.execute_by_id("9")

    assert exc_info.value.status_code == 404
    assert exc_info.value.target_id == "9"


def test_execute_ad_hoc_creates_named_query_first(client, fake_redash):
    fake_redash.add("POST", f"{API}/queries", (200, {"id": 101}))
    fake_redash.add(
        "GET",
        f"{API}/queries/101",
        (200, {"id": 101, "query": "SELECT 1", "data_source_id": 1}),
    )
    fake_redash.add("POST", f"{API}/query_results", (200, SIMPLE_RESULT))

    client.execute_ad_hoc("1", "SELECT 1", name="Query 1700000000000")

    created = request_json(fake_redash.calls("POST", f"{API}/queries")[0])
    assert created["name"] == "Query 1700000000000"
    assert created["query"] == "SELECT 1"
    assert created["data_source_id"] == "1"
    assert [req.url.path for req in fake_redash.requests] == [
        f"{API}/queries",
        f"{API}/queries/101",
        f"{API}/query_results",
    ]


def test_test_connection_ok(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, []))

    outcome = client.test_connection()

    assert outcome.ok is True
    assert outcome.status == "ok"


@pytest.mark.parametrize("status_code", [401, 403])
def test_test_connection_auth_failure(client, fake_redash, status_code):
    fake_redash.add("GET", f"{API}/data_sources", (status_code, ""))

    outcome = client.test_connection()

    assert outcome.ok is False
    assert outcome.status == "auth_failed"
    assert outcome.message == "Authentication failed - please check your API key"


def test_test_connection_other_status(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (500, "boom"))

    outcome = client.test_connection()

    assert outcome.status == "error"
    assert outcome.status_code == 500
    assert outcome.message == "Connection failed with status code 500: boom"


def test_test_connection_invalid_body(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, {"not": "a list"}))

    outcome = client.test_connection()

    assert outcome.ok is False
    assert outcome.message == "Invalid response format from server"


def test_test_connection_transport_failure(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", httpx.ConnectError("refused"))

    outcome = client.test_connection()

    assert outcome.ok is False
    assert outcome.status == "error"
    assert outcome.message.startswith("Connection error:")


def test_close_leaves_injected_http_client_open(client, http_client):
    client.close()
    client.close()

    assert http_client.is_closed is False


@pytest.mark.parametrize(
    "failure",
    [httpx.ConnectError("connection refused"), httpx.ReadTimeout("read timed out")],
)
def test_transport_failure_on_listing_raises_transport_error(client, fake_redash, failure):
    fake_redash.add("GET", f"{API}/data_sources", failure)

    with pytest.raises(TransportError) as exc_info:
        client.list_data_sources()

    assert not isinstance(exc_info.value, QueryTimeoutError)
    assert exc_info.value.operation == "list_data_sources"
    assert isinstance(exc_info.value.__cause__, type(failure))


@pytest.mark.parametrize(
    "failure",
    [httpx.ConnectError("connection refused"), httpx.ReadTimeout("read timed out")],
)
def test_transport_failure_on_submit_raises_transport_error(client, fake_redash, failure):
    fake_redash.add("POST", f"{API}/query_results", failure)

    with pytest.raises(TransportError) as exc_info:
        client.execute_query("1", "SELECT 1")

    assert not isinstance(exc_info.value, QueryTimeoutError)
    assert exc_info.value.operation == "submit"
    assert exc_info.value.target_id == "1"


def test_closed_client_rejects_requests(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, []))
    client.close()

    with pytest.raises(IllegalStateError, match="Client is closed"):
        client.list_data_sources()
    with pytest.raises(IllegalStateError):
        client.wait_for_job("job-1")
    assert fake_redash.requests == []


def test_closed_owned_client_rejects_requests(config):
    client = RedashApiClient(config)
    client.close()

    with pytest.raises(IllegalStateError, match="Client is closed"):
        client.execute_query("1", "SELECT 1")


def test_test_connection_on_closed_client_reports_error(client, fake_redash):
    fake_redash.add("GET", f"{API}/data_sources", (200, []))
    client.close()

    outcome = client.test_connection()

    assert outcome.ok is False
    assert outcome.status == "error"
    assert outcome.message == "Client is closed."
    assert fake_redash.requests == []
