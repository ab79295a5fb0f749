"""Shared fixtures for redash_dal unit tests."""

import httpx
import pytest

from redash_dal.client import RedashApiClient
from redash_dal.config import RedashConfig
from tests._support.redash_fakes import FakeRedash

HOST = "redash.example.com"
API_KEY = "test-api-key"


@pytest.fixture(autouse=True)
def _clean_redash_env(monkeypatch):
    """Keep developer REDASH_* and OTEL settings out of unit tests."""
    for name in (
        "REDASH_HOST",
        "REDASH_PORT",
        "REDASH_API_KEY",
        "REDASH_SCHEME",
        "REDASH_HTTP_TIMEOUT_SECS",
        "REDASH_TRACE_QUERIES",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def fake_redash():
    return FakeRedash()


@pytest.fixture
def config():
    return RedashConfig(host=HOST, api_key=API_KEY, port=5000)


@pytest.fixture
def sleeps():
    """Collects the intervals the client would have slept for."""
    return []


@pytest.fixture
def http_client(fake_redash):
    client = httpx.Client(transport=fake_redash.transport())
    yield client
    client.close()


@pytest.fixture
def client(http_client, config, sleeps):
    return RedashApiClient(config, http_client=http_client, sleep=sleeps.append)
