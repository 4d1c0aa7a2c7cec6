"""Shared test fixtures for jmaptest."""

from unittest.mock import MagicMock

import pytest
import structlog
from pytest_httpx import HTTPXMock

from jmaptest.clients.jmap import JMAPClient
from jmaptest.harness.tester import JMAPTester

pytest_plugins = ["pytester"]

SESSION_URL = "https://jmap.example.com/.well-known/jmap"
API_URL = "https://jmap.example.com/jmap/api/"

SESSION_RESPONSE = {
    "apiUrl": API_URL,
    "primaryAccounts": {
        "urn:ietf:params:jmap:core": "u1",
        "urn:ietf:params:jmap:mail": "u1",
    },
    "accounts": {"u1": {"name": "tester@example.com"}},
    "capabilities": {
        "urn:ietf:params:jmap:core": {"maxCallsInRequest": 16},
        "urn:ietf:params:jmap:mail": {},
    },
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Point SuiteSettings at an empty YAML file and drop host env vars.

    Tests that need config values set env vars or write their own YAML
    and point JMAPTEST_CONFIG at it.
    """
    for var in [
        "JMAPTEST_SESSION_URL",
        "JMAPTEST_TOKEN",
        "JMAPTEST_PRISTINE_TOKEN",
        "JMAPTEST_USING",
        "JMAPTEST_EXTRA_PROPERTIES",
        "JMAPTEST_LOGGING__LEVEL",
        "JMAP_STRICT_PROPERTIES",
    ]:
        monkeypatch.delenv(var, raising=False)
    config = tmp_path / "jmaptest.yaml"
    config.write_text("")  # empty = all defaults
    monkeypatch.setenv("JMAPTEST_CONFIG", str(config))


@pytest.fixture
def server_env(monkeypatch):
    """Configure a (mocked) live server through env vars."""
    monkeypatch.setenv("JMAPTEST_SESSION_URL", SESSION_URL)
    monkeypatch.setenv("JMAPTEST_TOKEN", "test-token")


@pytest.fixture
def connected_client(httpx_mock: HTTPXMock) -> JMAPClient:
    """A JMAPClient that has discovered the mocked session."""
    httpx_mock.add_response(url=SESSION_URL, json=SESSION_RESPONSE)
    client = JMAPClient(token="test-token", session_url=SESSION_URL)
    client.connect()
    return client


@pytest.fixture
def transport():
    """Mock transport; tests set send_batch.return_value or side_effect."""
    return MagicMock()


@pytest.fixture
def tester(transport) -> JMAPTester:
    return JMAPTester(transport, account_id="u1")


@pytest.fixture
def api_response(httpx_mock: HTTPXMock):
    """Return a helper that queues one JMAP API response."""

    def add(method_responses: list) -> None:
        httpx_mock.add_response(
            url=API_URL,
            method="POST",
            json={"methodResponses": method_responses, "sessionState": "s1"},
        )

    return add


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo configure_logging calls so no test writes to a stale stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_session(httpx_mock: HTTPXMock):
    """Return a helper that queues one session discovery response."""

    def add(account_id: str = "u1") -> None:
        session = {
            **SESSION_RESPONSE,
            "primaryAccounts": {
                "urn:ietf:params:jmap:core": account_id,
                "urn:ietf:params:jmap:mail": account_id,
            },
        }
        httpx_mock.add_response(url=SESSION_URL, json=session)

    return add
