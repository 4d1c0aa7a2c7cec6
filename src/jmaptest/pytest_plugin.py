"""pytest integration: the ``pristine`` marker and account fixtures.

Registered through the ``pytest11`` entry point. Tests marked
``@pytest.mark.pristine`` are recorded in a SuiteRegistry at collection
time and get a pristine account, or are skipped when the adapter cannot
provide one.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from jmaptest.adapters.server import Account, HTTPServerAdapter, ServerAdapter
from jmaptest.core.config import SuiteSettings
from jmaptest.core.errors import Unsupported
from jmaptest.harness.registry import SuiteRegistry

REGISTRY_KEY = pytest.StashKey[SuiteRegistry]()


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "pristine: test needs an account with no pre-existing data; "
        "skipped when the server adapter cannot provide one",
    )
    config.stash[REGISTRY_KEY] = SuiteRegistry()


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    registry = config.stash[REGISTRY_KEY]
    for item in items:
        if item.get_closest_marker("pristine") is not None:
            registry.mark_pristine(item.nodeid)


@pytest.fixture(scope="session")
def jmap_registry(pytestconfig: pytest.Config) -> SuiteRegistry:
    return pytestconfig.stash[REGISTRY_KEY]


@pytest.fixture(scope="session")
def jmap_settings() -> SuiteSettings:
    return SuiteSettings()


@pytest.fixture(scope="session")
def server_adapter(jmap_settings: SuiteSettings) -> Iterator[ServerAdapter]:
    """Override in a conftest to test a server through another adapter."""
    adapter = HTTPServerAdapter(jmap_settings)
    yield adapter
    adapter.close()


@pytest.fixture
def any_account(server_adapter: ServerAdapter) -> Account:
    try:
        return server_adapter.any_account()
    except Unsupported as exc:
        pytest.skip(str(exc))


@pytest.fixture
def pristine_account(
    request: pytest.FixtureRequest,
    server_adapter: ServerAdapter,
    jmap_registry: SuiteRegistry,
) -> Iterator[Account]:
    """Yield a fresh pristine account and close it after the test."""
    if not jmap_registry.is_pristine(request.node.nodeid):
        pytest.fail(
            "pristine_account used by a test not marked @pytest.mark.pristine",
            pytrace=False,
        )
    try:
        account = server_adapter.pristine_account()
    except Unsupported as exc:
        pytest.skip(str(exc))
    yield account
    account.close()


@pytest.fixture(autouse=True)
def _pristine_gate(request: pytest.FixtureRequest, jmap_registry: SuiteRegistry) -> None:
    """Skip marked tests that never ask for the account themselves."""
    if jmap_registry.is_pristine(request.node.nodeid) and (
        "pristine_account" not in request.fixturenames
    ):
        request.getfixturevalue("pristine_account")
