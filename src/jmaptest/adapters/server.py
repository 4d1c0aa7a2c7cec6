"""Server-adapter boundary: hand out accounts on the server under test."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from jmaptest.clients.jmap import JMAPClient
from jmaptest.core.config import SuiteSettings
from jmaptest.core.errors import Unsupported
from jmaptest.harness.assertions import AssertionReport, request_and_assert
from jmaptest.harness.batch import BatchResult
from jmaptest.harness.entities import ENTITY_TYPES, Entity, Mailbox
from jmaptest.harness.tester import JMAPTester


class Account:
    """One account on the server under test, bound to its own tester.

    Every request made through the account gets its ``accountId`` filled in.
    """

    def __init__(
        self, tester: JMAPTester, account_id: str, client: JMAPClient | None = None
    ) -> None:
        self._tester = tester
        self._account_id = account_id
        self._client = client

    def __repr__(self) -> str:
        return f"<Account {self._account_id}>"

    @property
    def account_id(self) -> str:
        return self._account_id

    def close(self) -> None:
        """Close the account's own connection, if it has one."""
        if self._client is not None:
            self._client.close()

    @property
    def tester(self) -> JMAPTester:
        return self._tester

    @property
    def known_properties(self) -> dict[str, frozenset[str]]:
        return self._tester.known_properties

    def request(self, request: Any) -> BatchResult:
        return self._tester.request(request)

    def request_and_assert(
        self,
        request: Any,
        expected: Any,
        description: str,
        report: AssertionReport | None = None,
    ) -> AssertionReport:
        return request_and_assert(self._tester, request, expected, description, report)

    def entity(self, kind: str, entity_id: str) -> Entity:
        """Return a handle for an existing object; properties load lazily."""
        return ENTITY_TYPES[kind](self, entity_id)

    def create(self, kind: str, properties: dict[str, Any]) -> Entity:
        """Create one object via ``Foo/set`` and return its handle.

        Raises:
            UnresolvedCreationReference: If the server did not create it.
        """
        batch = self.request((f"{kind}/set", {"create": {"new": properties}}))
        return self.entity(kind, batch.created_id("new"))

    def create_mailbox(self, **properties: Any) -> Mailbox:
        return self.create("Mailbox", properties)


class ServerAdapter(Protocol):
    """Provides accounts; ``pristine_account`` may raise Unsupported.

    Accounts from ``pristine_account`` belong to the caller, who closes them.
    """

    def any_account(self) -> Account: ...

    def pristine_account(self) -> Account: ...


class HTTPServerAdapter:
    """Adapter for a running server reachable over HTTP.

    ``any_account`` shares one connection for the whole run. A pristine
    account needs its own token (JMAPTEST_PRISTINE_TOKEN) pointing at an
    account the operator guarantees to be empty.
    """

    def __init__(self, settings: SuiteSettings) -> None:
        self._settings = settings
        self._shared: Account | None = None
        self._log = structlog.get_logger(component="adapter")

    def any_account(self) -> Account:
        if not self._settings.has_server:
            raise Unsupported(
                "No server configured (set JMAPTEST_SESSION_URL and JMAPTEST_TOKEN)"
            )
        if self._shared is None:
            self._shared = self._connect(self._settings.token)
        return self._shared

    def pristine_account(self) -> Account:
        if not self._settings.session_url or not self._settings.pristine_token:
            raise Unsupported(
                "No pristine account configured (set JMAPTEST_PRISTINE_TOKEN)"
            )
        return self._connect(self._settings.pristine_token)

    def close(self) -> None:
        """Close the shared account's connection, if one was opened."""
        if self._shared is not None:
            self._shared.close()
            self._shared = None

    def _connect(self, token: str) -> Account:
        client = JMAPClient(
            token=token,
            session_url=self._settings.session_url,
            using=self._settings.using,
        )
        client.connect()
        tester = JMAPTester(
            client,
            account_id=client.account_id,
            strict=self._settings.strict_properties,
            known_properties=self._settings.known_properties,
        )
        self._log.info(
            "account_connected",
            account_id=client.account_id,
            strict=self._settings.strict_properties,
        )
        return Account(tester, client.account_id, client)
