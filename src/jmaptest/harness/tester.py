"""JMAPTester: normalize requests, run the round trip, analyse the batch."""

from __future__ import annotations

import itertools
import string
from collections.abc import Iterator, Mapping
from typing import Any, Protocol

import structlog

from jmaptest.harness.batch import BatchResult, MethodCall, MethodResponse
from jmaptest.harness.creation import substitute_refs
from jmaptest.harness.entities import KNOWN_PROPERTIES
from jmaptest.harness.invariants import check_batch_invariants


class Transport(Protocol):
    """The one thing the tester needs from a JMAP client."""

    def send_batch(self, method_calls: list) -> list: ...


def _call_ids() -> Iterator[str]:
    """Yield a, b, ... z, a1, b1, ... z1, a2, ..."""
    yield from string.ascii_lowercase
    for round_number in itertools.count(1):
        for letter in string.ascii_lowercase:
            yield f"{letter}{round_number}"


def _is_single_call(request: Any) -> bool:
    return (
        isinstance(request, (list, tuple))
        and len(request) in (2, 3)
        and isinstance(request[0], str)
    )


def normalize_request(request: Any) -> list[tuple[str, Mapping[str, Any], str | None]]:
    """Turn any accepted request form into (name, arguments, call_id) triples.

    Accepted forms:
        ("Mailbox/get", {...})                 shorthand, one call
        {"Mailbox/get": {...}}                 shorthand, one call
        [("Mailbox/set", {...}, "c1"), ...]    full form; ids optional
        MethodCall or a list of them

    Raises:
        TypeError: If the request or any call has the wrong shape.
    """
    if isinstance(request, MethodCall):
        items: list[Any] = [request]
    elif isinstance(request, Mapping):
        if len(request) != 1:
            raise TypeError("Mapping shorthand must hold exactly one method call")
        items = [tuple(next(iter(request.items())))]
    elif _is_single_call(request):
        items = [request]
    elif isinstance(request, (list, tuple)):
        items = list(request)
    else:
        raise TypeError(f"Unsupported request form: {type(request).__name__}")

    if not items:
        raise TypeError("A request needs at least one method call")

    triples: list[tuple[str, Mapping[str, Any], str | None]] = []
    for item in items:
        if isinstance(item, MethodCall):
            triples.append((item.name, item.arguments, item.call_id))
            continue
        if not _is_single_call(item):
            raise TypeError(f"Not a (name, arguments[, id]) method call: {item!r}")
        name, arguments = item[0], item[1]
        call_id = item[2] if len(item) == 3 else None
        if not isinstance(arguments, Mapping):
            raise TypeError(f"Arguments of {name} must be a mapping")
        if call_id is not None and not isinstance(call_id, str):
            raise TypeError(f"Call id of {name} must be a string")
        triples.append((name, arguments, call_id))
    return triples


def assign_call_ids(
    triples: list[tuple[str, Mapping[str, Any], str | None]],
) -> list[tuple[str, Mapping[str, Any], str]]:
    """Fill missing call ids with the first unused a, b, c ... id.

    Raises:
        ValueError: If two calls share an explicit id.
    """
    explicit = [call_id for _, _, call_id in triples if call_id is not None]
    duplicated = sorted({call_id for call_id in explicit if explicit.count(call_id) > 1})
    if duplicated:
        raise ValueError(f"Duplicate call ids in request: {', '.join(duplicated)}")

    used = set(explicit)
    fresh = (call_id for call_id in _call_ids() if call_id not in used)
    return [
        (name, arguments, call_id if call_id is not None else next(fresh))
        for name, arguments, call_id in triples
    ]


class JMAPTester:
    """Sends requests through a transport and checks every batch.

    Usage:
        tester = JMAPTester(client, account_id=client.account_id)
        batch = tester.request(("Mailbox/set", {"create": {"new": {"name": "X"}}}))
        mailbox_id = batch.created_id("new")

    Ids learned from ``created`` maps are remembered, so later requests may
    refer to them with ``CreationRef("new")``.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        account_id: str | None = None,
        strict: bool = False,
        known_properties: Mapping[str, frozenset[str]] | None = None,
    ) -> None:
        self._transport = transport
        self._account_id = account_id
        self._strict = strict
        self._known_properties = dict(known_properties or KNOWN_PROPERTIES)
        self._known_ids: dict[str, str] = {}
        self._log = structlog.get_logger(component="tester")

    @property
    def account_id(self) -> str | None:
        return self._account_id

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def known_properties(self) -> dict[str, frozenset[str]]:
        return dict(self._known_properties)

    @property
    def known_ids(self) -> dict[str, str]:
        """Return temp id -> server id for everything created so far."""
        return dict(self._known_ids)

    def build_calls(self, request: Any) -> list[MethodCall]:
        """Normalize a request into MethodCalls ready to send.

        Injects the default ``accountId`` and resolves CreationRefs.

        Raises:
            TypeError, ValueError: If the request is malformed.
            UnresolvedCreationReference: If a CreationRef is unknown.
        """
        calls = []
        for name, arguments, call_id in assign_call_ids(normalize_request(request)):
            arguments = substitute_refs(arguments, self._known_ids)
            if self._account_id is not None and "accountId" not in arguments:
                arguments["accountId"] = self._account_id
            calls.append(MethodCall(name=name, arguments=arguments, call_id=call_id))
        return calls

    def request(self, request: Any) -> BatchResult:
        """Send one request and return the analysed batch.

        Raises:
            TransportFailure: If the round trip failed; nothing is analysed.
            MalformedResponse: If a method response is not a valid triple.
        """
        calls = self.build_calls(request)
        log = self._log.bind(methods=[call.name for call in calls])

        wire_responses = self._transport.send_batch([call.to_wire() for call in calls])
        responses = [MethodResponse.from_wire(triple) for triple in wire_responses]

        batch = BatchResult.build(calls, responses)
        batch.violations = check_batch_invariants(
            batch,
            strict=self._strict,
            known_properties=self._known_properties,
        )
        self._known_ids.update(batch.created_ids())

        if batch.violations:
            log.warning(
                "batch_violations",
                violations=[str(violation) for violation in batch.violations],
            )
        else:
            log.debug("batch_ok", calls=len(calls))
        return batch
