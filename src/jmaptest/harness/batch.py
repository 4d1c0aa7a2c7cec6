"""Method call/response model and the correlation resolver.

A batch pairs calls to responses by call id, never by position: servers
may answer out of order, and a broken server may drop or repeat ids.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from jmaptest.core.errors import MalformedResponse, UnresolvedCreationReference
from jmaptest.harness.creation import CreatedResult, CreationBatch
from jmaptest.harness.invariants import Violation, ViolationKind


@dataclass(frozen=True)
class MethodCall:
    """One method invocation as sent on the wire."""

    name: str
    arguments: Mapping[str, Any]
    call_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", MappingProxyType(dict(self.arguments)))

    def to_wire(self) -> list:
        return [self.name, dict(self.arguments), self.call_id]


@dataclass(frozen=True)
class MethodResponse:
    """One method response as decoded from the wire."""

    name: str
    arguments: Mapping[str, Any]
    call_id: str

    @classmethod
    def from_wire(cls, triple: Any) -> MethodResponse:
        """Build from a ``[name, arguments, call_id]`` triple.

        Raises:
            MalformedResponse: If the triple does not have that shape.
        """
        if (
            not isinstance(triple, (list, tuple))
            or len(triple) != 3
            or not isinstance(triple[0], str)
            or not isinstance(triple[1], dict)
            or not isinstance(triple[2], str)
        ):
            raise MalformedResponse(
                f"Method response is not a [name, arguments, id] triple: {triple!r}"
            )
        return cls(name=triple[0], arguments=MappingProxyType(triple[1]), call_id=triple[2])

    @property
    def is_error(self) -> bool:
        return self.name == "error"

    @property
    def error_type(self) -> str | None:
        if not self.is_error:
            return None
        return self.arguments.get("type")

    def to_wire(self) -> list:
        return [self.name, dict(self.arguments), self.call_id]


@dataclass(frozen=True)
class CorrelationReport:
    """Result of pairing calls with responses by call id."""

    resolved: Mapping[str, MethodResponse]
    missing: tuple[str, ...] = ()
    extra: tuple[str, ...] = ()
    duplicates: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not (self.missing or self.extra or self.duplicates)

    def violations(self) -> list[Violation]:
        """Return one CorrelationMismatch per missing, duplicate or extra id."""
        found: list[Violation] = []
        for call_id in self.missing:
            found.append(Violation(
                kind=ViolationKind.CORRELATION_MISMATCH,
                call_id=call_id,
                message=f"no response for call id '{call_id}'",
            ))
        for call_id in self.duplicates:
            found.append(Violation(
                kind=ViolationKind.CORRELATION_MISMATCH,
                call_id=call_id,
                message=f"call id '{call_id}' appears more than once among responses",
            ))
        for call_id in self.extra:
            found.append(Violation(
                kind=ViolationKind.CORRELATION_MISMATCH,
                call_id=call_id,
                message=f"response id '{call_id}' matches no call",
            ))
        return found


def resolve(
    calls: Iterable[MethodCall], responses: Iterable[MethodResponse]
) -> CorrelationReport:
    """Pair each call with the response echoing its call id.

    The first response seen for an id wins; later ones are recorded as
    duplicates. Response order never matters.
    """
    calls = list(calls)
    by_id: dict[str, MethodResponse] = {}
    duplicates: list[str] = []
    for response in responses:
        if response.call_id in by_id:
            if response.call_id not in duplicates:
                duplicates.append(response.call_id)
            continue
        by_id[response.call_id] = response

    call_ids = {call.call_id for call in calls}
    resolved: dict[str, MethodResponse] = {}
    missing: list[str] = []
    for call in calls:
        if call.call_id in by_id:
            resolved[call.call_id] = by_id[call.call_id]
        else:
            missing.append(call.call_id)

    extra = [call_id for call_id in by_id if call_id not in call_ids]

    return CorrelationReport(
        resolved=MappingProxyType(resolved),
        missing=tuple(missing),
        extra=tuple(extra),
        duplicates=tuple(duplicates),
    )


@dataclass
class BatchResult:
    """Everything known about one request after its round trip."""

    calls: tuple[MethodCall, ...]
    responses: tuple[MethodResponse, ...]
    correlation: CorrelationReport
    creations: dict[str, CreationBatch] = field(default_factory=dict)
    violations: list[Violation] = field(default_factory=list)

    @classmethod
    def build(
        cls, calls: Iterable[MethodCall], responses: Iterable[MethodResponse]
    ) -> BatchResult:
        """Correlate responses and extract creation results for every set call."""
        calls = tuple(calls)
        responses = tuple(responses)
        correlation = resolve(calls, responses)
        creations: dict[str, CreationBatch] = {}
        for call in calls:
            if "create" in call.arguments:
                creations[call.call_id] = CreationBatch.from_exchange(
                    call, correlation.resolved.get(call.call_id)
                )
        return cls(
            calls=calls,
            responses=responses,
            correlation=correlation,
            creations=creations,
        )

    @property
    def ok(self) -> bool:
        return not self.violations

    def call_for(self, call_id: str) -> MethodCall:
        for call in self.calls:
            if call.call_id == call_id:
                return call
        raise KeyError(call_id)

    def response_for(self, call_id: str) -> MethodResponse | None:
        """Return the response correlated to ``call_id``, or None if missing."""
        return self.correlation.resolved.get(call_id)

    def single(self) -> MethodResponse | None:
        """Return the only call's response (shorthand requests)."""
        if len(self.calls) != 1:
            raise ValueError(f"Batch has {len(self.calls)} calls, not exactly one")
        return self.response_for(self.calls[0].call_id)

    @property
    def has_create_spec(self) -> bool:
        return any(creation.has_create_spec for creation in self.creations.values())

    def created(self, temp_id: str, call_id: str | None = None) -> CreatedResult:
        """Return the CreatedResult for ``temp_id`` from any (or one) set call."""
        return self._creation_batch_for(temp_id, call_id).created_result(temp_id)

    def created_id(self, temp_id: str, call_id: str | None = None) -> str:
        """Return the server id assigned to ``temp_id``.

        Raises:
            UnresolvedCreationReference: If ``temp_id`` was not created.
        """
        return self._creation_batch_for(temp_id, call_id).created_id(temp_id)

    def created_ids(self) -> dict[str, str]:
        """Return temp id -> server id for every successful creation."""
        ids: dict[str, str] = {}
        for creation in self.creations.values():
            ids.update(creation.created_ids())
        return ids

    def _creation_batch_for(self, temp_id: str, call_id: str | None) -> CreationBatch:
        if call_id is not None:
            if call_id not in self.creations:
                raise UnresolvedCreationReference(
                    temp_id, f"call '{call_id}' has no create argument"
                )
            return self.creations[call_id]
        for creation in self.creations.values():
            if temp_id in creation.creation_ids or temp_id in creation.result_ids:
                return creation
        raise UnresolvedCreationReference(temp_id, "no call in this batch offered it")

    def dump(self) -> str:
        """Render the request and responses as JSON for diagnostics."""
        return json.dumps(
            {
                "methodCalls": [call.to_wire() for call in self.calls],
                "methodResponses": [response.to_wire() for response in self.responses],
            },
            indent=2,
            sort_keys=True,
            default=str,
        )
