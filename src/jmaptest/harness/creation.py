"""Creation-id resolution for ``Foo/set`` calls.

A set call offers temporary creation ids in ``create``; its response maps
each of them to either ``created`` (with the server-assigned ``id``) or
``notCreated`` (with a SetError). Resolved ids are what later requests,
and test assertions, refer to.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from jmaptest.core.errors import UnresolvedCreationReference
from jmaptest.harness.entities import is_known_property

if TYPE_CHECKING:
    from jmaptest.harness.batch import MethodCall, MethodResponse


@dataclass(frozen=True)
class CreatedResult:
    """One entry of a response's ``created`` map."""

    temp_id: str
    server_id: str | None
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    is_error = False

    def unknown_properties(self, allowed: frozenset[str]) -> list[str]:
        """Return returned property names outside ``allowed``, sorted."""
        return sorted(name for name in self.properties if not is_known_property(name, allowed))


@dataclass(frozen=True)
class SetError:
    """One entry of a response's ``notCreated`` map."""

    temp_id: str
    type: str | None
    description: str | None = None
    properties: tuple[str, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict)

    is_error = True


def extract_created(response_args: Mapping[str, Any]) -> dict[str, CreatedResult]:
    """Extract ``created`` as temp id -> CreatedResult.

    ``server_id`` is None when the server returned no string ``id``.
    A ``created`` value of null (allowed by RFC 8620) yields an empty map,
    and so does any other non-object; ``malformed_fields`` reports those.
    """
    created = response_args.get("created")
    if not isinstance(created, dict):
        created = {}
    results: dict[str, CreatedResult] = {}
    for temp_id, properties in created.items():
        properties = properties if isinstance(properties, dict) else {}
        server_id = properties.get("id")
        results[temp_id] = CreatedResult(
            temp_id=temp_id,
            server_id=server_id if isinstance(server_id, str) else None,
            properties=properties,
        )
    return results


def extract_not_created(response_args: Mapping[str, Any]) -> dict[str, SetError]:
    """Extract ``notCreated`` as temp id -> SetError."""
    not_created = response_args.get("notCreated")
    if not isinstance(not_created, dict):
        not_created = {}
    errors: dict[str, SetError] = {}
    for temp_id, error in not_created.items():
        error = error if isinstance(error, dict) else {}
        properties = error.get("properties")
        errors[temp_id] = SetError(
            temp_id=temp_id,
            type=error.get("type"),
            description=error.get("description"),
            properties=tuple(properties) if isinstance(properties, list) else (),
            raw=MappingProxyType(error),
        )
    return errors


def malformed_fields(response_args: Mapping[str, Any]) -> list[str]:
    """Return ``created`` and/or ``notCreated`` when present but not objects."""
    return [
        name
        for name in ("created", "notCreated")
        if response_args.get(name) is not None
        and not isinstance(response_args.get(name), dict)
    ]


@dataclass(frozen=True)
class CreationBatch:
    """The creation half of one set call and its response."""

    call_id: str
    method: str
    create_spec: Mapping[str, Any]
    created: Mapping[str, CreatedResult] = field(default_factory=dict)
    not_created: Mapping[str, SetError] = field(default_factory=dict)
    answered: bool = False
    # Response fields that were present but not objects, read as empty
    malformed: tuple[str, ...] = ()

    @classmethod
    def from_exchange(
        cls, call: MethodCall, response: MethodResponse | None
    ) -> CreationBatch:
        """Pair a call's ``create`` map with its (possibly absent) response.

        A missing response or a method-level error leaves ``answered`` False:
        nothing was created, and correlation reporting covers the gap.
        """
        create_spec = call.arguments.get("create") or {}
        if response is None or response.is_error:
            return cls(call_id=call.call_id, method=call.name, create_spec=create_spec)
        return cls(
            call_id=call.call_id,
            method=call.name,
            create_spec=create_spec,
            created=MappingProxyType(extract_created(response.arguments)),
            not_created=MappingProxyType(extract_not_created(response.arguments)),
            answered=True,
            malformed=tuple(malformed_fields(response.arguments)),
        )

    @property
    def entity_type(self) -> str:
        """Return the object type from the method name: ``Mailbox/set`` -> ``Mailbox``."""
        return self.method.split("/", 1)[0]

    @property
    def has_create_spec(self) -> bool:
        return bool(self.create_spec)

    @property
    def creation_ids(self) -> list[str]:
        return sorted(self.create_spec)

    @property
    def result_ids(self) -> list[str]:
        """Return every temp id the response mentions, sorted (with repeats)."""
        return sorted([*self.created, *self.not_created])

    def result_for(self, temp_id: str) -> CreatedResult | SetError | None:
        if temp_id in self.created:
            return self.created[temp_id]
        return self.not_created.get(temp_id)

    def created_result(self, temp_id: str) -> CreatedResult:
        """Return the CreatedResult for ``temp_id``.

        Raises:
            UnresolvedCreationReference: If ``temp_id`` was not created.
        """
        if temp_id in self.created:
            return self.created[temp_id]
        if temp_id in self.not_created:
            error = self.not_created[temp_id]
            raise UnresolvedCreationReference(
                temp_id, f"it is in notCreated ({error.type or 'unknown error'})"
            )
        if not self.answered:
            raise UnresolvedCreationReference(
                temp_id, f"call '{self.call_id}' got no usable response"
            )
        raise UnresolvedCreationReference(
            temp_id, f"response to call '{self.call_id}' does not mention it"
        )

    def created_id(self, temp_id: str) -> str:
        """Return the server-assigned id for ``temp_id``; repeated calls agree."""
        result = self.created_result(temp_id)
        if result.server_id is None:
            raise UnresolvedCreationReference(
                temp_id, "the server returned no string id for it"
            )
        return result.server_id

    def created_ids(self) -> dict[str, str]:
        return {
            temp_id: result.server_id
            for temp_id, result in self.created.items()
            if result.server_id is not None
        }


@dataclass(frozen=True)
class CreationRef:
    """Placeholder for an id created by an earlier request.

    The tester swaps it for the server id before sending; it may appear as
    an argument value or as a mapping key (``mailboxIds``).
    """

    temp_id: str


def substitute_refs(value: Any, known_ids: Mapping[str, str]) -> Any:
    """Return a copy of ``value`` with every CreationRef replaced.

    Raises:
        UnresolvedCreationReference: If a referenced temp id is unknown.
    """

    def lookup(ref: CreationRef) -> str:
        if ref.temp_id not in known_ids:
            raise UnresolvedCreationReference(
                ref.temp_id, "no earlier request created it"
            )
        return known_ids[ref.temp_id]

    if isinstance(value, CreationRef):
        return lookup(value)
    if isinstance(value, Mapping):
        return {
            (lookup(key) if isinstance(key, CreationRef) else key): substitute_refs(sub, known_ids)
            for key, sub in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [substitute_refs(sub, known_ids) for sub in value]
    return value
