"""Structural matcher: compare decoded JSON against expected-shape templates.

Templates form a small closed set of variants:

- ``Literal``: equal value of the same JSON type (``1`` never matches ``true``).
- ``TypedLiteral``: asserts the JSON type, and optionally the value.
  Built with ``jstr()``, ``jnum()``, ``jbool()``, ``jtrue``, ``jfalse``, ``jnull``.
- ``SupersetOf``: an object holding at least the given keys; extras ignored.
- ``Sequence``: an array of the same length, matched element-wise.
- ``Anything``: matches any value (server-chosen states, ids).

Plain values are coerced: a ``dict`` must match key-for-key, a ``list``
becomes a ``Sequence`` and scalars become ``Literal``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

JSON_KINDS = ("string", "number", "bool", "null", "array", "object")

_MISSING = object()


def json_kind(value: Any) -> str:
    """Return the JSON type name of a decoded value.

    Raises:
        TypeError: For values that cannot come out of a JSON decoder.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise TypeError(f"{type(value).__name__} is not a JSON value")


def _render(value: Any) -> str:
    if isinstance(value, Template):
        return repr(value)
    try:
        return json.dumps(value, sort_keys=True)
    except TypeError:
        return repr(value)


def _format_path(path: tuple) -> str:
    rendered = "$"
    for key in path:
        rendered += f"[{key}]" if isinstance(key, int) else f".{key}"
    return rendered


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a match. On failure, ``path`` locates the first mismatch."""

    ok: bool
    path: tuple = ()
    reason: str = ""
    expected: Any = None
    actual: Any = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def location(self) -> str:
        return _format_path(self.path)

    @property
    def diff_path(self) -> list[tuple[Any, str]]:
        """Return the field chain as (key, reason) pairs; the last one failed."""
        if self.ok:
            return []
        return [(key, "descended") for key in self.path[:-1]] + (
            [(self.path[-1], self.reason)] if self.path else [("$", self.reason)]
        )

    def describe(self) -> str:
        """Render the mismatch as one diagnostic line."""
        if self.ok:
            return "ok"
        return (
            f"{self.location}: {self.reason} "
            f"(expected {_render(self.expected)}, got {_render(self.actual)})"
        )


_OK = MatchResult(ok=True)


def _fail(path: tuple, reason: str, expected: Any, actual: Any) -> MatchResult:
    return MatchResult(ok=False, path=path, reason=reason, expected=expected, actual=actual)


class Template:
    """Base class for expected-shape templates."""

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        raise NotImplementedError


class Anything(Template):
    """Matches any value, including absent-but-null ones."""

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        return _OK

    def __repr__(self) -> str:
        return "anything()"


@dataclass(frozen=True)
class Literal(Template):
    """Exact value of the same JSON type."""

    value: Any

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        expected_kind = json_kind(self.value)
        actual_kind = json_kind(actual)
        if expected_kind != actual_kind:
            return _fail(path, f"expected {expected_kind}, got {actual_kind}", self.value, actual)
        if actual != self.value:
            return _fail(path, "value differs", self.value, actual)
        return _OK

    def __repr__(self) -> str:
        return _render(self.value)


@dataclass(frozen=True)
class TypedLiteral(Template):
    """A JSON type assertion with an optional literal value."""

    kind: str
    value: Any = _MISSING

    def __post_init__(self) -> None:
        if self.kind not in ("string", "number", "bool", "null"):
            raise ValueError(f"TypedLiteral kind must be a scalar kind, got '{self.kind}'")

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        actual_kind = json_kind(actual)
        if actual_kind != self.kind:
            return _fail(path, f"expected {self.kind}, got {actual_kind}", self, actual)
        if self.value is not _MISSING and actual != self.value:
            return _fail(path, f"{self.kind} value differs", self, actual)
        return _OK

    def __repr__(self) -> str:
        short = {"string": "jstr", "number": "jnum", "bool": "jbool", "null": "jnull"}[self.kind]
        if self.value is _MISSING:
            return f"{short}()"
        return f"{short}({_render(self.value)})"


@dataclass(frozen=True)
class SupersetOf(Template):
    """An object containing at least ``required`` keys, each matching."""

    required: dict = field(default_factory=dict)

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        if not isinstance(actual, dict):
            return _fail(path, f"expected object, got {json_kind(actual)}", self, actual)
        for key, expected in self.required.items():
            if key not in actual:
                return _fail(path + (key,), "required key is absent", expected, None)
            result = matches(actual[key], expected, path + (key,))
            if not result:
                return result
        return _OK

    def __repr__(self) -> str:
        return f"superset_of({sorted(self.required)})"


@dataclass(frozen=True)
class Sequence(Template):
    """An array of exactly ``len(items)`` elements, matched by position."""

    items: tuple = ()

    def match(self, actual: Any, path: tuple = ()) -> MatchResult:
        if not isinstance(actual, (list, tuple)):
            return _fail(path, f"expected array, got {json_kind(actual)}", list(self.items), actual)
        if len(actual) != len(self.items):
            return _fail(
                path,
                f"expected {len(self.items)} elements, got {len(actual)}",
                list(self.items),
                actual,
            )
        for index, (element, expected) in enumerate(zip(actual, self.items)):
            result = matches(element, expected, path + (index,))
            if not result:
                return result
        return _OK

    def __repr__(self) -> str:
        return f"sequence(<{len(self.items)} items>)"


def _match_exact_mapping(actual: Any, expected: dict, path: tuple) -> MatchResult:
    if not isinstance(actual, dict):
        return _fail(path, f"expected object, got {json_kind(actual)}", expected, actual)
    for key, sub in expected.items():
        if key not in actual:
            return _fail(path + (key,), "required key is absent", sub, None)
        result = matches(actual[key], sub, path + (key,))
        if not result:
            return result
    extra = sorted(set(actual) - set(expected))
    if extra:
        return _fail(path, f"unexpected keys: {', '.join(extra)}", sorted(expected), sorted(actual))
    return _OK


def matches(actual: Any, expected: Any, path: tuple = ()) -> MatchResult:
    """Compare ``actual`` against ``expected`` and report the first mismatch."""
    if isinstance(expected, Template):
        return expected.match(actual, path)
    if isinstance(expected, dict):
        return _match_exact_mapping(actual, expected, path)
    if isinstance(expected, (list, tuple)):
        return Sequence(tuple(expected)).match(actual, path)
    return Literal(expected).match(actual, path)


# -- Constructors -------------------------------------------------------------


def jstr(value: Any = _MISSING) -> TypedLiteral:
    return TypedLiteral("string", value)


def jnum(value: Any = _MISSING) -> TypedLiteral:
    return TypedLiteral("number", value)


def jbool(value: Any = _MISSING) -> TypedLiteral:
    return TypedLiteral("bool", value)


jtrue = TypedLiteral("bool", True)
jfalse = TypedLiteral("bool", False)
jnull = TypedLiteral("null")


def superset_of(required: dict | None = None, **kwargs: Any) -> SupersetOf:
    """Build a SupersetOf; keyword arguments are merged into ``required``."""
    merged = dict(required or {})
    merged.update(kwargs)
    return SupersetOf(merged)


def sequence(*items: Any) -> Sequence:
    return Sequence(tuple(items))


def anything() -> Anything:
    return Anything()


def loose(value: Any) -> Any:
    """Turn decoded JSON into a template where every object is a superset.

    Arrays keep exact length; scalars stay literal.
    """
    if isinstance(value, dict):
        return SupersetOf({key: loose(sub) for key, sub in value.items()})
    if isinstance(value, list):
        return Sequence(tuple(loose(sub) for sub in value))
    return value
