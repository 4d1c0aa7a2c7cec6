"""Exception taxonomy for the conformance harness.

Server non-conformance is never raised: it is collected as Violation values
and reported as failed outcomes. The exceptions here cover the round trip
itself and mistakes made by the test author.
"""

from __future__ import annotations


class JMAPTestError(Exception):
    """Base class for all harness exceptions."""


class TransportFailure(JMAPTestError):
    """The round trip itself failed (network, HTTP status, or decoding)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(TransportFailure):
    """The server answered, but the body is not a decodable JMAP response."""


class UnresolvedCreationReference(JMAPTestError, LookupError):
    """A temporary creation id has no server-assigned id to resolve to.

    Raised when the temp id was never offered, landed in ``notCreated``,
    or was never seen by the tester. This is a test-author error, distinct
    from server non-conformance.
    """

    def __init__(self, temp_id: str, reason: str) -> None:
        super().__init__(f"Cannot resolve creation id '{temp_id}': {reason}")
        self.temp_id = temp_id
        self.reason = reason


class Unsupported(JMAPTestError):
    """The server adapter cannot provide the requested capability."""


class ConformanceFailure(JMAPTestError, AssertionError):
    """One or more conformance outcomes failed."""
