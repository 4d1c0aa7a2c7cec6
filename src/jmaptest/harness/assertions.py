"""Assertion surface: make a request, check the response, report outcomes.

Nothing here raises for server non-conformance. Each check becomes an
Outcome in an AssertionReport; pytest tests end with
``report.raise_for_failures()`` to turn failures into a test failure with
readable diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from jmaptest.core.errors import ConformanceFailure, MalformedResponse, TransportFailure
from jmaptest.harness.batch import BatchResult, MethodCall
from jmaptest.harness.invariants import ViolationKind
from jmaptest.harness.matcher import matches
from jmaptest.harness.tester import JMAPTester, normalize_request


@dataclass(frozen=True)
class Outcome:
    """One pass/fail check with its diagnostics."""

    ok: bool
    description: str
    diagnostics: tuple[str, ...] = ()


@dataclass
class AssertionReport:
    """Ordered collection of outcomes, like a TAP stream."""

    outcomes: list[Outcome] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._log = structlog.get_logger(component="assertions")

    def pass_(self, description: str) -> Outcome:
        outcome = Outcome(ok=True, description=description)
        self.outcomes.append(outcome)
        self._log.debug("check_passed", check=description)
        return outcome

    def fail(self, description: str, *diagnostics: str) -> Outcome:
        outcome = Outcome(ok=False, description=description, diagnostics=diagnostics)
        self.outcomes.append(outcome)
        self._log.info("check_failed", check=description, diagnostics=list(diagnostics))
        return outcome

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failures(self) -> list[Outcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def format_failures(self) -> str:
        lines = []
        for outcome in self.failures:
            lines.append(f"FAILED: {outcome.description}")
            lines.extend(f"  {line}" for diag in outcome.diagnostics for line in diag.splitlines())
        return "\n".join(lines)

    def raise_for_failures(self) -> None:
        """Raise ConformanceFailure listing every failed outcome, if any."""
        if not self.ok:
            raise ConformanceFailure(self.format_failures())


def batch_ok(
    batch: BatchResult, *, strict: bool = False, report: AssertionReport | None = None
) -> AssertionReport:
    """Report the batch-level invariants of one round trip.

    Every set call offering creation ids gets "results for every creation
    id and nothing more". In strict mode, unknown properties in any
    non-error result fail one summary check, with one line per result.
    """
    report = report if report is not None else AssertionReport()

    if not batch.correlation.ok:
        report.fail(
            "every call has exactly one response",
            *[violation.message for violation in batch.correlation.violations()],
        )

    for call_id, creation in batch.creations.items():
        if not creation.has_create_spec:
            continue
        description = (
            f"{creation.method} '{call_id}' has results for every creation id "
            "and nothing more"
        )
        if not creation.answered:
            report.fail(description, f"call '{call_id}' got no created/notCreated results")
            continue
        mismatches = [
            violation.message
            for violation in batch.violations
            if violation.kind is ViolationKind.CREATION_ID_MISMATCH
            and violation.call_id == call_id
        ]
        if mismatches:
            report.fail(
                description,
                f"creation ids: {', '.join(creation.creation_ids)}",
                f"result ids:   {', '.join(creation.result_ids)}",
                *mismatches,
            )
        else:
            report.pass_(description)

    structural = [
        violation
        for violation in batch.violations
        if violation.kind is ViolationKind.STRUCTURAL_MISMATCH
    ]
    malformed = [violation.message for violation in structural if violation.temp_id is None]
    if malformed:
        report.fail("result maps and lists have the expected JSON type", *malformed)
    missing_ids = [violation.message for violation in structural if violation.temp_id is not None]
    if missing_ids:
        report.fail("every created result has a string id", *missing_ids)

    if strict:
        unknown = [
            violation
            for violation in batch.violations
            if violation.kind is ViolationKind.UNKNOWN_PROPERTY
        ]
        if unknown:
            report.fail(
                "some batch results have unknown properties",
                *[f"  {violation.message}" for violation in unknown],
            )
        else:
            report.pass_("no unknown properties in batch results")

    return report


def _split_expected(expected: Any, call: MethodCall) -> tuple[str, Any]:
    """Return (method name, arguments template) from an expectation."""
    if (
        isinstance(expected, tuple)
        and len(expected) == 2
        and isinstance(expected[0], str)
    ):
        return expected[0], expected[1]
    return call.name, expected


def _expectations_for(call_count: int, expected: Any) -> list[Any]:
    if call_count == 1 and not isinstance(expected, list):
        return [expected]
    if not isinstance(expected, list) or len(expected) != call_count:
        raise ValueError(
            f"Expected one template per call ({call_count}), "
            f"got {len(expected) if isinstance(expected, list) else 'a single template'}"
        )
    return expected


def request_and_assert(
    tester: JMAPTester,
    request: Any,
    expected: Any,
    description: str,
    report: AssertionReport | None = None,
) -> AssertionReport:
    """Send ``request`` and check every response against its template.

    ``expected`` is one template for a single-call request, or a list with
    one template per call, by request position. A template describes the
    response arguments; a ``(method_name, template)`` pair also pins the
    response name, which otherwise must equal the call's name.

    A failed round trip is one failed outcome. A malformed response body
    is re-raised: the test case cannot continue without a decoded batch.

    Raises:
        ValueError: If there is not one template per call. Checked before
            anything is sent.
    """
    report = report if report is not None else AssertionReport()
    expectations = _expectations_for(len(normalize_request(request)), expected)

    try:
        batch = tester.request(request)
    except MalformedResponse:
        raise
    except TransportFailure as exc:
        report.fail(f"{description}: request failed", str(exc))
        return report

    for call, template in zip(batch.calls, expectations):
        label = f"{description}: {call.name} '{call.call_id}'"
        response = batch.response_for(call.call_id)
        if response is None:
            report.fail(label, f"no matching response for call id '{call.call_id}'")
            continue

        method_name, arguments_template = _split_expected(template, call)
        if response.name != method_name:
            detail = f"expected {method_name} response, got {response.name}"
            if response.is_error:
                detail += f" ({response.error_type})"
            report.fail(label, detail, batch.dump())
            continue

        result = matches(dict(response.arguments), arguments_template)
        if result.ok:
            report.pass_(label)
        else:
            report.fail(label, result.describe(), batch.dump())

    batch_ok(batch, strict=tester.strict, report=report)
    return report
