"""End-to-end conformance scenarios against a mocked server over HTTP."""

import json

import pytest
from pytest_httpx import HTTPXMock

from jmaptest.harness.assertions import AssertionReport, request_and_assert
from jmaptest.harness.creation import CreationRef
from jmaptest.harness.invariants import ViolationKind
from jmaptest.harness.matcher import anything, jnum, jstr, sequence, superset_of
from jmaptest.harness.tester import JMAPTester


@pytest.fixture
def http_tester(connected_client) -> JMAPTester:
    return JMAPTester(connected_client, account_id=connected_client.account_id, strict=True)


def _sent_calls(httpx_mock: HTTPXMock) -> list:
    return json.loads(httpx_mock.get_requests()[-1].content)["methodCalls"]


def test_create_mailbox_then_get_it(http_tester, httpx_mock: HTTPXMock, api_response):
    api_response([["Mailbox/set", {"accountId": "u1", "created": {"new": {"id": "M7"}}}, "a"]])
    api_response([[
        "Mailbox/get",
        {
            "accountId": "u1",
            "state": "s2",
            "notFound": [],
            "list": [{"id": "M7", "name": "X", "sortOrder": 0, "totalEmails": 0, "role": None}],
        },
        "a",
    ]])
    report = AssertionReport()

    request_and_assert(
        http_tester,
        {"Mailbox/set": {"create": {"new": {"name": "X"}}}},
        superset_of(created=superset_of(new=superset_of(id=jstr()))),
        "create mailbox",
        report,
    )
    assert http_tester.known_ids == {"new": "M7"}
    request_and_assert(
        http_tester,
        ("Mailbox/get", {"ids": [CreationRef("new")]}),
        superset_of(
            state=anything(),
            list=sequence(superset_of(id="M7", name="X", sortOrder=jnum(0), totalEmails=jnum(0))),
        ),
        "get created mailbox",
        report,
    )

    report.raise_for_failures()
    assert _sent_calls(httpx_mock) == [
        ["Mailbox/get", {"ids": ["M7"], "accountId": "u1"}, "a"]
    ]


def test_create_child_mailbox(http_tester, httpx_mock: HTTPXMock, api_response):
    api_response([["Mailbox/set", {"created": {"new": {"id": "M8"}}}, "a"]])
    api_response([[
        "Mailbox/get",
        {"list": [{"id": "M8", "name": "X", "parentId": "M1", "sortOrder": 55}]},
        "a",
    ]])

    batch = http_tester.request(
        ("Mailbox/set", {"create": {"new": {"name": "X", "parentId": "M1", "sortOrder": 55}}})
    )
    mailbox_id = batch.created_id("new")
    assert batch.created_id("new") == mailbox_id

    report = request_and_assert(
        http_tester,
        ("Mailbox/get", {"ids": [mailbox_id]}),
        superset_of(list=sequence(superset_of(parentId="M1", sortOrder=jnum(55)))),
        "child mailbox",
    )

    assert report.ok, report.format_failures()


def test_missing_creation_id_is_reported(http_tester, api_response):
    api_response([["Mailbox/set", {"created": {"a": {"id": "M1"}}}, "c1"]])

    batch = http_tester.request(
        [("Mailbox/set", {"create": {"a": {"name": "A"}, "b": {"name": "B"}}}, "c1")]
    )

    [violation] = batch.violations
    assert violation.kind is ViolationKind.CREATION_ID_MISMATCH
    assert violation.subjects == ("b",)
    assert batch.created_id("a") == "M1"


def test_out_of_order_responses_are_correlated(http_tester, api_response):
    api_response([
        ["Email/get", {"list": [], "notFound": ["E1"]}, "r2"],
        ["Mailbox/get", {"list": [], "notFound": ["M1"]}, "r1"],
    ])

    report = request_and_assert(
        http_tester,
        [
            ("Mailbox/get", {"ids": ["M1"]}, "r1"),
            ("Email/get", {"ids": ["E1"]}, "r2"),
        ],
        [
            superset_of(notFound=["M1"]),
            superset_of(notFound=["E1"]),
        ],
        "out of order",
    )

    assert report.ok, report.format_failures()
    assert [outcome.description for outcome in report.outcomes] == [
        "out of order: Mailbox/get 'r1'",
        "out of order: Email/get 'r2'",
        "no unknown properties in batch results",
    ]
