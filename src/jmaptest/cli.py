"""Click CLI entry point for jmaptest.

Provides ``session`` (inspect the server's JMAP session) and ``call``
(send one method call and check the response).
"""

import json
import sys

import click

from jmaptest.clients.jmap import JMAPClient
from jmaptest.core.config import SuiteSettings
from jmaptest.core.errors import MalformedResponse, TransportFailure
from jmaptest.core.logging import configure_logging
from jmaptest.harness.assertions import request_and_assert
from jmaptest.harness.matcher import anything, loose
from jmaptest.harness.tester import JMAPTester
from jmaptest.reporting.console import print_report


def _load_settings() -> SuiteSettings:
    settings = SuiteSettings()
    configure_logging(settings.logging.level)
    if not settings.has_server:
        raise click.UsageError(
            "No server configured: set JMAPTEST_SESSION_URL and JMAPTEST_TOKEN."
        )
    return settings


def _parse_json(value: str, what: str) -> object:
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{what} is not valid JSON: {exc}") from exc


def _connect(settings: SuiteSettings) -> JMAPClient:
    client = JMAPClient(
        token=settings.token,
        session_url=settings.session_url,
        using=settings.using,
    )
    try:
        client.connect()
    except TransportFailure as exc:
        raise click.ClickException(f"Session discovery failed: {exc}") from exc
    return client


@click.group()
def cli() -> None:
    """jmaptest: JMAP conformance checks against a live server."""


@cli.command()
def session() -> None:
    """Discover the JMAP session and print the account and capabilities."""
    client = _connect(_load_settings())
    click.echo(f"Account:      {client.account_id}")
    click.echo("Capabilities:")
    for capability in sorted(client.capabilities):
        click.echo(f"  {capability}")
    client.close()


@cli.command()
@click.argument("method")
@click.argument("arguments", default="{}")
@click.option("--expect", default=None, help="JSON the response arguments must contain")
@click.option(
    "--strict/--no-strict",
    default=None,
    help="Report unknown properties (default: JMAP_STRICT_PROPERTIES)",
)
def call(method: str, arguments: str, expect: str | None, strict: bool | None) -> None:
    """Send METHOD with ARGUMENTS (JSON) and check the response."""
    settings = _load_settings()
    parsed_arguments = _parse_json(arguments, "ARGUMENTS")
    if not isinstance(parsed_arguments, dict):
        raise click.BadParameter("ARGUMENTS must be a JSON object")
    expected = loose(_parse_json(expect, "--expect")) if expect else anything()

    client = _connect(settings)
    tester = JMAPTester(
        client,
        account_id=client.account_id,
        strict=settings.strict_properties if strict is None else strict,
        known_properties=settings.known_properties,
    )
    try:
        report = request_and_assert(tester, (method, parsed_arguments), expected, method)
    except MalformedResponse as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        client.close()

    print_report(report)
    sys.exit(0 if report.ok else 1)
