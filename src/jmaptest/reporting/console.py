"""Render assertion reports as a TAP-like checklist with a summary line.

Color is used only when the output stream is a terminal and NO_COLOR is unset.
"""

from __future__ import annotations

import os
import sys
from typing import TextIO

from jmaptest.harness.assertions import AssertionReport, Outcome

GREEN = "\033[32m"
RED = "\033[31m"
DIM = "\033[2m"
RESET = "\033[0m"

_PASS = "\u2713"  # checkmark
_FAIL = "\u2717"  # X mark


def use_color(out: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(out, "isatty") and out.isatty()


def paint(text: str, code: str, out: TextIO) -> str:
    """Wrap ``text`` in an ANSI code when ``out`` takes color."""
    if not use_color(out):
        return text
    return f"{code}{text}{RESET}"


def format_outcome(outcome: Outcome, out: TextIO) -> list[str]:
    """Return the lines for one outcome: status line, then indented diagnostics."""
    if outcome.ok:
        lines = [f"  {paint(_PASS, GREEN, out)} {outcome.description}"]
    else:
        lines = [f"  {paint(_FAIL, RED, out)} {outcome.description}"]
    for diag in outcome.diagnostics:
        for line in diag.splitlines():
            lines.append(paint(f"      {line}", DIM, out))
    return lines


def print_report(report: AssertionReport, out: TextIO | None = None) -> None:
    """Print every outcome followed by ``N passed \u00b7 M failed``."""
    out = out if out is not None else sys.stdout

    for outcome in report.outcomes:
        for line in format_outcome(outcome, out):
            print(line, file=out)

    failed = len(report.failures)
    passed = len(report.outcomes) - failed
    parts = [paint(f"{passed} passed", GREEN, out)]
    if failed:
        parts.append(paint(f"{failed} failed", RED, out))
    print(file=out)
    print(" \u00b7 ".join(parts), file=out)
