"""Explicit test registry with pristine-account marking.

Built once while a suite is assembled and passed to whoever runs it; the
pytest plugin keeps one on the pytest config.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from jmaptest.core.errors import Unsupported

if TYPE_CHECKING:
    from jmaptest.adapters.server import Account, ServerAdapter

TestFunction = Callable[["Account"], Any]


@dataclass(frozen=True)
class RegisteredTest:
    name: str
    function: TestFunction
    pristine: bool = False


@dataclass(frozen=True)
class RunResult:
    """Outcome of running one registered test."""

    name: str
    status: str  # "passed", "failed", "skipped"
    reason: str = ""


class SuiteRegistry:
    """Registered tests by name, plus the set of names needing isolation."""

    def __init__(self) -> None:
        self._tests: dict[str, RegisteredTest] = {}
        self._pristine: set[str] = set()
        self._log = structlog.get_logger(component="registry")

    def __contains__(self, name: str) -> bool:
        return name in self._tests

    def __len__(self) -> int:
        return len(self._tests)

    @property
    def names(self) -> list[str]:
        return list(self._tests)

    def mark_pristine(self, name: str) -> None:
        self._pristine.add(name)

    def is_pristine(self, name: str) -> bool:
        return name in self._pristine

    def register(
        self, name: str, function: TestFunction, *, pristine: bool = False
    ) -> TestFunction:
        """Register ``function`` under ``name``; returns it unchanged.

        Raises:
            ValueError: If ``name`` is already registered.
        """
        if name in self._tests:
            raise ValueError(f"Test '{name}' is already registered")
        self._tests[name] = RegisteredTest(name=name, function=function, pristine=pristine)
        if pristine:
            self.mark_pristine(name)
        return function

    def pristine_test(self, name: str, function: TestFunction) -> TestFunction:
        """Register a test that must run against a pristine account."""
        return self.register(name, function, pristine=True)

    def run(self, name: str, adapter: ServerAdapter) -> RunResult:
        """Run one test with the account it needs.

        Tests signal failure by raising AssertionError (ConformanceFailure
        included) or by returning a failed AssertionReport. An adapter that
        cannot provide the account skips the test.
        """
        test = self._tests[name]
        try:
            account = (
                adapter.pristine_account() if self.is_pristine(name) else adapter.any_account()
            )
        except Unsupported as exc:
            self._log.info("test_skipped", test=name, reason=str(exc))
            return RunResult(name=name, status="skipped", reason=str(exc))

        try:
            outcome = test.function(account)
            if outcome is not None and hasattr(outcome, "raise_for_failures"):
                outcome.raise_for_failures()
        except AssertionError as exc:
            self._log.info("test_failed", test=name)
            return RunResult(name=name, status="failed", reason=str(exc))
        return RunResult(name=name, status="passed")

    def run_all(self, adapter: ServerAdapter) -> list[RunResult]:
        return [self.run(name, adapter) for name in self._tests]

