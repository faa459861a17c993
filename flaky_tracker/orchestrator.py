"""Suite orchestrator running plain test callables with retries in a thread pool."""

import asyncio
import logging
import unittest
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from flaky_tracker.controller import RetryController
from flaky_tracker.installer import RetryInstaller
from flaky_tracker.models.outcome import TestIdentifier, TestOutcome
from flaky_tracker.reporter import SuiteReporter

log = logging.getLogger(__name__)

type TestCase = Callable[[], object]


@dataclass(frozen=True, kw_only=True)
class CaseResult:
    """Final result of a test case after all its attempts."""

    __test__ = False

    identifier: TestIdentifier
    outcome: TestOutcome
    attempts: int


def run_attempt(test_case: TestCase) -> TestOutcome:
    """Run one attempt of ``test_case`` and classify how it ended."""
    try:
        test_case()
    except unittest.SkipTest as exc:
        return TestOutcome(status="skipped", reason=str(exc) or None)
    except Exception as exc:
        return TestOutcome(status="failed", reason=str(exc) or None, error=exc)
    return TestOutcome(status="passed")


def execute_with_retries(
    identifier: TestIdentifier,
    test_case: TestCase,
    controller: RetryController,
) -> TestOutcome:
    """Run ``test_case`` until it stops failing or the controller gives up.

    The returned outcome is the one of the last attempt; on a final failure it
    carries the original exception of that attempt.
    """
    while True:
        outcome = run_attempt(test_case)
        if not outcome.failed or not controller.on_failure(outcome, identifier):
            return outcome


def suite_passed(results: Sequence[CaseResult]) -> bool:
    """Return whether no test case failed after exhausting its retries."""
    return not any(result.outcome.failed for result in results)


@dataclass(frozen=True, kw_only=True)
class SuiteOrchestrator:
    """Runs a suite of test callables in parallel worker threads."""

    installer: RetryInstaller
    reporter: SuiteReporter
    max_workers: int | None = None

    async def run_suite(
        self, test_cases: Mapping[TestIdentifier, TestCase]
    ) -> Sequence[CaseResult]:
        """Run every test case with retries and report flakiness at the end.

        Controllers are installed for all test cases before the first attempt
        runs, so an installer failure aborts the suite without running tests.

        Args:
            test_cases: Test callables mapped by identifier

        Returns:
            One result per test case, in the order of ``test_cases``

        Raises:
            InstallerError: If a controller cannot be attached to a test case

        """
        for identifier in test_cases:
            self.installer.transform(identifier)

        if not test_cases:
            log.info("No test cases provided")
            self.reporter.on_suite_finish()
            return []

        log.info("Running %d test case(s)...", len(test_cases))
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            tasks = [
                loop.run_in_executor(
                    executor,
                    execute_with_retries,
                    identifier,
                    test_case,
                    self.installer.controller_for(identifier),
                )
                for identifier, test_case in test_cases.items()
            ]
            outcomes = await asyncio.gather(*tasks)
        log.info("Suite execution completed")

        results = [
            self._to_result(identifier, outcome)
            for identifier, outcome in zip(test_cases, outcomes, strict=True)
        ]
        self.reporter.on_suite_finish()
        return results

    def _to_result(self, identifier: TestIdentifier, outcome: TestOutcome) -> CaseResult:
        attempts = self.installer.controller_for(identifier).attempts
        log.info(
            "Test completed: test=%s status=%s attempts=%d",
            identifier,
            outcome.status,
            attempts,
        )
        return CaseResult(identifier=identifier, outcome=outcome, attempts=attempts)
