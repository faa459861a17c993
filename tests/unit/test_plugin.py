"""Tests for pytest plugin helpers."""

from unittest.mock import Mock

import pytest

from flaky_tracker.plugin import (
    failure_reason,
    log_rerun,
    outcome_from_reports,
    pytest_report_teststatus,
    reset_failed_setup,
)


def make_report(outcome: str, when: str = "call", longrepr: object = None) -> pytest.TestReport:
    """Build a test report for one phase of an attempt."""
    return pytest.TestReport(
        nodeid="tests/test_cart.py::test_add",
        location=("tests/test_cart.py", 0, "test_add"),
        keywords={},
        outcome=outcome,  # type: ignore[arg-type]
        longrepr=longrepr,  # type: ignore[arg-type]
        when=when,  # type: ignore[arg-type]
    )


def test_outcome_passed() -> None:
    """All phases passing is a passed attempt."""
    reports = [make_report("passed", when) for when in ("setup", "call", "teardown")]

    assert outcome_from_reports(reports).status == "passed"


def test_outcome_failed_in_call() -> None:
    """Failing call phase is a failed attempt with its reason."""
    reports = [
        make_report("passed", "setup"),
        make_report("failed", "call", longrepr="element not found"),
        make_report("passed", "teardown"),
    ]

    outcome = outcome_from_reports(reports)

    assert outcome.status == "failed"
    assert outcome.reason == "element not found"


def test_outcome_failed_in_setup() -> None:
    """Failing setup phase is a failed attempt."""
    reports = [
        make_report("failed", "setup", longrepr="driver did not start"),
        make_report("passed", "teardown"),
    ]

    assert outcome_from_reports(reports).status == "failed"


def test_outcome_skipped() -> None:
    """Skipped setup is a skipped attempt."""
    reports = [
        make_report("skipped", "setup", longrepr=("t.py", 1, "Skipped: no grid")),
        make_report("passed", "teardown"),
    ]

    assert outcome_from_reports(reports).status == "skipped"


def test_failure_reason_prefers_crash_message() -> None:
    """Uses the crash message of a formatted traceback."""
    report = Mock(longrepr=Mock(reprcrash=Mock(message="AssertionError: total")))

    assert failure_reason(report) == "AssertionError: total"


def test_failure_reason_without_longrepr() -> None:
    """Returns None when the report carries no failure representation."""
    report = Mock(longrepr=None)

    assert failure_reason(report) is None


def test_teststatus_for_rerun() -> None:
    """Reports reruns as R / RERUN."""
    report = make_report("passed")
    report.outcome = "rerun"  # type: ignore[assignment]

    assert pytest_report_teststatus(report) == ("rerun", "R", ("RERUN", {"yellow": True}))


def test_teststatus_ignores_other_outcomes() -> None:
    """Leaves other outcomes to pytest."""
    assert pytest_report_teststatus(make_report("failed")) is None


def test_log_rerun_logs_only_failed_report() -> None:
    """Logs the failing teardown as a rerun and skips the passed phases."""
    item = Mock()
    reports = [
        make_report("passed", "setup"),
        make_report("passed", "call"),
        make_report("failed", "teardown", longrepr="driver.quit() failed"),
    ]

    log_rerun(item, reports)

    item.ihook.pytest_runtest_logreport.assert_called_once_with(report=reports[2])
    assert reports[2].outcome == "rerun"
    assert reports[1].outcome == "passed"


def test_reset_failed_setup_clears_failed_fixtures_only() -> None:
    """Forgets cached fixture errors and keeps cached values."""
    failed = Mock(cached_result=(None, 0, RuntimeError("browser did not start")))
    succeeded = Mock(cached_result=("driver", 0, None))
    item = Mock()
    item._fixtureinfo.name2fixturedefs = {"driver": [failed], "base_url": [succeeded]}
    item.session._setupstate.stack = {}

    reset_failed_setup(item)

    assert failed.cached_result is None
    assert succeeded.cached_result == ("driver", 0, None)
    item.session._setupstate.teardown_exact.assert_not_called()


def test_reset_failed_setup_tears_down_failed_collectors() -> None:
    """Tears down the setup stack when a collector failed its setup."""
    item = Mock()
    item._fixtureinfo.name2fixturedefs = {}
    item.session._setupstate.stack = {
        Mock(): ([], None),
        Mock(): ([], RuntimeError("setup_module failed")),
    }

    reset_failed_setup(item)

    item.session._setupstate.teardown_exact.assert_called_once_with(None)
