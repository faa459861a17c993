"""Pytest plugin retrying failed tests and reporting flaky ones.

Every collected test gets its own retry controller. A failing test is run
again up to ``--max-retries`` times (default 2); intermediate failures are
reported as ``RERUN`` and the last attempt decides the verdict. Tests that
needed retries are listed in a flakiness report at the end of the session.
"""

import logging
from collections.abc import Sequence
from functools import partial

import pytest
from _pytest.runner import runtestprotocol
from pydantic import ValidationError

from flaky_tracker.controller import RetryController
from flaky_tracker.installer import RetryInstaller
from flaky_tracker.models.config import RetryConfig
from flaky_tracker.models.outcome import TestOutcome
from flaky_tracker.policy import MAX_RETRY_COUNT, AttemptPolicy
from flaky_tracker.registry import get_registry
from flaky_tracker.reporter import SuiteReporter

log = logging.getLogger(__name__)

INSTALLER_KEY = pytest.StashKey[RetryInstaller]()
CONFIG_KEY = pytest.StashKey[RetryConfig]()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register the retry options and ini value."""
    group = parser.getgroup("flaky-tracker", "retry failed tests, report flaky ones")
    group.addoption(
        "--max-retries",
        type=int,
        default=None,
        dest="max_retries",
        help="Retries allowed after a failed attempt (default: max_retries ini value)",
    )
    group.addoption(
        "--no-retries",
        action="store_true",
        default=False,
        dest="no_retries",
        help="Run every test once, without retrying failures",
    )
    parser.addini(
        "max_retries",
        help="Retries allowed after a failed attempt",
        default=str(MAX_RETRY_COUNT),
    )


def load_retry_config(config: pytest.Config) -> RetryConfig:
    """Build the retry configuration from command line options and ini values."""
    max_retries = config.getoption("max_retries")
    if max_retries is None:
        max_retries = config.getini("max_retries")

    try:
        return RetryConfig(
            max_retries=max_retries,
            enabled=not config.getoption("no_retries"),
        )
    except ValidationError as e:
        raise pytest.UsageError(f"Invalid retry configuration: {e}") from e


def write_line(config: pytest.Config, line: str) -> None:
    """Write a diagnostic line to the terminal, or stdout without a terminal."""
    terminal = config.pluginmanager.get_plugin("terminalreporter")
    if terminal is None:
        print(line)
    else:
        terminal.write_line(line)


def pytest_configure(config: pytest.Config) -> None:
    """Register the marker and set up the retry installer."""
    config.addinivalue_line(
        "markers",
        "retries(count): retries allowed for this test after a failure; "
        "0 disables retrying",
    )

    retry_config = load_retry_config(config)
    emit = partial(write_line, config)
    registry = get_registry()

    def controller_factory(max_retries: int) -> RetryController:
        return RetryController(
            policy=AttemptPolicy(max_retries=max_retries),
            registry=registry,
            emit=emit,
        )

    config.stash[CONFIG_KEY] = retry_config
    config.stash[INSTALLER_KEY] = RetryInstaller(
        controller_factory=controller_factory,
        default_max_retries=retry_config.effective_max_retries,
    )


def marker_retries(item: pytest.Item) -> int | None:
    """Return the budget set by the ``retries`` marker, if any."""
    marker = item.get_closest_marker("retries")
    if marker is None:
        return None

    count = marker.args[0] if marker.args else marker.kwargs.get("count")
    try:
        return RetryConfig(max_retries=count).max_retries
    except ValidationError as e:
        raise pytest.UsageError(
            f"Invalid retries marker on {item.nodeid}: {count!r}"
        ) from e


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Attach a retry controller to every collected test."""
    installer = config.stash[INSTALLER_KEY]
    retries_enabled = config.stash[CONFIG_KEY].enabled

    for item in items:
        max_retries = marker_retries(item) if retries_enabled else None
        installer.transform(item.nodeid, max_retries=max_retries)

    log.debug("Installed retry controllers for %d test(s)", len(items))


def outcome_from_reports(reports: Sequence[pytest.TestReport]) -> TestOutcome:
    """Summarize the setup/call/teardown reports of one attempt."""
    for report in reports:
        if report.failed:
            return TestOutcome(status="failed", reason=failure_reason(report))

    if any(report.skipped for report in reports):
        return TestOutcome(status="skipped")

    return TestOutcome(status="passed")


def failure_reason(report: pytest.TestReport) -> str | None:
    """Return the crash message of a failed report."""
    crash = getattr(report.longrepr, "reprcrash", None)
    if crash is not None:
        return crash.message
    return str(report.longrepr) if report.longrepr else None


def log_rerun(item: pytest.Item, reports: Sequence[pytest.TestReport]) -> None:
    """Log only the first failed report of a retried attempt, as a rerun.

    Passed phases of that attempt stay unlogged so the test is counted once,
    by its final attempt.
    """
    for report in reports:
        if report.failed:
            report.outcome = "rerun"  # type: ignore[assignment]
            item.ihook.pytest_runtest_logreport(report=report)
            return


def reset_failed_setup(item: pytest.Item) -> None:
    """Forget failed fixture and collector setups so a retry runs them again.

    pytest keeps the error of a failed fixture until its scope is torn down,
    so a fixture scoped wider than the test re-raises it without being called.
    """
    fixture_info = getattr(item, "_fixtureinfo", None)
    for fixturedefs in getattr(fixture_info, "name2fixturedefs", {}).values():
        for fixturedef in fixturedefs:
            cached_result = fixturedef.cached_result
            if cached_result is not None and cached_result[2] is not None:
                fixturedef.cached_result = None

    setup_state = item.session._setupstate
    if any(exc is not None for _, exc in setup_state.stack.values()):
        setup_state.teardown_exact(None)


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_protocol(
    item: pytest.Item, nextitem: pytest.Item | None
) -> bool | None:
    """Run a test, repeating it while its retry controller asks for it."""
    installer = item.config.stash[INSTALLER_KEY]
    if item.nodeid not in installer:
        return None

    controller = installer.controller_for(item.nodeid)
    if not controller.max_retries:
        return None

    item.ihook.pytest_runtest_logstart(nodeid=item.nodeid, location=item.location)
    while True:
        reports = runtestprotocol(item, nextitem=nextitem, log=False)
        outcome = outcome_from_reports(reports)
        if not outcome.failed or not controller.on_failure(outcome, item.nodeid):
            for report in reports:
                item.ihook.pytest_runtest_logreport(report=report)
            break
        log_rerun(item, reports)
        reset_failed_setup(item)
    item.ihook.pytest_runtest_logfinish(nodeid=item.nodeid, location=item.location)
    return True


def pytest_report_teststatus(
    report: pytest.TestReport,
) -> tuple[str, str, tuple[str, dict[str, bool]]] | None:
    """Report reruns as R / RERUN."""
    if report.outcome == "rerun":
        return "rerun", "R", ("RERUN", {"yellow": True})
    return None


def pytest_terminal_summary(terminalreporter: pytest.TerminalReporter) -> None:
    """Write the flakiness report at the end of the session."""
    reporter = SuiteReporter(registry=get_registry(), emit=terminalreporter.write_line)
    reporter.on_suite_finish()
