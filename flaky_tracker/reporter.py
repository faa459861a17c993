"""End-of-suite report of tests that needed retries."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from flaky_tracker.models.outcome import TestIdentifier
from flaky_tracker.registry import FlakinessRegistry

BANNER = "=" * 60


def format_flakiness_report(
    summary: Sequence[tuple[TestIdentifier, int]],
) -> Sequence[str]:
    """Format registry entries as report lines, none for an empty summary."""
    if not summary:
        return []

    lines = [
        BANNER,
        "⚠️  FLAKINESS REPORT - Tests That Required Retries",
        BANNER,
    ]
    lines.extend(
        f"   🔴 {identifier} (retried {count} times)" for identifier, count in summary
    )
    lines.extend(
        [
            BANNER,
            "⚠️  ACTION REQUIRED: Investigate root cause for flaky tests",
            BANNER,
        ]
    )
    return lines


@dataclass(frozen=True, kw_only=True)
class SuiteReporter:
    """Writes the flakiness report once the suite has finished."""

    registry: FlakinessRegistry
    emit: Callable[[str], None] = print

    def on_suite_finish(self) -> None:
        """Write the report; writes nothing if no test was retried."""
        for line in format_flakiness_report(self.registry.summary()):
            self.emit(line)
