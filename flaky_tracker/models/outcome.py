"""Models for the outcome of a single test attempt."""

from dataclasses import dataclass
from typing import Literal

type TestIdentifier = str


@dataclass(frozen=True, kw_only=True)
class TestOutcome:
    """Result of one execution attempt of a test case.

    Produced by the runner after every attempt. ``error`` holds the original
    exception when the runner has one, so a final failure can be surfaced
    unchanged.
    """

    __test__ = False

    status: Literal["passed", "failed", "skipped"]
    reason: str | None = None
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        """Whether this attempt failed."""
        return self.status == "failed"
