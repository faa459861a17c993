"""Per-test-case retry decisions."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from flaky_tracker.models.outcome import TestIdentifier, TestOutcome
from flaky_tracker.policy import AttemptPolicy
from flaky_tracker.registry import FlakinessRegistry, get_registry

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class RetryController:
    """Decides after each failed attempt whether the test case runs again.

    One controller belongs to exactly one test case. Attempts of a test case
    run sequentially, so ``retry_count`` needs no locking.
    """

    policy: AttemptPolicy = field(default_factory=AttemptPolicy)
    registry: FlakinessRegistry = field(default_factory=get_registry)
    emit: Callable[[str], None] = print
    retry_count: int = field(default=0, init=False)

    @property
    def max_retries(self) -> int:
        """Retry budget of the underlying policy."""
        return self.policy.max_retries

    @property
    def attempts(self) -> int:
        """Attempts started so far, counting the first one."""
        return self.retry_count + 1

    def on_failure(self, outcome: TestOutcome, identifier: TestIdentifier) -> bool:
        """Record a failed attempt and decide whether to retry.

        Args:
            outcome: Outcome of the attempt that just finished
            identifier: Stable identifier of the test case

        Returns:
            True if the runner should run the test case again, False if the
            failure is final

        Raises:
            ValueError: If called with a passing outcome

        """
        if outcome.status == "passed":
            raise ValueError(f"on_failure called with a passing outcome for {identifier}")

        if not self.policy.should_retry(self.retry_count):
            log.debug(
                "Retries exhausted for %s after %d attempt(s)", identifier, self.attempts
            )
            return False

        self.retry_count += 1
        self.registry.record_retry(identifier)

        self.emit(
            f"⚠️ RETRY ATTEMPT {self.retry_count}/{self.max_retries} "
            f"for test: {identifier}"
        )
        if outcome.reason:
            self.emit(f"   Failure reason: {outcome.reason}")

        return True
