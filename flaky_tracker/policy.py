"""Decision of whether a failed test attempt gets another try."""

from dataclasses import dataclass

MAX_RETRY_COUNT = 2


@dataclass(frozen=True, kw_only=True)
class AttemptPolicy:
    """Allows up to ``max_retries`` retries after the first failed attempt."""

    max_retries: int = MAX_RETRY_COUNT

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def should_retry(self, current_attempt_count: int) -> bool:
        """Return whether another attempt is allowed.

        Args:
            current_attempt_count: Retries already performed for the test case

        Returns:
            True while the retry budget is not used up

        """
        return current_attempt_count < self.max_retries


DEFAULT_POLICY = AttemptPolicy()


def should_retry(current_attempt_count: int) -> bool:
    """Apply the default policy (``MAX_RETRY_COUNT`` retries)."""
    return DEFAULT_POLICY.should_retry(current_attempt_count)
