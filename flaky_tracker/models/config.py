"""Configuration for test retries."""

from pydantic import Field

from flaky_tracker.models.base import Model
from flaky_tracker.policy import MAX_RETRY_COUNT


class RetryConfig(Model):
    """Retry configuration shared by every test case of a suite."""

    max_retries: int = Field(
        default=MAX_RETRY_COUNT,
        ge=0,
        description="Additional attempts allowed after the first failure",
    )
    enabled: bool = Field(default=True, description="Whether failures are retried")

    @property
    def effective_max_retries(self) -> int:
        """Retry budget once the enabled switch is applied."""
        return self.max_retries if self.enabled else 0
