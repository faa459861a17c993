"""Process-wide record of which tests needed retries and how often.

The registry is created on first access, filled while the suite runs and read
once when the suite finishes. It lives until the process exits.
"""

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field

from flaky_tracker.models.outcome import TestIdentifier


@dataclass(kw_only=True)
class FlakinessRegistry:
    """Retry counts per test identifier, safe for concurrent writers."""

    _counts: dict[TestIdentifier, int] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_retry(self, identifier: TestIdentifier) -> None:
        """Increment the retry count of ``identifier``, inserting it if absent."""
        with self._lock:
            self._counts[identifier] = self._counts.get(identifier, 0) + 1

    def count(self, identifier: TestIdentifier) -> int:
        """Return the retry count of ``identifier`` (0 if it never retried)."""
        with self._lock:
            return self._counts.get(identifier, 0)

    def summary(self) -> Sequence[tuple[TestIdentifier, int]]:
        """Return a snapshot of all entries in insertion order."""
        with self._lock:
            return tuple(self._counts.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)


_registry: FlakinessRegistry | None = None
_registry_lock = threading.Lock()


def get_registry() -> FlakinessRegistry:
    """Return the process-wide registry, creating it on first access."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = FlakinessRegistry()
        return _registry
