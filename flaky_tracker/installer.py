"""Attachment of a fresh retry controller to every discovered test case."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from flaky_tracker.controller import RetryController
from flaky_tracker.models.outcome import TestIdentifier
from flaky_tracker.policy import MAX_RETRY_COUNT

log = logging.getLogger(__name__)

type ControllerFactory = Callable[[int], RetryController]


class InstallerError(Exception):
    """Raised when a retry controller cannot be attached to a test case."""


@dataclass(kw_only=True)
class RetryInstaller:
    """Registers one retry controller per test identifier.

    ``controller_factory`` receives the retry budget of the test case and must
    return a new controller on every call.
    """

    controller_factory: ControllerFactory
    default_max_retries: int = MAX_RETRY_COUNT
    _controllers: dict[TestIdentifier, RetryController] = field(
        default_factory=dict, repr=False
    )

    def transform(
        self, identifier: TestIdentifier, max_retries: int | None = None
    ) -> None:
        """Attach a new controller to the test case named ``identifier``.

        Args:
            identifier: Stable identifier of the discovered test case
            max_retries: Per-test budget, defaults to ``default_max_retries``

        Raises:
            InstallerError: If the test case already has a controller, or the
                factory returned a controller owned by another test case

        """
        if identifier in self._controllers:
            raise InstallerError(f"Retry controller already installed for {identifier}")

        budget = self.default_max_retries if max_retries is None else max_retries
        controller = self.controller_factory(budget)

        if any(controller is existing for existing in self._controllers.values()):
            raise InstallerError(
                f"Controller factory returned a shared controller for {identifier}"
            )

        self._controllers[identifier] = controller
        log.debug("Installed retry controller for %s (max_retries=%d)", identifier, budget)

    def controller_for(self, identifier: TestIdentifier) -> RetryController:
        """Return the controller attached to ``identifier``."""
        try:
            return self._controllers[identifier]
        except KeyError:
            raise InstallerError(
                f"No retry controller installed for {identifier}"
            ) from None

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)
