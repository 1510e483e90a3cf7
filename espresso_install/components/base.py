"""Optional component installers.

Every component is idempotent: ``install()`` only runs when ``is_installed()``
reports false, and it is retried under the component's own fixed-delay policy.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from espresso_install.errors import CommandFailed, ComponentInstallError, NetworkError
from espresso_install.retry import COMPONENT_POLICY, RetriesExhausted, RetryExecutor, RetryPolicy

SKIPPED = "skipped"
INSTALLED = "installed"

# Failures worth another attempt; anything else aborts the component at once.
RETRIABLE_ERRORS = (NetworkError, CommandFailed)

_logging = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentSpec:
    name: str
    is_installed: Callable[[], bool]
    install: Callable[[], None]
    retry_policy: RetryPolicy = COMPONENT_POLICY


@dataclass(frozen=True)
class ComponentOutcome:
    name: str
    status: str
    attempts: int = 0

    @property
    def skipped(self) -> bool:
        return self.status == SKIPPED


class ComponentInstaller(ABC):
    """Abstract base class for optional components."""

    name: str = "component"

    def __init__(self, retry_policy: RetryPolicy = COMPONENT_POLICY):
        self.retry_policy = retry_policy

    @abstractmethod
    def is_installed(self) -> bool:
        """Check whether the component is already present."""

    @abstractmethod
    def install(self) -> None:
        """Install the component. Raise a retriable error on transient failure."""

    def notes(self) -> list[str]:
        """Follow-up instructions to show the user after installation."""
        return []

    def to_spec(self) -> ComponentSpec:
        return ComponentSpec(
            name=self.name,
            is_installed=self.is_installed,
            install=self.install,
            retry_policy=self.retry_policy,
        )


def install_component(spec: ComponentSpec, executor: RetryExecutor) -> ComponentOutcome:
    """Install ``spec`` unless it is already present.

    Raises:
        ComponentInstallError: When every attempt failed, or on a
            non-retriable failure
    """
    try:
        installed = spec.is_installed()
    except OSError as e:
        raise ComponentInstallError(spec.name, 0, f"cannot check the installed state: {e}") from e
    if installed:
        _logging.info(f"{spec.name} is already installed. Skipping installation.")
        return ComponentOutcome(spec.name, SKIPPED)

    attempts = 0

    def attempt() -> None:
        nonlocal attempts
        attempts += 1
        spec.install()

    try:
        executor.run(attempt, spec.retry_policy, f"install {spec.name}", retry_on=RETRIABLE_ERRORS)
    except RetriesExhausted as e:
        raise ComponentInstallError(spec.name, e.attempts, str(e.last_error)) from e
    except OSError as e:
        # Filesystem failures are not transient; report them under the component.
        raise ComponentInstallError(spec.name, attempts, str(e)) from e
    return ComponentOutcome(spec.name, INSTALLED, attempts)


__all__ = [
    "SKIPPED",
    "INSTALLED",
    "ComponentSpec",
    "ComponentOutcome",
    "ComponentInstaller",
    "install_component",
]
