"""Bounded retry with backoff.

``RetryExecutor`` is stateless apart from its injected ``sleep`` function, so a
single instance is shared by every network and component operation of a run.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar

from .errors import NetworkError

T = TypeVar("T")

_logging = logging.getLogger(__name__)


class Backoff(Enum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"
    LINEAR = "linear"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay: float
    backoff: Backoff = Backoff.EXPONENTIAL

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_after(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == Backoff.EXPONENTIAL:
            return self.base_delay * (2 ** (attempt - 1))
        if self.backoff == Backoff.LINEAR:
            return self.base_delay * attempt
        return self.base_delay

    def delays(self) -> list[float]:
        """Every sleep a fully failing run of this policy performs."""
        return [self.delay_after(n) for n in range(1, self.max_attempts)]


# Release metadata and artifact downloads: 2s, 4s between three attempts.
DOWNLOAD_POLICY = RetryPolicy(max_attempts=3, base_delay=2, backoff=Backoff.EXPONENTIAL)
COMPONENT_POLICY = RetryPolicy(max_attempts=3, base_delay=5, backoff=Backoff.FIXED)


class RetriesExhausted(Exception):
    """Raised when every attempt failed. Callers translate it to a stage error."""

    def __init__(self, description: str, attempts: int, last_error: BaseException):
        super().__init__(f"Failed {attempts} time(s) doing: {description}: {last_error}")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class RetryExecutor:
    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(
        self,
        operation: Callable[[], T],
        policy: RetryPolicy,
        description: str,
        retry_on: tuple[type[BaseException], ...] = (NetworkError,),
    ) -> T:
        """Call ``operation`` until it succeeds or ``policy`` is exhausted.

        Only exceptions in ``retry_on`` are retried; anything else propagates
        immediately. No sleep happens after the last attempt.
        """
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return operation()
            except retry_on as e:
                if attempt == policy.max_attempts:
                    raise RetriesExhausted(description, attempt, e) from e
                delay = policy.delay_after(attempt)
                _logging.warning(
                    f"Attempt {attempt}/{policy.max_attempts} failed ({e}); "
                    f"trying again in {delay:g} seconds: {description}"
                )
                self._sleep(delay)
        raise AssertionError("unreachable")


__all__ = [
    "Backoff",
    "RetryPolicy",
    "RetryExecutor",
    "RetriesExhausted",
    "DOWNLOAD_POLICY",
    "COMPONENT_POLICY",
]
