"""Retry policies for the reference fetch and the resend cycle."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_MODES = ("fixed", "exponential")


class RetryExhaustedError(RuntimeError):
    """Raised when a bounded retry policy runs out of attempts."""


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how fast to retry.

    ``max_attempts`` of ``None`` retries forever. Delays are in seconds; with
    ``backoff="exponential"`` the delay doubles after every failed attempt up
    to ``max_delay``.
    """

    max_attempts: Optional[int] = None
    delay: float = 0.0
    backoff: str = "fixed"
    max_delay: Optional[float] = None

    def __post_init__(self) -> None:
        if self.backoff not in BACKOFF_MODES:
            raise ValueError(f"backoff must be one of {BACKOFF_MODES}: {self.backoff}")
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive or None")
        if self.delay < 0:
            raise ValueError("delay must be non-negative")

    @property
    def unbounded(self) -> bool:
        return self.max_attempts is None

    def exhausted(self, attempt: int) -> bool:
        """True once ``attempt`` (1-based) attempts have been used up."""
        return self.max_attempts is not None and attempt >= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the ``attempt``-th failure."""
        if self.backoff == "fixed":
            delay = self.delay
        else:
            delay = self.delay * (2 ** max(attempt - 1, 0))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    what: str = "call",
) -> T:
    """Call ``fn`` until it succeeds or ``policy`` is exhausted."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except retry_on as exc:
            if policy.exhausted(attempt):
                raise RetryExhaustedError(
                    f"{what} failed after {attempt} attempts: {exc}"
                ) from exc
            logger.warning("%s failed (attempt %d): %s", what, attempt, exc)
            sleep(policy.delay_for(attempt))
