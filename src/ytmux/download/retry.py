"""Retry loop for download attempts."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from ytmux.errors import RetriesExhausted, YtmuxError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Backoff(str, Enum):
    """Delay growth between attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass
class RetryPolicy:
    """How often and how patiently to retry a failing attempt.

    ``max_attempts=None`` retries forever, which suits long unattended runs.
    """

    delay_seconds: float = 10.0
    max_attempts: int | None = None
    backoff: Backoff = Backoff.FIXED
    max_delay_seconds: float = 3600.0

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt.

        Exponential backoff doubles the delay each attempt up to the cap:
        - Attempt 1: delay
        - Attempt 2: 2 * delay
        - Attempt 3: 4 * delay
        """
        if self.backoff == Backoff.FIXED:
            return self.delay_seconds
        exponent = max(0, attempt - 1)
        return min(self.delay_seconds * (2**exponent), self.max_delay_seconds)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts


def run_with_retry(
    attempt_fn: Callable[[int], T],
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (YtmuxError,),
) -> T:
    """Call ``attempt_fn(attempt)`` until it succeeds.

    Args:
        attempt_fn: One attempt; receives the 1-based attempt number.
        policy: Delay and attempt bound. Defaults to a fixed 10s, unbounded.
        sleep: Sleep function, replaceable in tests.
        retry_on: Exception types that trigger a retry. Anything else
            propagates immediately.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        RetriesExhausted: ``policy.max_attempts`` attempts all failed.
    """
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return attempt_fn(attempt)
        except retry_on as e:
            if policy.exhausted(attempt):
                logger.error("Giving up after %d attempts: %s", attempt, e)
                raise RetriesExhausted(
                    f"Attempt failed {attempt} times: {e}", attempts=attempt
                ) from e

            delay = policy.delay_for(attempt)
            logger.error(
                "Download encountered an error: %s. Retrying in %g seconds...",
                e,
                delay,
            )
            sleep(delay)
            logger.info("Resuming download...")
            attempt += 1
