"""
Retry policy for remote calls.

The delay computation is a pure function of the attempt number so the policy
can be tested without a live remote store. Only transport failures are
retried; errors returned by the service fail immediately.
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

from ..exceptions import TransientError


# Gateway errors GitHub returns while a request never reached the API.
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


@dataclass(frozen=True)
class RetryConfig:
    """
    Bounded exponential backoff.

    max_retries counts retries after the first attempt, so the default
    makes three attempts in total with delays of 1s and 2s in between.
    """

    max_retries: int = 2
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        return calculate_backoff_delay(
            attempt,
            initial_delay=self.initial_delay,
            backoff_factor=self.backoff_factor,
            max_delay=self.max_delay,
        )


def calculate_backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float | None = None,
) -> float:
    """
    Delay before retry number ``attempt + 1``.

    Args:
        attempt: Zero-based index of the attempt that just failed
        initial_delay: Delay after the first failure, in seconds
        backoff_factor: Multiplier applied per further failure
        max_delay: Upper bound, or None for no bound

    Returns:
        Seconds to wait
    """
    if attempt < 0:
        raise ValueError("attempt must not be negative")
    delay = initial_delay * (backoff_factor**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def is_retryable_status_code(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_retryable_exception(exc: BaseException) -> bool:
    """True for connection-level failures that a retry might fix."""
    if isinstance(exc, TransientError):
        return True
    return isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))
