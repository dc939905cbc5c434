"""
Retry with exponential backoff and jitter.

Used by the notifier for transient transport failures. Waits between
attempts go through a threading.Event so a shutdown interrupts them.
"""

import logging
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    max_retries: int = 3
    base_delay: float = 2.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.1  # fraction of delay

    @classmethod
    def from_config(cls, config) -> "RetryConfig":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt + 1` (attempt is 0-based)."""
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        return delay + random.uniform(0, delay * self.jitter)  # noqa: S311


class RetryCancelled(Exception):
    """The cancel event fired while waiting to retry."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Retry cancelled after {attempts} attempt(s): {last_error}")


def retry_with_backoff(
    func: Callable[[], T],
    config: RetryConfig,
    retry_on: tuple[type[Exception], ...],
    cancel_event: threading.Event | None = None,
    logger_: logging.Logger | None = None,
) -> T:
    """
    Execute a function, retrying on the given exception types.

    Args:
        func: Callable to execute
        config: RetryConfig with max_retries, base_delay, max_delay, exponential_base
        retry_on: Exception types considered transient. Anything else propagates.
        cancel_event: If set while waiting, stop and raise RetryCancelled
        logger_: Optional logger for retry attempts

    Returns:
        Result of successful function call

    Raises:
        Last transient exception if all retries exhausted
        RetryCancelled if cancel_event fired between attempts
    """
    log = logger_ or logger
    wait = (cancel_event or threading.Event()).wait

    for attempt in range(config.max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= config.max_retries:
                log.error(f"All {config.max_retries + 1} attempts failed: {e}")
                raise

            delay = config.delay_for(attempt)
            log.warning(f"Attempt {attempt + 1} failed: {e}. Retrying in {delay:.1f}s")
            if wait(timeout=delay):
                raise RetryCancelled(attempt + 1, e) from e

    raise RuntimeError("unreachable: retry loop exited without result")
