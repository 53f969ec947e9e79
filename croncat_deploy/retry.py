"""Retry with exponential backoff for read-only chain calls.

Only queries are retried. Transactions are never resubmitted automatically
because a retry could double-spend or double-register.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RetryConfig:
    """Retry and poll behaviour.

    Example:

    .. code-block:: python

        # Production (default)
        config = RetryConfig()

        # Fast-fail for tests
        config = RetryConfig.create_test_config()
    """

    #: Maximum attempts, including the first one
    max_retries: int = 4

    #: Initial delay in seconds between retries (grows with backoff)
    initial_delay: float = 2.0

    #: Maximum delay cap in seconds for exponential backoff
    max_delay: float = 30.0

    #: Multiplier applied to delay after each failed attempt
    backoff_multiplier: float = 2.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")

    @classmethod
    def create_test_config(cls) -> "RetryConfig":
        """Retry config for unit tests, no real sleeping."""
        return cls(
            max_retries=3,
            initial_delay=0.0,
            max_delay=0.0,
            backoff_multiplier=1.0,
        )

    def get_delays(self):
        """Yield successive sleep durations."""
        delay = self.initial_delay
        while True:
            yield min(delay, self.max_delay)
            delay *= self.backoff_multiplier


#: Default production retry configuration
DEFAULT_RETRY_CONFIG = RetryConfig()


def call_with_retries(
    func: Callable[[], T],
    retry_config: RetryConfig,
    retryable: tuple[type[Exception], ...],
    name: str,
) -> T:
    """Call ``func`` until it succeeds or attempts run out.

    :param retryable:
        Exception types that warrant another attempt. Others propagate at once.

    :param name:
        Human readable name for logging

    :return:
        Whatever ``func`` returns

    :raise Exception:
        The last retryable exception when all attempts failed
    """
    delays = retry_config.get_delays()
    for attempt in range(retry_config.max_retries):
        try:
            return func()
        except retryable as e:
            if attempt >= retry_config.max_retries - 1:
                logger.warning("%s failed after %d attempts: %s", name, attempt + 1, e)
                raise
            delay = next(delays)
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs",
                name,
                attempt + 1,
                retry_config.max_retries,
                e,
                delay,
            )
            time.sleep(delay)

    raise AssertionError("Unreachable")
