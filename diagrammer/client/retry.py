"""Retry policy for pipeline invocations.

Provides exponential backoff delays and the retry decision, based on the
``retryable`` flag errors and results carry from their point of origin.
"""

import logging
from dataclasses import dataclass

from diagrammer.config import EnvVar, get_environment
from diagrammer.core.errors import is_retryable

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry strategy.

    Attributes:
        max_retries: Additional attempts after the first failure.
        exponential_backoff: Use exponential backoff between attempts.
        initial_delay: Initial delay for backoff (seconds).
        max_delay: Maximum delay between retries (seconds).
        timeout: Deadline for each attempt (seconds).
    """

    max_retries: int = 3
    exponential_backoff: bool = True
    initial_delay: float = 1.0
    max_delay: float = 10.0
    timeout: float = 300.0

    @classmethod
    def from_environment(cls) -> "RetryConfig":
        return cls(
            max_retries=get_environment(EnvVar.CLIENT_MAX_RETRIES),
            timeout=get_environment(EnvVar.CLIENT_TIMEOUT_SECONDS),
        )


class RetryStrategy:
    """Decides whether and when to retry a failed invocation.

    Example:
        >>> strategy = RetryStrategy()
        >>> [strategy.get_backoff_delay(n) for n in range(5)]
        [1.0, 2.0, 4.0, 8.0, 10.0]
    """

    def __init__(self, config: RetryConfig | None = None):
        """Initialize retry strategy.

        Args:
            config: Retry configuration options.
        """
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def get_backoff_delay(self, attempt: int) -> float:
        """Calculate backoff delay for retry attempt.

        Args:
            attempt: Current attempt number (0-based).

        Returns:
            Delay in seconds before next attempt.
        """
        if not self._config.exponential_backoff:
            return self._config.initial_delay

        delay = self._config.initial_delay * (2**attempt)
        return min(delay, self._config.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Determine if an error should trigger a retry.

        Args:
            error: The exception that occurred.
            attempt: Current attempt number (0-based).

        Returns:
            True if another attempt is allowed.
        """
        if attempt >= self._config.max_retries:
            return False
        return is_retryable(error)


__all__ = ["RetryConfig", "RetryStrategy"]
