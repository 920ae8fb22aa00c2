"""Client resilience layer.

Provides the ResilientClient that wraps one pipeline invocation with a
deadline, retry of transient failures and normalized failure messages.
"""

from .lib import NO_PREVIOUS_REQUEST, ResilientClient, RetryHook
from .retry import RetryConfig, RetryStrategy

__all__ = [
    "NO_PREVIOUS_REQUEST",
    "ResilientClient",
    "RetryConfig",
    "RetryHook",
    "RetryStrategy",
]
