"""Error taxonomy for the generation pipeline.

Every error raised by diagrammer carries an explicit ``retryable`` flag set
where the error originates. The client resilience layer reads that flag (via
``is_retryable``) instead of inspecting message text, and maps terminal
failures onto one of three user-facing categories.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

import httpx
from pydantic import ValidationError


class ErrorCategory(Enum):
    """User-facing failure categories."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    OTHER = "other"


class DiagrammerError(Exception):
    """Base exception for diagrammer.

    Attributes:
        retryable: Whether repeating the failed call may succeed.
    """

    retryable: bool = True

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class InvalidRequestError(DiagrammerError):
    """Raised when caller input is rejected. Never retried."""

    retryable = False


class GenerationError(DiagrammerError):
    """Raised when the generation capability fails to produce an artifact."""


class NetworkError(DiagrammerError):
    """Raised for transport-level failures (connection reset, DNS, ...)."""


class PipelineTimeoutError(DiagrammerError):
    """Raised when a pipeline invocation exceeds its deadline. Never retried."""

    retryable = False

    def __init__(self, timeout: float):
        super().__init__(f"Pipeline invocation exceeded {timeout:g}s deadline")
        self.timeout = timeout


def is_retryable(error: BaseException) -> bool:
    """Classify an error as retryable or terminal.

    Terminal: deadline expiry (``PipelineTimeoutError``), caller cancellation,
    and input validation failures (``InvalidRequestError``, pydantic
    ``ValidationError``, ``ValueError``). Errors from diagrammer report their
    own flag. A plain ``TimeoutError`` raised inside the pipeline is retried;
    only the client deadline is terminal. Anything else is assumed transient.

    Args:
        error: The exception that occurred.

    Returns:
        True if the call may be retried.
    """
    if isinstance(error, asyncio.CancelledError):
        return False
    if isinstance(error, DiagrammerError):
        return error.retryable
    if isinstance(error, (ValidationError, ValueError)):
        return False
    return True


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map an error onto a user-facing category."""
    if isinstance(error, (PipelineTimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (NetworkError, httpx.TransportError, ConnectionError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.OTHER


@dataclass(frozen=True)
class ClientFailure:
    """Normalized terminal failure shown to the caller.

    Attributes:
        category: User-facing category.
        message: Message safe to display as-is.
    """

    category: ErrorCategory
    message: str


def describe_failure(error: BaseException, timeout: float | None = None) -> ClientFailure:
    """Translate an error into a user-facing failure.

    Args:
        error: The terminal error.
        timeout: Deadline in seconds, used to phrase timeout messages.

    Returns:
        ClientFailure with a normalized category and message.
    """
    category = categorize_error(error)

    if category is ErrorCategory.TIMEOUT:
        seconds = timeout if timeout is not None else getattr(error, "timeout", None)
        if seconds is None:
            span = ""
        elif seconds >= 60:
            span = f" after {seconds / 60:g} minutes"
        else:
            span = f" after {seconds:g} seconds"
        message = (
            f"Request timed out{span}. "
            "Please try again with a simpler request."
        )
    elif category is ErrorCategory.NETWORK:
        message = "Network error. Please check your connection and try again."
    else:
        message = str(error) or "An unexpected error occurred"

    return ClientFailure(category=category, message=message)


__all__ = [
    "ClientFailure",
    "DiagrammerError",
    "ErrorCategory",
    "GenerationError",
    "InvalidRequestError",
    "NetworkError",
    "PipelineTimeoutError",
    "categorize_error",
    "describe_failure",
    "is_retryable",
]
