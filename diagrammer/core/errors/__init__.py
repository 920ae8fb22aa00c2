"""Error types and retry classification for diagrammer."""

from .lib import (
    ClientFailure,
    DiagrammerError,
    ErrorCategory,
    GenerationError,
    InvalidRequestError,
    NetworkError,
    PipelineTimeoutError,
    categorize_error,
    describe_failure,
    is_retryable,
)

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
