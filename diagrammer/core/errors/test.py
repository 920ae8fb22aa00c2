"""Tests for error classification."""

import asyncio

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from .lib import (
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


class _Strict(BaseModel):
    count: int


def _pydantic_error() -> ValidationError:
    try:
        _Strict(count="many")
    except ValidationError as e:
        return e
    raise AssertionError("expected ValidationError")


class TestIsRetryable:
    """Tests for retryable/terminal classification."""

    @pytest.mark.unit
    def test_terminal_errors(self):
        """Cancellation, the client deadline and bad input are terminal."""
        assert not is_retryable(asyncio.CancelledError())
        assert not is_retryable(PipelineTimeoutError(300))
        assert not is_retryable(InvalidRequestError("bad"))
        assert not is_retryable(ValueError("bad"))
        assert not is_retryable(_pydantic_error())

    @pytest.mark.unit
    def test_transient_errors(self):
        """Unknown and network errors are retried."""
        assert is_retryable(RuntimeError("boom"))
        assert is_retryable(NetworkError("reset"))
        assert is_retryable(GenerationError("empty response"))
        assert is_retryable(ConnectionResetError())

    @pytest.mark.unit
    def test_inner_timeout_is_transient(self):
        """A TimeoutError raised by a pipeline step is not the client deadline."""
        assert is_retryable(TimeoutError("read timed out"))

    @pytest.mark.unit
    def test_flag_overrides_class_default(self):
        """The flag set at the origin wins over the class default."""
        assert not is_retryable(GenerationError("quota", retryable=False))
        assert is_retryable(DiagrammerError("x", retryable=True))

    @pytest.mark.unit
    def test_message_text_is_ignored(self):
        """Classification never depends on message text."""
        assert is_retryable(RuntimeError("invalid validation timeout"))


class TestDescribeFailure:
    """Tests for user-facing normalization."""

    @pytest.mark.unit
    def test_timeout_in_minutes(self):
        """Timeouts mention the deadline."""
        failure = describe_failure(PipelineTimeoutError(300))
        assert failure.category is ErrorCategory.TIMEOUT
        assert "5 minutes" in failure.message

    @pytest.mark.unit
    def test_timeout_in_seconds(self):
        """Short deadlines are phrased in seconds."""
        failure = describe_failure(asyncio.TimeoutError(), timeout=30)
        assert failure.category is ErrorCategory.TIMEOUT
        assert "30 seconds" in failure.message

    @pytest.mark.unit
    def test_timeout_without_deadline(self):
        """A timeout with no known deadline is not given a span."""
        failure = describe_failure(TimeoutError())
        assert failure.category is ErrorCategory.TIMEOUT
        assert failure.message.startswith("Request timed out. ")

    @pytest.mark.unit
    def test_network(self):
        """Transport errors map to the network category."""
        request = httpx.Request("POST", "https://api.example.com")
        failure = describe_failure(httpx.ConnectError("refused", request=request))
        assert failure.category is ErrorCategory.NETWORK
        assert categorize_error(NetworkError("x")) is ErrorCategory.NETWORK

    @pytest.mark.unit
    def test_other_passes_message_through(self):
        """Other errors keep their message."""
        failure = describe_failure(InvalidRequestError("max_iterations must be 1-10"))
        assert failure.category is ErrorCategory.OTHER
        assert failure.message == "max_iterations must be 1-10"
