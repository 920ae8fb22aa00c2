"""Tests for client resilience layer."""

import asyncio

import httpx
import pytest

from diagrammer.core.errors import (
    ErrorCategory,
    InvalidRequestError,
    NetworkError,
    PipelineTimeoutError,
)
from diagrammer.llm.backend import LLMConnectionError, RateLimitError
from diagrammer.llm.generator import GenerationContext, GenerationOutput
from diagrammer.loop import FeedbackLoopController
from diagrammer.loop.conftest import VALID_HTML, ScriptedGenerator
from diagrammer.models import GenerationRequest

from .lib import NO_PREVIOUS_REQUEST, ResilientClient
from .retry import RetryConfig, RetryStrategy


class SlowGenerator:
    """Generation capability that never finishes on its own."""

    def __init__(self):
        self.cancelled = asyncio.Event()

    async def __call__(self, prompt: str, context: GenerationContext) -> GenerationOutput:
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.cancelled.set()
            raise
        return GenerationOutput(html=VALID_HTML)


class UnreachableValidator:
    """Validator whose dependency is offline."""

    def __init__(self):
        self.calls = 0

    async def validate(self, artifact: str, original_request: str):
        self.calls += 1
        raise httpx.ConnectError("connection refused")


class StalledValidator:
    """Validator whose own step times out, independent of the client deadline."""

    def __init__(self):
        self.calls = 0

    async def validate(self, artifact: str, original_request: str):
        self.calls += 1
        raise TimeoutError("screenshot timed out")


@pytest.fixture
def boxes_request() -> GenerationRequest:
    return GenerationRequest(instruction="draw 3 boxes")


# =============================================================================
# RetryStrategy
# =============================================================================


class TestRetryConfig:
    """Tests for RetryConfig dataclass."""

    @pytest.mark.unit
    def test_default_config(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.exponential_backoff is True
        assert config.initial_delay == 1.0
        assert config.max_delay == 10.0
        assert config.timeout == 300.0

    @pytest.mark.unit
    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("CLIENT_MAX_RETRIES", "1")
        monkeypatch.setenv("CLIENT_TIMEOUT_SECONDS", "30")
        config = RetryConfig.from_environment()
        assert config.max_retries == 1
        assert config.timeout == 30


class TestRetryStrategyBackoff:
    """Tests for backoff delay calculation."""

    @pytest.mark.unit
    def test_exponential_backoff(self):
        """Delays double and are capped at max_delay."""
        strategy = RetryStrategy()
        delays = [strategy.get_backoff_delay(n) for n in range(6)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    @pytest.mark.unit
    def test_no_exponential_backoff(self):
        """Test constant delay without exponential backoff."""
        strategy = RetryStrategy(RetryConfig(exponential_backoff=False, initial_delay=2.0))
        assert strategy.get_backoff_delay(0) == 2.0
        assert strategy.get_backoff_delay(3) == 2.0


class TestRetryStrategyDecision:
    """Tests for retry decisions."""

    @pytest.mark.unit
    def test_retries_transient_errors(self):
        strategy = RetryStrategy()
        assert strategy.should_retry(RateLimitError("slow down"), 0)
        assert strategy.should_retry(NetworkError("reset"), 2)
        assert strategy.should_retry(RuntimeError("boom"), 0)

    @pytest.mark.unit
    def test_max_retries_exceeded(self):
        strategy = RetryStrategy(RetryConfig(max_retries=2))
        assert strategy.should_retry(RateLimitError("slow down"), 1)
        assert not strategy.should_retry(RateLimitError("slow down"), 2)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error",
        [
            InvalidRequestError("bad input"),
            ValueError("bad input"),
            PipelineTimeoutError(300),
            asyncio.CancelledError(),
        ],
    )
    def test_terminal_errors_never_retried(self, error):
        assert not RetryStrategy().should_retry(error, 0)


# =============================================================================
# ResilientClient
# =============================================================================


class TestResilientClient:
    """Tests for ResilientClient."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_first_attempt(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        controller = FeedbackLoopController(
            ScriptedGenerator(), structural_validator, result_cache
        )
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is True
        assert client.attempt == 1
        assert client.last_failure is None
        assert client.is_running is False
        assert recorded_sleeps == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backoff_after_three_transient_failures(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        """Three transient failures then success sleeps 1s, 2s, 4s."""
        error = RateLimitError("rate limit exceeded")
        generator = ScriptedGenerator([error, error, error, VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is True
        assert recorded_sleeps == [1.0, 2.0, 4.0]
        assert client.attempt == 4
        assert len(generator.calls) == 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_failure_then_success(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        """One failure is retried once after about a second."""
        generator = ScriptedGenerator([RuntimeError("upstream hiccup"), VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is True
        assert recorded_sleeps == [1.0]
        assert result.metadata.validation_passed is True
        assert result.metadata.validation_errors == ()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retries_exhausted(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        """A persistent transient failure stops after max_retries more attempts."""
        generator = ScriptedGenerator([RateLimitError("rate limit exceeded")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert result.retryable is True
        assert result.error == "rate limit exceeded"
        assert len(generator.calls) == 4
        assert recorded_sleeps == [1.0, 2.0, 4.0]
        assert client.last_failure.category is ErrorCategory.OTHER

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_terminal_generation_failure_not_retried(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        generator = ScriptedGenerator([ValueError("prompt rejected")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert result.retryable is False
        assert result.error == "prompt rejected"
        assert len(generator.calls) == 1
        assert recorded_sleeps == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_budget_not_retried(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        generator = ScriptedGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request, max_iterations=0)

        assert result.success is False
        assert "max_iterations" in result.error
        assert generator.calls == []
        assert recorded_sleeps == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_network_failure_normalized(
        self, boxes_request, result_cache, fake_sleep, recorded_sleeps
    ):
        """Network errors are retried, then reported with a generic message."""
        validator = UnreachableValidator()
        controller = FeedbackLoopController(ScriptedGenerator(), validator, result_cache)
        client = ResilientClient(
            controller, RetryStrategy(RetryConfig(max_retries=1)), sleep=fake_sleep
        )

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert validator.calls == 2
        assert client.last_failure.category is ErrorCategory.NETWORK
        assert result.error == "Network error. Please check your connection and try again."

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generation_network_failure_normalized(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        """A connection failure inside generation keeps the network category."""
        generator = ScriptedGenerator([LLMConnectionError("Connection error.")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert len(generator.calls) == 4
        assert recorded_sleeps == [1.0, 2.0, 4.0]
        assert client.last_failure.category is ErrorCategory.NETWORK
        assert result.error_category is ErrorCategory.NETWORK
        assert result.error == "Network error. Please check your connection and try again."

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inner_timeout_is_retried(
        self, boxes_request, result_cache, fake_sleep, recorded_sleeps
    ):
        """A TimeoutError from a pipeline step is not mistaken for the deadline."""
        validator = StalledValidator()
        controller = FeedbackLoopController(ScriptedGenerator(), validator, result_cache)
        client = ResilientClient(
            controller, RetryStrategy(RetryConfig(max_retries=1)), sleep=fake_sleep
        )

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert result.retryable is True
        assert validator.calls == 2
        assert recorded_sleeps == [1.0]
        assert client.attempt == 2
        assert client.last_failure.category is ErrorCategory.TIMEOUT
        assert result.error.startswith("Request timed out. ")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_deadline_is_terminal(
        self, boxes_request, structural_validator, result_cache, fake_sleep, recorded_sleeps
    ):
        """Deadline expiry cancels the attempt and is never retried."""
        generator = SlowGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(
            controller, RetryStrategy(RetryConfig(timeout=0.05)), sleep=fake_sleep
        )

        result = await client.invoke(boxes_request)

        assert result.success is False
        assert result.retryable is False
        assert result.error.startswith("Request timed out after 0.05 seconds")
        assert result.error_category is ErrorCategory.TIMEOUT
        assert client.last_failure.category is ErrorCategory.TIMEOUT
        assert client.attempt == 1
        assert generator.cancelled.is_set()
        assert recorded_sleeps == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(
        self, boxes_request, structural_validator, result_cache
    ):
        generator = SlowGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller)

        task = asyncio.create_task(client.invoke(boxes_request))
        await asyncio.sleep(0.01)
        assert client.is_running is True
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert generator.cancelled.is_set()
        assert client.is_running is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_on_retry_hook(
        self, boxes_request, structural_validator, result_cache, fake_sleep
    ):
        """The hook sees the retry number and the delay before each retry."""
        hook_calls = []
        error = RateLimitError("rate limit exceeded")
        generator = ScriptedGenerator([error, error, VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(
            controller,
            on_retry=lambda attempt, delay: hook_calls.append((attempt, delay)),
            sleep=fake_sleep,
        )

        await client.invoke(boxes_request)

        assert hook_calls == [(1, 1.0), (2, 2.0)]


class TestResilientClientRetry:
    """Tests for explicit retry of the last request."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_without_previous_request(self, structural_validator, result_cache):
        controller = FeedbackLoopController(
            ScriptedGenerator(), structural_validator, result_cache
        )
        client = ResilientClient(controller)

        result = await client.retry()

        assert result.success is False
        assert result.error == NO_PREVIOUS_REQUEST
        assert client.last_failure.category is ErrorCategory.OTHER

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_reruns_last_request(
        self, boxes_request, structural_validator, result_cache, fake_sleep
    ):
        """retry() replays the last request and its arguments."""
        generator = ScriptedGenerator([ValueError("prompt rejected"), VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)
        client = ResilientClient(controller, sleep=fake_sleep)

        failed = await client.invoke(boxes_request, max_iterations=2)
        result = await client.retry()

        assert failed.success is False
        assert result.success is True
        assert client.last_failure is None
        assert [ctx.request for _, ctx in generator.calls] == [boxes_request, boxes_request]
