"""Resilient client around the feedback loop controller.

Adds a per-attempt deadline, exponential-backoff retries of transient
failures and normalized user-facing failure messages on top of one
``FeedbackLoopController.run`` call.

Example:
    >>> client = ResilientClient(controller)
    >>> result = await client.invoke(GenerationRequest(instruction="org chart"))
    >>> if not result.success:
    ...     print(client.last_failure.category, result.error)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from diagrammer.core.errors import (
    ClientFailure,
    DiagrammerError,
    ErrorCategory,
    GenerationError,
    NetworkError,
    PipelineTimeoutError,
    describe_failure,
    is_retryable,
)
from diagrammer.loop import FeedbackLoopController
from diagrammer.models import GenerationRequest, PipelineMetadata, PipelineResult

from .retry import RetryConfig, RetryStrategy

logger = logging.getLogger(__name__)

NO_PREVIOUS_REQUEST = "No previous request to retry"

RetryHook = Callable[[int, float], None]
"""Called before each retry with the retry number (1-based) and the delay."""

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class _Call:
    request: GenerationRequest
    kwargs: dict[str, Any] = field(default_factory=dict)


def _result_error(result: PipelineResult) -> DiagrammerError:
    """Rebuild an exception from a failed result, keeping its category."""
    message = result.error or "Generation failed"
    if result.error_category is ErrorCategory.NETWORK:
        return NetworkError(message, retryable=result.retryable)
    return GenerationError(message, retryable=result.retryable)


class ResilientClient:
    """Invokes the pipeline with a deadline and bounded retries.

    Terminal outcomes are never retried: deadline expiry, input validation
    errors and failures flagged non-retryable where they happened. Caller
    cancellation propagates as ``asyncio.CancelledError``. Everything else
    is retried up to ``max_retries`` more times with exponential backoff.
    """

    def __init__(
        self,
        controller: FeedbackLoopController,
        strategy: RetryStrategy | None = None,
        *,
        on_retry: RetryHook | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the client.

        Args:
            controller: Feedback loop controller to invoke.
            strategy: Retry policy. Defaults to RetryStrategy().
            on_retry: Optional hook for progress reporting.
            sleep: Coroutine used for backoff waits.
        """
        self._controller = controller
        self._strategy = strategy or RetryStrategy()
        self._on_retry = on_retry
        self._sleep = sleep
        self._attempt = 0
        self._running = False
        self._last_call: _Call | None = None
        self._last_failure: ClientFailure | None = None

    @property
    def controller(self) -> FeedbackLoopController:
        return self._controller

    @property
    def config(self) -> RetryConfig:
        return self._strategy.config

    @property
    def attempt(self) -> int:
        """Number of the current (or last) attempt, 1-based. 0 before any call."""
        return self._attempt

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_failure(self) -> ClientFailure | None:
        """Normalized failure of the last invocation, None if it succeeded."""
        return self._last_failure

    async def invoke(
        self,
        request: GenerationRequest,
        *,
        max_iterations: int | None = None,
        enable_validation: bool = True,
    ) -> PipelineResult:
        """Run the pipeline for a request.

        Args:
            request: The generation request.
            max_iterations: Generation budget passed to the controller.
            enable_validation: Passed to the controller.

        Returns:
            The controller's result, or a failed result whose ``error`` is a
            normalized user-facing message.

        Raises:
            asyncio.CancelledError: If the caller cancels the invocation.
        """
        call = _Call(
            request,
            {"max_iterations": max_iterations, "enable_validation": enable_validation},
        )
        self._last_call = call
        self._last_failure = None
        self._attempt = 0
        self._running = True
        try:
            return await self._invoke(call)
        finally:
            self._running = False

    async def retry(self) -> PipelineResult:
        """Re-run the most recent request with the same arguments."""
        if self._last_call is None:
            self._last_failure = ClientFailure(
                category=ErrorCategory.OTHER,
                message=NO_PREVIOUS_REQUEST,
            )
            return PipelineResult.failure(NO_PREVIOUS_REQUEST)
        call = self._last_call
        return await self.invoke(call.request, **call.kwargs)

    async def _invoke(self, call: _Call) -> PipelineResult:
        timeout = self._strategy.config.timeout

        while True:
            self._attempt += 1
            metadata: PipelineMetadata | None = None
            deadline = asyncio.timeout(timeout)
            try:
                async with deadline:
                    result = await self._controller.run(call.request, **call.kwargs)
            except TimeoutError as e:
                if deadline.expired():
                    logger.warning(
                        f"Attempt {self._attempt} exceeded {timeout:g}s deadline"
                    )
                    return self._fail(PipelineTimeoutError(timeout), timeout=timeout)
                error: BaseException = e
            except Exception as e:
                error = e
            else:
                if result.success:
                    return result
                error = _result_error(result)
                metadata = result.metadata

            retry_index = self._attempt - 1
            if not self._strategy.should_retry(error, retry_index):
                if is_retryable(error):
                    logger.error(f"Giving up after {self._attempt} attempt(s): {error}")
                else:
                    logger.info(f"Terminal failure on attempt {self._attempt}: {error}")
                return self._fail(error, metadata=metadata)

            delay = self._strategy.get_backoff_delay(retry_index)
            logger.warning(
                f"Attempt {self._attempt} failed ({error}); retrying in {delay:g}s"
            )
            if self._on_retry is not None:
                self._on_retry(self._attempt, delay)
            await self._sleep(delay)

    def _fail(
        self,
        error: BaseException,
        *,
        timeout: float | None = None,
        metadata: PipelineMetadata | None = None,
    ) -> PipelineResult:
        failure = describe_failure(error, timeout=timeout)
        self._last_failure = failure
        return PipelineResult.failure(
            failure.message,
            retryable=is_retryable(error),
            category=failure.category,
            metadata=metadata,
        )


__all__ = ["NO_PREVIOUS_REQUEST", "ResilientClient", "RetryHook"]
