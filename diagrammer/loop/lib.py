"""Feedback loop controller: generate, validate, regenerate.

Drives one pipeline invocation through a small state machine:

    CHECK_CACHE -> GENERATE -> VALIDATE -> DECIDE -> (GENERATE | terminal)

Generation failures end the invocation immediately; retrying them is the
client resilience layer's job. Validation failures are fed back into the
next generation until the iteration budget is spent.

Example:
    >>> controller = FeedbackLoopController(DiagramGenerator(), ValidationEngine())
    >>> result = await controller.run(GenerationRequest(instruction="org chart"))
    >>> result.metadata.validation_passed
    True
"""

import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from diagrammer.cache import ResultCacheProtocol, get_default_cache, hash_request
from diagrammer.config import EnvVar, get_environment
from diagrammer.core.errors import InvalidRequestError, categorize_error, is_retryable
from diagrammer.feedback import FeedbackHistory
from diagrammer.llm.generator import (
    GenerationCapability,
    GenerationContext,
    GenerationOutput,
)
from diagrammer.models import (
    GenerationRequest,
    PipelineMetadata,
    PipelineResult,
    ValidationResult,
)
from diagrammer.prompt import build_revision_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5
MAX_ITERATIONS_CAP = 10


class LoopState(str, Enum):
    """States of one controller invocation."""

    CHECK_CACHE = "check_cache"
    GENERATE = "generate"
    VALIDATE = "validate"
    DECIDE = "decide"
    DONE_VALID = "done_valid"
    DONE_EXHAUSTED = "done_exhausted"
    DONE_UNVALIDATED = "done_unvalidated"
    DONE_GENERATION_FAILED = "done_generation_failed"

    @property
    def is_terminal(self) -> bool:
        return self.name.startswith("DONE_")


class ArtifactValidator(Protocol):
    """Anything that can judge a generated artifact."""

    def validate(self, artifact: str, original_request: str) -> Awaitable[ValidationResult]:
        ...


@dataclass
class LoopConfig:
    """Configuration for FeedbackLoopController.

    Attributes:
        max_iterations: Default generation budget per invocation (1..10).
        use_cache: Check and populate the result cache.
        cache_ttl: TTL for cached results. None uses the cache default.
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    use_cache: bool = True
    cache_ttl: float | None = None

    @classmethod
    def from_environment(cls) -> "LoopConfig":
        return cls(max_iterations=get_environment(EnvVar.PIPELINE_MAX_ITERATIONS))


def check_iteration_budget(max_iterations: int) -> int:
    """Validate an iteration budget.

    Raises:
        InvalidRequestError: If the budget is not an integer in 1..10.
    """
    if (
        isinstance(max_iterations, bool)
        or not isinstance(max_iterations, int)
        or not 1 <= max_iterations <= MAX_ITERATIONS_CAP
    ):
        raise InvalidRequestError(
            f"max_iterations must be between 1 and {MAX_ITERATIONS_CAP}, "
            f"got {max_iterations!r}"
        )
    return max_iterations


@dataclass
class _Run:
    """Mutable bookkeeping for one invocation."""

    request: GenerationRequest
    max_iterations: int
    started: float
    iteration: int = 0
    tokens_used: int = 0
    model: str | None = None
    artifact: str | None = None
    verdict: ValidationResult | None = None

    def metadata(self, state: LoopState) -> PipelineMetadata:
        verdict = self.verdict
        errors = tuple(i.message for i in verdict.errors) if verdict is not None else ()
        warnings = tuple(i.message for i in verdict.warnings) if verdict is not None else ()
        return PipelineMetadata(
            model=self.model,
            tokens_used=self.tokens_used,
            elapsed_ms=int((time.perf_counter() - self.started) * 1000),
            validation_passed=verdict.is_valid if verdict is not None else None,
            iterations=self.iteration,
            validation_errors=errors,
            validation_warnings=warnings,
            termination=state.name,
        )


class FeedbackLoopController:
    """Runs the bounded generate/validate/regenerate cycle.

    Iterations run strictly one after another. Cancellation is never caught
    here, so a deadline set by the caller stops generation and any open
    browser immediately.

    Successful results are written to the cache unless validation ran and
    failed; a best-effort artifact is not served to later identical requests.
    An unvalidated result is only served to requests that skip validation.
    """

    def __init__(
        self,
        generate: GenerationCapability,
        validator: ArtifactValidator | None = None,
        cache: ResultCacheProtocol | None = None,
        config: LoopConfig | None = None,
    ):
        """Initialize the controller.

        Args:
            generate: Generation capability producing one artifact per call.
            validator: Validation engine. Without one, results are unvalidated.
            cache: Result cache. Defaults to the process-wide cache.
            config: Loop configuration.
        """
        self._generate = generate
        self._validator = validator
        self._cache = cache if cache is not None else get_default_cache()
        self._config = config or LoopConfig()
        check_iteration_budget(self._config.max_iterations)

    @property
    def config(self) -> LoopConfig:
        return self._config

    @property
    def cache(self) -> ResultCacheProtocol:
        return self._cache

    async def run(
        self,
        request: GenerationRequest,
        max_iterations: int | None = None,
        *,
        enable_validation: bool = True,
    ) -> PipelineResult:
        """Produce an artifact for a request.

        Args:
            request: The generation request.
            max_iterations: Generation budget. Defaults to the configured one.
            enable_validation: Skip validation and return the first artifact
                when False.

        Returns:
            PipelineResult. ``success`` is False only when generation failed;
            an exhausted budget still returns the last artifact with
            ``validation_passed=False``.

        Raises:
            InvalidRequestError: If the budget is outside 1..10.
        """
        budget = check_iteration_budget(
            self._config.max_iterations if max_iterations is None else max_iterations
        )
        validate = enable_validation and self._validator is not None
        if enable_validation and self._validator is None:
            logger.warning("No validator configured; returning unvalidated artifact")

        run = _Run(request=request, max_iterations=budget, started=time.perf_counter())
        key = hash_request(request)
        history = FeedbackHistory()
        state = LoopState.CHECK_CACHE

        while True:
            logger.debug(f"Loop state {state.name} (iteration {run.iteration}/{budget})")

            if state is LoopState.CHECK_CACHE:
                cached = self._cache.get(key) if self._config.use_cache else None
                if (
                    validate
                    and cached is not None
                    and cached.metadata.validation_passed is not True
                ):
                    logger.info(f"Ignoring unvalidated cache entry for {key[:12]}")
                    cached = None
                if cached is not None:
                    logger.info(f"Cache hit for request {key[:12]}")
                    return cached
                state = LoopState.GENERATE

            elif state is LoopState.GENERATE:
                run.iteration += 1
                run.verdict = None
                try:
                    output = await self._call_generate(run, history)
                except Exception as e:
                    logger.error(f"Generation failed on iteration {run.iteration}: {e}")
                    return PipelineResult.failure(
                        str(e) or type(e).__name__,
                        retryable=is_retryable(e),
                        category=categorize_error(e),
                        metadata=run.metadata(LoopState.DONE_GENERATION_FAILED),
                    )
                run.artifact = output.html
                run.tokens_used += output.tokens_used
                run.model = output.model or run.model
                state = LoopState.VALIDATE if validate else LoopState.DONE_UNVALIDATED

            elif state is LoopState.VALIDATE:
                run.verdict = await self._validator.validate(run.artifact, request.instruction)
                state = LoopState.DECIDE

            elif state is LoopState.DECIDE:
                if run.verdict.is_valid:
                    state = LoopState.DONE_VALID
                elif run.iteration >= budget:
                    state = LoopState.DONE_EXHAUSTED
                else:
                    logger.info(
                        f"Iteration {run.iteration}/{budget} failed validation with "
                        f"{len(run.verdict.errors)} error(s); regenerating"
                    )
                    history.add(run.verdict.feedback)
                    state = LoopState.GENERATE

            else:
                return self._finish(run, state, key)

    async def _call_generate(
        self, run: _Run, history: FeedbackHistory
    ) -> GenerationOutput:
        if run.iteration == 1:
            prompt = run.request.instruction
        else:
            prompt = build_revision_prompt(history.as_tuple())
        context = GenerationContext(
            request=run.request,
            feedback=history.as_tuple(),
            previous_artifact=run.artifact,
            iteration=run.iteration,
        )
        return await self._generate(prompt, context)

    def _finish(self, run: _Run, state: LoopState, key: str) -> PipelineResult:
        result = PipelineResult(
            success=True,
            artifact=run.artifact,
            metadata=run.metadata(state),
        )

        if state is LoopState.DONE_EXHAUSTED:
            logger.warning(
                f"Validation budget of {run.max_iterations} spent; returning "
                "best-effort artifact"
            )
        elif self._config.use_cache:
            self._cache.set(key, result, self._config.cache_ttl)

        logger.info(
            f"Pipeline finished in state {state.name} after {run.iteration} "
            f"iteration(s), {run.tokens_used} tokens, "
            f"{result.metadata.elapsed_ms}ms"
        )
        return result


__all__ = [
    "ArtifactValidator",
    "DEFAULT_MAX_ITERATIONS",
    "FeedbackLoopController",
    "LoopConfig",
    "LoopState",
    "MAX_ITERATIONS_CAP",
    "check_iteration_budget",
]
