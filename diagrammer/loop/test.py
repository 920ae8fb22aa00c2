"""Tests for FeedbackLoopController."""

import asyncio

import pytest

from diagrammer.cache import ResultCache, hash_request
from diagrammer.core.errors import ErrorCategory, InvalidRequestError
from diagrammer.llm.backend import LLMConnectionError, RateLimitError
from diagrammer.models import GenerationRequest, ReferenceFile

from .conftest import MISSING_TAILWIND_HTML, VALID_HTML, ScriptedGenerator
from .lib import FeedbackLoopController, LoopConfig, LoopState, check_iteration_budget

MISSING_TAILWIND_ERROR = "Missing required script: https://cdn.tailwindcss.com"


@pytest.fixture
def boxes_request() -> GenerationRequest:
    return GenerationRequest(instruction="draw 3 boxes")


class TestLoopState:
    """Tests for LoopState."""

    @pytest.mark.unit
    def test_terminal_states(self):
        """Only DONE_* states are terminal."""
        terminal = {state for state in LoopState if state.is_terminal}
        assert terminal == {
            LoopState.DONE_VALID,
            LoopState.DONE_EXHAUSTED,
            LoopState.DONE_UNVALIDATED,
            LoopState.DONE_GENERATION_FAILED,
        }


class TestIterationBudget:
    """Tests for iteration budget checks."""

    @pytest.mark.unit
    @pytest.mark.parametrize("budget", [1, 5, 10])
    def test_accepts_range(self, budget):
        assert check_iteration_budget(budget) == budget

    @pytest.mark.unit
    @pytest.mark.parametrize("budget", [0, -1, 11, True, 2.5])
    def test_rejects_out_of_range(self, budget):
        with pytest.raises(InvalidRequestError):
            check_iteration_budget(budget)

    @pytest.mark.unit
    def test_invalid_budget_is_terminal(self):
        """Budget errors are never retried."""
        with pytest.raises(InvalidRequestError) as excinfo:
            check_iteration_budget(11)
        assert excinfo.value.retryable is False

    @pytest.mark.unit
    def test_config_budget_checked(self):
        """A controller cannot be built with an invalid default budget."""
        with pytest.raises(InvalidRequestError):
            FeedbackLoopController(
                ScriptedGenerator(), cache=ResultCache(), config=LoopConfig(max_iterations=0)
            )

    @pytest.mark.unit
    def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_MAX_ITERATIONS", "3")
        assert LoopConfig.from_environment().max_iterations == 3


class TestFeedbackLoopController:
    """Tests for the generate/validate/regenerate cycle."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_on_first_iteration(
        self, boxes_request, structural_validator, result_cache
    ):
        """A valid first artifact ends the loop after one generation."""
        generator = ScriptedGenerator([VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request)

        assert result.success is True
        assert result.artifact == VALID_HTML
        assert result.metadata.validation_passed is True
        assert result.metadata.iterations == 1
        assert result.metadata.termination == LoopState.DONE_VALID.name
        assert result.metadata.model == "scripted-model"
        assert len(generator.calls) == 1
        assert generator.prompts[0] == "draw 3 boxes"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exhausts_budget_with_missing_script(
        self, boxes_request, structural_validator, result_cache
    ):
        """An artifact that never validates exhausts the budget."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request, max_iterations=3)

        assert result.success is True
        assert result.artifact == MISSING_TAILWIND_HTML
        assert result.metadata.validation_passed is False
        assert result.metadata.iterations == 3
        assert result.metadata.validation_errors == (MISSING_TAILWIND_ERROR,)
        assert result.metadata.termination == LoopState.DONE_EXHAUSTED.name
        assert len(generator.calls) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("budget", [1, 2, 4])
    async def test_exactly_budget_generation_calls(
        self, budget, boxes_request, structural_validator, result_cache
    ):
        """Failing validation makes exactly max_iterations generation calls."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request, max_iterations=budget)

        assert len(generator.calls) == budget
        assert structural_validator.calls == budget
        assert result.metadata.iterations == budget

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_regenerates_with_feedback(
        self, boxes_request, structural_validator, result_cache
    ):
        """Later iterations receive feedback and the previous artifact."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML, VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request)

        assert result.metadata.validation_passed is True
        assert result.metadata.iterations == 2
        prompt, context = generator.calls[1]
        assert context.iteration == 2
        assert context.previous_artifact == MISSING_TAILWIND_HTML
        assert len(context.feedback) == 1
        assert MISSING_TAILWIND_ERROR in context.feedback[0]
        assert MISSING_TAILWIND_ERROR in prompt
        assert 'original request: "draw 3 boxes"' in prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_feedback_accumulates(
        self, boxes_request, structural_validator, result_cache
    ):
        """Feedback from every failed iteration is carried forward."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        await controller.run(boxes_request, max_iterations=3)

        assert [len(ctx.feedback) for _, ctx in generator.calls] == [0, 1, 2]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tokens_accumulate(
        self, boxes_request, structural_validator, result_cache
    ):
        """Token usage is summed across iterations."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML], tokens_per_call=25)
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request, max_iterations=4)

        assert result.metadata.tokens_used == 100

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validation_disabled(
        self, boxes_request, structural_validator, result_cache
    ):
        """Disabled validation returns the first artifact unvalidated."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request, enable_validation=False)

        assert result.success is True
        assert result.artifact == MISSING_TAILWIND_HTML
        assert result.metadata.validation_passed is None
        assert result.metadata.iterations == 1
        assert result.metadata.termination == LoopState.DONE_UNVALIDATED.name
        assert structural_validator.calls == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_validator_returns_unvalidated(self, boxes_request, result_cache):
        controller = FeedbackLoopController(ScriptedGenerator(), cache=result_cache)

        result = await controller.run(boxes_request)

        assert result.metadata.validation_passed is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generation_failure_is_retryable(
        self, boxes_request, structural_validator, result_cache
    ):
        """A transient generation failure ends the loop with retryable set."""
        generator = ScriptedGenerator([RateLimitError("rate limit exceeded")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request)

        assert result.success is False
        assert result.retryable is True
        assert result.error == "rate limit exceeded"
        assert result.artifact is None
        assert result.metadata.validation_passed is None
        assert result.metadata.iterations == 1
        assert result.metadata.termination == LoopState.DONE_GENERATION_FAILED.name
        assert len(result_cache) == 0
        assert result.error_category is ErrorCategory.OTHER

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generation_failure_keeps_network_category(
        self, boxes_request, structural_validator, result_cache
    ):
        """A connection failure is reported as a network failure."""
        generator = ScriptedGenerator([LLMConnectionError("Connection error.")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request)

        assert result.success is False
        assert result.retryable is True
        assert result.error_category is ErrorCategory.NETWORK

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generation_failure_is_terminal(
        self, boxes_request, structural_validator, result_cache
    ):
        """Input errors from the capability are not retryable."""
        generator = ScriptedGenerator([ValueError("prompt rejected")])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request)

        assert result.success is False
        assert result.retryable is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_after_invalid_iteration(
        self, boxes_request, structural_validator, result_cache
    ):
        """A later generation failure does not report a stale verdict."""
        generator = ScriptedGenerator(
            [MISSING_TAILWIND_HTML, RateLimitError("rate limit exceeded")]
        )
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        result = await controller.run(boxes_request, max_iterations=5)

        assert result.success is False
        assert result.metadata.iterations == 2
        assert result.metadata.validation_passed is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, boxes_request, structural_validator, result_cache
    ):
        """Cancellation is never turned into a failed result."""
        generator = ScriptedGenerator([asyncio.CancelledError()])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        with pytest.raises(asyncio.CancelledError):
            await controller.run(boxes_request)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_budget_raises(self, boxes_request, result_cache):
        controller = FeedbackLoopController(ScriptedGenerator(), cache=result_cache)

        with pytest.raises(InvalidRequestError):
            await controller.run(boxes_request, max_iterations=11)


class TestLoopCaching:
    """Tests for cache interaction."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_identical_request_hits_cache(
        self, boxes_request, structural_validator, result_cache
    ):
        """An identical request within TTL never calls the generator."""
        generator = ScriptedGenerator([VALID_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        first = await controller.run(boxes_request)
        second = await controller.run(GenerationRequest(instruction="  Draw 3   BOXES "))

        assert second is first
        assert len(generator.calls) == 1
        assert structural_validator.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_result_stored_under_request_key(
        self, boxes_request, structural_validator, result_cache
    ):
        controller = FeedbackLoopController(
            ScriptedGenerator(), structural_validator, result_cache
        )

        result = await controller.run(boxes_request)

        assert result_cache.get(hash_request(boxes_request)) is result

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exhausted_result_not_cached(
        self, boxes_request, structural_validator, result_cache
    ):
        """Best-effort artifacts are regenerated on the next request."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        await controller.run(boxes_request, max_iterations=2)
        await controller.run(boxes_request, max_iterations=2)

        assert len(generator.calls) == 4
        assert len(result_cache) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_different_files_miss_cache(self, structural_validator, result_cache):
        """Requests with different reference files are keyed separately."""
        generator = ScriptedGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        await controller.run(GenerationRequest(instruction="draw 3 boxes"))
        await controller.run(
            GenerationRequest(
                instruction="draw 3 boxes",
                files=(ReferenceFile(name="notes.txt", size=12, content="three boxes"),),
            )
        )

        assert len(generator.calls) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cache_disabled(self, boxes_request, structural_validator, result_cache):
        generator = ScriptedGenerator()
        controller = FeedbackLoopController(
            generator,
            structural_validator,
            result_cache,
            LoopConfig(use_cache=False),
        )

        await controller.run(boxes_request)
        await controller.run(boxes_request)

        assert len(generator.calls) == 2
        assert len(result_cache) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_custom_cache_ttl(self, boxes_request, structural_validator):
        """Results are cached with the configured TTL."""
        now = [1000.0]
        generator = ScriptedGenerator()
        async with ResultCache(max_size=5, default_ttl=3600, clock=lambda: now[0]) as cache:
            controller = FeedbackLoopController(
                generator, structural_validator, cache, LoopConfig(cache_ttl=10)
            )

            await controller.run(boxes_request)
            now[0] += 11
            await controller.run(boxes_request)

        assert len(generator.calls) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unvalidated_result_not_served_to_validated_request(
        self, boxes_request, structural_validator, result_cache
    ):
        """A request that asks for validation never gets an unvalidated artifact."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        unvalidated = await controller.run(boxes_request, enable_validation=False)
        validated = await controller.run(boxes_request, 3)

        assert unvalidated.metadata.validation_passed is None
        assert validated is not unvalidated
        assert validated.metadata.validation_passed is False
        assert validated.metadata.iterations == 3
        assert validated.metadata.termination == LoopState.DONE_EXHAUSTED.name
        assert structural_validator.calls == 3
        assert len(generator.calls) == 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unvalidated_result_served_when_validation_skipped(
        self, boxes_request, structural_validator, result_cache
    ):
        generator = ScriptedGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        first = await controller.run(boxes_request, enable_validation=False)
        second = await controller.run(boxes_request, enable_validation=False)

        assert second is first
        assert len(generator.calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validated_result_served_when_validation_skipped(
        self, boxes_request, structural_validator, result_cache
    ):
        generator = ScriptedGenerator()
        controller = FeedbackLoopController(generator, structural_validator, result_cache)

        first = await controller.run(boxes_request)
        second = await controller.run(boxes_request, enable_validation=False)

        assert second is first
        assert second.metadata.validation_passed is True
        assert len(generator.calls) == 1
