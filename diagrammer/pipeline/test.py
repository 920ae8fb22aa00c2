"""Tests for pipeline assembly."""

import pytest

from diagrammer.client import RetryConfig
from diagrammer.llm.conftest import MockLLMBackend
from diagrammer.loop import LoopConfig
from diagrammer.loop.conftest import MISSING_TAILWIND_HTML, ScriptedGenerator
from diagrammer.models import GenerationRequest
from diagrammer.validation import ValidationConfig

from .lib import create_pipeline

STRUCTURAL_ONLY = ValidationConfig(browser=False, visual=False)
FAST_BROWSER = ValidationConfig(settle_ms=0, icon_settle_ms=0, viewport_settle_ms=0)


@pytest.fixture
def boxes_request() -> GenerationRequest:
    return GenerationRequest(instruction="draw 3 boxes")


class TestCreatePipeline:
    """Tests for create_pipeline."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_injected_capability(self, boxes_request, result_cache):
        """An injected capability is used as-is and results are cached."""
        generator = ScriptedGenerator()
        pipeline = create_pipeline(
            generate=generator, validation=STRUCTURAL_ONLY, cache=result_cache
        )

        result = await pipeline.generate(boxes_request)

        assert result.success is True
        assert result.metadata.validation_passed is True
        assert pipeline.get_stats().size == 1
        assert not pipeline.engine.visual_enabled

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_settings_reach_components(self, boxes_request, result_cache):
        """Loop and retry settings are applied to the assembled stack."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        pipeline = create_pipeline(
            generate=generator,
            validation=STRUCTURAL_ONLY,
            loop=LoopConfig(max_iterations=2),
            retry=RetryConfig(max_retries=1, timeout=30),
            cache=result_cache,
        )

        result = await pipeline.generate(boxes_request)

        assert result.metadata.iterations == 2
        assert result.metadata.validation_passed is False
        assert pipeline.client.config.timeout == 30
        assert pipeline.controller.cache is result_cache

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_settings_from_environment(self, monkeypatch, result_cache):
        monkeypatch.setenv("PIPELINE_MAX_ITERATIONS", "7")
        monkeypatch.setenv("CLIENT_MAX_RETRIES", "0")
        monkeypatch.setenv("VISION_ENABLED", "false")

        pipeline = create_pipeline(generate=ScriptedGenerator(), cache=result_cache)

        assert pipeline.controller.config.max_iterations == 7
        assert pipeline.client.config.max_retries == 0
        assert pipeline.engine.config.visual is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backend_generator(self, monkeypatch, boxes_request, result_cache):
        """A backend is wrapped in a DiagramGenerator."""
        monkeypatch.setenv("VISION_ENABLED", "false")
        backend = MockLLMBackend()
        pipeline = create_pipeline(
            backend=backend, validation=STRUCTURAL_ONLY, cache=result_cache
        )

        result = await pipeline.generate(boxes_request)

        assert result.success is True
        assert result.metadata.model == "mock-model-v1"
        assert result.metadata.tokens_used == 100
        assert len(backend.calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_vision_reuses_backend(self, monkeypatch, result_cache):
        """The generation backend judges screenshots when it is the vision model."""
        monkeypatch.setenv("VISION_ENABLED", "true")
        monkeypatch.setenv("VISION_MODEL", "mock-model-v1")

        pipeline = create_pipeline(backend=MockLLMBackend(), cache=result_cache)

        assert pipeline.engine.visual_enabled

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_vision_disabled_without_key(
        self, monkeypatch, clear_api_keys, result_cache
    ):
        """A vision model without credentials disables the visual phase."""
        monkeypatch.setenv("VISION_ENABLED", "true")
        monkeypatch.setenv("VISION_MODEL", "gpt-4o")

        pipeline = create_pipeline(backend=MockLLMBackend(), cache=result_cache)

        assert not pipeline.engine.visual_enabled

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_full_stack(self, monkeypatch, fake_playwright, boxes_request, result_cache):
        """Generation, browser and visual phases run end to end."""
        monkeypatch.setenv("VISION_MODEL", "mock-model-v1")
        backend = MockLLMBackend()

        async with create_pipeline(
            backend=backend, validation=FAST_BROWSER, cache=result_cache
        ) as pipeline:
            result = await pipeline.generate(boxes_request)

        assert result.success is True
        assert result.metadata.validation_passed is True
        assert len(backend.image_calls) == 1
        assert fake_playwright.open_browsers == 0
