"""Pipeline wiring from environment configuration.

Builds the full stack (cache, LLM generator, validation engine, feedback
loop controller and resilient client) and exposes it as one object.

Example:
    >>> async with create_pipeline() as pipeline:
    ...     result = await pipeline.generate(GenerationRequest(instruction="org chart"))
    ...     print(pipeline.get_stats().size)
"""

import logging
from dataclasses import dataclass

from diagrammer.cache import CacheStats, ResultCache, get_default_cache
from diagrammer.client import ResilientClient, RetryConfig, RetryHook, RetryStrategy
from diagrammer.config import EnvVar, get_environment
from diagrammer.llm import (
    DiagramGenerator,
    GenerationCapability,
    LLMBackend,
    LLMError,
    create_llm_backend,
)
from diagrammer.loop import FeedbackLoopController, LoopConfig
from diagrammer.models import GenerationRequest, PipelineResult
from diagrammer.validation import ValidationConfig, ValidationEngine, VisionCapability

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Assembled generation pipeline.

    Attributes:
        client: Resilient client, the entry point for callers.
        controller: Feedback loop controller behind the client.
        engine: Validation engine used by the controller.
        cache: Result cache shared by the controller.
    """

    client: ResilientClient
    controller: FeedbackLoopController
    engine: ValidationEngine
    cache: ResultCache

    async def generate(
        self,
        request: GenerationRequest,
        *,
        max_iterations: int | None = None,
        enable_validation: bool = True,
    ) -> PipelineResult:
        """Generate a diagram through the resilient client."""
        return await self.client.invoke(
            request,
            max_iterations=max_iterations,
            enable_validation=enable_validation,
        )

    def get_stats(self) -> CacheStats:
        return self.cache.get_stats()

    async def close(self) -> None:
        await self.cache.close()

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _vision_from_environment(backend: LLMBackend) -> VisionCapability | None:
    if not get_environment(EnvVar.VISION_ENABLED):
        return None

    model = get_environment(EnvVar.VISION_MODEL)
    if model == backend.model_name:
        vision_backend = backend
    else:
        try:
            vision_backend = create_llm_backend(model)
        except LLMError as e:
            logger.warning(f"Visual validation disabled, cannot create {model}: {e}")
            return None

    if not vision_backend.supports_vision:
        logger.warning(f"Visual validation disabled, {model} has no image input")
        return None
    return vision_backend.analyze_image


def create_pipeline(
    *,
    generate: GenerationCapability | None = None,
    backend: LLMBackend | None = None,
    vision: VisionCapability | None = None,
    validation: ValidationConfig | None = None,
    loop: LoopConfig | None = None,
    retry: RetryConfig | None = None,
    cache: ResultCache | None = None,
    on_retry: RetryHook | None = None,
) -> Pipeline:
    """Create a pipeline, filling unset collaborators from the environment.

    Args:
        generate: Generation capability. Defaults to a DiagramGenerator.
        backend: LLM backend for the default generator and vision.
        vision: Vision capability. Defaults to the VISION_MODEL backend
            when VISION_ENABLED is set.
        validation: Validation settings.
        loop: Feedback loop settings.
        retry: Client retry settings.
        cache: Result cache. Defaults to the process-wide cache.
        on_retry: Optional retry progress hook.

    Returns:
        Assembled Pipeline.

    Raises:
        AuthenticationError: If a default LLM backend has no API key.
    """
    if generate is None:
        generator = DiagramGenerator(backend)
        backend = generator.backend
        generate = generator

    if vision is None and backend is not None:
        vision = _vision_from_environment(backend)

    cache = cache if cache is not None else get_default_cache()
    engine = ValidationEngine(validation or ValidationConfig.from_environment(), vision=vision)
    controller = FeedbackLoopController(
        generate,
        engine,
        cache,
        loop or LoopConfig.from_environment(),
    )
    client = ResilientClient(
        controller,
        RetryStrategy(retry or RetryConfig.from_environment()),
        on_retry=on_retry,
    )

    logger.debug(
        f"Pipeline ready (visual validation: {'on' if vision is not None else 'off'}, "
        f"cache size {cache.max_size})"
    )
    return Pipeline(client=client, controller=controller, engine=engine, cache=cache)


__all__ = ["Pipeline", "create_pipeline"]
