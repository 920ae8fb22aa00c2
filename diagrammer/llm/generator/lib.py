"""DiagramGenerator: the generation capability backed by an LLM.

Defines the generation capability contract used by the feedback loop and
implements it on top of an async LLM backend and the prompt builder.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from diagrammer.config import EnvVar, get_environment
from diagrammer.models import GenerationRequest
from diagrammer.prompt import PromptBuilder, extract_html

from ..backend import LLMBackend, create_llm_backend
from ..backend.base import GenerationConfig, InvalidResponseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationContext:
    """Context handed to the generation capability for one iteration.

    Attributes:
        request: The original request.
        feedback: Feedback messages accumulated so far, oldest first.
        previous_artifact: Artifact of the previous iteration, if any.
        iteration: 1-based iteration number.
    """

    request: GenerationRequest
    feedback: tuple[str, ...] = ()
    previous_artifact: str | None = None
    iteration: int = 1


@dataclass(frozen=True)
class GenerationOutput:
    """Artifact produced by one generation call.

    Attributes:
        html: Generated HTML document.
        tokens_used: Tokens consumed by the call.
        model: Model identifier that produced it.
    """

    html: str
    tokens_used: int = 0
    model: str | None = None


GenerationCapability = Callable[[str, GenerationContext], Awaitable[GenerationOutput]]
"""Async callable turning a prompt and context into an artifact."""


@dataclass
class GeneratorConfig:
    """Configuration for DiagramGenerator.

    Attributes:
        temperature: LLM temperature for generation (0.0-2.0).
        max_tokens: Maximum tokens per generated artifact.
    """

    temperature: float = 0.7
    max_tokens: int = 8192


class DiagramGenerator:
    """Generates HTML diagrams with an LLM backend.

    Implements the generation capability: the first iteration sends the
    request with its history, files and search context; later iterations
    replay the previous artifact and send the revision prompt.

    Example:
        >>> generator = DiagramGenerator(create_llm_backend("gpt-4o"))
        >>> output = await generator("org chart", GenerationContext(request))
        >>> print(output.html[:15])
        <!DOCTYPE html>
    """

    def __init__(
        self,
        backend: LLMBackend | None = None,
        config: GeneratorConfig | None = None,
        prompt_builder: PromptBuilder | None = None,
    ):
        """Initialize DiagramGenerator.

        Args:
            backend: LLM backend for generation. Creates default if None.
            config: Generator configuration.
            prompt_builder: Message builder. Creates default if None.
        """
        self._backend = backend or create_llm_backend(get_environment(EnvVar.LLM_MODEL))
        self._config = config or GeneratorConfig()
        self._prompts = prompt_builder or PromptBuilder()

    @property
    def backend(self) -> LLMBackend:
        return self._backend

    async def __call__(self, prompt: str, context: GenerationContext) -> GenerationOutput:
        """Generate one artifact.

        Args:
            prompt: Instruction on the first iteration, revision prompt after.
            context: Iteration context.

        Returns:
            GenerationOutput with the extracted HTML.

        Raises:
            LLMError: If the backend fails.
            InvalidResponseError: If the response holds no HTML.
        """
        if context.previous_artifact is None:
            messages = self._prompts.build(context.request, prompt)
        else:
            messages = self._prompts.build_revision(
                context.request, context.previous_artifact, prompt
            )

        result = await self._backend.generate(
            messages,
            system_prompt=self._prompts.system_prompt,
            config=GenerationConfig(
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            ),
        )

        if result.finish_reason == "length":
            logger.warning(
                f"Generation hit the token limit on iteration {context.iteration}; "
                "artifact may be truncated"
            )

        html = extract_html(result.content)
        if not html:
            raise InvalidResponseError(f"{self._backend.name} returned an empty response")

        logger.debug(
            f"Generated {len(html)} chars with {self._backend.name} "
            f"(iteration {context.iteration}, {result.total_tokens} tokens)"
        )
        return GenerationOutput(html=html, tokens_used=result.total_tokens, model=result.model)


__all__ = [
    "DiagramGenerator",
    "GenerationCapability",
    "GenerationContext",
    "GenerationOutput",
    "GeneratorConfig",
]
