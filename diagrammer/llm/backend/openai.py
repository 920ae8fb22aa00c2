"""OpenAI GPT backend implementation.

Supports GPT-4o, GPT-4.1 and other OpenAI chat models via the async OpenAI
client, including image analysis for vision-capable models.
"""

import base64
import logging
from typing import Any

from diagrammer.config import EnvVar, get_environment

from .base import (
    AuthenticationError,
    ChatMessage,
    ContextLengthError,
    GenerationConfig,
    GenerationResult,
    InvalidResponseError,
    LLMBackend,
    LLMConnectionError,
    LLMError,
    RateLimitError,
)
from .model_spec import DEFAULT_OPENAI_MODEL, LLMCapability, get_llm_spec

logger = logging.getLogger(__name__)


class OpenAIBackend(LLMBackend):
    """OpenAI GPT backend.

    Environment:
        OPENAI_API_KEY: API key (required if not passed to constructor).

    Example:
        >>> backend = OpenAIBackend()
        >>> result = await backend.generate([{"role": "user", "content": "timeline"}])
        >>> print(result.content)

        >>> verdict = await backend.analyze_image(png_bytes, "Is this readable?")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_OPENAI_MODEL.spec.name,
        base_url: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 0,
    ):
        """Initialize OpenAI backend.

        Args:
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY env var.
            model: Model name (gpt-4o, gpt-4.1-mini, etc.).
            base_url: Optional custom API endpoint.
            timeout: Request timeout in seconds.
            max_retries: SDK-level retries. Defaults to 0 because the client
                resilience layer owns retries.

        Raises:
            AuthenticationError: If no API key available.
        """
        self._api_key = api_key or get_environment(EnvVar.OPENAI_API_KEY)
        if not self._api_key:
            raise AuthenticationError(
                "OpenAI API key required. Set OPENAI_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self._spec = get_llm_spec(model)
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize the async OpenAI client.

        Raises:
            ImportError: If openai package not installed.
        """
        if self._client is None:
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                    timeout=self._timeout,
                    max_retries=self._max_retries,
                )
            except ImportError as e:
                raise ImportError(
                    "openai package required. Install with: pip install openai"
                ) from e
        return self._client

    @property
    def model_name(self) -> str:
        """Get the model identifier."""
        return self._spec.name

    @property
    def provider(self) -> str:
        """Get the provider identifier."""
        return "openai"

    @property
    def supports_vision(self) -> bool:
        """Check if the model accepts image input."""
        return self._spec.supports(LLMCapability.VISION)

    @property
    def context_window(self) -> int:
        """Get maximum context window size."""
        return self._spec.context_window

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        system_prompt: str | None = None,
        config: GenerationConfig | None = None,
    ) -> GenerationResult:
        """Generate text using the OpenAI chat completions API.

        Args:
            messages: Conversation messages, oldest first.
            system_prompt: Optional system instruction.
            config: Generation configuration.

        Returns:
            GenerationResult with content and metadata.

        Raises:
            LLMError: If generation fails.
            RateLimitError: If rate limit exceeded.
            ContextLengthError: If prompt too long.
        """
        config = config or GenerationConfig()

        chat: list[dict[str, Any]] = []
        if system_prompt:
            chat.append({"role": "system", "content": system_prompt})
        chat.extend(messages)

        kwargs: dict[str, Any] = {
            "model": self._spec.name,
            "messages": chat,
            "temperature": config.temperature,
            "max_tokens": min(config.max_tokens, self._spec.max_output_tokens),
            "top_p": config.top_p,
        }

        if config.stop_sequences:
            kwargs["stop"] = config.stop_sequences

        if config.seed is not None and self._spec.supports(LLMCapability.SEED):
            kwargs["seed"] = config.seed

        response = await self._create(kwargs)

        choice = response.choices[0]
        usage = response.usage
        return GenerationResult(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason or "unknown",
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            model=response.model,
            raw_response=response,
        )

    async def analyze_image(
        self,
        image: bytes,
        prompt: str,
        *,
        config: GenerationConfig | None = None,
    ) -> str:
        """Send a PNG with a prompt and return the model's text answer.

        Raises:
            LLMError: If the model has no vision support or the call fails.
        """
        if not self.supports_vision:
            raise LLMError(f"{self.name} does not support image input", retryable=False)

        config = config or GenerationConfig(max_tokens=500)
        encoded = base64.b64encode(image).decode("ascii")
        kwargs: dict[str, Any] = {
            "model": self._spec.name,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{encoded}"},
                        },
                    ],
                }
            ],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }

        response = await self._create(kwargs)
        content = response.choices[0].message.content
        if not content:
            raise InvalidResponseError("Vision model returned an empty response")
        return content

    async def _create(self, kwargs: dict[str, Any]) -> Any:
        client = self._get_client()
        try:
            return await client.chat.completions.create(**kwargs)
        except Exception as e:
            raise self._convert_error(e) from e

    def _convert_error(self, error: Exception) -> LLMError:
        """Convert OpenAI SDK exceptions to backend errors by type.

        Args:
            error: The caught exception.

        Returns:
            The backend error to raise in its place.
        """
        import openai

        message = str(error)
        if isinstance(error, openai.RateLimitError):
            retry_after = error.response.headers.get("retry-after")
            try:
                delay = float(retry_after) if retry_after is not None else None
            except ValueError:
                delay = None
            return RateLimitError(message, retry_after=delay)
        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthenticationError(message)
        if isinstance(error, openai.BadRequestError):
            if error.code == "context_length_exceeded":
                return ContextLengthError(message)
            return LLMError(message, retryable=False)
        # APITimeoutError is a subclass of APIConnectionError
        if isinstance(error, openai.APIConnectionError):
            return LLMConnectionError(message)
        if isinstance(error, openai.APIStatusError):
            return LLMError(message, retryable=error.status_code >= 500)
        logger.debug(f"Unmapped OpenAI error {type(error).__name__}: {error}")
        return LLMError(message)


__all__ = ["OpenAIBackend"]
