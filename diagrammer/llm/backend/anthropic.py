"""Anthropic Claude backend implementation.

Supports Claude Sonnet and Haiku models via the async Anthropic client,
including image analysis.
"""

import base64
import logging
from typing import Any

from diagrammer.config import EnvVar, get_environment

from .base import (
    AuthenticationError,
    ChatMessage,
    GenerationConfig,
    GenerationResult,
    InvalidResponseError,
    LLMBackend,
    LLMConnectionError,
    LLMError,
    RateLimitError,
)
from .model_spec import DEFAULT_ANTHROPIC_MODEL, LLMCapability, get_llm_spec

logger = logging.getLogger(__name__)


class AnthropicBackend(LLMBackend):
    """Anthropic Claude backend.

    Anthropic takes the system prompt as a separate parameter and returns
    content as a list of blocks; only text blocks are kept.

    Environment:
        ANTHROPIC_API_KEY: API key (required if not passed to constructor).

    Example:
        >>> backend = AnthropicBackend(model="claude-sonnet-4-5")
        >>> result = await backend.generate([{"role": "user", "content": "timeline"}])
        >>> print(result.content)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_ANTHROPIC_MODEL.spec.name,
        timeout: float = 120.0,
        max_retries: int = 0,
    ):
        """Initialize Anthropic backend.

        Args:
            api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY env var.
            model: Model name (claude-sonnet-4-5, claude-haiku-4-5).
            timeout: Request timeout in seconds.
            max_retries: SDK-level retries. Defaults to 0 because the client
                resilience layer owns retries.

        Raises:
            AuthenticationError: If no API key available.
        """
        self._api_key = api_key or get_environment(EnvVar.ANTHROPIC_API_KEY)
        if not self._api_key:
            raise AuthenticationError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self._spec = get_llm_spec(model)
        self._timeout = timeout
        self._max_retries = max_retries
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize the async Anthropic client.

        Raises:
            ImportError: If anthropic package not installed.
        """
        if self._client is None:
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(
                    api_key=self._api_key,
                    timeout=self._timeout,
                    max_retries=self._max_retries,
                )
            except ImportError as e:
                raise ImportError(
                    "anthropic package required. Install with: pip install anthropic"
                ) from e
        return self._client

    @property
    def model_name(self) -> str:
        """Get the model identifier."""
        return self._spec.name

    @property
    def provider(self) -> str:
        """Get the provider identifier."""
        return "anthropic"

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
        """Generate text using the Anthropic messages API.

        Args:
            messages: Conversation messages, oldest first.
            system_prompt: Optional system instruction.
            config: Generation configuration.

        Returns:
            GenerationResult with content and metadata.

        Raises:
            LLMError: If generation fails.
            RateLimitError: If rate limit exceeded.
        """
        config = config or GenerationConfig()

        kwargs: dict[str, Any] = {
            "model": self._spec.name,
            "messages": list(messages),
            "max_tokens": min(config.max_tokens, self._spec.max_output_tokens),
            "temperature": config.temperature,
        }

        if system_prompt:
            kwargs["system"] = system_prompt

        if config.stop_sequences:
            kwargs["stop_sequences"] = config.stop_sequences

        response = await self._create(kwargs)

        return GenerationResult(
            content=_text_of(response),
            finish_reason=response.stop_reason or "unknown",
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": (
                    response.usage.input_tokens + response.usage.output_tokens
                ),
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
        """Send a PNG with a prompt and return the model's text answer."""
        config = config or GenerationConfig(max_tokens=500)
        kwargs: dict[str, Any] = {
            "model": self._spec.name,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": base64.b64encode(image).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }

        response = await self._create(kwargs)
        content = _text_of(response)
        if not content:
            raise InvalidResponseError("Vision model returned an empty response")
        return content

    async def _create(self, kwargs: dict[str, Any]) -> Any:
        client = self._get_client()
        try:
            return await client.messages.create(**kwargs)
        except Exception as e:
            raise self._convert_error(e) from e

    def _convert_error(self, error: Exception) -> LLMError:
        """Convert Anthropic SDK exceptions to backend errors by type.

        Args:
            error: The caught exception.

        Returns:
            The backend error to raise in its place.
        """
        import anthropic

        message = str(error)
        if isinstance(error, anthropic.RateLimitError):
            return RateLimitError(message)
        if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return AuthenticationError(message)
        if isinstance(error, anthropic.BadRequestError):
            return LLMError(message, retryable=False)
        if isinstance(error, anthropic.APIConnectionError):
            return LLMConnectionError(message)
        if isinstance(error, anthropic.APIStatusError):
            # 529 overloaded and other 5xx are transient
            return LLMError(message, retryable=error.status_code >= 500)
        logger.debug(f"Unmapped Anthropic error {type(error).__name__}: {error}")
        return LLMError(message)


def _text_of(response: Any) -> str:
    return "".join(
        block.text for block in response.content if getattr(block, "type", None) == "text"
    )


__all__ = ["AnthropicBackend"]
