"""Abstract base class for async LLM backends.

Defines the interface every provider implementation follows, plus the
backend error types. Backend errors derive from DiagrammerError and carry a
``retryable`` flag decided from the provider exception type at the backend
boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from diagrammer.core.errors import DiagrammerError, NetworkError

ChatMessage = dict[str, str]


@dataclass
class GenerationConfig:
    """Configuration for LLM text generation.

    Attributes:
        temperature: Sampling temperature (0.0-2.0). Lower = more deterministic.
        max_tokens: Maximum tokens to generate in response.
        stop_sequences: Optional sequences that stop generation.
        top_p: Nucleus sampling parameter (0.0-1.0).
        seed: Optional seed for reproducible generation.
    """

    temperature: float = 0.7
    max_tokens: int = 8192
    stop_sequences: list[str] = field(default_factory=list)
    top_p: float = 1.0
    seed: int | None = None


@dataclass
class GenerationResult:
    """Result from LLM text generation.

    Attributes:
        content: Generated text content.
        finish_reason: Why generation stopped ('stop', 'length', 'content_filter').
        usage: Token usage dict (prompt_tokens, completion_tokens, total_tokens).
        model: Model identifier that was used.
        raw_response: Provider-specific raw response for debugging.
    """

    content: str
    finish_reason: str
    usage: dict[str, int]
    model: str
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMBackend(ABC):
    """Abstract interface for async LLM backends.

    Backends turn chat messages into text and, for vision-capable models,
    judge images. The system prompt is passed separately because providers
    place it differently.

    Example:
        >>> backend = OpenAIBackend(model="gpt-4o")
        >>> result = await backend.generate(
        ...     [{"role": "user", "content": "org chart"}],
        ...     system_prompt=SYSTEM_PROMPT,
        ... )
        >>> print(result.content)
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        system_prompt: str | None = None,
        config: GenerationConfig | None = None,
    ) -> GenerationResult:
        """Generate text from chat messages.

        Args:
            messages: Conversation as ``{"role", "content"}`` dicts, oldest first.
            system_prompt: Optional system instruction.
            config: Generation configuration options.

        Returns:
            GenerationResult with generated content and metadata.

        Raises:
            LLMError: If generation fails.
            RateLimitError: If API rate limit is exceeded.
            ContextLengthError: If prompt exceeds context window.
        """

    @abstractmethod
    async def analyze_image(
        self,
        image: bytes,
        prompt: str,
        *,
        config: GenerationConfig | None = None,
    ) -> str:
        """Ask the model about a PNG image.

        Args:
            image: PNG bytes.
            prompt: Question or instructions about the image.
            config: Generation configuration options.

        Returns:
            Raw text response.

        Raises:
            LLMError: If the call fails or the model has no vision support.
        """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model identifier (e.g., 'gpt-4o', 'claude-sonnet-4-5')."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Get the provider identifier (e.g., 'openai', 'anthropic')."""

    @property
    def name(self) -> str:
        """Get backend identifier for logging.

        Returns:
            String in format 'provider:model'.
        """
        return f"{self.provider}:{self.model_name}"

    @property
    @abstractmethod
    def supports_vision(self) -> bool:
        """Check if the model accepts image input."""

    @property
    @abstractmethod
    def context_window(self) -> int:
        """Get maximum context window size in tokens."""


class LLMError(DiagrammerError):
    """Base exception for LLM backend errors."""


class RateLimitError(LLMError):
    """Raised when API rate limit is exceeded.

    Attributes:
        retry_after: Suggested wait time in seconds before retry.
    """

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class LLMConnectionError(LLMError, NetworkError):
    """Raised when the provider cannot be reached or the request times out."""


class ContextLengthError(LLMError):
    """Raised when prompt exceeds the model's context window."""

    retryable = False


class InvalidResponseError(LLMError):
    """Raised when the response is empty or cannot be used."""


class AuthenticationError(LLMError):
    """Raised when API authentication fails (invalid or missing key)."""

    retryable = False


__all__ = [
    "AuthenticationError",
    "ChatMessage",
    "ContextLengthError",
    "GenerationConfig",
    "GenerationResult",
    "InvalidResponseError",
    "LLMBackend",
    "LLMConnectionError",
    "LLMError",
    "RateLimitError",
]
