"""LLM backend implementations.

Provides the async backend interface and implementations for OpenAI and
Anthropic, with text generation and image analysis.
"""

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
from .factory import create_llm_backend
from .model_spec import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_MODEL,
    DEFAULT_OPENAI_MODEL,
    LLMCapability,
    LLMModel,
    LLMProviderType,
    LLMSpec,
    get_llm_spec,
)

__all__ = [
    # Base classes and types
    "ChatMessage",
    "LLMBackend",
    "GenerationConfig",
    "GenerationResult",
    # Exceptions
    "LLMError",
    "LLMConnectionError",
    "RateLimitError",
    "ContextLengthError",
    "InvalidResponseError",
    "AuthenticationError",
    # Model specification
    "LLMCapability",
    "LLMProviderType",
    "LLMSpec",
    "LLMModel",
    "get_llm_spec",
    # Defaults
    "DEFAULT_MODEL",
    "DEFAULT_OPENAI_MODEL",
    "DEFAULT_ANTHROPIC_MODEL",
    # Factory
    "create_llm_backend",
]
