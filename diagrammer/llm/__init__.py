"""LLM integration for diagram generation.

Provides async provider backends and the DiagramGenerator that implements
the generation capability on top of them.
"""

from .backend import (
    AuthenticationError,
    ContextLengthError,
    GenerationConfig,
    GenerationResult,
    InvalidResponseError,
    LLMBackend,
    LLMConnectionError,
    LLMError,
    LLMModel,
    LLMProviderType,
    LLMSpec,
    RateLimitError,
    create_llm_backend,
    get_llm_spec,
)
from .generator import (
    DiagramGenerator,
    GenerationCapability,
    GenerationContext,
    GenerationOutput,
    GeneratorConfig,
)

__all__ = [
    # Backend
    "LLMBackend",
    "GenerationConfig",
    "GenerationResult",
    "LLMModel",
    "LLMProviderType",
    "LLMSpec",
    "create_llm_backend",
    "get_llm_spec",
    # Errors
    "LLMError",
    "LLMConnectionError",
    "RateLimitError",
    "ContextLengthError",
    "InvalidResponseError",
    "AuthenticationError",
    # Generator
    "DiagramGenerator",
    "GenerationCapability",
    "GenerationContext",
    "GenerationOutput",
    "GeneratorConfig",
]
