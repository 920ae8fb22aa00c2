"""Centralized environment configuration management for diagrammer.

Provides a unified interface for all environment variables with:
- Single `get_environment()` function for all configuration
- Type-safe enum with metadata (default, type, description)
- Consistent resolution: override > environment > default

Example:
    >>> from diagrammer.config import EnvVar, get_environment
    >>>
    >>> # Get values with automatic type conversion
    >>> ttl = get_environment(EnvVar.CACHE_TTL_SECONDS)  # Returns int
    >>> api_key = get_environment(EnvVar.OPENAI_API_KEY)  # Returns str | None
    >>>
    >>> # Override at runtime
    >>> ttl = get_environment(EnvVar.CACHE_TTL_SECONDS, override=60)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, overload

# =============================================================================
# Environment Variable Configuration
# =============================================================================


@dataclass(frozen=True)
class EnvConfig:
    """Metadata for an environment variable.

    Attributes:
        name: Environment variable name (e.g., "CACHE_MAX_SIZE").
        default: Default value if not set in environment.
        var_type: Python type for value conversion (str, int, bool).
        description: Human-readable description.
        category: Grouping category for documentation.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"


class EnvVar(Enum):
    """All environment variables used by diagrammer.

    Each member contains an EnvConfig with name, default, type, and description.
    Use with `get_environment()` for type-safe access.

    Categories:
        - llm: LLM provider API keys and model selection
        - cache: Result cache sizing and lifetimes
        - pipeline: Feedback loop and client resilience limits
        - browser: Headless browser validation
        - logging: Log output
    """

    # -------------------------------------------------------------------------
    # LLM Providers
    # -------------------------------------------------------------------------
    OPENAI_API_KEY = EnvConfig(
        name="OPENAI_API_KEY",
        default=None,
        var_type=str,
        description="OpenAI API key for GPT models",
        category="llm",
    )
    ANTHROPIC_API_KEY = EnvConfig(
        name="ANTHROPIC_API_KEY",
        default=None,
        var_type=str,
        description="Anthropic API key for Claude models",
        category="llm",
    )
    LLM_MODEL = EnvConfig(
        name="LLM_MODEL",
        default="gpt-4o",
        var_type=str,
        description="Model used to generate diagrams",
        category="llm",
    )
    VISION_MODEL = EnvConfig(
        name="VISION_MODEL",
        default="gpt-4o",
        var_type=str,
        description="Vision-capable model used for visual validation",
        category="llm",
    )
    VISION_ENABLED = EnvConfig(
        name="VISION_ENABLED",
        default=True,
        var_type=bool,
        description="Run the visual validation phase when a screenshot exists",
        category="llm",
    )

    # -------------------------------------------------------------------------
    # Result Cache
    # -------------------------------------------------------------------------
    CACHE_TTL_SECONDS = EnvConfig(
        name="CACHE_TTL_SECONDS",
        default=3600,
        var_type=int,
        description="Default lifetime of a cached pipeline result",
        category="cache",
    )
    CACHE_MAX_SIZE = EnvConfig(
        name="CACHE_MAX_SIZE",
        default=100,
        var_type=int,
        description="Maximum number of cached results before LRU eviction",
        category="cache",
    )
    CACHE_SWEEP_SECONDS = EnvConfig(
        name="CACHE_SWEEP_SECONDS",
        default=300,
        var_type=int,
        description="Interval between background sweeps of expired entries",
        category="cache",
    )

    # -------------------------------------------------------------------------
    # Pipeline Limits
    # -------------------------------------------------------------------------
    PIPELINE_MAX_ITERATIONS = EnvConfig(
        name="PIPELINE_MAX_ITERATIONS",
        default=5,
        var_type=int,
        description="Default generate/validate iteration budget (hard cap 10)",
        category="pipeline",
    )
    CLIENT_TIMEOUT_SECONDS = EnvConfig(
        name="CLIENT_TIMEOUT_SECONDS",
        default=300,
        var_type=int,
        description="Deadline for a single pipeline invocation",
        category="pipeline",
    )
    CLIENT_MAX_RETRIES = EnvConfig(
        name="CLIENT_MAX_RETRIES",
        default=3,
        var_type=int,
        description="Additional attempts after a retryable failure",
        category="pipeline",
    )

    # -------------------------------------------------------------------------
    # Browser Validation
    # -------------------------------------------------------------------------
    BROWSER_HEADLESS = EnvConfig(
        name="BROWSER_HEADLESS",
        default=True,
        var_type=bool,
        description="Launch Chromium headless during validation",
        category="browser",
    )
    BROWSER_MAX_CONCURRENCY = EnvConfig(
        name="BROWSER_MAX_CONCURRENCY",
        default=2,
        var_type=int,
        description="Maximum browsers open at once across validations",
        category="browser",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL = EnvConfig(
        name="LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
        category="logging",
    )


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _parse_bool(value: str) -> bool | None:
    """Parse string to boolean.

    Recognizes: true/false, 1/0, yes/no (case-insensitive).
    Returns None for unrecognized values.
    """
    normalized = value.lower().strip()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    return None


def _convert_value(value: str | None, var_type: type, default: Any) -> Any:
    """Convert string value to target type.

    Args:
        value: Raw string value from environment (or None).
        var_type: Target Python type.
        default: Default value if conversion fails or value is None.

    Returns:
        Converted value or default.
    """
    if value is None:
        return default

    if var_type is str:
        return value

    if var_type is int:
        try:
            return int(value)
        except ValueError:
            return default

    if var_type is bool:
        result = _parse_bool(value)
        return result if result is not None else default

    # Unknown type, return as-is
    return value


# =============================================================================
# Main Interface
# =============================================================================


@overload
def get_environment(env_var: EnvVar, override: int) -> int: ...
@overload
def get_environment(env_var: EnvVar, override: str) -> str: ...
@overload
def get_environment(env_var: EnvVar, override: bool) -> bool: ...
@overload
def get_environment(env_var: EnvVar, override: None = None) -> Any: ...


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Get environment variable value with type conversion.

    Resolution priority:
        1. Explicit override parameter (highest)
        2. Environment variable value
        3. Default from EnvConfig (lowest)

    Args:
        env_var: Environment variable enum member.
        override: Optional override value (bypasses env lookup).

    Returns:
        Value converted to the appropriate type (str, int or bool).

    Example:
        >>> get_environment(EnvVar.CACHE_MAX_SIZE)
        100
        >>> get_environment(EnvVar.CACHE_MAX_SIZE, override=10)
        10
    """
    config: EnvConfig = env_var.value

    if override is not None:
        return override

    raw_value = os.environ.get(config.name)
    return _convert_value(raw_value, config.var_type, config.default)


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Get metadata for an environment variable."""
    return env_var.value


def get_available_llm_providers() -> list[str]:
    """Get list of LLM providers that have an API key configured.

    Returns:
        List of provider names (e.g., ["openai", "anthropic"]).
    """
    providers = []
    if get_environment(EnvVar.OPENAI_API_KEY):
        providers.append("openai")
    if get_environment(EnvVar.ANTHROPIC_API_KEY):
        providers.append("anthropic")
    return providers


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """List all environment variables, optionally filtered by category.

    Args:
        category: Filter by category (llm, cache, pipeline, browser, logging).
                 None returns all variables.

    Returns:
        List of EnvVar enum members.
    """
    if category is None:
        return list(EnvVar)

    return [var for var in EnvVar if var.value.category == category]


__all__ = [
    # Core types
    "EnvConfig",
    "EnvVar",
    # Main interface
    "get_environment",
    "get_environment_info",
    "get_available_llm_providers",
    # Introspection
    "list_environment_variables",
]
