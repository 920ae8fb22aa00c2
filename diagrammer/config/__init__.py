"""Centralized configuration management for diagrammer.

Provides unified access to all configuration via the `get_environment()` function.

Example:
    >>> from diagrammer.config import EnvVar, get_environment
    >>>
    >>> max_size = get_environment(EnvVar.CACHE_MAX_SIZE)  # Returns int: 100
    >>> api_key = get_environment(EnvVar.OPENAI_API_KEY)  # Returns str | None
    >>>
    >>> for var in list_environment_variables("cache"):
    ...     info = get_environment_info(var)
    ...     print(f"{info.name}: {info.description}")

Environment Variable Categories:
    llm: API keys and model selection (OpenAI, Anthropic)
    cache: Result cache sizing and lifetimes
    pipeline: Iteration budget, client deadline and retries
    browser: Headless Chromium validation
    logging: Log level
"""

from .lib import (
    EnvConfig,
    EnvVar,
    get_available_llm_providers,
    get_environment,
    get_environment_info,
    list_environment_variables,
)

__all__ = [
    "EnvConfig",
    "EnvVar",
    "get_environment",
    "get_environment_info",
    "get_available_llm_providers",
    "list_environment_variables",
]
