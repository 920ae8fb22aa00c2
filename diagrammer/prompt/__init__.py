"""Prompt construction for diagram generation.

Provides the system prompt, the PromptBuilder for chat messages, the
revision prompt for validation feedback and HTML extraction.
"""

from .lib import (
    SYSTEM_PROMPT,
    ChatMessage,
    PromptBuilder,
    PromptConfig,
    build_revision_prompt,
    extract_html,
)

__all__ = [
    "ChatMessage",
    "PromptBuilder",
    "PromptConfig",
    "SYSTEM_PROMPT",
    "build_revision_prompt",
    "extract_html",
]
