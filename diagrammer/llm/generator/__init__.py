"""Diagram generation capability.

Provides the DiagramGenerator that turns requests and validation feedback
into HTML artifacts through an LLM backend.
"""

from .lib import (
    DiagramGenerator,
    GenerationCapability,
    GenerationContext,
    GenerationOutput,
    GeneratorConfig,
)

__all__ = [
    "DiagramGenerator",
    "GenerationCapability",
    "GenerationContext",
    "GenerationOutput",
    "GeneratorConfig",
]
