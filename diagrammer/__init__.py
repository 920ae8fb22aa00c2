"""diagrammer: validated HTML diagram generation with a feedback loop."""

from diagrammer.cache import ResultCache, hash_request
from diagrammer.client import ResilientClient, RetryConfig
from diagrammer.loop import FeedbackLoopController, LoopConfig
from diagrammer.models import (
    GenerationRequest,
    PipelineMetadata,
    PipelineResult,
    ValidationIssue,
    ValidationResult,
)
from diagrammer.pipeline import Pipeline, create_pipeline
from diagrammer.validation import ValidationConfig, ValidationEngine

__all__ = [
    # Models
    "GenerationRequest",
    "PipelineMetadata",
    "PipelineResult",
    "ValidationIssue",
    "ValidationResult",
    # Components
    "FeedbackLoopController",
    "LoopConfig",
    "ResilientClient",
    "ResultCache",
    "RetryConfig",
    "ValidationConfig",
    "ValidationEngine",
    "hash_request",
    # Assembly
    "Pipeline",
    "create_pipeline",
]
