"""Pipeline data model: requests, validation verdicts and results."""

from .lib import (
    Citation,
    ConversationTurn,
    GenerationRequest,
    IssueCategory,
    IssueSeverity,
    PipelineMetadata,
    PipelineResult,
    ReferenceFile,
    SearchContext,
    ValidationIssue,
    ValidationMetadata,
    ValidationResult,
)

__all__ = [
    "Citation",
    "ConversationTurn",
    "GenerationRequest",
    "IssueCategory",
    "IssueSeverity",
    "PipelineMetadata",
    "PipelineResult",
    "ReferenceFile",
    "SearchContext",
    "ValidationIssue",
    "ValidationMetadata",
    "ValidationResult",
]
