"""Data model for the generation pipeline.

This module is the contract shared by the cache, the validation engine, the
feedback loop controller and the client layer. Every model is immutable:
a request is the unit of work and the cache-key input, and results are
created once per pass and never mutated afterwards.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from diagrammer.core.errors import ErrorCategory

# =============================================================================
# Request
# =============================================================================


class ReferenceFile(BaseModel):
    """A reference file already parsed to text by the caller.

    Attributes:
        name: Original file name.
        size: File size in bytes.
        content: Parsed text content.
    """

    name: str = Field(..., min_length=1, description="Original file name")
    size: int = Field(..., ge=0, description="File size in bytes")
    content: str = Field(default="", description="Parsed text content")

    model_config = ConfigDict(frozen=True, extra="forbid")


class ConversationTurn(BaseModel):
    """One prior turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class Citation(BaseModel):
    """A source cited by an external search context."""

    url: str
    title: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class SearchContext(BaseModel):
    """External research attached to a request by the caller.

    Attributes:
        answer: Summarized research answer.
        citations: Ordered sources referenced by number in the answer.
    """

    answer: str
    citations: tuple[Citation, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerationRequest(BaseModel):
    """A request to generate one HTML diagram.

    Attributes:
        instruction: Free-text description of the desired diagram.
        files: Reference files, in upload order.
        conversation_history: Prior conversation turns, oldest first.
        previous_artifacts: Earlier generated HTML for "iterate on this" requests.
        search_context: Optional external context (e.g. web search results).
    """

    instruction: str = Field(..., description="What the diagram should show")
    files: tuple[ReferenceFile, ...] = Field(default=())
    conversation_history: tuple[ConversationTurn, ...] = Field(default=())
    previous_artifacts: tuple[str, ...] = Field(default=())
    search_context: SearchContext | None = Field(default=None)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("instruction")
    @classmethod
    def _instruction_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("instruction must not be blank")
        return value


# =============================================================================
# Validation
# =============================================================================


class IssueSeverity(str, Enum):
    """Severity of a validation issue. Only errors fail a verdict."""

    ERROR = "error"
    WARNING = "warning"


class IssueCategory(str, Enum):
    """Check category that produced a validation issue."""

    STRUCTURAL = "structural"
    CONSOLE = "console"
    RESPONSIVE = "responsive"
    ACCESSIBILITY = "accessibility"
    VISUAL = "visual"
    BROWSER = "browser"


class ValidationIssue(BaseModel):
    """A single problem found in an artifact."""

    severity: IssueSeverity
    category: IssueCategory
    message: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_error(self) -> bool:
        return self.severity is IssueSeverity.ERROR

    @classmethod
    def error(cls, category: IssueCategory, message: str) -> "ValidationIssue":
        return cls(severity=IssueSeverity.ERROR, category=category, message=message)

    @classmethod
    def warning(cls, category: IssueCategory, message: str) -> "ValidationIssue":
        return cls(severity=IssueSeverity.WARNING, category=category, message=message)


class ValidationMetadata(BaseModel):
    """Bookkeeping for one validation pass."""

    elapsed_ms: int = Field(ge=0)
    checks_performed: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class ValidationResult(BaseModel):
    """Verdict of one validation pass.

    Attributes:
        is_valid: True when no issue has error severity.
        issues: All issues from every phase that ran.
        feedback: Regeneration guidance, present only when invalid.
        screenshot: Full-page PNG of the rendered artifact, if captured.
        metadata: Timing and the list of checks performed.
    """

    is_valid: bool
    issues: tuple[ValidationIssue, ...] = ()
    feedback: str | None = None
    screenshot: bytes | None = None
    metadata: ValidationMetadata

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.is_error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if not issue.is_error]


# =============================================================================
# Pipeline Result
# =============================================================================


class PipelineMetadata(BaseModel):
    """Metadata describing how a pipeline result was produced.

    Attributes:
        model: Model identifier of the last generation call.
        tokens_used: Tokens consumed across all iterations.
        elapsed_ms: Wall time of the controller invocation.
        validation_passed: True/False after validation; None when validation
            was disabled or never reached.
        iterations: Generation attempts made (1..max_iterations).
        validation_errors: Error messages from the final validation pass.
        validation_warnings: Warning messages from the final validation pass.
        termination: Name of the terminal loop state.
    """

    model: str | None = None
    tokens_used: int = Field(default=0, ge=0)
    elapsed_ms: int = Field(default=0, ge=0)
    validation_passed: bool | None = None
    iterations: int = Field(default=0, ge=0)
    validation_errors: tuple[str, ...] = ()
    validation_warnings: tuple[str, ...] = ()
    termination: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class PipelineResult(BaseModel):
    """Outcome of one pipeline invocation.

    Attributes:
        success: True when an artifact was produced.
        artifact: Generated HTML, possibly best-effort when validation failed.
        error: Failure description when success is False.
        retryable: Whether the failure may succeed on another attempt.
        error_category: User-facing category of the failure, set where it
            happened.
        metadata: Generation and validation bookkeeping.
    """

    success: bool
    artifact: str | None = None
    error: str | None = None
    retryable: bool = False
    error_category: ErrorCategory | None = None
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        retryable: bool = False,
        category: ErrorCategory = ErrorCategory.OTHER,
        metadata: PipelineMetadata | None = None,
    ) -> "PipelineResult":
        """Build a failed result."""
        return cls(
            success=False,
            error=error,
            retryable=retryable,
            error_category=category,
            metadata=metadata or PipelineMetadata(),
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
