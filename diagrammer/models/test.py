"""Unit tests for the pipeline data model."""

import pytest
from pydantic import ValidationError

from diagrammer.core.errors import ErrorCategory

from .lib import (
    ConversationTurn,
    GenerationRequest,
    IssueCategory,
    IssueSeverity,
    PipelineMetadata,
    PipelineResult,
    ReferenceFile,
    ValidationIssue,
    ValidationMetadata,
    ValidationResult,
)


class TestGenerationRequest:
    """Tests for GenerationRequest."""

    @pytest.mark.unit
    def test_minimal_request(self):
        """Only the instruction is required."""
        request = GenerationRequest(instruction="draw 3 boxes")
        assert request.files == ()
        assert request.conversation_history == ()
        assert request.previous_artifacts == ()
        assert request.search_context is None

    @pytest.mark.unit
    def test_lists_become_tuples(self):
        """Sequence inputs are stored as immutable tuples."""
        request = GenerationRequest(
            instruction="org chart",
            files=[{"name": "team.csv", "size": 120, "content": "a,b"}],
            conversation_history=[{"role": "user", "content": "hi"}],
        )
        assert isinstance(request.files, tuple)
        assert request.files[0] == ReferenceFile(name="team.csv", size=120, content="a,b")
        assert request.conversation_history[0] == ConversationTurn(role="user", content="hi")

    @pytest.mark.unit
    def test_frozen(self):
        """Requests cannot be mutated."""
        request = GenerationRequest(instruction="draw 3 boxes")
        with pytest.raises(ValidationError):
            request.instruction = "something else"

    @pytest.mark.unit
    def test_blank_instruction_rejected(self):
        """Whitespace-only instructions are invalid input."""
        with pytest.raises(ValidationError, match="must not be blank"):
            GenerationRequest(instruction="   ")

    @pytest.mark.unit
    def test_negative_file_size_rejected(self):
        """File sizes cannot be negative."""
        with pytest.raises(ValidationError):
            ReferenceFile(name="a.txt", size=-1)

    @pytest.mark.unit
    def test_unknown_role_rejected(self):
        """Only user and assistant roles are accepted."""
        with pytest.raises(ValidationError):
            ConversationTurn(role="system", content="x")


class TestValidationResult:
    """Tests for validation issue helpers."""

    @pytest.mark.unit
    def test_issue_factories(self):
        """Factories set the severity."""
        error = ValidationIssue.error(IssueCategory.STRUCTURAL, "missing <body>")
        warning = ValidationIssue.warning(IssueCategory.RESPONSIVE, "overflow")
        assert error.severity is IssueSeverity.ERROR and error.is_error
        assert warning.severity is IssueSeverity.WARNING and not warning.is_error

    @pytest.mark.unit
    def test_errors_and_warnings_split(self):
        """Result exposes errors and warnings separately."""
        result = ValidationResult(
            is_valid=False,
            issues=(
                ValidationIssue.error(IssueCategory.CONSOLE, "boom"),
                ValidationIssue.warning(IssueCategory.ACCESSIBILITY, "alt"),
            ),
            metadata=ValidationMetadata(elapsed_ms=5, checks_performed=("structural",)),
        )
        assert [i.message for i in result.errors] == ["boom"]
        assert [i.message for i in result.warnings] == ["alt"]

    @pytest.mark.unit
    def test_category_values(self):
        """Categories serialize to their lowercase names."""
        assert IssueCategory.VISUAL.value == "visual"
        issue = ValidationIssue.warning(IssueCategory.VISUAL, "dim")
        assert issue.model_dump(mode="json")["category"] == "visual"


class TestPipelineResult:
    """Tests for PipelineResult."""

    @pytest.mark.unit
    def test_failure_factory(self):
        """Failure results carry the error and retry flag."""
        result = PipelineResult.failure("boom", retryable=True)
        assert result.success is False
        assert result.artifact is None
        assert result.error == "boom"
        assert result.retryable is True
        assert result.metadata.validation_passed is None
        assert result.error_category is ErrorCategory.OTHER

    @pytest.mark.unit
    def test_failure_keeps_category(self):
        result = PipelineResult.failure("reset", category=ErrorCategory.NETWORK)
        assert result.error_category is ErrorCategory.NETWORK
        assert PipelineResult(success=True).error_category is None

    @pytest.mark.unit
    def test_metadata_defaults(self):
        """Metadata starts empty."""
        metadata = PipelineMetadata()
        assert metadata.tokens_used == 0
        assert metadata.iterations == 0
        assert metadata.validation_errors == ()

    @pytest.mark.unit
    def test_round_trip_json(self):
        """Results serialize for the caller's response envelope."""
        result = PipelineResult(
            success=True,
            artifact="<html></html>",
            metadata=PipelineMetadata(model="gpt-4o", iterations=2, validation_passed=True),
        )
        restored = PipelineResult.model_validate_json(result.model_dump_json())
        assert restored == result
