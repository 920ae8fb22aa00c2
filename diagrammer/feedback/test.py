"""Tests for feedback module."""

import pytest

from diagrammer.feedback import ALL_CLEAR_MESSAGE, FeedbackHistory, build_feedback_message
from diagrammer.models import IssueCategory, ValidationIssue


class TestBuildFeedbackMessage:
    """Tests for build_feedback_message."""

    @pytest.mark.unit
    def test_no_issues(self):
        """An empty issue list yields the all-clear message."""
        assert build_feedback_message([], "draw 3 boxes") == ALL_CLEAR_MESSAGE

    @pytest.mark.unit
    def test_counts_line(self):
        """The first line reports error and warning counts."""
        issues = [
            ValidationIssue.error(IssueCategory.STRUCTURAL, "Missing <body>"),
            ValidationIssue.warning(IssueCategory.RESPONSIVE, "Overflow on mobile"),
            ValidationIssue.warning(IssueCategory.ACCESSIBILITY, "1 image(s) missing alt text"),
        ]
        message = build_feedback_message(issues, "draw 3 boxes")
        assert message.splitlines()[0] == (
            "Found 1 error(s) and 2 warning(s) in the generated diagram."
        )

    @pytest.mark.unit
    def test_sections_and_category_tags(self):
        """Errors and warnings are listed separately with category tags."""
        issues = [
            ValidationIssue.warning(IssueCategory.VISUAL, "Low contrast"),
            ValidationIssue.error(IssueCategory.CONSOLE, "ReferenceError: x"),
        ]
        message = build_feedback_message(issues, "draw 3 boxes")
        errors_at = message.index("**Errors (must fix):**")
        warnings_at = message.index("**Warnings (should fix):**")
        assert errors_at < warnings_at
        assert "- [console] ReferenceError: x" in message[errors_at:warnings_at]
        assert "- [visual] Low contrast" in message[warnings_at:]

    @pytest.mark.unit
    def test_omits_empty_sections(self):
        """Only sections with issues appear."""
        issues = [ValidationIssue.warning(IssueCategory.RESPONSIVE, "Overflow")]
        message = build_feedback_message(issues, "timeline")
        assert "Errors (must fix)" not in message
        assert "Warnings (should fix)" in message

    @pytest.mark.unit
    def test_restates_original_request(self):
        """The message ends with the original request."""
        issues = [ValidationIssue.error(IssueCategory.STRUCTURAL, "Missing <html>")]
        message = build_feedback_message(issues, "org chart for sales")
        assert message.endswith(
            'maintaining the original request: "org chart for sales"'
        )


class TestFeedbackHistory:
    """Tests for FeedbackHistory."""

    @pytest.mark.unit
    def test_accumulates_in_order(self):
        """Messages are kept oldest first."""
        history = FeedbackHistory()
        history.add("first")
        history.add("second")
        assert history.as_tuple() == ("first", "second")
        assert len(history) == 2

    @pytest.mark.unit
    def test_ignores_empty(self):
        """None and empty strings are not recorded."""
        history = FeedbackHistory()
        history.add(None)
        history.add("")
        assert not history
