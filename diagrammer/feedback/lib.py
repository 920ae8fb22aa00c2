"""Feedback synthesis for diagram regeneration.

Turns the issues of a failed validation pass into a single message that the
generation capability can act on, and accumulates those messages across
iterations of the feedback loop.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from diagrammer.models import ValidationIssue

ALL_CLEAR_MESSAGE = "Diagram looks good!"


def _format_issue(issue: ValidationIssue) -> str:
    return f"- [{issue.category.value}] {issue.message}"


def build_feedback_message(
    issues: Iterable[ValidationIssue],
    original_request: str,
) -> str:
    """Build a regeneration message from validation issues.

    The message starts with an error/warning count, lists errors and
    warnings separately with their category tags, and ends by restating the
    original request so the model keeps the user's intent.

    Args:
        issues: Issues from one validation pass.
        original_request: The user's instruction.

    Returns:
        Feedback text. ``ALL_CLEAR_MESSAGE`` when there are no issues.

    Example:
        >>> issue = ValidationIssue.error(IssueCategory.STRUCTURAL, "Missing <body>")
        >>> print(build_feedback_message([issue], "draw 3 boxes"))
        Found 1 error(s) and 0 warning(s) in the generated diagram.
        ...
    """
    issues = list(issues)
    if not issues:
        return ALL_CLEAR_MESSAGE

    errors = [issue for issue in issues if issue.is_error]
    warnings = [issue for issue in issues if not issue.is_error]

    lines = [
        f"Found {len(errors)} error(s) and {len(warnings)} warning(s) "
        "in the generated diagram.",
        "",
    ]
    if errors:
        lines.append("**Errors (must fix):**")
        lines.extend(_format_issue(issue) for issue in errors)
        lines.append("")
    if warnings:
        lines.append("**Warnings (should fix):**")
        lines.extend(_format_issue(issue) for issue in warnings)
        lines.append("")

    lines.append(
        "Please regenerate the diagram addressing these issues while "
        f'maintaining the original request: "{original_request}"'
    )
    return "\n".join(lines)


@dataclass
class FeedbackHistory:
    """Feedback accumulated across loop iterations.

    Attributes:
        messages: One feedback message per failed validation pass, oldest first.
    """

    messages: list[str] = field(default_factory=list)

    def add(self, message: str | None) -> None:
        """Record a feedback message. Empty messages are ignored."""
        if message:
            self.messages.append(message)

    def as_tuple(self) -> tuple[str, ...]:
        return tuple(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __bool__(self) -> bool:
        return bool(self.messages)


__all__ = [
    "ALL_CLEAR_MESSAGE",
    "FeedbackHistory",
    "build_feedback_message",
]
