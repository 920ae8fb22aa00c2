"""Structural validation phase.

Pure text checks against the generated HTML. No browser or network access.
"""

import re

from diagrammer.models import IssueCategory, ValidationIssue

from .rules import DEFAULT_RULES, ValidationRules

_HTML_TAG_CLASS = re.compile(r"<html[^>]*\sclass\s*=", re.IGNORECASE)


def check_structure(
    html: str,
    rules: ValidationRules = DEFAULT_RULES,
) -> list[ValidationIssue]:
    """Check an artifact against the structural rules.

    Emits one error per missing required script, missing root tag or present
    forbidden element, in rule order. Emits warnings when the icon library is
    referenced without its initialization call and when classes sit on the
    ``<html>`` tag instead of ``<body>``.

    Args:
        html: Generated HTML document.
        rules: Rule set to apply.

    Returns:
        List of issues (empty if the document is structurally sound).

    Example:
        >>> issues = check_structure("<html><head></head><body></body></html>")
        >>> [i.message for i in issues if i.is_error][0]
        'Missing required script: https://cdn.tailwindcss.com'
    """
    issues: list[ValidationIssue] = []

    for script in rules.required_scripts:
        if script not in html:
            issues.append(
                ValidationIssue.error(
                    IssueCategory.STRUCTURAL, f"Missing required script: {script}"
                )
            )

    for tag in rules.required_structure:
        if f"<{tag}" not in html:
            issues.append(
                ValidationIssue.error(
                    IssueCategory.STRUCTURAL, f"Missing required HTML tag: <{tag}>"
                )
            )

    for forbidden in rules.forbidden_elements:
        if forbidden in html:
            issues.append(
                ValidationIssue.error(
                    IssueCategory.STRUCTURAL, f"Contains forbidden element: {forbidden}"
                )
            )

    if rules.icon_library in html and rules.icon_init_call not in html:
        issues.append(
            ValidationIssue.warning(
                IssueCategory.STRUCTURAL,
                f"Lucide icons used but {rules.icon_init_call} not called",
            )
        )

    if _HTML_TAG_CLASS.search(html):
        issues.append(
            ValidationIssue.warning(
                IssueCategory.STRUCTURAL,
                "Tailwind classes found in <html> tag - should use <body> instead",
            )
        )

    return issues


__all__ = ["check_structure"]
