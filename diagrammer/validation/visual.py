"""Visual validation phase.

Sends the rendered screenshot and the original request to a vision
capability and turns its JSON judgment into validation issues.
"""

import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from diagrammer.models import IssueCategory, ValidationIssue

logger = logging.getLogger(__name__)

VisionCapability = Callable[[bytes, str], Awaitable[str]]
"""Async callable taking PNG bytes and a prompt, returning the raw judgment."""

VISION_UNAVAILABLE_MESSAGE = "Could not perform visual validation"

VISUAL_PROMPT_TEMPLATE = """You are a visual QA expert. Analyze this screenshot of a generated diagram/illustration.

Original request: "{request}"

Check for:
1. Does it match the user's request?
2. Is the design professional and clean?
3. Are colors and contrast appropriate?
4. Is text readable?
5. Are there any visual bugs or issues?
6. Is the layout well-structured?

Respond with a JSON object: {{ "isValid": boolean, "issues": string[] }}
Only list actual problems, not suggestions."""


class VisualJudgment(BaseModel):
    """Parsed response of the vision capability."""

    is_valid: bool = Field(alias="isValid")
    issues: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def build_visual_prompt(original_request: str) -> str:
    """Build the vision prompt for an original request."""
    return VISUAL_PROMPT_TEMPLATE.format(request=original_request)


# Common JSON repair patterns (pattern, replacement)
_JSON_REPAIR_PATTERNS: list[tuple[str, str]] = [
    (r"^```json\s*", ""),
    (r"^```\s*", ""),
    (r"\s*```$", ""),
    (r",\s*}", "}"),
    (r",\s*]", "]"),
]


def repair_json(content: str) -> dict[str, Any] | None:
    """Attempt to recover a JSON object from a model response.

    Tries, in order: markdown fence and trailing-comma cleanup, the first
    ``{...}`` span in mixed content, and the first balanced-brace object.

    Args:
        content: Raw response text.

    Returns:
        Parsed dict if repair succeeded, None otherwise.
    """
    cleaned = content.strip()
    for pattern, replacement in _JSON_REPAIR_PATTERNS:
        cleaned = re.sub(pattern, replacement, cleaned, flags=re.MULTILINE)

    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group())
        except json.JSONDecodeError:
            pass

    # Balanced braces: first complete object in the text
    try:
        start = cleaned.index("{")
        depth = 0
        for i, char in enumerate(cleaned[start:], start):
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return json.loads(cleaned[start : i + 1])
    except (ValueError, json.JSONDecodeError):
        pass

    return None


def parse_judgment(content: str) -> list[ValidationIssue]:
    """Convert a raw vision response into issues.

    Judgment issues become warnings when ``isValid`` is true and errors
    otherwise. A response that cannot be parsed becomes a single warning
    carrying the raw text, unless it simply says the diagram looks good.

    Args:
        content: Raw text returned by the vision capability.

    Returns:
        List of visual issues.
    """
    if not content or not content.strip():
        return []

    data = repair_json(content)
    judgment: VisualJudgment | None = None
    if data is not None:
        try:
            judgment = VisualJudgment.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Vision response did not match judgment schema: {e}")

    if judgment is None:
        if "looks good" in content.lower():
            return []
        return [ValidationIssue.warning(IssueCategory.VISUAL, content.strip())]

    make = ValidationIssue.warning if judgment.is_valid else ValidationIssue.error
    return [make(IssueCategory.VISUAL, issue) for issue in judgment.issues]


class VisualValidator:
    """Runs the vision capability against a screenshot.

    Example:
        >>> validator = VisualValidator(backend.analyze_image)
        >>> issues = await validator.check(screenshot, "draw 3 boxes")
    """

    def __init__(self, vision: VisionCapability):
        self._vision = vision

    async def check(self, screenshot: bytes, original_request: str) -> list[ValidationIssue]:
        """Judge a screenshot against the original request.

        A failing vision call degrades to one warning.
        """
        prompt = build_visual_prompt(original_request)
        try:
            content = await self._vision(screenshot, prompt)
        except Exception as e:
            logger.warning(f"Visual validation failed: {e}")
            return [ValidationIssue.warning(IssueCategory.VISUAL, VISION_UNAVAILABLE_MESSAGE)]
        return parse_judgment(content)


__all__ = [
    "VISION_UNAVAILABLE_MESSAGE",
    "VisionCapability",
    "VisualJudgment",
    "VisualValidator",
    "build_visual_prompt",
    "parse_judgment",
    "repair_json",
]
