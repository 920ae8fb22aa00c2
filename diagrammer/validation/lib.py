"""Validation engine for generated diagrams.

Runs the structural, browser-rendered and visual phases against an artifact
and merges their issues into a single verdict. Phases never short-circuit:
every phase that can run does run, and a phase that cannot run degrades to a
warning instead of failing the validation.
"""

import logging
import time
from dataclasses import dataclass

from diagrammer.config import EnvVar, get_environment
from diagrammer.feedback import build_feedback_message
from diagrammer.models import ValidationMetadata, ValidationResult

from .browser import (
    DEFAULT_ICON_SETTLE_MS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_SETTLE_MS,
    DEFAULT_VIEWPORT_SETTLE_MS,
    DEFAULT_VIEWPORTS,
    BrowserValidator,
    Viewport,
)
from .rules import DEFAULT_RULES, ValidationRules
from .structural import check_structure
from .visual import VisionCapability, VisualValidator

logger = logging.getLogger(__name__)


@dataclass
class ValidationConfig:
    """Configuration for ValidationEngine.

    Attributes:
        structural: Run the structural phase.
        browser: Run the browser-rendered phase.
        visual: Run the visual phase (also needs a vision capability).
        headless: Launch Chromium without a window.
        max_concurrency: Maximum browsers open at once.
        viewports: Viewports checked for horizontal overflow.
        settle_ms: Wait after loading the document.
        icon_settle_ms: Wait after initializing icons.
        viewport_settle_ms: Wait after each viewport resize.
    """

    structural: bool = True
    browser: bool = True
    visual: bool = True
    headless: bool = True
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    viewports: tuple[Viewport, ...] = DEFAULT_VIEWPORTS
    settle_ms: int = DEFAULT_SETTLE_MS
    icon_settle_ms: int = DEFAULT_ICON_SETTLE_MS
    viewport_settle_ms: int = DEFAULT_VIEWPORT_SETTLE_MS

    @classmethod
    def from_environment(cls) -> "ValidationConfig":
        """Create a config from environment variables."""
        return cls(
            visual=get_environment(EnvVar.VISION_ENABLED),
            headless=get_environment(EnvVar.BROWSER_HEADLESS),
            max_concurrency=get_environment(EnvVar.BROWSER_MAX_CONCURRENCY),
        )


class ValidationEngine:
    """Multi-phase validator for generated HTML diagrams.

    Pipeline:
        1. Structural checks on the raw HTML
        2. Browser rendering: console errors, overflow, accessibility, screenshot
        3. Vision judgment of the screenshot against the original request

    The visual phase runs only when a vision capability was supplied and the
    browser phase produced a screenshot.

    Example:
        >>> engine = ValidationEngine(vision=backend.analyze_image)
        >>> result = await engine.validate(html, "org chart for the sales team")
        >>> if not result.is_valid:
        ...     print(result.feedback)
    """

    def __init__(
        self,
        config: ValidationConfig | None = None,
        *,
        vision: VisionCapability | None = None,
        rules: ValidationRules = DEFAULT_RULES,
        browser: BrowserValidator | None = None,
    ):
        """Initialize the engine.

        Args:
            config: Phase toggles and browser settings.
            vision: Optional vision capability for the visual phase.
            rules: Structural rule set.
            browser: Browser validator to use. Built from config if None.
        """
        self._config = config or ValidationConfig()
        self._rules = rules
        self._browser = browser or BrowserValidator(
            headless=self._config.headless,
            max_concurrency=self._config.max_concurrency,
            viewports=self._config.viewports,
            settle_ms=self._config.settle_ms,
            icon_settle_ms=self._config.icon_settle_ms,
            viewport_settle_ms=self._config.viewport_settle_ms,
        )
        self._visual = VisualValidator(vision) if vision is not None else None

    @property
    def config(self) -> ValidationConfig:
        return self._config

    @property
    def visual_enabled(self) -> bool:
        """True when the visual phase can run."""
        return self._config.visual and self._visual is not None

    async def validate(self, artifact: str, original_request: str) -> ValidationResult:
        """Validate an artifact.

        Args:
            artifact: Generated HTML document.
            original_request: The user's instruction, used by the visual
                phase and restated in the feedback.

        Returns:
            ValidationResult. ``is_valid`` is True when no issue has error
            severity; ``feedback`` is set only when invalid.
        """
        started = time.perf_counter()
        issues = []
        checks: list[str] = []
        screenshot: bytes | None = None

        if self._config.structural:
            issues.extend(check_structure(artifact, self._rules))
            checks.append("structural")

        if self._config.browser:
            browser_result = await self._browser.check(artifact)
            issues.extend(browser_result.issues)
            checks.extend(browser_result.checks_performed)
            screenshot = browser_result.screenshot

        if self._config.visual and self._visual is not None and screenshot is not None:
            issues.extend(await self._visual.check(screenshot, original_request))
            checks.append("visual-validation")

        is_valid = not any(issue.is_error for issue in issues)
        feedback = None if is_valid else build_feedback_message(issues, original_request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        error_count = sum(1 for issue in issues if issue.is_error)
        logger.info(
            f"Validation {'passed' if is_valid else 'failed'}: "
            f"{error_count} error(s), {len(issues) - error_count} warning(s) "
            f"in {elapsed_ms}ms ({', '.join(checks) or 'no checks'})"
        )

        return ValidationResult(
            is_valid=is_valid,
            issues=tuple(issues),
            feedback=feedback,
            screenshot=screenshot,
            metadata=ValidationMetadata(
                elapsed_ms=elapsed_ms,
                checks_performed=tuple(checks),
            ),
        )


__all__ = ["ValidationConfig", "ValidationEngine"]
