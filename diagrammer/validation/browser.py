"""Browser-rendered validation phase.

Loads the artifact into a headless Chromium page via Playwright, collects
console and page errors, checks horizontal overflow at several viewports,
runs basic accessibility counts and captures a full-page screenshot.

Each validation launches its own browser. The number of browsers open at
once is bounded by a semaphore shared by the validator instance, and every
browser is closed on every exit path, including cancellation.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from playwright.async_api import async_playwright

from diagrammer.models import IssueCategory, ValidationIssue

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 2
DEFAULT_SETTLE_MS = 1000
DEFAULT_ICON_SETTLE_MS = 500
DEFAULT_VIEWPORT_SETTLE_MS = 300

BROWSER_UNAVAILABLE_MESSAGE = "Could not perform browser-based validation"

INIT_ICONS_SCRIPT = """() => {
    if (typeof window.lucide !== 'undefined') {
        window.lucide.createIcons();
    }
}"""

OVERFLOW_SCRIPT = "() => document.body.scrollWidth > document.body.clientWidth"

IMAGES_WITHOUT_ALT_SCRIPT = """() => Array.from(document.querySelectorAll('img'))
    .filter((img) => !img.alt).length"""

BUTTONS_WITHOUT_TEXT_SCRIPT = """() => Array.from(document.querySelectorAll('button'))
    .filter((btn) => !(btn.textContent || '').trim() && !btn.getAttribute('aria-label'))
    .length"""


@dataclass(frozen=True)
class Viewport:
    """A named viewport size."""

    name: str
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


MOBILE = Viewport("mobile", 375, 667)
TABLET = Viewport("tablet", 768, 1024)
DESKTOP = Viewport("desktop", 1280, 720)
DEFAULT_VIEWPORTS = (MOBILE, TABLET, DESKTOP)


@dataclass
class BrowserCheckResult:
    """Outcome of the browser phase.

    Attributes:
        issues: Issues found, including partial results if the phase failed.
        screenshot: Full-page PNG, if captured.
        checks_performed: Names of the checks that completed.
    """

    issues: list[ValidationIssue] = field(default_factory=list)
    screenshot: bytes | None = None
    checks_performed: list[str] = field(default_factory=list)


class BrowserValidator:
    """Runs browser-rendered checks in an isolated headless Chromium.

    Example:
        >>> validator = BrowserValidator(max_concurrency=2)
        >>> result = await validator.check(html)
        >>> result.screenshot is not None
        True
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        viewports: tuple[Viewport, ...] = DEFAULT_VIEWPORTS,
        settle_ms: int = DEFAULT_SETTLE_MS,
        icon_settle_ms: int = DEFAULT_ICON_SETTLE_MS,
        viewport_settle_ms: int = DEFAULT_VIEWPORT_SETTLE_MS,
    ):
        """Initialize the validator.

        Args:
            headless: Launch Chromium without a window.
            max_concurrency: Maximum browsers open at once.
            viewports: Viewports checked for horizontal overflow.
            settle_ms: Wait after loading the document for CDN scripts.
            icon_settle_ms: Wait after initializing icons.
            viewport_settle_ms: Wait after each viewport resize.
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.headless = headless
        self.max_concurrency = max_concurrency
        self.viewports = viewports
        self.settle_ms = settle_ms
        self.icon_settle_ms = icon_settle_ms
        self.viewport_settle_ms = viewport_settle_ms
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def check(self, html: str) -> BrowserCheckResult:
        """Render the artifact and run every browser check.

        Infrastructure failures (no Chromium, crashed page, failed script
        evaluation) are not raised: the issues gathered so far are kept and
        a single browser-category warning is appended.

        Args:
            html: Generated HTML document.

        Returns:
            BrowserCheckResult with issues, screenshot and completed checks.
        """
        result = BrowserCheckResult()
        try:
            async with self._semaphore:
                await self._run(html, result)
        except Exception as e:
            logger.warning(f"Browser validation failed: {e}")
            result.issues.append(
                ValidationIssue.warning(IssueCategory.BROWSER, BROWSER_UNAVAILABLE_MESSAGE)
            )
        return result

    async def _run(self, html: str, result: BrowserCheckResult) -> None:
        console_errors: list[str] = []
        page_errors: list[str] = []

        def on_console(message) -> None:
            if message.type == "error":
                console_errors.append(message.text)

        def on_page_error(error) -> None:
            page_errors.append(getattr(error, "message", str(error)))

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.headless)
            try:
                page = await browser.new_page(viewport=DESKTOP.as_dict())
                page.on("console", on_console)
                page.on("pageerror", on_page_error)

                await page.set_content(html)
                await page.wait_for_timeout(self.settle_ms)
                await page.evaluate(INIT_ICONS_SCRIPT)
                await page.wait_for_timeout(self.icon_settle_ms)

                result.screenshot = await page.screenshot(full_page=True, type="png")
                result.checks_performed.append("screenshot")

                result.issues.extend(_console_issues(console_errors, page_errors))
                result.checks_performed.append("console-errors")

                result.issues.extend(await self._check_responsive(page))
                result.checks_performed.append("responsive")

                result.issues.extend(await _check_accessibility(page))
                result.checks_performed.append("accessibility")
            finally:
                await browser.close()
                logger.debug("Browser closed")

    async def _check_responsive(self, page) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for viewport in self.viewports:
            await page.set_viewport_size(viewport.as_dict())
            await page.wait_for_timeout(self.viewport_settle_ms)
            if await page.evaluate(OVERFLOW_SCRIPT):
                issues.append(
                    ValidationIssue.warning(
                        IssueCategory.RESPONSIVE,
                        f"Horizontal overflow detected on {viewport.name} "
                        f"({viewport.width}x{viewport.height})",
                    )
                )
        return issues


def _console_issues(
    console_errors: list[str],
    page_errors: list[str],
) -> list[ValidationIssue]:
    issues = [
        ValidationIssue.error(IssueCategory.CONSOLE, f"Console error: {text}")
        for text in console_errors
    ]
    issues.extend(
        ValidationIssue.error(IssueCategory.CONSOLE, f"Uncaught exception: {text}")
        for text in page_errors
    )
    return issues


async def _check_accessibility(page) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    images_without_alt = await page.evaluate(IMAGES_WITHOUT_ALT_SCRIPT)
    if images_without_alt:
        issues.append(
            ValidationIssue.warning(
                IssueCategory.ACCESSIBILITY,
                f"{images_without_alt} image(s) missing alt text",
            )
        )

    buttons_without_text = await page.evaluate(BUTTONS_WITHOUT_TEXT_SCRIPT)
    if buttons_without_text:
        issues.append(
            ValidationIssue.warning(
                IssueCategory.ACCESSIBILITY,
                f"{buttons_without_text} button(s) missing accessible text",
            )
        )

    return issues


__all__ = [
    "BROWSER_UNAVAILABLE_MESSAGE",
    "DEFAULT_VIEWPORTS",
    "DESKTOP",
    "MOBILE",
    "TABLET",
    "BrowserCheckResult",
    "BrowserValidator",
    "Viewport",
]
