"""Tests for the validation engine and its phases.

Covers:
- check_structure: required scripts/tags, forbidden elements, warnings
- BrowserValidator: console errors, overflow, accessibility, degradation,
  resource safety and bounded concurrency (against FakePlaywright)
- parse_judgment / VisualValidator: JSON judgments and fallbacks
- ValidationEngine: merged verdicts, feedback and phase gating
"""

import asyncio

import pytest

from diagrammer.models import IssueCategory, IssueSeverity

from .browser import BROWSER_UNAVAILABLE_MESSAGE, BrowserValidator
from .conftest import FAKE_PNG, MISSING_TAILWIND_HTML, VALID_HTML, FakeVision
from .lib import ValidationConfig, ValidationEngine
from .rules import ValidationRules
from .structural import check_structure
from .visual import (
    VISION_UNAVAILABLE_MESSAGE,
    VisualValidator,
    build_visual_prompt,
    parse_judgment,
    repair_json,
)


def _fast_browser(**kwargs) -> BrowserValidator:
    return BrowserValidator(settle_ms=0, icon_settle_ms=0, viewport_settle_ms=0, **kwargs)


# =============================================================================
# Structural Phase
# =============================================================================


class TestCheckStructure:
    """Tests for check_structure."""

    @pytest.mark.unit
    def test_valid_document(self):
        """A compliant document yields no issues."""
        assert check_structure(VALID_HTML) == []

    @pytest.mark.unit
    def test_missing_tailwind_is_single_error(self):
        """A missing required script is exactly one error."""
        issues = check_structure(MISSING_TAILWIND_HTML)
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.ERROR
        assert issues[0].category is IssueCategory.STRUCTURAL
        assert "https://cdn.tailwindcss.com" in issues[0].message

    @pytest.mark.unit
    def test_missing_root_tags(self):
        """Each missing root tag is its own error."""
        html = (
            '<script src="https://cdn.tailwindcss.com"></script>'
            '<script src="https://unpkg.com/lucide@latest"></script>'
            "<div>lucide.createIcons()</div>"
        )
        messages = [issue.message for issue in check_structure(html)]
        assert messages == [
            "Missing required HTML tag: <html>",
            "Missing required HTML tag: <head>",
            "Missing required HTML tag: <body>",
        ]

    @pytest.mark.unit
    def test_forbidden_elements(self):
        """Style blocks and stylesheet links are errors."""
        html = VALID_HTML.replace(
            "</head>",
            '<style>body{}</style><link rel="stylesheet" href="x.css"></head>',
        )
        errors = [issue for issue in check_structure(html) if issue.is_error]
        assert len(errors) == 2
        assert all("forbidden" in issue.message for issue in errors)

    @pytest.mark.unit
    def test_icons_without_init_is_warning(self):
        """Referencing lucide without createIcons() warns."""
        html = VALID_HTML.replace("<script>lucide.createIcons();</script>", "")
        issues = check_structure(html)
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert "createIcons" in issues[0].message

    @pytest.mark.unit
    def test_classes_on_html_tag_is_warning(self):
        """Classes belong on <body>, not <html>."""
        html = VALID_HTML.replace('<html lang="en">', '<html lang="en" class="dark">')
        issues = check_structure(html)
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert "<html>" in issues[0].message

    @pytest.mark.unit
    def test_custom_rules(self):
        """Rule sets can be narrowed."""
        rules = ValidationRules(required_scripts=(), forbidden_elements=())
        html = "<html><head></head><body><style></style></body></html>"
        assert check_structure(html, rules) == []


# =============================================================================
# Browser Phase
# =============================================================================


class TestBrowserValidator:
    """Tests for BrowserValidator against FakePlaywright."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_clean_page(self, fake_playwright):
        """A clean page yields a screenshot and every check."""
        result = await _fast_browser().check(VALID_HTML)
        assert result.issues == []
        assert result.screenshot == FAKE_PNG
        assert result.checks_performed == [
            "screenshot",
            "console-errors",
            "responsive",
            "accessibility",
        ]
        assert fake_playwright.open_browsers == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_load_time_console_errors_are_captured(self, fake_playwright):
        """Errors emitted while loading are seen, one error issue each."""
        fake_playwright.behavior.console_errors = ["Uncaught ReferenceError: Chart"]
        fake_playwright.behavior.page_errors = ["boom"]
        result = await _fast_browser().check(VALID_HTML)
        console = [i for i in result.issues if i.category is IssueCategory.CONSOLE]
        assert len(console) == 2
        assert all(issue.is_error for issue in console)
        assert "Chart" in console[0].message
        assert "boom" in console[1].message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_overflow_per_viewport(self, fake_playwright):
        """Each overflowing viewport yields one warning."""
        fake_playwright.behavior.overflow_widths = {375, 768}
        result = await _fast_browser().check(VALID_HTML)
        responsive = [i for i in result.issues if i.category is IssueCategory.RESPONSIVE]
        assert [issue.message for issue in responsive] == [
            "Horizontal overflow detected on mobile (375x667)",
            "Horizontal overflow detected on tablet (768x1024)",
        ]
        assert not any(issue.is_error for issue in responsive)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_accessibility_counts(self, fake_playwright):
        """Missing alt text and button labels are counted."""
        fake_playwright.behavior.images_without_alt = 2
        fake_playwright.behavior.buttons_without_text = 1
        result = await _fast_browser().check(VALID_HTML)
        messages = [
            i.message for i in result.issues if i.category is IssueCategory.ACCESSIBILITY
        ]
        assert messages == [
            "2 image(s) missing alt text",
            "1 button(s) missing accessible text",
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_launch_failure_degrades_to_warning(self, fake_playwright):
        """No Chromium means one browser warning and no screenshot."""
        fake_playwright.behavior.fail_on_launch = True
        result = await _fast_browser().check(VALID_HTML)
        assert len(result.issues) == 1
        assert result.issues[0].category is IssueCategory.BROWSER
        assert result.issues[0].message == BROWSER_UNAVAILABLE_MESSAGE
        assert result.screenshot is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_browser_closed_when_evaluate_raises(self, fake_playwright):
        """A failing script leaves no browser open."""
        fake_playwright.behavior.fail_on_evaluate = True
        before = fake_playwright.open_browsers
        result = await _fast_browser().check(VALID_HTML)
        assert fake_playwright.open_browsers == before
        assert all(browser.closed for browser in fake_playwright.browsers)
        assert result.issues[-1].message == BROWSER_UNAVAILABLE_MESSAGE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_browser_closed_on_cancellation(self, fake_playwright):
        """Cancelling mid-validation closes the browser and propagates."""
        fake_playwright.behavior.block_on_load = asyncio.Event()
        task = asyncio.create_task(_fast_browser().check(VALID_HTML))
        while not fake_playwright.browsers:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_playwright.open_browsers == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, fake_playwright):
        """No more than max_concurrency browsers are open at once."""
        gate = asyncio.Event()
        fake_playwright.behavior.block_on_load = gate
        validator = _fast_browser(max_concurrency=2)
        tasks = [asyncio.create_task(validator.check(VALID_HTML)) for _ in range(5)]
        for _ in range(20):
            await asyncio.sleep(0)
        assert fake_playwright.open_browsers == 2
        gate.set()
        await asyncio.gather(*tasks)
        assert fake_playwright.max_open == 2
        assert len(fake_playwright.browsers) == 5
        assert fake_playwright.open_browsers == 0

    @pytest.mark.unit
    def test_invalid_concurrency(self):
        """At least one browser must be allowed."""
        with pytest.raises(ValueError, match="max_concurrency"):
            BrowserValidator(max_concurrency=0)


# =============================================================================
# Visual Phase
# =============================================================================


class TestParseJudgment:
    """Tests for parse_judgment."""

    @pytest.mark.unit
    def test_valid_with_issues_are_warnings(self):
        """Issues of a passing judgment are warnings."""
        issues = parse_judgment('{"isValid": true, "issues": ["Tight spacing"]}')
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert issues[0].category is IssueCategory.VISUAL

    @pytest.mark.unit
    def test_invalid_with_issues_are_errors(self):
        """Issues of a failing judgment are errors."""
        issues = parse_judgment(
            '{"isValid": false, "issues": ["Only 2 boxes", "Text clipped"]}'
        )
        assert [issue.severity for issue in issues] == [IssueSeverity.ERROR] * 2

    @pytest.mark.unit
    def test_fenced_json_is_repaired(self):
        """Markdown fences and trailing commas are tolerated."""
        content = '```json\n{"isValid": false, "issues": ["Low contrast",],}\n```'
        issues = parse_judgment(content)
        assert [issue.message for issue in issues] == ["Low contrast"]

    @pytest.mark.unit
    def test_unparseable_becomes_warning(self):
        """Plain prose becomes one warning carrying the raw text."""
        issues = parse_judgment("The legend overlaps the chart.")
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert issues[0].message == "The legend overlaps the chart."

    @pytest.mark.unit
    def test_looks_good_prose_is_ignored(self):
        """Prose approval yields no issues."""
        assert parse_judgment("Everything Looks Good to me.") == []

    @pytest.mark.unit
    def test_repair_json_gives_up(self):
        """Hopeless content returns None."""
        assert repair_json("no json here") is None


class TestVisualValidator:
    """Tests for VisualValidator."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prompt_carries_request(self):
        """The vision prompt embeds the original request."""
        vision = FakeVision()
        await VisualValidator(vision).check(FAKE_PNG, "draw 3 boxes")
        image, prompt = vision.calls[0]
        assert image == FAKE_PNG
        assert prompt == build_visual_prompt("draw 3 boxes")
        assert 'Original request: "draw 3 boxes"' in prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_vision_failure_degrades(self):
        """A failing vision call becomes one warning."""
        vision = FakeVision(error=RuntimeError("quota"))
        issues = await VisualValidator(vision).check(FAKE_PNG, "draw 3 boxes")
        assert len(issues) == 1
        assert issues[0].message == VISION_UNAVAILABLE_MESSAGE
        assert not issues[0].is_error


# =============================================================================
# ValidationEngine
# =============================================================================


class TestValidationEngine:
    """Tests for ValidationEngine."""

    @pytest.fixture
    def fast_config(self):
        return ValidationConfig(settle_ms=0, icon_settle_ms=0, viewport_settle_ms=0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_phases_pass(self, fake_playwright, fast_config):
        """A clean artifact passes with every phase recorded."""
        vision = FakeVision()
        engine = ValidationEngine(fast_config, vision=vision)
        result = await engine.validate(VALID_HTML, "draw 3 boxes")
        assert result.is_valid
        assert result.feedback is None
        assert result.screenshot == FAKE_PNG
        assert result.metadata.checks_performed == (
            "structural",
            "screenshot",
            "console-errors",
            "responsive",
            "accessibility",
            "visual-validation",
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_phases_do_not_short_circuit(self, fake_playwright, fast_config):
        """Structural errors do not stop browser and visual phases."""
        fake_playwright.behavior.overflow_widths = {375}
        vision = FakeVision('{"isValid": false, "issues": ["Boxes missing"]}')
        engine = ValidationEngine(fast_config, vision=vision)
        result = await engine.validate(MISSING_TAILWIND_HTML, "draw 3 boxes")
        assert not result.is_valid
        categories = {issue.category for issue in result.issues}
        assert categories == {
            IssueCategory.STRUCTURAL,
            IssueCategory.RESPONSIVE,
            IssueCategory.VISUAL,
        }
        assert result.feedback.startswith("Found 2 error(s) and 1 warning(s)")
        assert result.feedback.endswith('original request: "draw 3 boxes"')

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_warnings_only_is_valid(self, fake_playwright, fast_config):
        """Warnings never fail the verdict."""
        fake_playwright.behavior.images_without_alt = 3
        result = await ValidationEngine(fast_config).validate(VALID_HTML, "chart")
        assert result.is_valid
        assert len(result.warnings) == 1
        assert result.feedback is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_visual_skipped_without_screenshot(self, fake_playwright, fast_config):
        """No screenshot means the vision capability is never called."""
        fake_playwright.behavior.fail_on_launch = True
        vision = FakeVision()
        result = await ValidationEngine(fast_config, vision=vision).validate(
            VALID_HTML, "chart"
        )
        assert vision.calls == []
        assert result.is_valid
        assert result.issues[0].category is IssueCategory.BROWSER

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_structural_only(self):
        """Disabling browser phases runs the structural checks alone."""
        config = ValidationConfig(browser=False, visual=False)
        result = await ValidationEngine(config).validate(MISSING_TAILWIND_HTML, "chart")
        assert result.metadata.checks_performed == ("structural",)
        assert len(result.errors) == 1
        assert result.screenshot is None

    @pytest.mark.unit
    def test_config_from_environment(self, monkeypatch):
        """Browser and vision settings come from the environment."""
        monkeypatch.setenv("VISION_ENABLED", "false")
        monkeypatch.setenv("BROWSER_MAX_CONCURRENCY", "4")
        config = ValidationConfig.from_environment()
        assert config.visual is False
        assert config.max_concurrency == 4


# =============================================================================
# Real Chromium
# =============================================================================

OFFLINE_HTML = """<!DOCTYPE html>
<html>
<head></head>
<body>
  <img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=">
  <button></button>
  <script>throw new Error("boom");</script>
</body>
</html>"""


class TestBrowserValidatorChromium:
    """Tests against a real headless Chromium."""

    @pytest.mark.browser
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_renders_and_reports(self):
        """A real render captures load-time exceptions and accessibility gaps."""
        result = await _fast_browser().check(OFFLINE_HTML)

        assert result.screenshot is not None
        assert result.screenshot.startswith(b"\x89PNG")
        assert result.checks_performed == [
            "screenshot",
            "console-errors",
            "responsive",
            "accessibility",
        ]
        messages = [issue.message for issue in result.issues]
        assert any(m.startswith("Uncaught exception:") and "boom" in m for m in messages)
        assert "1 image(s) missing alt text" in messages
        assert "1 button(s) missing accessible text" in messages
