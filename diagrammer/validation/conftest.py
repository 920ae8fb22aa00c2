"""Validation module test fixtures.

Provides in-process stand-ins for Playwright and the vision capability so
the browser and visual phases can be exercised without Chromium or API keys.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from dataclasses import dataclass, field

import pytest

from diagrammer.validation import browser as browser_module

# =============================================================================
# Sample Artifacts
# =============================================================================

VALID_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <script src="https://cdn.tailwindcss.com"></script>
  <script src="https://unpkg.com/lucide@latest"></script>
</head>
<body class="bg-slate-50 p-8">
  <div class="grid grid-cols-3 gap-4">
    <div class="rounded-lg border p-4">Plan</div>
    <div class="rounded-lg border p-4">Build</div>
    <div class="rounded-lg border p-4">Ship</div>
  </div>
  <script>lucide.createIcons();</script>
</body>
</html>"""

MISSING_TAILWIND_HTML = VALID_HTML.replace(
    '  <script src="https://cdn.tailwindcss.com"></script>\n', ""
)

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-screenshot"


# =============================================================================
# Fake Playwright
# =============================================================================


@dataclass
class PageBehavior:
    """Scripted behavior of every page opened by the fake browser.

    Attributes:
        console_errors: Console error texts emitted while the document loads.
        page_errors: Uncaught exception messages emitted while loading.
        overflow_widths: Viewport widths at which the body overflows.
        images_without_alt: Count returned by the alt-text check.
        buttons_without_text: Count returned by the button-label check.
        fail_on_evaluate: Raise from every ``evaluate`` call.
        fail_on_launch: Raise from ``chromium.launch``.
        block_on_load: Event that ``set_content`` waits for (None = no wait).
    """

    console_errors: list[str] = field(default_factory=list)
    page_errors: list[str] = field(default_factory=list)
    overflow_widths: set[int] = field(default_factory=set)
    images_without_alt: int = 0
    buttons_without_text: int = 0
    fail_on_evaluate: bool = False
    fail_on_launch: bool = False
    block_on_load: asyncio.Event | None = None


class FakeConsoleMessage:
    def __init__(self, type_: str, text: str):
        self.type = type_
        self.text = text


class FakePageError(Exception):
    @property
    def message(self) -> str:
        return str(self)


class FakePage:
    """Page that replays a PageBehavior."""

    def __init__(self, behavior: PageBehavior, viewport: dict[str, int]):
        self._behavior = behavior
        self._handlers: dict[str, list] = {}
        self.viewport = dict(viewport)
        self.content: str | None = None

    def on(self, event: str, handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def _emit(self, event: str, payload) -> None:
        for handler in self._handlers.get(event, []):
            handler(payload)

    async def set_content(self, html: str) -> None:
        self.content = html
        if self._behavior.block_on_load is not None:
            await self._behavior.block_on_load.wait()
        # Load-time errors are only observed by listeners already attached
        for text in self._behavior.console_errors:
            self._emit("console", FakeConsoleMessage("error", text))
        self._emit("console", FakeConsoleMessage("log", "rendered"))
        for text in self._behavior.page_errors:
            self._emit("pageerror", FakePageError(text))

    async def wait_for_timeout(self, timeout: float) -> None:
        await asyncio.sleep(0)

    async def evaluate(self, script: str):
        if self._behavior.fail_on_evaluate:
            raise RuntimeError("Execution context was destroyed")
        if script == browser_module.OVERFLOW_SCRIPT:
            return self.viewport["width"] in self._behavior.overflow_widths
        if script == browser_module.IMAGES_WITHOUT_ALT_SCRIPT:
            return self._behavior.images_without_alt
        if script == browser_module.BUTTONS_WITHOUT_TEXT_SCRIPT:
            return self._behavior.buttons_without_text
        return None

    async def set_viewport_size(self, size: dict[str, int]) -> None:
        self.viewport = dict(size)

    async def screenshot(self, *, full_page: bool = False, type: str = "png") -> bytes:
        return FAKE_PNG


class FakeBrowser:
    def __init__(self, owner: FakePlaywright):
        self._owner = owner
        self.closed = False
        self.pages: list[FakePage] = []

    async def new_page(self, *, viewport: dict[str, int]) -> FakePage:
        page = FakePage(self._owner.behavior, viewport)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._owner.open_browsers -= 1


class FakeChromium:
    def __init__(self, owner: FakePlaywright):
        self._owner = owner

    async def launch(self, *, headless: bool = True) -> FakeBrowser:
        if self._owner.behavior.fail_on_launch:
            raise RuntimeError("Executable doesn't exist")
        browser = FakeBrowser(self._owner)
        self._owner.browsers.append(browser)
        self._owner.open_browsers += 1
        self._owner.max_open = max(self._owner.max_open, self._owner.open_browsers)
        return browser


class _FakePlaywrightContext:
    def __init__(self, owner: FakePlaywright):
        self.chromium = FakeChromium(owner)

    async def __aenter__(self) -> _FakePlaywrightContext:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakePlaywright:
    """Drop-in replacement for ``async_playwright`` tracking open browsers."""

    def __init__(self, behavior: PageBehavior | None = None):
        self.behavior = behavior or PageBehavior()
        self.browsers: list[FakeBrowser] = []
        self.open_browsers = 0
        self.max_open = 0

    def __call__(self) -> _FakePlaywrightContext:
        return _FakePlaywrightContext(self)


# =============================================================================
# Fake Vision
# =============================================================================


class FakeVision:
    """Vision capability returning a canned response."""

    def __init__(self, response: str = '{"isValid": true, "issues": []}', error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[bytes, str]] = []

    async def __call__(self, image: bytes, prompt: str) -> str:
        self.calls.append((image, prompt))
        if self.error is not None:
            raise self.error
        return self.response


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_playwright(monkeypatch) -> Generator[FakePlaywright, None, None]:
    """Patch the browser phase to use FakePlaywright.

    Yields:
        The FakePlaywright instance; mutate ``behavior`` to script pages.
    """
    fake = FakePlaywright()
    monkeypatch.setattr(browser_module, "async_playwright", fake)
    yield fake


@pytest.fixture
def valid_html() -> str:
    return VALID_HTML
