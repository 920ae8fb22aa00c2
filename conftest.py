"""Root pytest configuration and fixtures.

This module provides:
- Environment setup (loads .env)
- Chromium detection for browser-marked tests
- Isolation of the process-wide result cache
"""

from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
from pathlib import Path

import pytest
from dotenv import load_dotenv

from diagrammer.cache import reset_default_cache

# Load environment variables from .env file
load_dotenv()


# =============================================================================
# Service Detection (Private Functions)
# =============================================================================


@lru_cache(maxsize=1)
def _is_chromium_available() -> bool:
    """Check if Playwright's Chromium build is installed."""
    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            return Path(p.chromium.executable_path).exists()
    except Exception:
        return False


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]):
    """Modify test collection based on available services.

    Auto-skips tests marked with browser when Chromium is unavailable.
    """
    if not any("browser" in item.keywords for item in items):
        return

    skip_browser = pytest.mark.skip(
        reason="Chromium not installed (run: playwright install chromium)"
    )
    for item in items:
        if "browser" in item.keywords and not _is_chromium_available():
            item.add_marker(skip_browser)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_default_cache() -> Generator[None, None, None]:
    """Give every test a fresh process-wide cache."""
    reset_default_cache()
    yield
    reset_default_cache()
