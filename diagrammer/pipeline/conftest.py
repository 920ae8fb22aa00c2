"""Pipeline test fixtures."""

from diagrammer.llm.conftest import clear_api_keys  # noqa: F401
from diagrammer.loop.conftest import result_cache  # noqa: F401
from diagrammer.validation.conftest import fake_playwright  # noqa: F401
