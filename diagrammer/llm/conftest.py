"""LLM module test fixtures."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from diagrammer.llm.backend.base import (
    ChatMessage,
    GenerationConfig,
    GenerationResult,
    LLMBackend,
)

# =============================================================================
# Mock LLM Backend
# =============================================================================


class MockLLMBackend(LLMBackend):
    """Mock LLM backend for testing without API keys.

    Replays a scripted list of responses (the last one repeats) and records
    every call. A response that is an exception instance is raised instead.
    """

    MOCK_HTML = """```html
<!DOCTYPE html>
<html lang="en">
<head>
  <script src="https://cdn.tailwindcss.com"></script>
  <script src="https://unpkg.com/lucide@latest"></script>
</head>
<body class="p-8">
  <div class="flex gap-4"><div>One</div><div>Two</div><div>Three</div></div>
  <script>lucide.createIcons();</script>
</body>
</html>
```"""

    def __init__(
        self,
        responses: Sequence[str | Exception] | None = None,
        *,
        vision_response: str = '{"isValid": true, "issues": []}',
        tokens_per_call: int = 100,
    ):
        self._responses = list(responses or [self.MOCK_HTML])
        self.vision_response = vision_response
        self.tokens_per_call = tokens_per_call
        self.calls: list[dict] = []
        self.image_calls: list[tuple[bytes, str]] = []

    @property
    def model_name(self) -> str:
        return "mock-model-v1"

    @property
    def provider(self) -> str:
        return "mock"

    @property
    def supports_vision(self) -> bool:
        return True

    @property
    def context_window(self) -> int:
        return 128000

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        system_prompt: str | None = None,
        config: GenerationConfig | None = None,
    ) -> GenerationResult:
        self.calls.append(
            {"messages": list(messages), "system_prompt": system_prompt, "config": config}
        )
        index = min(len(self.calls) - 1, len(self._responses) - 1)
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        return GenerationResult(
            content=response,
            finish_reason="stop",
            usage={"total_tokens": self.tokens_per_call},
            model=self.model_name,
        )

    async def analyze_image(
        self,
        image: bytes,
        prompt: str,
        *,
        config: GenerationConfig | None = None,
    ) -> str:
        self.image_calls.append((image, prompt))
        return self.vision_response


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_llm_backend() -> MockLLMBackend:
    """Create a mock LLM backend for testing."""
    return MockLLMBackend()


@pytest.fixture
def clear_api_keys(monkeypatch) -> None:
    """Remove provider API keys from the environment for the test."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
