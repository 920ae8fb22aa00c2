"""Feedback loop test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence

import pytest
import pytest_asyncio

from diagrammer.cache import ResultCache
from diagrammer.llm.generator import GenerationContext, GenerationOutput
from diagrammer.validation import ValidationConfig, ValidationEngine
from diagrammer.validation.conftest import MISSING_TAILWIND_HTML, VALID_HTML


class ScriptedGenerator:
    """Generation capability replaying scripted outputs.

    Each entry is an HTML string or an exception instance to raise. The last
    entry repeats once the script runs out. Every call is recorded.
    """

    def __init__(
        self,
        outputs: Sequence[str | BaseException] = (VALID_HTML,),
        *,
        tokens_per_call: int = 10,
        model: str = "scripted-model",
    ):
        self._outputs = list(outputs)
        self.tokens_per_call = tokens_per_call
        self.model = model
        self.calls: list[tuple[str, GenerationContext]] = []

    @property
    def prompts(self) -> list[str]:
        return [prompt for prompt, _ in self.calls]

    async def __call__(self, prompt: str, context: GenerationContext) -> GenerationOutput:
        self.calls.append((prompt, context))
        output = self._outputs[min(len(self.calls), len(self._outputs)) - 1]
        if isinstance(output, BaseException):
            raise output
        return GenerationOutput(
            html=output, tokens_used=self.tokens_per_call, model=self.model
        )


class CountingValidator:
    """Wraps a validator and counts calls."""

    def __init__(self, engine: ValidationEngine):
        self._engine = engine
        self.calls = 0

    async def validate(self, artifact: str, original_request: str):
        self.calls += 1
        return await self._engine.validate(artifact, original_request)


def structural_engine() -> ValidationEngine:
    """Validation engine running only the structural phase."""
    return ValidationEngine(ValidationConfig(browser=False, visual=False))


@pytest_asyncio.fixture
async def result_cache() -> AsyncGenerator[ResultCache, None]:
    """A private cache so tests never touch the process-wide one."""
    async with ResultCache(max_size=10, default_ttl=60) as cache:
        yield cache


@pytest.fixture
def structural_validator() -> CountingValidator:
    return CountingValidator(structural_engine())


__all__ = [
    "MISSING_TAILWIND_HTML",
    "VALID_HTML",
    "CountingValidator",
    "ScriptedGenerator",
    "structural_engine",
]
