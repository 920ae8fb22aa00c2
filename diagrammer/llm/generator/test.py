"""Tests for DiagramGenerator."""

import pytest

from diagrammer.llm.conftest import MockLLMBackend
from diagrammer.models import ConversationTurn, GenerationRequest
from diagrammer.prompt import SYSTEM_PROMPT

from ..backend.base import InvalidResponseError, RateLimitError
from .lib import DiagramGenerator, GenerationContext, GenerationOutput, GeneratorConfig


@pytest.fixture
def request_with_history() -> GenerationRequest:
    return GenerationRequest(
        instruction="Draw a release pipeline",
        conversation_history=(
            ConversationTurn(role="user", content="We ship weekly"),
            ConversationTurn(role="assistant", content="Noted"),
        ),
    )


class TestDiagramGenerator:
    """Tests for the LLM-backed generation capability."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_iteration_messages(self, mock_llm_backend, request_with_history):
        """First iteration sends history plus the instruction."""
        generator = DiagramGenerator(mock_llm_backend)

        await generator(
            request_with_history.instruction, GenerationContext(request_with_history)
        )

        call = mock_llm_backend.calls[0]
        assert call["system_prompt"] == SYSTEM_PROMPT
        roles = [m["role"] for m in call["messages"]]
        assert roles == ["user", "assistant", "user"]
        assert call["messages"][-1]["content"] == "Draw a release pipeline"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revision_replays_previous_artifact(self, mock_llm_backend):
        """Later iterations send the previous artifact and the revision prompt."""
        request = GenerationRequest(instruction="Draw a release pipeline")
        generator = DiagramGenerator(mock_llm_backend)
        context = GenerationContext(
            request,
            feedback=("Found 1 error(s)",),
            previous_artifact="<html>old</html>",
            iteration=2,
        )

        await generator("Fix the missing script", context)

        messages = mock_llm_backend.calls[0]["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert "<html>old</html>" in messages[1]["content"]
        assert messages[2]["content"] == "Fix the missing script"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_extracts_html_and_reports_usage(self):
        """Fenced output is unwrapped and token usage propagated."""
        backend = MockLLMBackend(tokens_per_call=321)
        generator = DiagramGenerator(backend)

        output = await generator(
            "timeline", GenerationContext(GenerationRequest(instruction="timeline"))
        )

        assert isinstance(output, GenerationOutput)
        assert output.html.startswith("<!DOCTYPE html>")
        assert "```" not in output.html
        assert output.tokens_used == 321
        assert output.model == "mock-model-v1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        """Whitespace-only output is an invalid response."""
        generator = DiagramGenerator(MockLLMBackend(["   \n"]))

        with pytest.raises(InvalidResponseError) as excinfo:
            await generator("x", GenerationContext(GenerationRequest(instruction="x")))
        assert excinfo.value.retryable is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backend_errors_propagate(self):
        """Backend errors reach the caller unchanged."""
        error = RateLimitError("slow down")
        generator = DiagramGenerator(MockLLMBackend([error]))

        with pytest.raises(RateLimitError) as excinfo:
            await generator("x", GenerationContext(GenerationRequest(instruction="x")))
        assert excinfo.value is error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_config_reaches_backend(self, mock_llm_backend):
        """Generator configuration becomes the backend GenerationConfig."""
        generator = DiagramGenerator(
            mock_llm_backend, GeneratorConfig(temperature=0.2, max_tokens=1000)
        )

        await generator("x", GenerationContext(GenerationRequest(instruction="x")))

        config = mock_llm_backend.calls[0]["config"]
        assert config.temperature == 0.2
        assert config.max_tokens == 1000

    @pytest.mark.unit
    def test_default_backend_from_environment(self, monkeypatch):
        """Without a backend, the configured model is used."""
        monkeypatch.setenv("LLM_MODEL", "gpt-4.1-mini")
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")

        generator = DiagramGenerator()

        assert generator.backend.model_name == "gpt-4.1-mini"
