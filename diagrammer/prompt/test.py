"""Tests for prompt module."""

import pytest

from diagrammer.models import GenerationRequest

from .lib import (
    SYSTEM_PROMPT,
    PromptBuilder,
    PromptConfig,
    build_revision_prompt,
    extract_html,
)


@pytest.fixture
def builder():
    return PromptBuilder()


class TestSystemPrompt:
    """Tests for the system prompt."""

    @pytest.mark.unit
    def test_names_required_scripts(self):
        """The prompt states the scripts the structural phase requires."""
        assert "https://cdn.tailwindcss.com" in SYSTEM_PROMPT
        assert "https://unpkg.com/lucide@latest" in SYSTEM_PROMPT
        assert "lucide.createIcons()" in SYSTEM_PROMPT


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    @pytest.mark.unit
    def test_minimal_request(self, builder):
        """A bare request becomes a single user message."""
        messages = builder.build(GenerationRequest(instruction="draw 3 boxes"))
        assert messages == [{"role": "user", "content": "draw 3 boxes"}]

    @pytest.mark.unit
    def test_history_precedes_request(self, builder):
        """Conversation turns are replayed before the new message."""
        request = GenerationRequest(
            instruction="now make it blue",
            conversation_history=[
                {"role": "user", "content": "draw 3 boxes"},
                {"role": "assistant", "content": "<html>...</html>"},
            ],
        )
        messages = builder.build(request)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "now make it blue"

    @pytest.mark.unit
    def test_prompt_text_overrides_instruction(self, builder):
        """An explicit prompt text replaces the instruction."""
        request = GenerationRequest(instruction="draw 3 boxes")
        messages = builder.build(request, "draw 3 rounded boxes")
        assert messages[-1]["content"] == "draw 3 rounded boxes"

    @pytest.mark.unit
    def test_search_context_prepended(self, builder):
        """Research and numbered citations come before the request."""
        request = GenerationRequest(
            instruction="market size chart",
            search_context={
                "answer": "The market is $5B.",
                "citations": [
                    {"url": "https://a.example", "title": "Report A"},
                    {"url": "https://b.example", "title": "Report B"},
                ],
            },
        )
        content = builder.build_user_message(request)
        assert content.startswith("**Web Research Context:**")
        assert "[1] Report A - https://a.example" in content
        assert "[2] Report B - https://b.example" in content
        assert content.endswith("market size chart")

    @pytest.mark.unit
    def test_file_contents_appended(self, builder):
        """File text follows the request, separated per file."""
        request = GenerationRequest(
            instruction="summarize",
            files=[
                {"name": "a.txt", "size": 5, "content": "alpha"},
                {"name": "b.txt", "size": 4, "content": "beta"},
            ],
        )
        content = builder.build_user_message(request)
        assert "**Context from uploaded files:**\nalpha\n\n---\n\nbeta" in content

    @pytest.mark.unit
    def test_latest_previous_artifact_included(self, builder):
        """Only the most recent previous artifact is attached."""
        request = GenerationRequest(
            instruction="tweak it",
            previous_artifacts=["<html>v1</html>", "<html>v2</html>"],
        )
        content = builder.build_user_message(request)
        assert "<html>v2</html>" in content
        assert "<html>v1</html>" not in content

    @pytest.mark.unit
    def test_file_truncation(self):
        """Long file content is cut at the configured limit."""
        builder = PromptBuilder(PromptConfig(max_file_chars=3))
        request = GenerationRequest(
            instruction="x", files=[{"name": "a.txt", "size": 6, "content": "abcdef"}]
        )
        content = builder.build_user_message(request)
        assert "abc\n[truncated]" in content
        assert "abcdef" not in content

    @pytest.mark.unit
    def test_disable_history(self):
        """History can be left out."""
        builder = PromptBuilder(PromptConfig(include_history=False))
        request = GenerationRequest(
            instruction="x", conversation_history=[{"role": "user", "content": "old"}]
        )
        assert len(builder.build(request)) == 1

    @pytest.mark.unit
    def test_revision_messages(self, builder):
        """Revision replays the request and the previous artifact."""
        request = GenerationRequest(instruction="draw 3 boxes")
        messages = builder.build_revision(request, "<html>old</html>", "fix it")
        assert messages == [
            {"role": "user", "content": "draw 3 boxes"},
            {"role": "assistant", "content": "```html\n<html>old</html>\n```"},
            {"role": "user", "content": "fix it"},
        ]


class TestRevisionPrompt:
    """Tests for build_revision_prompt."""

    @pytest.mark.unit
    def test_accumulates_feedback(self):
        """All feedback messages appear in order."""
        prompt = build_revision_prompt(["first round", "second round"])
        assert prompt.startswith("The diagram has the following issues")
        assert prompt.index("first round") < prompt.index("second round")
        assert prompt.endswith("maintaining the original intent.")


class TestExtractHtml:
    """Tests for extract_html."""

    @pytest.mark.unit
    def test_html_block(self):
        """An html-fenced block is extracted."""
        response = "Here you go:\n```html\n<html><body>x</body></html>\n```\nEnjoy!"
        assert extract_html(response) == "<html><body>x</body></html>"

    @pytest.mark.unit
    def test_generic_block(self):
        """An unlabeled fenced block is extracted."""
        assert extract_html("```\n<html></html>\n```") == "<html></html>"

    @pytest.mark.unit
    def test_plain_response(self):
        """Unfenced responses are returned trimmed."""
        assert extract_html("  <html></html>\n") == "<html></html>"
