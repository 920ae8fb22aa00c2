"""Tests for LLM backend implementations."""

from types import SimpleNamespace

import httpx
import pytest

from diagrammer.core.errors import ErrorCategory, categorize_error, is_retryable

from .base import (
    AuthenticationError,
    ContextLengthError,
    GenerationConfig,
    GenerationResult,
    InvalidResponseError,
    LLMConnectionError,
    LLMError,
    RateLimitError,
)
from .factory import create_llm_backend
from .model_spec import (
    DEFAULT_MODEL,
    LLMCapability,
    LLMModel,
    LLMProviderType,
    LLMSpec,
    get_llm_spec,
)

_OPENAI_URL = "https://api.openai.com/v1/chat/completions"
_ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def _response(status: int, url: str, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status, headers=headers, request=httpx.Request("POST", url))


class _FakeCompletions:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.kwargs: list[dict] = []

    async def create(self, **kwargs):
        self.kwargs.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _openai_completion(content: str | None, finish_reason: str = "stop"):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content),
                finish_reason=finish_reason,
            )
        ],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30),
        model="gpt-4o-2024-08-06",
    )


# =============================================================================
# Model Specification
# =============================================================================


class TestLLMSpec:
    """Tests for LLMSpec dataclass."""

    @pytest.mark.unit
    def test_spec_capabilities(self):
        """Test capability checking."""
        spec = LLMSpec(
            name="test",
            provider=LLMProviderType.OPENAI,
            context_window=128000,
            max_output_tokens=4096,
            capabilities=frozenset({LLMCapability.VISION}),
        )
        assert spec.supports(LLMCapability.VISION)
        assert not spec.supports(LLMCapability.SEED)


class TestLLMModel:
    """Tests for LLMModel enum registry."""

    @pytest.mark.unit
    def test_default_is_vision_capable(self):
        """The default model can judge screenshots."""
        assert DEFAULT_MODEL.spec.name == "gpt-4o"
        assert DEFAULT_MODEL.spec.supports(LLMCapability.VISION)

    @pytest.mark.unit
    def test_anthropic_models_exist(self):
        """Anthropic models are registered."""
        assert LLMModel.CLAUDE_SONNET_4_5.spec.provider == LLMProviderType.ANTHROPIC
        assert LLMModel.CLAUDE_SONNET_4_5.spec.context_window == 200000

    @pytest.mark.unit
    def test_by_name_lookup(self):
        """Models are found by name."""
        assert LLMModel.by_name("gpt-4.1-mini") == LLMModel.GPT_4_1_MINI
        assert LLMModel.by_name("nonexistent") is None

    @pytest.mark.unit
    def test_list_by_provider(self):
        """Models can be filtered by provider."""
        models = LLMModel.list_by_provider(LLMProviderType.ANTHROPIC)
        assert LLMModel.CLAUDE_HAIKU_4_5 in models
        assert LLMModel.GPT_4O not in models


class TestGetLLMSpec:
    """Tests for get_llm_spec."""

    @pytest.mark.unit
    def test_resolves_all_forms(self):
        """String, enum and spec inputs resolve to the same spec."""
        spec = LLMModel.GPT_4O.spec
        assert get_llm_spec("gpt-4o") == spec
        assert get_llm_spec(LLMModel.GPT_4O) == spec
        assert get_llm_spec(spec) is spec

    @pytest.mark.unit
    def test_unknown_model_raises(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Unknown model"):
            get_llm_spec("gpt-0")


class TestGenerationTypes:
    """Tests for GenerationConfig and GenerationResult."""

    @pytest.mark.unit
    def test_config_defaults(self):
        """Default configuration values."""
        config = GenerationConfig()
        assert config.temperature == 0.7
        assert config.stop_sequences == []
        assert config.seed is None

    @pytest.mark.unit
    def test_total_tokens(self):
        """total_tokens reads the usage dict and defaults to 0."""
        result = GenerationResult(content="x", finish_reason="stop", usage={}, model="m")
        assert result.total_tokens == 0


# =============================================================================
# Error Classification
# =============================================================================


class TestBackendErrors:
    """Tests for retryable flags on backend errors."""

    @pytest.mark.unit
    def test_retryable_defaults(self):
        """Transient errors retry, configuration errors do not."""
        assert is_retryable(RateLimitError("slow down"))
        assert is_retryable(InvalidResponseError("empty"))
        assert is_retryable(LLMConnectionError("reset"))
        assert not is_retryable(AuthenticationError("bad key"))
        assert not is_retryable(ContextLengthError("too long"))

    @pytest.mark.unit
    def test_connection_error_is_network(self):
        """Connection failures are categorized as network errors."""
        assert categorize_error(LLMConnectionError("reset")) is ErrorCategory.NETWORK


# =============================================================================
# OpenAI Backend
# =============================================================================


class TestOpenAIBackend:
    """Tests for OpenAI backend."""

    @pytest.mark.unit
    def test_requires_api_key(self, clear_api_keys):
        """Backend requires an API key."""
        from .openai import OpenAIBackend

        with pytest.raises(AuthenticationError, match="API key required"):
            OpenAIBackend()

    @pytest.mark.unit
    def test_creates_with_api_key(self):
        """Backend creation with API key."""
        from .openai import OpenAIBackend

        backend = OpenAIBackend(api_key="test-key-12345")
        assert backend.provider == "openai"
        assert backend.model_name == "gpt-4o"
        assert backend.name == "openai:gpt-4o"
        assert backend.supports_vision is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_prepends_system_prompt(self):
        """The system prompt becomes the first chat message."""
        from .openai import OpenAIBackend

        backend = OpenAIBackend(api_key="test-key")
        completions = _FakeCompletions(_openai_completion("<html></html>"))
        backend._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        result = await backend.generate(
            [{"role": "user", "content": "draw"}], system_prompt="rules"
        )

        sent = completions.kwargs[0]["messages"]
        assert sent[0] == {"role": "system", "content": "rules"}
        assert sent[1] == {"role": "user", "content": "draw"}
        assert result.content == "<html></html>"
        assert result.total_tokens == 30

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_analyze_image_sends_data_url(self):
        """Images are sent inline as base64 PNG data URLs."""
        from .openai import OpenAIBackend

        backend = OpenAIBackend(api_key="test-key")
        completions = _FakeCompletions(_openai_completion('{"isValid": true}'))
        backend._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        answer = await backend.analyze_image(b"png", "judge this")

        content = completions.kwargs[0]["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "judge this"}
        assert content[1]["image_url"]["url"] == "data:image/png;base64,cG5n"
        assert answer == '{"isValid": true}'

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_vision_response(self):
        """An empty vision answer is an invalid response."""
        from .openai import OpenAIBackend

        backend = OpenAIBackend(api_key="test-key")
        completions = _FakeCompletions(_openai_completion(None))
        backend._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        with pytest.raises(InvalidResponseError):
            await backend.analyze_image(b"png", "judge this")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sdk_errors_mapped_by_type(self):
        """SDK exceptions become backend errors with the right flags."""
        import openai

        from .openai import OpenAIBackend

        cases = [
            (
                openai.RateLimitError(
                    "rate", response=_response(429, _OPENAI_URL, {"retry-after": "2"}), body=None
                ),
                RateLimitError,
                True,
            ),
            (
                openai.AuthenticationError(
                    "auth", response=_response(401, _OPENAI_URL), body=None
                ),
                AuthenticationError,
                False,
            ),
            (
                openai.BadRequestError(
                    "too long",
                    response=_response(400, _OPENAI_URL),
                    body={"code": "context_length_exceeded"},
                ),
                ContextLengthError,
                False,
            ),
            (
                openai.APIConnectionError(request=httpx.Request("POST", _OPENAI_URL)),
                LLMConnectionError,
                True,
            ),
            (
                openai.InternalServerError(
                    "oops", response=_response(500, _OPENAI_URL), body=None
                ),
                LLMError,
                True,
            ),
        ]

        backend = OpenAIBackend(api_key="test-key")
        for sdk_error, expected_type, retryable in cases:
            backend._client = SimpleNamespace(
                chat=SimpleNamespace(completions=_FakeCompletions(error=sdk_error))
            )
            with pytest.raises(expected_type) as excinfo:
                await backend.generate([{"role": "user", "content": "x"}])
            assert excinfo.value.retryable is retryable
            assert excinfo.value.__cause__ is sdk_error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self):
        """retry-after headers are carried on the error."""
        import openai

        from .openai import OpenAIBackend

        backend = OpenAIBackend(api_key="test-key")
        error = openai.RateLimitError(
            "rate", response=_response(429, _OPENAI_URL, {"retry-after": "2"}), body=None
        )
        backend._client = SimpleNamespace(
            chat=SimpleNamespace(completions=_FakeCompletions(error=error))
        )
        with pytest.raises(RateLimitError) as excinfo:
            await backend.generate([{"role": "user", "content": "x"}])
        assert excinfo.value.retry_after == 2.0


# =============================================================================
# Anthropic Backend
# =============================================================================


class TestAnthropicBackend:
    """Tests for Anthropic backend."""

    @pytest.mark.unit
    def test_requires_api_key(self, clear_api_keys):
        """Backend requires an API key."""
        from .anthropic import AnthropicBackend

        with pytest.raises(AuthenticationError, match="API key required"):
            AnthropicBackend()

    @pytest.mark.unit
    def test_creates_with_api_key(self):
        """Backend creation with API key."""
        from .anthropic import AnthropicBackend

        backend = AnthropicBackend(api_key="test-key-12345")
        assert backend.provider == "anthropic"
        assert backend.model_name == "claude-sonnet-4-5"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_passes_system_separately(self):
        """The system prompt is a top-level parameter and text blocks are joined."""
        from .anthropic import AnthropicBackend

        backend = AnthropicBackend(api_key="test-key")
        messages = _FakeCompletions(
            SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="<html>"),
                    SimpleNamespace(type="text", text="</html>"),
                ],
                stop_reason="end_turn",
                usage=SimpleNamespace(input_tokens=5, output_tokens=7),
                model="claude-sonnet-4-5",
            )
        )
        backend._client = SimpleNamespace(messages=messages)

        result = await backend.generate(
            [{"role": "user", "content": "draw"}], system_prompt="rules"
        )

        assert messages.kwargs[0]["system"] == "rules"
        assert messages.kwargs[0]["messages"] == [{"role": "user", "content": "draw"}]
        assert result.content == "<html></html>"
        assert result.total_tokens == 12

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sdk_errors_mapped_by_type(self):
        """SDK exceptions become backend errors with the right flags."""
        anthropic = pytest.importorskip("anthropic")

        from .anthropic import AnthropicBackend

        cases = [
            (
                anthropic.RateLimitError(
                    "rate", response=_response(429, _ANTHROPIC_URL), body=None
                ),
                RateLimitError,
                True,
            ),
            (
                anthropic.AuthenticationError(
                    "auth", response=_response(401, _ANTHROPIC_URL), body=None
                ),
                AuthenticationError,
                False,
            ),
            (
                anthropic.APIConnectionError(request=httpx.Request("POST", _ANTHROPIC_URL)),
                LLMConnectionError,
                True,
            ),
            (
                anthropic.InternalServerError(
                    "overloaded", response=_response(529, _ANTHROPIC_URL), body=None
                ),
                LLMError,
                True,
            ),
        ]

        backend = AnthropicBackend(api_key="test-key")
        for sdk_error, expected_type, retryable in cases:
            backend._client = SimpleNamespace(messages=_FakeCompletions(error=sdk_error))
            with pytest.raises(expected_type) as excinfo:
                await backend.generate([{"role": "user", "content": "x"}])
            assert excinfo.value.retryable is retryable


# =============================================================================
# Factory
# =============================================================================


class TestCreateLLMBackend:
    """Tests for create_llm_backend factory."""

    @pytest.mark.unit
    def test_creates_openai_backend(self):
        """Factory creates OpenAI backend."""
        backend = create_llm_backend(LLMModel.GPT_4_1_MINI, api_key="test-key")
        assert backend.provider == "openai"

    @pytest.mark.unit
    def test_creates_anthropic_backend(self):
        """Factory creates Anthropic backend."""
        backend = create_llm_backend(LLMModel.CLAUDE_SONNET_4_5, api_key="test-key")
        assert backend.provider == "anthropic"

    @pytest.mark.unit
    def test_creates_from_string_name(self):
        """Factory accepts string model names."""
        backend = create_llm_backend("gpt-4.1-mini", api_key="test-key")
        assert backend.model_name == "gpt-4.1-mini"

    @pytest.mark.unit
    def test_passes_kwargs(self):
        """Extra arguments reach the backend constructor."""
        backend = create_llm_backend("gpt-4o", api_key="test-key", timeout=5.0)
        assert backend._timeout == 5.0
