"""Tests for configuration management."""

import pytest

from .lib import (
    EnvConfig,
    EnvVar,
    get_available_llm_providers,
    get_environment,
    get_environment_info,
    list_environment_variables,
)

# =============================================================================
# Tests for get_environment (main interface)
# =============================================================================


class TestGetEnvironment:
    """Tests for the unified get_environment interface."""

    @pytest.mark.unit
    def test_returns_default_when_not_set(self, monkeypatch):
        """Returns default value when env var is not set."""
        monkeypatch.delenv("CACHE_MAX_SIZE", raising=False)
        result = get_environment(EnvVar.CACHE_MAX_SIZE)
        assert result == 100

    @pytest.mark.unit
    def test_override_takes_priority(self, monkeypatch):
        """Override parameter takes highest priority."""
        monkeypatch.setenv("CACHE_MAX_SIZE", "999")
        result = get_environment(EnvVar.CACHE_MAX_SIZE, override=5)
        assert result == 5

    @pytest.mark.unit
    def test_env_var_overrides_default(self, monkeypatch):
        """Environment variable overrides default value."""
        monkeypatch.setenv("CLIENT_TIMEOUT_SECONDS", "60")
        result = get_environment(EnvVar.CLIENT_TIMEOUT_SECONDS)
        assert result == 60
        assert isinstance(result, int)

    @pytest.mark.unit
    def test_invalid_int_falls_back_to_default(self, monkeypatch):
        """Unparseable integers fall back to the default."""
        monkeypatch.setenv("PIPELINE_MAX_ITERATIONS", "lots")
        assert get_environment(EnvVar.PIPELINE_MAX_ITERATIONS) == 5

    @pytest.mark.unit
    def test_bool_type_conversion_true(self, monkeypatch):
        """Boolean type conversion for true values."""
        for value in ("true", "1", "yes", "TRUE", "Yes"):
            monkeypatch.setenv("BROWSER_HEADLESS", value)
            assert get_environment(EnvVar.BROWSER_HEADLESS) is True

    @pytest.mark.unit
    def test_bool_type_conversion_false(self, monkeypatch):
        """Boolean type conversion for false values."""
        for value in ("false", "0", "no", "FALSE", "No"):
            monkeypatch.setenv("VISION_ENABLED", value)
            assert get_environment(EnvVar.VISION_ENABLED) is False

    @pytest.mark.unit
    def test_unrecognized_bool_uses_default(self, monkeypatch):
        """Garbage boolean values resolve to the default."""
        monkeypatch.setenv("BROWSER_HEADLESS", "maybe")
        assert get_environment(EnvVar.BROWSER_HEADLESS) is True

    @pytest.mark.unit
    def test_string_type(self, monkeypatch):
        """String type returns as-is."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
        result = get_environment(EnvVar.OPENAI_API_KEY)
        assert result == "sk-test-key"


class TestIntrospection:
    """Tests for metadata and listing helpers."""

    @pytest.mark.unit
    def test_environment_info(self):
        """Info returns the EnvConfig metadata."""
        info = get_environment_info(EnvVar.CACHE_TTL_SECONDS)
        assert isinstance(info, EnvConfig)
        assert info.name == "CACHE_TTL_SECONDS"
        assert info.default == 3600
        assert info.category == "cache"

    @pytest.mark.unit
    def test_list_by_category(self):
        """Category filter returns only matching variables."""
        cache_vars = list_environment_variables("cache")
        assert set(cache_vars) == {
            EnvVar.CACHE_TTL_SECONDS,
            EnvVar.CACHE_MAX_SIZE,
            EnvVar.CACHE_SWEEP_SECONDS,
        }

    @pytest.mark.unit
    def test_list_all(self):
        """No category returns every variable."""
        assert list_environment_variables() == list(EnvVar)

    @pytest.mark.unit
    def test_names_match_members(self):
        """Each member's env name matches its enum name."""
        for var in EnvVar:
            assert var.value.name == var.name

    @pytest.mark.unit
    def test_available_providers(self, monkeypatch):
        """Providers are reported when their key is present."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        assert get_available_llm_providers() == ["anthropic"]
