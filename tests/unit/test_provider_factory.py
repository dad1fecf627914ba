"""Tests for the chat model factory."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from storyloom.models.assistant import GeneratedScene
from storyloom.providers import (
    PROVIDER_DEFAULTS,
    ProviderError,
    create_chat_model,
    create_model_for_structured_output,
    get_default_model,
    parse_provider_string,
)
from storyloom.providers.factory import DEFAULT_OLLAMA_NUM_CTX

INIT = "storyloom.providers.factory._init_chat_model_safe"


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("OLLAMA_HOST", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY"):
        monkeypatch.delenv(var, raising=False)


class TestProviderStrings:
    """Parsing ``provider/model`` strings."""

    def test_provider_and_model(self) -> None:
        assert parse_provider_string("openai/gpt-5-mini") == ("openai", "gpt-5-mini")

    def test_model_may_contain_slashes(self) -> None:
        assert parse_provider_string("ollama/library/qwen3:4b") == ("ollama", "library/qwen3:4b")

    def test_provider_only(self) -> None:
        assert parse_provider_string(" Anthropic ") == ("anthropic", None)
        assert parse_provider_string("ollama/") == ("ollama", None)

    def test_gemini_alias(self) -> None:
        assert parse_provider_string("gemini/gemini-2.5-flash") == ("google", "gemini-2.5-flash")

    def test_default_models(self) -> None:
        assert get_default_model("openai") == PROVIDER_DEFAULTS["openai"]
        assert get_default_model("GEMINI") == PROVIDER_DEFAULTS["google"]
        assert get_default_model("ollama") is None
        assert get_default_model("unknown") is None


class TestCreateChatModel:
    """Provider configuration and instantiation."""

    def test_unknown_provider(self) -> None:
        with pytest.raises(ProviderError, match="Unknown provider: mistral") as exc_info:
            create_chat_model("mistral", "large")
        assert exc_info.value.provider == "mistral"

    def test_ollama_requires_host(self) -> None:
        with pytest.raises(ProviderError, match="OLLAMA_HOST not configured"):
            create_chat_model("ollama", "qwen3:4b")

    def test_ollama_host_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OLLAMA_HOST", "http://athena:11434")
        with patch(INIT) as mock_init:
            create_chat_model("ollama", "qwen3:4b")

        mock_init.assert_called_once_with(
            "ollama", "qwen3:4b", base_url="http://athena:11434", num_ctx=DEFAULT_OLLAMA_NUM_CTX
        )

    def test_ollama_explicit_host_and_context(self) -> None:
        with patch(INIT) as mock_init:
            create_chat_model("ollama", "qwen3:4b", host="http://localhost:11434", num_ctx=4096)

        assert mock_init.call_args.kwargs == {"base_url": "http://localhost:11434", "num_ctx": 4096}

    def test_api_key_required(self) -> None:
        with pytest.raises(ProviderError, match="Set OPENAI_API_KEY"):
            create_chat_model("openai", "gpt-5-mini")

    def test_api_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        with patch(INIT) as mock_init:
            create_chat_model("anthropic", "claude-sonnet-4-20250514")
        assert mock_init.call_args.kwargs["api_key"] == "sk-env"

    def test_explicit_api_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        with patch(INIT) as mock_init:
            create_chat_model("openai", "gpt-5-mini", openai_api_key="sk-explicit")
        assert mock_init.call_args.kwargs == {"api_key": "sk-explicit"}

    def test_google_uses_genai_integration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOOGLE_API_KEY", "key")
        with patch(INIT) as mock_init:
            create_chat_model("gemini", "gemini-2.5-flash")
        assert mock_init.call_args.args == ("google_genai", "gemini-2.5-flash")

    def test_missing_integration_package(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        with (
            patch(INIT, side_effect=ImportError("no module")),
            pytest.raises(ProviderError, match="pip install langchain-openai"),
        ):
            create_chat_model("openai", "gpt-5-mini")


class TestStructuredModel:
    """Structured-output model creation."""

    def test_uses_provider_default_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        base = MagicMock()
        with patch(INIT, return_value=base) as mock_init:
            structured = create_model_for_structured_output("openai", GeneratedScene)

        assert mock_init.call_args.args == ("openai", PROVIDER_DEFAULTS["openai"])
        assert structured is base.with_structured_output.return_value
        assert base.with_structured_output.call_args.kwargs["strict"] is True

    def test_ollama_falls_back_to_bundled_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OLLAMA_HOST", "http://localhost:11434")
        with patch(INIT) as mock_init:
            create_model_for_structured_output("ollama", GeneratedScene)
        assert mock_init.call_args.args == ("ollama", "qwen3:4b-instruct-32k")

    def test_explicit_model_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk")
        with patch(INIT) as mock_init:
            create_model_for_structured_output(
                "anthropic", GeneratedScene, model_name="claude-haiku-4-5"
            )
        assert mock_init.call_args.args == ("anthropic", "claude-haiku-4-5")

    def test_unknown_provider_without_default(self) -> None:
        with pytest.raises(ProviderError, match="No default model"):
            create_model_for_structured_output("mistral", GeneratedScene)
