"""Factory for creating LLM chat models.

Uses LangChain's init_chat_model abstraction for unified provider
instantiation. Provider-specific configuration (host and API key lookup
from the environment) is resolved before the unified call.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from storyloom.observability.logging import get_logger
from storyloom.providers.base import ProviderError
from storyloom.providers.structured_output import with_structured_output

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.runnables import Runnable
    from pydantic import BaseModel

log = get_logger(__name__)

# Provider default models - None means model must be explicitly specified
PROVIDER_DEFAULTS: dict[str, str | None] = {
    "ollama": None,
    "openai": "gpt-5-mini",
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
}

# Used when a provider has no default and the caller named no model
_FALLBACK_MODELS: dict[str, str] = {
    "ollama": "qwen3:4b-instruct-32k",
}

_API_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}

_PACKAGES: dict[str, str] = {
    "ollama": "langchain-ollama",
    "openai": "langchain-openai",
    "anthropic": "langchain-anthropic",
    "google": "langchain-google-genai",
}

# init_chat_model expects 'google_genai' not 'google'
_INIT_NAMES: dict[str, str] = {"google": "google_genai"}

DEFAULT_OLLAMA_NUM_CTX = 32_768


def get_default_model(provider_name: str) -> str | None:
    """Get the default model for a provider, or None if it must be explicit."""
    return PROVIDER_DEFAULTS.get(_normalize_provider(provider_name))


def parse_provider_string(value: str) -> tuple[str, str | None]:
    """Split a ``provider/model`` string.

    Args:
        value: Provider string such as ``"openai/gpt-5-mini"`` or ``"ollama"``.

    Returns:
        ``(provider, model)``; model is None when the string names only a
        provider.
    """
    if "/" in value:
        provider, model = value.split("/", 1)
        return _normalize_provider(provider), model or None
    return _normalize_provider(value), None


def create_chat_model(
    provider_name: str,
    model: str,
    **kwargs: Any,
) -> BaseChatModel:
    """Create a LangChain chat model.

    Args:
        provider_name: Provider identifier (ollama, openai, anthropic, google).
        model: Model name/identifier.
        **kwargs: Additional provider-specific options.

    Returns:
        Configured BaseChatModel.

    Raises:
        ProviderError: If provider unknown, not installed or misconfigured.
    """
    provider = _normalize_provider(provider_name)
    if provider not in PROVIDER_DEFAULTS:
        log.error("provider_unknown", provider=provider)
        raise ProviderError(provider, f"Unknown provider: {provider}")

    kwargs = _preprocess_provider_kwargs(provider, kwargs)

    try:
        chat_model = _init_chat_model_safe(_INIT_NAMES.get(provider, provider), model, **kwargs)
    except ImportError as e:
        package = _PACKAGES[provider]
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(provider, f"{package} not installed. Run: pip install {package}") from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model


def _init_chat_model_safe(provider: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Call init_chat_model; ImportError propagates when the package is missing."""
    from langchain.chat_models import init_chat_model

    # init_chat_model returns Any, but we know it returns BaseChatModel
    result: BaseChatModel = init_chat_model(model=model, model_provider=provider, **kwargs)
    return result


def _preprocess_provider_kwargs(provider: str, kwargs: dict[str, Any]) -> dict[str, Any]:
    """Resolve host and API key settings from kwargs or the environment.

    Returns:
        A new kwargs dict; the input is not mutated.

    Raises:
        ProviderError: If required configuration is missing.
    """
    kwargs = dict(kwargs)

    if provider == "ollama":
        host = kwargs.pop("host", None) or os.getenv("OLLAMA_HOST")
        if not host:
            log.error("provider_config_error", provider=provider, missing="OLLAMA_HOST")
            raise ProviderError(
                provider, "OLLAMA_HOST not configured. Set OLLAMA_HOST environment variable."
            )
        kwargs["base_url"] = host
        kwargs.setdefault("num_ctx", DEFAULT_OLLAMA_NUM_CTX)
        return kwargs

    env_var = _API_KEY_ENV[provider]
    api_key = kwargs.pop(f"{provider}_api_key", None) or kwargs.get("api_key") or os.getenv(env_var)
    if not api_key:
        log.error("provider_config_error", provider=provider, missing=env_var)
        raise ProviderError(provider, f"API key required. Set {env_var} environment variable.")
    kwargs["api_key"] = api_key
    return kwargs


def create_model_for_structured_output(
    provider_name: str,
    schema: type[BaseModel],
    model_name: str | None = None,
    **kwargs: Any,
) -> Runnable[Any, Any]:
    """Create a chat model that answers with ``schema``-shaped output.

    Args:
        provider_name: Provider (ollama, openai, anthropic, google).
        schema: Pydantic model describing the expected output.
        model_name: Model name. Uses the provider default if None.
        **kwargs: Additional model kwargs (temperature, api_key, host, etc.).

    Returns:
        Runnable whose ``ainvoke`` returns ``{"raw", "parsed", "parsing_error"}``.

    Raises:
        ProviderError: If provider is unavailable or misconfigured.
    """
    provider = _normalize_provider(provider_name)
    resolved_model = model_name or get_default_model(provider) or _FALLBACK_MODELS.get(provider)
    if resolved_model is None:
        raise ProviderError(provider, f"No default model for provider: {provider}")

    base_model = create_chat_model(provider, resolved_model, **kwargs)
    structured = with_structured_output(base_model, schema, provider_name=provider)
    log.info("model_created_structured", provider=provider, model=resolved_model)
    return structured


def _normalize_provider(provider_name: str) -> str:
    """Lowercase a provider name and resolve the ``gemini`` alias."""
    name = provider_name.strip().lower()
    if name == "gemini":
        return "google"
    return name
