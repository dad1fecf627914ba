"""LLM provider integrations using LangChain."""

from storyloom.providers.base import ProviderError
from storyloom.providers.factory import (
    PROVIDER_DEFAULTS,
    create_chat_model,
    create_model_for_structured_output,
    get_default_model,
    parse_provider_string,
)
from storyloom.providers.structured_output import (
    unwrap_structured_result,
    with_structured_output,
)

__all__ = [
    "PROVIDER_DEFAULTS",
    "ProviderError",
    "create_chat_model",
    "create_model_for_structured_output",
    "get_default_model",
    "parse_provider_string",
    "unwrap_structured_result",
    "with_structured_output",
]
