"""Structured output for chat models.

Every provider is driven through LangChain's ``json_schema`` method with
``include_raw=True``, so parse failures come back as data instead of
exceptions. OpenAI's strict mode requires every property to be listed in
``required``; schemas are post-processed with ``_make_all_required()`` for
that provider.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.runnables import Runnable

log = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def _make_all_required(schema: dict[str, Any], schema_name: str = "root") -> dict[str, Any]:
    """Make every property required, recursively, in place.

    Args:
        schema: JSON schema dict to modify.
        schema_name: Name used in debug logs.

    Returns:
        The same schema dict.
    """
    properties = schema.get("properties")
    if isinstance(properties, dict):
        missing = set(properties) - set(schema.get("required", []))
        for field in sorted(missing):
            log.debug("schema_field_made_required", field=field, schema=schema_name)
        schema["required"] = sorted(properties)
        for prop_name, prop_schema in properties.items():
            if isinstance(prop_schema, dict):
                _make_all_required(prop_schema, schema_name=f"{schema_name}.{prop_name}")

    items = schema.get("items")
    if isinstance(items, dict):
        _make_all_required(items, schema_name=f"{schema_name}[]")

    for def_name, def_schema in schema.get("$defs", {}).items():
        if isinstance(def_schema, dict):
            _make_all_required(def_schema, schema_name=def_name)

    return schema


def with_structured_output(
    model: BaseChatModel,
    schema: type[T],
    provider_name: str | None = None,
) -> Runnable[Any, Any]:
    """Wrap a model so it answers according to a pydantic schema.

    Args:
        model: Base chat model to configure.
        schema: Pydantic model class describing the output.
        provider_name: Provider name; OpenAI gets a strict, all-required schema.

    Returns:
        Runnable returning ``{"raw", "parsed", "parsing_error"}`` from ``ainvoke``.
    """
    json_schema = schema.model_json_schema()
    schema_name = schema.__name__

    is_openai = (provider_name or "").lower().startswith("openai")
    if is_openai:
        log.debug("applying_openai_strict_schema", schema=schema_name)
        # Deep copy so pydantic's cached schema is not mutated
        json_schema = _make_all_required(copy.deepcopy(json_schema), schema_name=schema_name)

    return model.with_structured_output(
        json_schema,
        method="json_schema",
        include_raw=True,
        strict=True if is_openai else None,
    )


def strip_null_values(data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None, recursing into nested dicts and lists."""
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            value = strip_null_values(value)
        elif isinstance(value, list):
            value = [strip_null_values(v) if isinstance(v, dict) else v for v in value]
        cleaned[key] = value
    return cleaned


def unwrap_structured_result(raw_result: Any) -> Any:
    """Extract the parsed value from an ``include_raw=True`` result.

    ``ainvoke()`` returns ``{"raw": AIMessage, "parsed": ..., "parsing_error": ...}``.
    A parsed dict has its null values stripped, since models often emit an
    explicit ``null`` for fields they mean to leave out. Anything that is
    not such a dict is returned unchanged.
    """
    if isinstance(raw_result, dict) and "parsed" in raw_result:
        parsed = raw_result["parsed"]
        if isinstance(parsed, dict):
            return strip_null_values(parsed)
        return parsed
    return raw_result
