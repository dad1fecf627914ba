"""LLM assistant that drafts the scene behind an unconnected action.

The assistant is given the chain of scenes leading to a choice point and
the action the player takes there, and asks the model for one new scene
with a title, first-visit text, revisit text and action labels. The call
is a single structured-output request; any failure surfaces as
:class:`AssistantError`.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from storyloom.models.assistant import GeneratedScene
from storyloom.observability.logging import get_logger
from storyloom.providers import (
    create_model_for_structured_output,
    parse_provider_string,
    unwrap_structured_result,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from langchain_core.runnables import Runnable

    from storyloom.models.game import Action, Scene

log = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are co-writing a branching text adventure. Each scene has a title, "
    "a text shown the first time the player arrives, a shorter text2 shown "
    "when they come back, and a few actions the player can choose from. "
    "Continue the story in the same language, tone and tense as the scenes "
    "you are given."
)


class AssistantError(Exception):
    """Raised when the assistant cannot produce a scene."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        self.provider = provider
        self.errors = errors or []
        super().__init__(message)


def build_scene_prompt(
    scene_path: Sequence[Scene],
    action: Action,
    notes: str | None = None,
) -> str:
    """Build the user prompt for one generated scene.

    Args:
        scene_path: Scenes leading to the choice point, oldest first.
        action: The action whose target is being written.
        notes: Optional author guidance appended to the prompt.
    """
    path = [scene.to_wire() for scene in scene_path]
    prompt = "Create a new scene based on the following scene path:\n\n"
    prompt += json.dumps(path, ensure_ascii=False)
    prompt += f"\n\nAction: {action.title}\n\n"
    if notes:
        prompt += f"Author notes: {notes}\n\n"
    return prompt


def _format_validation_errors(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    ]


class SceneAssistant:
    """Generates scenes with a structured-output chat model."""

    def __init__(self, model: Runnable[Any, Any], provider_name: str = "unknown") -> None:
        self._model = model
        self.provider_name = provider_name

    @classmethod
    def from_provider(cls, provider: str, **kwargs: Any) -> SceneAssistant:
        """Create an assistant from a ``provider/model`` string.

        Raises:
            ProviderError: If the provider is unknown or misconfigured.
        """
        provider_name, model_name = parse_provider_string(provider)
        model = create_model_for_structured_output(
            provider_name, GeneratedScene, model_name=model_name, **kwargs
        )
        return cls(model, provider_name=provider_name)

    async def generate_scene(
        self,
        scene_path: Sequence[Scene],
        action: Action,
        notes: str | None = None,
    ) -> GeneratedScene:
        """Ask the model for the scene that ``action`` leads to.

        Args:
            scene_path: Scenes leading to the choice point, oldest first.
            action: The action being taken.
            notes: Optional author guidance.

        Returns:
            The validated generated scene.

        Raises:
            AssistantError: If the call fails or the answer does not match
                the scene schema.
        """
        messages: list[BaseMessage] = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=build_scene_prompt(scene_path, action, notes)),
        ]
        log.debug("scene_generation_started", path=len(scene_path), action=action.title)

        try:
            raw_result = await self._model.ainvoke(messages)
        except Exception as e:
            log.error("scene_generation_failed", provider=self.provider_name, error=str(e))
            raise AssistantError(
                f"Scene generation failed: {e}", provider=self.provider_name
            ) from e

        if isinstance(raw_result, dict) and raw_result.get("parsing_error") is not None:
            error = str(raw_result["parsing_error"])
            log.error("scene_generation_unparseable", provider=self.provider_name, error=error)
            raise AssistantError(
                f"Model answer could not be parsed: {error}",
                provider=self.provider_name,
                errors=[error],
            )

        result = unwrap_structured_result(raw_result)
        if isinstance(result, GeneratedScene):
            scene = result
        elif isinstance(result, dict):
            try:
                scene = GeneratedScene.model_validate(result)
            except ValidationError as e:
                errors = _format_validation_errors(e)
                log.error(
                    "scene_generation_invalid",
                    provider=self.provider_name,
                    error_count=len(errors),
                    errors=errors,
                )
                raise AssistantError(
                    "Model answer does not match the scene schema",
                    provider=self.provider_name,
                    errors=errors,
                ) from e
        else:
            log.error(
                "scene_generation_unexpected_type",
                provider=self.provider_name,
                result_type=type(result).__name__,
            )
            raise AssistantError(
                f"Unexpected result type: {type(result).__name__}",
                provider=self.provider_name,
            )

        log.info("scene_generated", title=scene.title, actions=len(scene.actions))
        return scene
