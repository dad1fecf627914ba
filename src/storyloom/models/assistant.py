"""Pydantic models for assistant-generated scenes.

These models define the structured output the LLM produces when asked to
continue the story from a choice point. The schema is deliberately flat:
no ids, no targets, no evolutions. The editor wires the result into the
graph.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeneratedAction(BaseModel):
    """An action label proposed for a generated scene."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(description="Short imperative label for the choice", min_length=1)


class GeneratedScene(BaseModel):
    """A new scene produced by the assistant."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(description="Scene title", min_length=1)
    text: str = Field(description="Prose shown on the first visit", min_length=1)
    text2: str = Field(description="Shorter prose shown when the player returns")
    actions: list[GeneratedAction] = Field(
        default_factory=list, description="Choices available from this scene"
    )
