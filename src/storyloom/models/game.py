"""Pydantic models for the narrative document and the play session.

The narrative document is the persisted scene graph: scenes keyed by id,
each with an ordered list of actions and a map of progression-gated
evolutions. Field names are snake_case in Python and camelCase on the wire
(``nextScene``, ``gameProgression``, ``initialScene``).
"""

from __future__ import annotations

from typing import NewType

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

SceneId = NewType("SceneId", str)
ProgressionSlug = NewType("ProgressionSlug", str)

DEFAULT_SCENE_TITLE = "New Scene"
DEFAULT_ACTION_TITLE = "New Action"


class WireModel(BaseModel):
    """Base for models persisted as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, object]:
        """Dump to the JSON wire shape (camelCase, absent fields omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Action(WireModel):
    """A player choice leading out of a scene."""

    title: str = DEFAULT_ACTION_TITLE
    description: str | None = None
    game_progression: ProgressionSlug | None = Field(
        default=None, description="Progression triggered when the action is taken"
    )
    next_scene: SceneId | None = Field(
        default=None, description="Target scene; absent means a dead end"
    )


class Scene(WireModel):
    """A node of the narrative graph."""

    id: SceneId
    title: str = DEFAULT_SCENE_TITLE
    text: str = ""
    text2: str | None = Field(default=None, description="Text shown on revisit")
    description: str | None = None
    actions: list[Action] = Field(default_factory=list)
    evolutions: dict[ProgressionSlug, SceneId] = Field(
        default_factory=dict,
        description="When the progression has happened, this scene is shown as the target",
    )


class GameData(WireModel):
    """Root of the narrative document."""

    title: str | None = None
    version: str | None = None
    description: str | None = None
    initial_scene: SceneId | None = None
    scenes: dict[SceneId, Scene] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _align_scene_ids(self) -> GameData:
        # The mapping key is authoritative
        for key, scene in self.scenes.items():
            if scene.id != key:
                scene.id = key
        return self


class PlaySessionState(WireModel):
    """Player progress through a narrative.

    Attributes:
        progressions: Triggered progression slugs in trigger order.
        visited_scenes: Scenes the player has left at least once.
        current_scene: Scene currently shown, if any.
    """

    progressions: list[ProgressionSlug] = Field(default_factory=list)
    visited_scenes: set[SceneId] = Field(default_factory=set)
    current_scene: SceneId | None = None

    @field_validator("progressions")
    @classmethod
    def _dedupe_progressions(cls, value: list[ProgressionSlug]) -> list[ProgressionSlug]:
        # Each slug fires once; the first occurrence keeps its place
        return list(dict.fromkeys(value))

    @field_serializer("visited_scenes")
    def _serialize_visited(self, value: set[SceneId]) -> list[str]:
        return sorted(value)
