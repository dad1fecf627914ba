"""Pydantic models for storyloom documents.

Models are organized by document:
- game: Narrative document (scenes, actions, evolutions) and play session
- editor: Canvas layout document (positions, connector offsets, text boxes)
- assistant: Structured output of the scene-generation assistant
"""

from storyloom.models.assistant import GeneratedAction, GeneratedScene
from storyloom.models.editor import EditorLayout, EditorPosition, Point, TextBox, TextBoxId
from storyloom.models.game import (
    DEFAULT_ACTION_TITLE,
    DEFAULT_SCENE_TITLE,
    Action,
    GameData,
    PlaySessionState,
    ProgressionSlug,
    Scene,
    SceneId,
)

__all__ = [
    "DEFAULT_ACTION_TITLE",
    "DEFAULT_SCENE_TITLE",
    "Action",
    "EditorLayout",
    "EditorPosition",
    "GameData",
    "GeneratedAction",
    "GeneratedScene",
    "PlaySessionState",
    "Point",
    "ProgressionSlug",
    "Scene",
    "SceneId",
    "TextBox",
    "TextBoxId",
]
