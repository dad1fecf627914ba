"""Pydantic models for the editor layout document.

Layout is pixel-space and lives beside the narrative document, keyed by the
same scene ids. ``action_positions[i]`` is the connector offset of the i-th
action relative to its scene's origin.
"""

from __future__ import annotations

from typing import NewType

from pydantic import Field

from storyloom.models.game import SceneId, WireModel

TextBoxId = NewType("TextBoxId", str)


class Point(WireModel):
    """A pixel-space coordinate pair."""

    x: float = 0.0
    y: float = 0.0


class EditorPosition(WireModel):
    """Position and size of a draggable element on the canvas."""

    id: SceneId
    x: float = 0.0
    y: float = 0.0
    width: float | None = None
    height: float | None = None
    action_positions: list[Point] = Field(default_factory=list)

    def action_offset(self, action_index: int) -> Point:
        """Connector offset for an action; the origin when none is recorded."""
        if 0 <= action_index < len(self.action_positions):
            return self.action_positions[action_index]
        return Point()


class TextBox(WireModel):
    """Free-floating text annotation on the canvas."""

    id: TextBoxId
    text: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float | None = None
    height: float | None = None


class EditorLayout(WireModel):
    """Root of the editor layout document."""

    scenes: dict[SceneId, EditorPosition] = Field(default_factory=dict)
    textboxes: dict[TextBoxId, TextBox] = Field(default_factory=dict)
    zoom: float = Field(default=1.0, gt=0)
