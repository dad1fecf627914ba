"""Editor layout store.

Holds the pixel-space positions of scenes and text boxes, indexed by the
same ids as the graph repository. The layout is authoritative for geometry
only; the graph topology always comes from the repository.
"""

from __future__ import annotations

import random
import string
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from storyloom.models.editor import EditorLayout, EditorPosition, Point, TextBox, TextBoxId
from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from storyloom.models.game import SceneId

log = get_logger(__name__)

TEXTBOX_ID_LENGTH = 6
_TEXTBOX_ID_ALPHABET = string.ascii_lowercase + string.digits


class LayoutEventKind(StrEnum):
    """Kinds of layout mutation."""

    LOADED = "loaded"
    SCENE_MOVED = "scene_moved"
    SCENE_RESIZED = "scene_resized"
    SCENE_REMOVED = "scene_removed"
    ACTION_OFFSETS_CHANGED = "action_offsets_changed"
    TEXTBOX_CHANGED = "textbox_changed"
    TEXTBOX_REMOVED = "textbox_removed"
    ZOOM_CHANGED = "zoom_changed"


@dataclass(frozen=True)
class LayoutEvent:
    """A single layout mutation."""

    kind: LayoutEventKind
    element_id: str | None = None


class EditorLayoutStore:
    """Owner of the editor layout document."""

    def __init__(self, layout: EditorLayout | None = None) -> None:
        self._layout = layout if layout is not None else EditorLayout()
        self._listeners: list[Callable[[LayoutEvent], None]] = []

    def subscribe(self, listener: Callable[[LayoutEvent], None]) -> Callable[[], None]:
        """Register a layout listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: LayoutEventKind, element_id: str | None = None) -> None:
        event = LayoutEvent(kind, element_id)
        for listener in list(self._listeners):
            listener(event)

    @property
    def layout(self) -> EditorLayout:
        return self._layout

    def load(self, layout: EditorLayout | dict[str, Any]) -> None:
        """Replace the whole layout document."""
        self._layout = (
            layout if isinstance(layout, EditorLayout) else EditorLayout.model_validate(layout)
        )
        log.info(
            "editor_layout_loaded",
            scenes=len(self._layout.scenes),
            textboxes=len(self._layout.textboxes),
        )
        self._emit(LayoutEventKind.LOADED)

    def to_dict(self) -> dict[str, object]:
        """Serialize the layout to its JSON wire form."""
        return self._layout.to_wire()

    # -- Scenes ----------------------------------------------------------------

    def get_scene_position(self, scene_id: SceneId) -> EditorPosition | None:
        return self._layout.scenes.get(scene_id)

    def scene_position(self, scene_id: SceneId) -> EditorPosition:
        """Position of a scene; scenes never placed sit at the origin."""
        position = self._layout.scenes.get(scene_id)
        if position is None:
            log.debug("scene_position_missing", scene_id=scene_id)
            return EditorPosition(id=scene_id)
        return position

    def move_scene(self, scene_id: SceneId, x: float, y: float) -> EditorPosition:
        """Place a scene, creating its layout record on first move."""
        position = self._layout.scenes.get(scene_id)
        if position is None:
            position = EditorPosition(id=scene_id, x=x, y=y)
            self._layout.scenes[scene_id] = position
        else:
            position.x = x
            position.y = y
        self._emit(LayoutEventKind.SCENE_MOVED, scene_id)
        return position

    def resize_scene(self, scene_id: SceneId, width: float, height: float) -> None:
        position = self._layout.scenes.get(scene_id)
        if position is None:
            position = EditorPosition(id=scene_id)
            self._layout.scenes[scene_id] = position
        position.width = width
        position.height = height
        self._emit(LayoutEventKind.SCENE_RESIZED, scene_id)

    def set_action_offsets(self, scene_id: SceneId, offsets: Sequence[Point]) -> EditorPosition:
        """Record connector offsets of a scene's actions, in action order."""
        position = self._layout.scenes.get(scene_id)
        if position is None:
            position = EditorPosition(id=scene_id)
            self._layout.scenes[scene_id] = position
        position.action_positions = [Point(x=p.x, y=p.y) for p in offsets]
        self._emit(LayoutEventKind.ACTION_OFFSETS_CHANGED, scene_id)
        return position

    def mirror_scene(self, source_id: SceneId, clone_id: SceneId) -> EditorPosition | None:
        """Give a cloned scene a copy of the source's layout record.

        Returns:
            The clone's position, or None if the source was never placed.
        """
        source = self._layout.scenes.get(source_id)
        if source is None:
            return None
        clone = source.model_copy(deep=True, update={"id": clone_id})
        self._layout.scenes[clone_id] = clone
        self._emit(LayoutEventKind.SCENE_MOVED, clone_id)
        return clone

    def remove_scene(self, scene_id: SceneId) -> None:
        if self._layout.scenes.pop(scene_id, None) is not None:
            self._emit(LayoutEventKind.SCENE_REMOVED, scene_id)

    # -- Text boxes ------------------------------------------------------------

    def create_text_box(self, x: float, y: float, text: str = "") -> TextBox:
        """Create a free-floating annotation with a fresh id."""
        while True:
            box_id = TextBoxId(
                "".join(random.choices(_TEXTBOX_ID_ALPHABET, k=TEXTBOX_ID_LENGTH))
            )
            if box_id not in self._layout.textboxes:
                break
        box = TextBox(id=box_id, text=text, x=x, y=y)
        self._layout.textboxes[box_id] = box
        self._emit(LayoutEventKind.TEXTBOX_CHANGED, box_id)
        return box

    def update_text_box(self, box_id: TextBoxId, text: str) -> None:
        self._require_text_box(box_id).text = text
        self._emit(LayoutEventKind.TEXTBOX_CHANGED, box_id)

    def move_text_box(self, box_id: TextBoxId, x: float, y: float) -> None:
        box = self._require_text_box(box_id)
        box.x = x
        box.y = y
        self._emit(LayoutEventKind.TEXTBOX_CHANGED, box_id)

    def delete_text_box(self, box_id: TextBoxId) -> None:
        self._require_text_box(box_id)
        del self._layout.textboxes[box_id]
        self._emit(LayoutEventKind.TEXTBOX_REMOVED, box_id)

    def _require_text_box(self, box_id: TextBoxId) -> TextBox:
        box = self._layout.textboxes.get(box_id)
        if box is None:
            raise KeyError(f"Text box '{box_id}' not found")
        return box

    # -- View ------------------------------------------------------------------

    def set_zoom(self, zoom: float) -> None:
        if zoom <= 0:
            raise ValueError(f"Zoom must be positive, got {zoom}")
        self._layout.zoom = zoom
        self._emit(LayoutEventKind.ZOOM_CHANGED)
