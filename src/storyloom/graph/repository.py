"""Scene graph repository.

The repository owns the narrative document and is the only place the scene
graph is mutated. Mutations are synchronous and last-writer-wins. Every
mutation notifies subscribers with a :class:`GraphEvent` so that derived
state (visual connections, pending saves) can follow along without the
repository knowing about it.

Referential integrity is enforced on write: joining an action requires the
target scene to exist, and deleting a scene strips every action target and
evolution that pointed at it.
"""

from __future__ import annotations

import random
import string
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from storyloom.graph.errors import ActionNotFoundError, SceneNotFoundError
from storyloom.models.game import (
    DEFAULT_ACTION_TITLE,
    DEFAULT_SCENE_TITLE,
    Action,
    GameData,
    ProgressionSlug,
    Scene,
    SceneId,
)
from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from storyloom.models.assistant import GeneratedScene

log = get_logger(__name__)

SCENE_ID_LENGTH = 9
_SCENE_ID_ALPHABET = string.ascii_lowercase + string.digits

SCENE_FIELDS = frozenset({"title", "text", "text2", "description"})
ACTION_FIELDS = frozenset({"title", "description", "game_progression"})


class GraphEventKind(StrEnum):
    """Kinds of repository mutation."""

    DATA_LOADED = "data_loaded"
    SCENE_CREATED = "scene_created"
    SCENE_UPDATED = "scene_updated"
    SCENE_DELETED = "scene_deleted"
    ACTIONS_CHANGED = "actions_changed"
    ACTION_UPDATED = "action_updated"
    ACTION_CONNECTED = "action_connected"
    ACTION_DISCONNECTED = "action_disconnected"
    EVOLUTION_CREATED = "evolution_created"
    EVOLUTION_REMOVED = "evolution_removed"
    INITIAL_SCENE_CHANGED = "initial_scene_changed"


@dataclass(frozen=True)
class GraphEvent:
    """A single repository mutation.

    Attributes:
        kind: What happened.
        scene_id: Scene the mutation applied to, if any.
        action_index: Action the mutation applied to, if any.
        related_id: Second scene involved (join target, evolution clone).
    """

    kind: GraphEventKind
    scene_id: SceneId | None = None
    action_index: int | None = None
    related_id: SceneId | None = None


class GraphRepository:
    """Owner of the scene/action/progression data."""

    def __init__(self, data: GameData | None = None) -> None:
        self._data = data if data is not None else GameData()
        self._listeners: list[Callable[[GraphEvent], None]] = []

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Callable[[GraphEvent], None]) -> Callable[[], None]:
        """Register a mutation listener.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: GraphEvent) -> None:
        log.debug(
            "graph_event",
            kind=str(event.kind),
            scene_id=event.scene_id,
            action_index=event.action_index,
        )
        for listener in list(self._listeners):
            listener(event)

    # -------------------------------------------------------------------------
    # Document access
    # -------------------------------------------------------------------------

    @property
    def data(self) -> GameData:
        """The live narrative document."""
        return self._data

    @property
    def scenes(self) -> dict[SceneId, Scene]:
        """The live scene mapping, in insertion order."""
        return self._data.scenes

    @property
    def initial_scene(self) -> SceneId | None:
        return self._data.initial_scene

    def load(self, data: GameData | dict[str, Any]) -> None:
        """Replace the whole document.

        Args:
            data: A GameData or its JSON wire form.
        """
        self._data = data if isinstance(data, GameData) else GameData.model_validate(data)
        log.info("game_data_loaded", scenes=len(self._data.scenes), title=self._data.title)
        self._emit(GraphEvent(GraphEventKind.DATA_LOADED))

    def to_dict(self) -> dict[str, object]:
        """Serialize the document to its JSON wire form."""
        return self._data.to_wire()

    def get_scene(self, scene_id: SceneId | None) -> Scene | None:
        """Get a scene by id, or None when absent or unknown."""
        if scene_id is None:
            return None
        return self._data.scenes.get(scene_id)

    def require_scene(self, scene_id: SceneId, context: str = "") -> Scene:
        """Get a scene by id.

        Raises:
            SceneNotFoundError: If the scene doesn't exist.
        """
        scene = self.get_scene(scene_id)
        if scene is None:
            raise SceneNotFoundError(
                scene_id, available=list(self._data.scenes), context=context
            )
        return scene

    def require_action(self, scene_id: SceneId, action_index: int) -> Action:
        """Get the action at ``action_index`` of a scene.

        Raises:
            SceneNotFoundError: If the scene doesn't exist.
            ActionNotFoundError: If the index is out of range.
        """
        scene = self.require_scene(scene_id, context="action lookup")
        if not 0 <= action_index < len(scene.actions):
            raise ActionNotFoundError(scene_id, action_index, len(scene.actions))
        return scene.actions[action_index]

    def iter_actions(self) -> Iterable[tuple[SceneId, int, Action]]:
        """Yield ``(scene_id, action_index, action)`` for every action."""
        for scene_id, scene in self._data.scenes.items():
            for index, action in enumerate(scene.actions):
                yield scene_id, index, action

    # -------------------------------------------------------------------------
    # Scenes
    # -------------------------------------------------------------------------

    def new_scene_id(self) -> SceneId:
        """Generate a random scene id that is not in use."""
        while True:
            candidate = SceneId(
                "".join(random.choices(_SCENE_ID_ALPHABET, k=SCENE_ID_LENGTH))
            )
            if candidate not in self._data.scenes:
                return candidate

    def create_scene(self, title: str = DEFAULT_SCENE_TITLE) -> Scene:
        """Create an empty scene with a fresh id.

        The first scene of a document without an initial scene becomes the
        initial scene.
        """
        scene = Scene(id=self.new_scene_id(), title=title)
        self._data.scenes[scene.id] = scene
        if self._data.initial_scene is None:
            self._data.initial_scene = scene.id
        log.info("scene_created", scene_id=scene.id)
        self._emit(GraphEvent(GraphEventKind.SCENE_CREATED, scene.id))
        return scene

    def create_scene_from(self, generated: GeneratedScene) -> Scene:
        """Create a scene from assistant output.

        Generated actions have titles only; they start disconnected.
        """
        scene = self.create_scene(title=generated.title)
        scene.text = generated.text
        scene.text2 = generated.text2 or None
        scene.actions = [Action(title=a.title) for a in generated.actions]
        self._emit(GraphEvent(GraphEventKind.SCENE_UPDATED, scene.id))
        self._emit(GraphEvent(GraphEventKind.ACTIONS_CHANGED, scene.id))
        return scene

    def delete_scene(self, scene_id: SceneId) -> Scene:
        """Delete a scene and every reference to it.

        Action targets pointing at the scene are cleared, evolutions
        pointing at it are removed, and the initial scene is unset if it
        was this one.

        Returns:
            The removed scene.

        Raises:
            SceneNotFoundError: If the scene doesn't exist.
        """
        scene = self.require_scene(scene_id, context="delete_scene")
        del self._data.scenes[scene_id]

        cleared_actions = 0
        cleared_evolutions = 0
        for other in self._data.scenes.values():
            for action in other.actions:
                if action.next_scene == scene_id:
                    action.next_scene = None
                    cleared_actions += 1
            stale = [slug for slug, target in other.evolutions.items() if target == scene_id]
            for slug in stale:
                del other.evolutions[slug]
            cleared_evolutions += len(stale)

        if self._data.initial_scene == scene_id:
            self._data.initial_scene = None

        log.info(
            "scene_deleted",
            scene_id=scene_id,
            cleared_actions=cleared_actions,
            cleared_evolutions=cleared_evolutions,
        )
        self._emit(GraphEvent(GraphEventKind.SCENE_DELETED, scene_id))
        return scene

    def set_scene_value(self, scene_id: SceneId, field: str, value: str | None) -> None:
        """Set one of the scene's text fields.

        Raises:
            ValueError: If ``field`` is not an editable scene text field.
            SceneNotFoundError: If the scene doesn't exist.
        """
        if field not in SCENE_FIELDS:
            raise ValueError(f"Scene field must be one of {sorted(SCENE_FIELDS)}, got {field!r}")
        scene = self.require_scene(scene_id, context="set_scene_value")
        setattr(scene, field, value)
        self._emit(GraphEvent(GraphEventKind.SCENE_UPDATED, scene_id))

    def set_initial_scene(self, scene_id: SceneId) -> None:
        """Make a scene the starting point of the narrative."""
        self.require_scene(scene_id, context="set_initial_scene")
        self._data.initial_scene = scene_id
        self._emit(GraphEvent(GraphEventKind.INITIAL_SCENE_CHANGED, scene_id))

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def create_action(self, scene_id: SceneId) -> Action:
        """Append a default, disconnected action to a scene."""
        scene = self.require_scene(scene_id, context="create_action")
        action = Action(title=DEFAULT_ACTION_TITLE)
        scene.actions.append(action)
        self._emit(
            GraphEvent(GraphEventKind.ACTIONS_CHANGED, scene_id, len(scene.actions) - 1)
        )
        return action

    def delete_action(self, scene_id: SceneId, action_index: int) -> Action:
        """Remove an action; later actions shift down by one."""
        self.require_action(scene_id, action_index)
        action = self._data.scenes[scene_id].actions.pop(action_index)
        self._emit(GraphEvent(GraphEventKind.ACTIONS_CHANGED, scene_id, action_index))
        return action

    def set_actions(self, scene_id: SceneId, actions: list[Action]) -> None:
        """Replace (reorder, bulk edit) a scene's action list."""
        scene = self.require_scene(scene_id, context="set_actions")
        scene.actions = list(actions)
        self._emit(GraphEvent(GraphEventKind.ACTIONS_CHANGED, scene_id))

    def set_action_value(
        self,
        scene_id: SceneId,
        action_index: int,
        field: str,
        value: str | None,
    ) -> None:
        """Set the title, description or progression of an action.

        Raises:
            ValueError: If ``field`` is not an editable action field.
        """
        if field not in ACTION_FIELDS:
            raise ValueError(
                f"Action field must be one of {sorted(ACTION_FIELDS)}, got {field!r}"
            )
        action = self.require_action(scene_id, action_index)
        if field != "title":
            value = value or None
        setattr(action, field, value)
        self._emit(GraphEvent(GraphEventKind.ACTION_UPDATED, scene_id, action_index))

    def join_action_to_scene(
        self,
        scene_id: SceneId,
        action_index: int,
        target_id: SceneId,
    ) -> None:
        """Point an action at a target scene.

        Raises:
            SceneNotFoundError: If the owning or the target scene doesn't exist.
            ActionNotFoundError: If the action index is out of range.
        """
        action = self.require_action(scene_id, action_index)
        self.require_scene(target_id, context="join_action_to_scene target")
        action.next_scene = target_id
        log.debug("action_joined", scene_id=scene_id, action_index=action_index, target=target_id)
        self._emit(
            GraphEvent(GraphEventKind.ACTION_CONNECTED, scene_id, action_index, target_id)
        )

    def disconnect_action(self, scene_id: SceneId, action_index: int) -> None:
        """Clear an action's target, making it a dead end."""
        action = self.require_action(scene_id, action_index)
        action.next_scene = None
        self._emit(GraphEvent(GraphEventKind.ACTION_DISCONNECTED, scene_id, action_index))

    # -------------------------------------------------------------------------
    # Evolutions
    # -------------------------------------------------------------------------

    def create_evolution(self, scene_id: SceneId, progression: ProgressionSlug) -> Scene:
        """Clone a scene as its evolved form under a progression.

        The clone copies title, texts and actions (targets included) and is
        registered in ``evolutions[progression]`` of the source scene.

        Returns:
            The new evolved scene.
        """
        source = self.require_scene(scene_id, context="create_evolution")
        clone = Scene(
            id=self.new_scene_id(),
            title=source.title,
            text=source.text,
            text2=source.text2,
            description=source.description,
            actions=[action.model_copy(deep=True) for action in source.actions],
        )
        self._data.scenes[clone.id] = clone
        source.evolutions[progression] = clone.id
        log.info(
            "evolution_created", scene_id=scene_id, progression=progression, clone_id=clone.id
        )
        self._emit(GraphEvent(GraphEventKind.SCENE_CREATED, clone.id))
        self._emit(
            GraphEvent(GraphEventKind.EVOLUTION_CREATED, scene_id, related_id=clone.id)
        )
        return clone

    def remove_evolution(self, scene_id: SceneId, progression: ProgressionSlug) -> SceneId | None:
        """Unregister an evolution; the target scene itself is kept.

        Returns:
            The former evolution target, or None if there was none.
        """
        scene = self.require_scene(scene_id, context="remove_evolution")
        target = scene.evolutions.pop(progression, None)
        if target is not None:
            self._emit(
                GraphEvent(GraphEventKind.EVOLUTION_REMOVED, scene_id, related_id=target)
            )
        return target
