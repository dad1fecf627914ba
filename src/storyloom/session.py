"""Play/navigation session.

Tracks where the player is, which scenes they have already left, and which
progressions have fired. Every navigation goes through
:func:`~storyloom.graph.algorithms.resolve_scene`, so evolved scenes are
shown in place of their originals as soon as the matching progression is
in the history. The state is written to a durable key-value store after
every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from storyloom.graph.algorithms import resolve_scene
from storyloom.graph.errors import ActionNotFoundError
from storyloom.models.game import PlaySessionState
from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from storyloom.graph.repository import GraphRepository
    from storyloom.models.game import Action, ProgressionSlug, Scene, SceneId

log = get_logger(__name__)

SESSION_KEY = "play-session"


class SessionError(Exception):
    """Raised when the player asks for something the session cannot do."""


@dataclass
class DeadEndActionError(SessionError):
    """Raised when the player takes an action that leads nowhere.

    Attributes:
        action_title: Title of the offending action.
        scene_id: Scene the player was in.
    """

    action_title: str
    scene_id: str | None = None

    def __post_init__(self) -> None:
        msg = f"Action '{self.action_title}' does not have a next scene"
        if self.scene_id:
            msg += f" (in scene '{self.scene_id}')"
        super().__init__(msg)


class SessionStore(Protocol):
    """Durable key-value storage for session state."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class PlaySession:
    """The player's position and history in a narrative."""

    def __init__(
        self,
        repository: GraphRepository,
        store: SessionStore | None = None,
        state: PlaySessionState | None = None,
        *,
        key: str = SESSION_KEY,
    ) -> None:
        self._repository = repository
        self._store = store
        self._key = key
        self._state = state if state is not None else PlaySessionState()

    @classmethod
    def restore(
        cls,
        repository: GraphRepository,
        store: SessionStore,
        *,
        key: str = SESSION_KEY,
    ) -> PlaySession:
        """Load the session from the store.

        Data of the wrong shape is discarded and a fresh session starts.
        A session without a current scene starts at the initial scene.
        """
        state: PlaySessionState | None = None
        raw = store.get(key)
        if raw is not None:
            try:
                state = PlaySessionState.model_validate(raw)
            except ValidationError as e:
                log.warning("session_discarded", key=key, errors=e.error_count())
        if state is None:
            state = PlaySessionState()
        if state.current_scene is None:
            state.current_scene = repository.initial_scene
        log.debug(
            "session_restored",
            current_scene=state.current_scene,
            progressions=len(state.progressions),
        )
        return cls(repository, store, state, key=key)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PlaySessionState:
        return self._state

    @property
    def progressions(self) -> list[ProgressionSlug]:
        return list(self._state.progressions)

    @property
    def visited_scenes(self) -> set[SceneId]:
        return set(self._state.visited_scenes)

    @property
    def current_scene_id(self) -> SceneId | None:
        return self._state.current_scene

    @property
    def current_scene(self) -> Scene | None:
        return self._repository.get_scene(self._state.current_scene)

    @property
    def displayed_text(self) -> str:
        """Text for the current scene: ``text2`` once the scene was visited."""
        scene = self.current_scene
        if scene is None:
            return ""
        if scene.id in self._state.visited_scenes and scene.text2:
            return scene.text2
        return scene.text

    @property
    def available_actions(self) -> list[Action]:
        scene = self.current_scene
        return list(scene.actions) if scene is not None else []

    def _save(self) -> None:
        if self._store is not None:
            self._store.set(self._key, self._state.to_wire())

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def go_to_scene(self, scene_id: SceneId | None) -> Scene | None:
        """Move to a scene, resolved through evolutions.

        The scene being left is marked visited.

        Returns:
            The scene now shown, or None if the id did not resolve.
        """
        return self._enter(scene_id, self._state.progressions)

    def _enter(
        self, scene_id: SceneId | None, progressions: list[ProgressionSlug]
    ) -> Scene | None:
        # Resolution may raise, so it runs before any state changes
        resolved = resolve_scene(self._repository.scenes, scene_id, progressions)
        self._state.progressions = progressions
        previous = self._state.current_scene
        if previous is not None and previous not in self._state.visited_scenes:
            self._state.visited_scenes.add(previous)
        if resolved is None:
            log.warning("scene_unresolved", scene_id=scene_id)
        self._state.current_scene = resolved.id if resolved is not None else None
        self._save()
        log.debug("scene_entered", requested=scene_id, shown=self._state.current_scene)
        return resolved

    def perform_action(self, action: Action) -> Scene | None:
        """Take an action: fire its progression and follow its target.

        Raises:
            DeadEndActionError: If the action has no next scene. Nothing is
                changed in that case.
            EvolutionCycleError: If the target resolves into a cycle under the
                new history. Nothing is changed in that case either.
        """
        if action.next_scene is None:
            log.error("dead_end_action", title=action.title, scene_id=self.current_scene_id)
            raise DeadEndActionError(action.title, self.current_scene_id)
        progressions = list(self._state.progressions)
        slug = action.game_progression
        triggered: ProgressionSlug | None = None
        if slug and slug not in progressions:
            progressions.append(slug)
            triggered = slug
        shown = self._enter(action.next_scene, progressions)
        if triggered is not None:
            log.info("progression_triggered", progression=triggered)
        return shown

    def choose(self, action_index: int) -> Scene | None:
        """Take the action at ``action_index`` of the current scene.

        Raises:
            SessionError: If there is no current scene.
            ActionNotFoundError: If the index is out of range.
            DeadEndActionError: If the action has no next scene.
        """
        scene = self.current_scene
        if scene is None:
            raise SessionError("No current scene; reset the session to start over")
        if not 0 <= action_index < len(scene.actions):
            raise ActionNotFoundError(scene.id, action_index, len(scene.actions))
        return self.perform_action(scene.actions[action_index])

    # -------------------------------------------------------------------------
    # Progressions
    # -------------------------------------------------------------------------

    def add_progression(self, slug: ProgressionSlug) -> bool:
        """Fire a progression directly (for previewing story states).

        When the slug is new, the session jumps to the target of the first
        action that triggers it, so the author sees the resulting state.

        Returns:
            True if the slug was added, False if it had already fired.
        """
        if slug in self._state.progressions:
            return False
        progressions = [*self._state.progressions, slug]

        for _scene_id, _index, action in self._repository.iter_actions():
            if action.game_progression == slug and action.next_scene is not None:
                self._enter(action.next_scene, progressions)
                break
        else:
            self._state.progressions = progressions
            self._save()
        log.info("progression_added", progression=slug)
        return True

    def remove_progression(self, slug: ProgressionSlug) -> bool:
        """Forget a progression.

        Returns:
            True if the slug was in the history.
        """
        if slug not in self._state.progressions:
            return False
        self._state.progressions.remove(slug)
        log.info("progression_removed", progression=slug)
        self._save()
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Start over at the initial scene with an empty history."""
        self._state = PlaySessionState(current_scene=self._repository.initial_scene)
        log.info("session_reset", current_scene=self._state.current_scene)
        self._save()

    def forget_scene(self, scene_id: SceneId) -> None:
        """Drop a deleted scene from the session."""
        self._state.visited_scenes.discard(scene_id)
        if self._state.current_scene == scene_id:
            self._state.current_scene = self._repository.initial_scene
        self._save()
