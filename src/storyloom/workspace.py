"""Editor workspace: wires the engine components together.

A workspace owns one narrative and its editor layout. It loads both
documents, builds the derived connection state once both are in, restores
the play session, and keeps everything saved as edits come in.

Example:
    gateway = FileGateway(project / "data")
    workspace = await Workspace.open(gateway, game="forest", session_store=store)
    try:
        workspace.repository.create_scene()
    finally:
        await workspace.close()
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from storyloom.graph.algorithms import find_scene_path
from storyloom.graph.connections import ConnectionSynchronizer
from storyloom.graph.layout import EditorLayoutStore
from storyloom.graph.repository import GraphEventKind, GraphRepository
from storyloom.models.editor import Point
from storyloom.observability.logging import get_logger
from storyloom.persistence.debounce import LoadBarrier
from storyloom.persistence.gateway import (
    GAME_DOCUMENT_SUFFIX,
    LAYOUT_DOCUMENT_SUFFIX,
    PersistenceError,
    document_name,
)
from storyloom.persistence.saver import DEFAULT_SAVE_DELAY, DocumentSaver
from storyloom.session import PlaySession

if TYPE_CHECKING:
    from collections.abc import Callable

    from storyloom.assistant import SceneAssistant
    from storyloom.graph.layout import LayoutEvent
    from storyloom.graph.repository import GraphEvent
    from storyloom.models.game import Scene, SceneId
    from storyloom.persistence.gateway import PersistenceGateway
    from storyloom.persistence.saver import SaveStatus
    from storyloom.session import SessionStore

log = get_logger(__name__)

# Where a generated scene lands relative to the scene it continues
GENERATED_SCENE_OFFSET = Point(x=320.0, y=0.0)


class Workspace:
    """One open narrative with its layout, connections and play session."""

    def __init__(
        self,
        repository: GraphRepository,
        layout: EditorLayoutStore,
        connections: ConnectionSynchronizer,
        session: PlaySession,
        saver: DocumentSaver,
        *,
        game: str | None = None,
    ) -> None:
        self.repository = repository
        self.layout = layout
        self.connections = connections
        self.session = session
        self.saver = saver
        self.game_document = document_name(game, GAME_DOCUMENT_SUFFIX)
        self.layout_document = document_name(game, LAYOUT_DOCUMENT_SUFFIX)
        self._unsubscribers: list[Callable[[], None]] = [
            repository.subscribe(self._on_graph_event),
            layout.subscribe(self._on_layout_event),
        ]

    @classmethod
    async def open(
        cls,
        gateway: PersistenceGateway,
        *,
        game: str | None = None,
        session_store: SessionStore | None = None,
        delay: float = DEFAULT_SAVE_DELAY,
    ) -> Workspace:
        """Load a narrative and its layout and assemble a workspace.

        Both documents are loaded concurrently. Connections are drawn only
        after both loads have finished, since they need the topology and
        the positions. A missing document starts empty.

        Raises:
            PersistenceError: If a document exists but cannot be read.
        """
        repository = GraphRepository()
        layout = EditorLayoutStore()
        game_name = document_name(game, GAME_DOCUMENT_SUFFIX)
        layout_name = document_name(game, LAYOUT_DOCUMENT_SUFFIX)
        barrier = LoadBarrier([game_name, layout_name])

        async def _load(name: str, apply: Callable[[dict[str, Any]], None]) -> None:
            data = await gateway.load_json(name)
            if data is not None:
                try:
                    apply(data)
                except ValidationError as e:
                    raise PersistenceError(
                        name, f"Invalid document ({e.error_count()} validation errors)"
                    ) from e
            barrier.mark_loaded(name)

        await asyncio.gather(_load(game_name, repository.load), _load(layout_name, layout.load))
        await barrier.wait()

        connections = ConnectionSynchronizer(repository, layout)
        connections.redraw_all_connections()

        if session_store is not None:
            session = PlaySession.restore(repository, session_store)
        else:
            session = PlaySession(repository)
            session.state.current_scene = repository.initial_scene

        saver = DocumentSaver(gateway, delay=delay)
        log.info(
            "workspace_opened",
            game=game,
            scenes=len(repository.scenes),
            connections=len(connections.connections),
        )
        return cls(repository, layout, connections, session, saver, game=game)

    # -------------------------------------------------------------------------
    # Event wiring
    # -------------------------------------------------------------------------

    def _on_graph_event(self, event: GraphEvent) -> None:
        if event.kind is GraphEventKind.EVOLUTION_CREATED:
            if event.scene_id is not None and event.related_id is not None:
                self.layout.mirror_scene(event.scene_id, event.related_id)
        elif event.kind is GraphEventKind.SCENE_DELETED:
            if event.scene_id is not None:
                self.layout.remove_scene(event.scene_id)
                self.session.forget_scene(event.scene_id)
        elif event.kind is GraphEventKind.SCENE_CREATED:
            if self.session.current_scene_id is None and self.repository.initial_scene:
                self.session.go_to_scene(self.repository.initial_scene)

        if event.kind is not GraphEventKind.DATA_LOADED:
            self.saver.schedule(self.game_document, self.repository.to_dict)

    def _on_layout_event(self, event: LayoutEvent) -> None:
        self.saver.schedule(self.layout_document, self.layout.to_dict)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    @property
    def save_status(self) -> SaveStatus:
        return self.saver.status

    def scene_path_to(self, scene_id: SceneId) -> list[Scene]:
        """Scenes leading from the initial scene to ``scene_id``.

        Uses the session's progression history. Falls back to the scene
        alone when no path exists.
        """
        path = find_scene_path(
            self.repository.scenes,
            self.repository.initial_scene,
            scene_id,
            self.session.progressions,
        )
        if not path:
            path = [self.repository.require_scene(scene_id, context="scene_path_to")]
        return path

    async def generate_scene(
        self,
        assistant: SceneAssistant,
        scene_id: SceneId,
        action_index: int,
        notes: str | None = None,
    ) -> Scene:
        """Write the scene behind an action with the assistant and connect it.

        The new scene is placed next to the source scene and the action is
        joined to it.

        Raises:
            AssistantError: If generation fails; the graph is left untouched.
        """
        action = self.repository.require_action(scene_id, action_index)
        path = self.scene_path_to(scene_id)
        generated = await assistant.generate_scene(path, action, notes)

        scene = self.repository.create_scene_from(generated)
        source = self.layout.scene_position(scene_id)
        self.connections.set_scene_coordinates(
            scene.id,
            source.x + GENERATED_SCENE_OFFSET.x,
            source.y + GENERATED_SCENE_OFFSET.y,
        )
        self.repository.join_action_to_scene(scene_id, action_index, scene.id)
        log.info(
            "generated_scene_joined",
            scene_id=scene_id,
            action_index=action_index,
            new_scene_id=scene.id,
        )
        return scene

    async def flush(self) -> None:
        """Write pending document saves now."""
        await self.saver.flush()

    async def close(self) -> None:
        """Flush pending saves and detach every listener."""
        await self.flush()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.connections.close()
        log.debug("workspace_closed", game_document=self.game_document)
