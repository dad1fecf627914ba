"""Visual connection bookkeeping.

Connections are derived state: one per action that has a target, plus at
most one in-progress connection being dragged out of an action. Each
connection id encodes its ``(scene_id, action_index)`` pair, so the set of
connections is a projection of the graph's action targets onto canvas
coordinates. Topology always comes from the :class:`GraphRepository` and
geometry from the :class:`EditorLayoutStore`; this module follows both
stores and keeps the connections in step.

Drag lifecycle::

    Idle --begin_connection--> InProgress --finish_connection--> Idle
                                   |
                                   +------cancel_connection----> Idle
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NewType

from storyloom.graph.algorithms import visible_scenes
from storyloom.graph.layout import LayoutEventKind
from storyloom.graph.repository import GraphEvent, GraphEventKind
from storyloom.models.editor import Point
from storyloom.models.game import SceneId
from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from storyloom.graph.layout import EditorLayoutStore, LayoutEvent
    from storyloom.graph.repository import GraphRepository
    from storyloom.models.game import ProgressionSlug, Scene

log = get_logger(__name__)

ConnectionId = NewType("ConnectionId", str)

CONNECTION_PREFIX = "connection-"

# Arrow heads land inside the target node body, not on its corner
CONNECTION_TARGET_INSET = 12.0


@dataclass
class Connection:
    """A drawn edge from an action connector to a scene.

    Attributes:
        id: ``connection-<sceneId>-<actionIndex>``.
        from_x: Canvas x of the action connector.
        from_y: Canvas y of the action connector.
        to_x: Canvas x of the arrow head; None while dragging without a pointer.
        to_y: Canvas y of the arrow head.
        to_scene_id: Target scene; None while the connection is being dragged.
    """

    id: ConnectionId
    from_x: float
    from_y: float
    to_x: float | None = None
    to_y: float | None = None
    to_scene_id: SceneId | None = None

    @property
    def is_complete(self) -> bool:
        return self.to_scene_id is not None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"id": self.id, "fromX": self.from_x, "fromY": self.from_y}
        if self.to_x is not None:
            data["toX"] = self.to_x
        if self.to_y is not None:
            data["toY"] = self.to_y
        if self.to_scene_id is not None:
            data["toSceneId"] = self.to_scene_id
        return data


def format_connection_id(scene_id: SceneId, action_index: int) -> ConnectionId:
    """Build the connection id for an action."""
    return ConnectionId(f"{CONNECTION_PREFIX}{scene_id}-{action_index}")


def parse_connection_id(connection_id: str) -> tuple[SceneId, int]:
    """Decode a connection id back into ``(scene_id, action_index)``.

    The action index is split off the right, so scene ids may contain dashes.

    Raises:
        ValueError: If the id is not a connection id.
    """
    if not connection_id.startswith(CONNECTION_PREFIX):
        raise ValueError(f"Not a connection id: {connection_id!r}")
    scene_part, sep, index_part = connection_id[len(CONNECTION_PREFIX) :].rpartition("-")
    if not sep or not scene_part or not index_part.isdigit():
        raise ValueError(f"Not a connection id: {connection_id!r}")
    return SceneId(scene_part), int(index_part)


class ConnectionSynchronizer:
    """Keeps visual connections consistent with the graph and the layout."""

    def __init__(self, repository: GraphRepository, layout: EditorLayoutStore) -> None:
        self._repository = repository
        self._layout = layout
        self.connections: dict[ConnectionId, Connection] = {}
        self.in_progress: ConnectionId | None = None
        self._unsubscribers = [
            repository.subscribe(self._on_graph_event),
            layout.subscribe(self._on_layout_event),
        ]

    def close(self) -> None:
        """Stop following repository and layout mutations."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    def _origin(self, scene_id: SceneId, action_index: int) -> Point:
        position = self._layout.scene_position(scene_id)
        offset = position.action_offset(action_index)
        return Point(x=position.x + offset.x, y=position.y + offset.y)

    def _target(self, scene_id: SceneId) -> Point:
        position = self._layout.scene_position(scene_id)
        return Point(
            x=position.x + CONNECTION_TARGET_INSET,
            y=position.y + CONNECTION_TARGET_INSET,
        )

    def _build(self, scene_id: SceneId, action_index: int, target_id: SceneId) -> Connection:
        origin = self._origin(scene_id, action_index)
        target = self._target(target_id)
        return Connection(
            id=format_connection_id(scene_id, action_index),
            from_x=origin.x,
            from_y=origin.y,
            to_x=target.x,
            to_y=target.y,
            to_scene_id=target_id,
        )

    # -------------------------------------------------------------------------
    # Drag lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_connecting(self) -> bool:
        return self.in_progress is not None

    def begin_connection(self, scene_id: SceneId, action_index: int) -> Connection:
        """Start dragging a connection out of an action connector.

        Any connection already in progress is discarded first.
        """
        self._repository.require_action(scene_id, action_index)
        if self.in_progress is not None:
            self.cancel_connection()

        origin = self._origin(scene_id, action_index)
        connection = Connection(
            id=format_connection_id(scene_id, action_index),
            from_x=origin.x,
            from_y=origin.y,
        )
        self.connections[connection.id] = connection
        self.in_progress = connection.id
        log.debug("connection_started", connection_id=connection.id)
        return connection

    def update_pointer(self, x: float, y: float) -> None:
        """Move the loose end of the in-progress connection."""
        if self.in_progress is None:
            return
        connection = self.connections[self.in_progress]
        connection.to_x = x
        connection.to_y = y

    def cancel_connection(self) -> None:
        """Discard the in-progress connection without touching the graph.

        If the action was already connected before the drag started, its
        existing edge is restored.
        """
        if self.in_progress is None:
            return
        connection_id = self.in_progress
        self.in_progress = None
        del self.connections[connection_id]
        self._restore_edge(connection_id)
        log.debug("connection_cancelled", connection_id=connection_id)

    def finish_connection(self, target_id: SceneId) -> tuple[SceneId, int, SceneId] | None:
        """Drop the in-progress connection onto a scene.

        Joins the originating action to the target scene in the repository.
        A scene cannot be connected to itself; such a drop is ignored and
        the drag stays in progress.

        Returns:
            ``(from_scene_id, action_index, target_id)``, or None if nothing
            was connected.
        """
        if self.in_progress is None:
            return None
        scene_id, action_index = parse_connection_id(self.in_progress)
        if scene_id == target_id:
            log.debug("connection_self_refused", scene_id=scene_id)
            return None
        self._repository.require_scene(target_id, context="finish_connection target")

        connection = self.connections[self.in_progress]
        target = self._target(target_id)
        connection.to_x = target.x
        connection.to_y = target.y
        connection.to_scene_id = target_id
        self.in_progress = None

        self._repository.join_action_to_scene(scene_id, action_index, target_id)
        log.info(
            "connection_finished",
            scene_id=scene_id,
            action_index=action_index,
            target_id=target_id,
        )
        return scene_id, action_index, target_id

    # -------------------------------------------------------------------------
    # Geometry sync
    # -------------------------------------------------------------------------

    def set_scene_coordinates(self, scene_id: SceneId, x: float, y: float) -> None:
        """Move a scene and re-anchor every connection touching it."""
        self._layout.move_scene(scene_id, x, y)

    def set_action_offsets(self, scene_id: SceneId, offsets: Sequence[Point]) -> None:
        """Update a scene's connector offsets and re-anchor its connections."""
        self._layout.set_action_offsets(scene_id, offsets)

    def _patch_scene(self, scene_id: SceneId) -> None:
        for connection in self.connections.values():
            source_id, action_index = parse_connection_id(connection.id)
            if source_id == scene_id:
                origin = self._origin(scene_id, action_index)
                connection.from_x = origin.x
                connection.from_y = origin.y
            if connection.to_scene_id == scene_id:
                target = self._target(scene_id)
                connection.to_x = target.x
                connection.to_y = target.y

    # -------------------------------------------------------------------------
    # Rebuild
    # -------------------------------------------------------------------------

    def redraw_all_connections(
        self, progressions: Sequence[ProgressionSlug] | None = None
    ) -> None:
        """Rebuild every connection from the graph and the layout.

        Args:
            progressions: When given, only scenes visible under this
                history are drawn; otherwise every scene is.
        """
        scenes = self._repository.scenes
        sources: Iterable[Scene]
        if progressions is None:
            sources = scenes.values()
        else:
            sources = visible_scenes(scenes, progressions)

        self.connections = {}
        self.in_progress = None
        for scene in sources:
            self._draw_scene(scene)
        log.debug("connections_redrawn", count=len(self.connections))

    def _draw_scene(self, scene: Scene) -> None:
        for index, action in enumerate(scene.actions):
            if action.next_scene is None:
                continue
            if action.next_scene not in self._repository.scenes:
                log.warning(
                    "connection_target_missing",
                    scene_id=scene.id,
                    action_index=index,
                    target=action.next_scene,
                )
                continue
            connection = self._build(scene.id, index, action.next_scene)
            self.connections[connection.id] = connection

    def _restore_edge(self, connection_id: ConnectionId) -> None:
        scene_id, action_index = parse_connection_id(connection_id)
        scene = self._repository.get_scene(scene_id)
        if scene is None or not 0 <= action_index < len(scene.actions):
            return
        target_id = scene.actions[action_index].next_scene
        if target_id is not None and target_id in self._repository.scenes:
            self.connections[connection_id] = self._build(scene_id, action_index, target_id)

    def _on_graph_event(self, event: GraphEvent) -> None:
        if event.kind in (
            GraphEventKind.DATA_LOADED,
            GraphEventKind.SCENE_DELETED,
            GraphEventKind.ACTIONS_CHANGED,
        ):
            self.redraw_all_connections()
            return
        if event.kind is GraphEventKind.EVOLUTION_CREATED:
            # The clone starts with the source's targets
            clone = self._repository.get_scene(event.related_id)
            if clone is not None:
                self._draw_scene(clone)
            return
        if event.scene_id is None or event.action_index is None:
            return
        connection_id = format_connection_id(event.scene_id, event.action_index)
        if connection_id == self.in_progress:
            return
        if event.kind is GraphEventKind.ACTION_CONNECTED:
            self._restore_edge(connection_id)
        elif event.kind is GraphEventKind.ACTION_DISCONNECTED:
            self.connections.pop(connection_id, None)

    def _on_layout_event(self, event: LayoutEvent) -> None:
        if event.element_id is None:
            return
        if event.kind in (LayoutEventKind.SCENE_MOVED, LayoutEventKind.ACTION_OFFSETS_CHANGED):
            self._patch_scene(SceneId(event.element_id))
