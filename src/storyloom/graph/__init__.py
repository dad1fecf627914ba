"""Graph package - the scene-graph engine.

The repository owns the narrative document, the layout store owns canvas
geometry, and the connection synchronizer keeps the visual edges derived
from both. Resolution and reachability are pure functions in
:mod:`storyloom.graph.algorithms`.
"""

from storyloom.graph.algorithms import (
    find_scene_path,
    gated_scenes,
    reachable_scenes,
    resolve_scene,
    visible_scenes,
)
from storyloom.graph.connections import (
    CONNECTION_TARGET_INSET,
    Connection,
    ConnectionId,
    ConnectionSynchronizer,
    format_connection_id,
    parse_connection_id,
)
from storyloom.graph.errors import (
    ActionNotFoundError,
    EvolutionCycleError,
    GraphIntegrityError,
    SceneNotFoundError,
)
from storyloom.graph.layout import EditorLayoutStore, LayoutEvent, LayoutEventKind
from storyloom.graph.repository import GraphEvent, GraphEventKind, GraphRepository

__all__ = [
    "CONNECTION_TARGET_INSET",
    "ActionNotFoundError",
    "Connection",
    "ConnectionId",
    "ConnectionSynchronizer",
    "EditorLayoutStore",
    "EvolutionCycleError",
    "GraphEvent",
    "GraphEventKind",
    "GraphIntegrityError",
    "GraphRepository",
    "LayoutEvent",
    "LayoutEventKind",
    "SceneNotFoundError",
    "find_scene_path",
    "format_connection_id",
    "gated_scenes",
    "parse_connection_id",
    "reachable_scenes",
    "resolve_scene",
    "visible_scenes",
]
