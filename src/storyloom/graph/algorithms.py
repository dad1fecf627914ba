"""Scene graph algorithms.

Pure functions that read the scene mapping without modifying it.
:func:`resolve_scene` is the single authority for "which scene is actually
shown for this id"; everything else that needs evolution semantics goes
through it.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from storyloom.graph.errors import EvolutionCycleError
from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from storyloom.models.game import ProgressionSlug, Scene, SceneId

log = get_logger(__name__)


def resolve_scene(
    scenes: Mapping[SceneId, Scene],
    scene_id: SceneId | None,
    progressions: Sequence[ProgressionSlug],
) -> Scene | None:
    """Resolve a scene reference through progression-gated evolutions.

    Progressions are scanned in trigger order and the first one that the
    scene declares as an evolution wins. Resolution then continues at the
    evolution target against the same history, until a scene with no
    matching evolution is reached.

    Args:
        scenes: Scene mapping keyed by id.
        scene_id: Scene to resolve. ``None`` resolves to ``None``.
        progressions: Triggered progression slugs, oldest first.

    Returns:
        The scene to show, or None if the id (or an evolution target)
        is unknown.

    Raises:
        EvolutionCycleError: If the evolutions lead back to a scene already
            visited during this resolution.
    """
    chain: list[str] = []
    current_id = scene_id
    while current_id is not None:
        scene = scenes.get(current_id)
        if scene is None:
            if chain:
                log.warning("evolution_target_missing", chain=chain, target=current_id)
            return None
        if current_id in chain:
            chain.append(current_id)
            raise EvolutionCycleError(chain, progressions=list(progressions))
        chain.append(current_id)

        current_id = _first_evolution(scene, progressions)
        if current_id is None:
            return scene
    return None


def _first_evolution(scene: Scene, progressions: Sequence[ProgressionSlug]) -> SceneId | None:
    if not scene.evolutions:
        return None
    for slug in progressions:
        target = scene.evolutions.get(slug)
        if target:
            return target
    return None


def gated_scenes(scenes: Mapping[SceneId, Scene]) -> dict[SceneId, set[ProgressionSlug]]:
    """Map every evolution target to the progressions that unlock it.

    A scene that is the target of an evolution is hidden until one of those
    progressions has fired.
    """
    gates: dict[SceneId, set[ProgressionSlug]] = {}
    for scene in scenes.values():
        for slug, target in scene.evolutions.items():
            gates.setdefault(target, set()).add(slug)
    return gates


def visible_scenes(
    scenes: Mapping[SceneId, Scene],
    progressions: Sequence[ProgressionSlug],
) -> list[Scene]:
    """Compute the scenes currently unlocked for display.

    Every scene id is resolved through :func:`resolve_scene`. A resolved
    scene that is an evolution target stays hidden until one of its gating
    progressions is in the history. The result has one entry per iterated
    id, in mapping order, so an evolved scene can appear more than once.

    Args:
        scenes: Scene mapping keyed by id.
        progressions: Triggered progression slugs, oldest first.

    Returns:
        List of resolved, unlocked scenes.
    """
    gates = gated_scenes(scenes)
    fired = set(progressions)

    result: list[Scene] = []
    for scene_id in scenes:
        resolved = resolve_scene(scenes, scene_id, progressions)
        if resolved is None:
            continue
        required = gates.get(resolved.id)
        if required is not None and not (required & fired):
            continue
        result.append(resolved)

    log.debug("visible_scenes_computed", total=len(scenes), visible=len(result))
    return result


def reachable_scenes(
    scenes: Mapping[SceneId, Scene],
    start_id: SceneId | None,
    progressions: Sequence[ProgressionSlug],
) -> list[Scene]:
    """Collect the scenes reachable by taking actions from a start scene.

    The start and every action target are resolved through evolutions.
    Each resolved scene is listed once, in breadth-first order.

    Args:
        scenes: Scene mapping keyed by id.
        start_id: Scene the walk starts from.
        progressions: Triggered progression slugs, oldest first.

    Returns:
        Reachable scenes, starting with the resolved start scene. Empty if
        the start does not resolve.
    """
    start = resolve_scene(scenes, start_id, progressions)
    if start is None:
        return []

    seen: set[SceneId] = {start.id}
    ordered: list[Scene] = [start]
    queue: deque[Scene] = deque([start])
    while queue:
        scene = queue.popleft()
        for action in scene.actions:
            child = resolve_scene(scenes, action.next_scene, progressions)
            if child is None or child.id in seen:
                continue
            seen.add(child.id)
            ordered.append(child)
            queue.append(child)
    return ordered


def find_scene_path(
    scenes: Mapping[SceneId, Scene],
    start_id: SceneId | None,
    target_id: SceneId,
    progressions: Sequence[ProgressionSlug] = (),
) -> list[Scene]:
    """Find the shortest chain of scenes leading from start to target.

    Edges are action targets resolved through evolutions. The target is
    matched against resolved ids.

    Returns:
        Scenes from start to target inclusive, or an empty list if the
        target cannot be reached.
    """
    start = resolve_scene(scenes, start_id, progressions)
    if start is None:
        return []

    parents: dict[SceneId, SceneId | None] = {start.id: None}
    queue: deque[Scene] = deque([start])
    while queue:
        scene = queue.popleft()
        if scene.id == target_id:
            path: list[Scene] = []
            cursor: SceneId | None = scene.id
            while cursor is not None:
                path.append(scenes[cursor])
                cursor = parents[cursor]
            path.reverse()
            return path
        for action in scene.actions:
            child = resolve_scene(scenes, action.next_scene, progressions)
            if child is None or child.id in parents:
                continue
            parents[child.id] = scene.id
            queue.append(child)
    return []
