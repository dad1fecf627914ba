"""Scene graph error types.

These errors are raised when graph mutations reference things that do not
exist, similar to foreign key violations in a database. Read-only
resolution never raises for unknown ids; it treats them as "nothing here".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


class GraphIntegrityError(Exception):
    """Base class for scene graph integrity violations."""


@dataclass
class SceneNotFoundError(GraphIntegrityError):
    """Raised when a mutation references a non-existent scene.

    Attributes:
        scene_id: The ID that was referenced but doesn't exist.
        available: Scene IDs that could be used instead.
        context: Description of where the reference occurred.
    """

    scene_id: str
    available: list[str] = field(default_factory=list)
    context: str = ""

    def __post_init__(self) -> None:
        msg = f"Scene '{self.scene_id}' not found"
        if self.context:
            msg += f" ({self.context})"
        suggestions = self.suggestions()
        if suggestions:
            msg += f"; did you mean {', '.join(repr(s) for s in suggestions)}?"
        super().__init__(msg)

    def suggestions(self) -> list[str]:
        """Find similar IDs that might be typos."""
        return get_close_matches(self.scene_id, self.available, n=3, cutoff=0.6)


@dataclass
class ActionNotFoundError(GraphIntegrityError):
    """Raised when an action index is out of range for its scene.

    Attributes:
        scene_id: Scene that owns the action list.
        action_index: Index that was requested.
        action_count: Number of actions the scene actually has.
    """

    scene_id: str
    action_index: int
    action_count: int = 0

    def __post_init__(self) -> None:
        super().__init__(
            f"Scene '{self.scene_id}' has no action {self.action_index} "
            f"({self.action_count} action(s))"
        )


@dataclass
class EvolutionCycleError(GraphIntegrityError):
    """Raised when evolutions loop back onto a scene already in the chain.

    Attributes:
        chain: Scene IDs visited during resolution, ending with the repeat.
        progressions: Progression history the resolution ran against.
    """

    chain: list[str]
    progressions: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Evolution cycle detected: {' -> '.join(self.chain)}")
