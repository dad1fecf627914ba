"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from storyloom.graph.layout import EditorLayoutStore
from storyloom.graph.repository import GraphRepository
from storyloom.models.editor import EditorLayout
from storyloom.models.game import GameData


@pytest.fixture(autouse=True)
def isolate_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment settings out of test runs."""
    monkeypatch.delenv("LOOM_PROVIDER", raising=False)


@pytest.fixture
def forest_data() -> dict[str, Any]:
    """A small narrative in its JSON wire form.

    start --0 (entered)--> forest --1 (has-key)--> clearing
      |                      |  ^                     |
      1 (dead end)           2  +------- 0 -----------+
                             v
                            door ==has-key==> door-open
    """
    return {
        "title": "The Forest",
        "version": "1",
        "initialScene": "start",
        "scenes": {
            "start": {
                "id": "start",
                "title": "Forest edge",
                "text": "You stand at the edge of a dark forest.",
                "text2": "You are back at the edge of the forest.",
                "actions": [
                    {
                        "title": "Enter the forest",
                        "nextScene": "forest",
                        "gameProgression": "entered",
                    },
                    {"title": "Wait"},
                ],
            },
            "forest": {
                "id": "forest",
                "title": "Forest",
                "text": "Tall trees block the light.",
                "actions": [
                    {"title": "Go back", "nextScene": "start"},
                    {
                        "title": "Look for the key",
                        "nextScene": "clearing",
                        "gameProgression": "has-key",
                    },
                    {"title": "Approach the door", "nextScene": "door"},
                ],
            },
            "clearing": {
                "id": "clearing",
                "title": "Clearing",
                "text": "A rusty key glints in the grass.",
                "actions": [{"title": "Return", "nextScene": "forest"}],
            },
            "door": {
                "id": "door",
                "title": "Locked door",
                "text": "The door is locked.",
                "actions": [{"title": "Back", "nextScene": "forest"}],
                "evolutions": {"has-key": "door-open"},
            },
            "door-open": {
                "id": "door-open",
                "title": "Open door",
                "text": "The key turns and the door swings open.",
                "actions": [{"title": "Back", "nextScene": "forest"}],
            },
        },
    }


@pytest.fixture
def forest_layout_data() -> dict[str, Any]:
    """Editor layout for ``forest_data`` in its JSON wire form."""
    return {
        "scenes": {
            "start": {
                "id": "start",
                "x": 0,
                "y": 0,
                "actionPositions": [{"x": 100, "y": 20}, {"x": 100, "y": 40}],
            },
            "forest": {
                "id": "forest",
                "x": 300,
                "y": 0,
                "actionPositions": [
                    {"x": 100, "y": 20},
                    {"x": 100, "y": 40},
                    {"x": 100, "y": 60},
                ],
            },
            "clearing": {"id": "clearing", "x": 600, "y": 0},
            "door": {"id": "door", "x": 300, "y": 200},
            "door-open": {"id": "door-open", "x": 600, "y": 200},
        },
        "textboxes": {},
        "zoom": 1.0,
    }


@pytest.fixture
def repository(forest_data: dict[str, Any]) -> GraphRepository:
    return GraphRepository(GameData.model_validate(forest_data))


@pytest.fixture
def layout(forest_layout_data: dict[str, Any]) -> EditorLayoutStore:
    return EditorLayoutStore(EditorLayout.model_validate(forest_layout_data))


class MemorySessionStore:
    """In-memory session store recording every write."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.writes += 1


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def forest_project(
    tmp_path: Path,
    forest_data: dict[str, Any],
    forest_layout_data: dict[str, Any],
) -> Path:
    """A project directory with project.yaml and both documents on disk."""
    project = tmp_path / "forest"
    data_dir = project / "data"
    data_dir.mkdir(parents=True)
    (project / "project.yaml").write_text(
        "name: forest\nversion: 1\ngame: forest\ndata_dir: data\nsave_delay: 0.01\n",
        encoding="utf-8",
    )
    (data_dir / "forest.game.json").write_text(json.dumps(forest_data), encoding="utf-8")
    (data_dir / "forest.editor.json").write_text(json.dumps(forest_layout_data), encoding="utf-8")
    return project
