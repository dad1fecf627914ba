"""Test CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console
from ruamel.yaml import YAML
from typer.testing import CliRunner

from storyloom import __version__
from storyloom.assistant import AssistantError
from storyloom.cli import _resolve_project_path, app
from storyloom.models.assistant import GeneratedAction, GeneratedScene
from storyloom.providers import ProviderError

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep long paths and messages on one line regardless of the terminal."""
    import storyloom.cli as cli_module

    monkeypatch.setattr(cli_module, "console", Console(width=200, highlight=False))


def _session(project: Path) -> dict[str, object]:
    return json.loads((project / "data" / "session.json").read_text(encoding="utf-8"))[
        "play-session"
    ]


def test_version_command() -> None:
    """Test loom version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.stdout


def test_no_args_shows_help() -> None:
    """Test that no arguments shows help."""
    result = runner.invoke(app, [])
    assert result.exit_code in (0, 2)
    assert "storyloom" in result.stdout


# --- Init Command Tests ---


def test_init_creates_project(tmp_path: Path) -> None:
    """Test loom init creates project structure."""
    result = runner.invoke(app, ["init", "my_story", "--path", str(tmp_path)])

    assert result.exit_code == 0
    assert "Created project" in result.stdout

    project_path = tmp_path / "my_story"
    assert (project_path / "project.yaml").exists()
    assert (project_path / "data").is_dir()


def test_init_project_yaml_content(tmp_path: Path) -> None:
    """Test loom init writes the game and provider settings."""
    runner.invoke(
        app,
        [
            "init",
            "forest",
            "--path",
            str(tmp_path),
            "--game",
            "forest",
            "--provider",
            "openai/gpt-5-mini",
        ],
    )

    with (tmp_path / "forest" / "project.yaml").open(encoding="utf-8") as f:
        config = YAML(typ="safe").load(f)

    assert config["name"] == "forest"
    assert config["game"] == "forest"
    assert config["assistant"]["provider"] == "openai/gpt-5-mini"


def test_init_existing_directory_fails(tmp_path: Path) -> None:
    """Test loom init refuses to overwrite a directory."""
    (tmp_path / "taken").mkdir()
    result = runner.invoke(app, ["init", "taken", "--path", str(tmp_path)])

    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_resolve_project_path_by_name(tmp_path: Path) -> None:
    """Project names are looked up in the projects directory."""
    import storyloom.cli as cli_module

    (tmp_path / "forest").mkdir()
    with patch.object(cli_module, "_projects_dir", tmp_path):
        assert _resolve_project_path(Path("forest")) == tmp_path / "forest"


def test_missing_project_fails(tmp_path: Path) -> None:
    """Commands outside a project report the missing project.yaml."""
    result = runner.invoke(app, ["scenes", "--project", str(tmp_path / "nowhere")])

    assert result.exit_code == 1
    assert "No project.yaml found" in result.stdout


# --- Scene Listing ---


def test_scenes_lists_visible_scenes(forest_project: Path) -> None:
    """Gated evolutions stay hidden until their progression fires."""
    result = runner.invoke(app, ["scenes", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "clearing" in result.stdout
    assert "door-open" not in result.stdout


def test_scenes_all_shows_gates(forest_project: Path) -> None:
    """--all lists every scene with its gating progressions."""
    result = runner.invoke(app, ["scenes", "--all", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "door-open" in result.stdout
    assert "has-key" in result.stdout


def test_connections_lists_edges(forest_project: Path) -> None:
    """loom connections shows one row per connected action."""
    result = runner.invoke(app, ["connections", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "connection-forest-1" in result.stdout
    assert "connection-start-1" not in result.stdout


def test_evolution_cycle_fails_cleanly(
    forest_project: Path, forest_data: dict[str, Any]
) -> None:
    """An evolution cycle is reported, not raised."""
    forest_data["scenes"]["door-open"]["evolutions"] = {"has-key": "door"}
    data_dir = forest_project / "data"
    (data_dir / "forest.game.json").write_text(json.dumps(forest_data), encoding="utf-8")
    (data_dir / "session.json").write_text(
        json.dumps({"play-session": {"progressions": ["has-key"], "currentScene": "start"}}),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["scenes", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "Error" in result.stdout
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_invalid_document_fails(forest_project: Path) -> None:
    """A broken narrative document is reported, not raised."""
    (forest_project / "data" / "forest.game.json").write_text("[]", encoding="utf-8")
    result = runner.invoke(app, ["scenes", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "Error" in result.stdout


# --- Play Session ---


def test_choose_moves_and_persists(forest_project: Path) -> None:
    """loom choose takes an action and saves the session."""
    result = runner.invoke(app, ["choose", "0", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "Tall trees block the light." in result.stdout
    assert _session(forest_project)["currentScene"] == "forest"
    assert _session(forest_project)["progressions"] == ["entered"]


def test_choose_dead_end_fails(forest_project: Path) -> None:
    """A dead-end action is refused and the session is unchanged."""
    result = runner.invoke(app, ["choose", "1", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "does not have a next scene" in result.stdout


def test_choose_out_of_range_fails(forest_project: Path) -> None:
    """An action number past the end is refused."""
    result = runner.invoke(app, ["choose", "9", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "no action 9" in result.stdout


def test_revisit_shows_second_text(forest_project: Path) -> None:
    """Returning to a scene shows its revisit text."""
    runner.invoke(app, ["choose", "0", "--project", str(forest_project)])
    result = runner.invoke(app, ["choose", "0", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "back at the edge" in result.stdout


def test_reset(forest_project: Path) -> None:
    """loom reset returns to the initial scene."""
    runner.invoke(app, ["choose", "0", "--project", str(forest_project)])
    result = runner.invoke(app, ["reset", "--project", str(forest_project)])

    assert result.exit_code == 0
    assert "Session reset" in result.stdout
    assert _session(forest_project) == {
        "progressions": [],
        "visitedScenes": [],
        "currentScene": "start",
    }


def test_flag_add_and_remove(forest_project: Path) -> None:
    """Progressions can be fired and forgotten directly."""
    added = runner.invoke(app, ["flag", "add", "has-key", "--project", str(forest_project)])
    again = runner.invoke(app, ["flag", "add", "has-key", "--project", str(forest_project)])

    assert added.exit_code == 0
    assert "Progression 'has-key' added" in added.stdout
    assert "A rusty key glints" in added.stdout
    assert "already set" in again.stdout

    removed = runner.invoke(app, ["flag", "remove", "has-key", "--project", str(forest_project)])
    missing = runner.invoke(app, ["flag", "remove", "has-key", "--project", str(forest_project)])

    assert "removed" in removed.stdout
    assert "was not set" in missing.stdout
    assert _session(forest_project)["progressions"] == []


def test_play_requires_tty(forest_project: Path) -> None:
    """loom play refuses to run without a terminal."""
    result = runner.invoke(app, ["play", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "interactive terminal" in result.stdout


# --- Assistant ---


def test_generate_creates_and_joins_scene(forest_project: Path) -> None:
    """loom generate writes the scene behind a dead end and saves it."""
    assistant = MagicMock()
    assistant.generate_scene = AsyncMock(
        return_value=GeneratedScene(
            title="Patience",
            text="You wait until dusk.",
            text2="Dusk again.",
            actions=[GeneratedAction(title="Head home")],
        )
    )

    with patch(
        "storyloom.cli.SceneAssistant.from_provider", return_value=assistant
    ) as mock_from_provider:
        result = runner.invoke(
            app, ["generate", "start", "1", "--notes", "slow", "--project", str(forest_project)]
        )

    assert result.exit_code == 0
    assert "Created scene" in result.stdout
    assert "Head home" in result.stdout
    mock_from_provider.assert_called_once_with("ollama/qwen3:4b-instruct-32k")

    saved = json.loads(
        (forest_project / "data" / "forest.game.json").read_text(encoding="utf-8")
    )
    new_id = saved["scenes"]["start"]["actions"][1]["nextScene"]
    assert saved["scenes"][new_id]["title"] == "Patience"
    layout = json.loads(
        (forest_project / "data" / "forest.editor.json").read_text(encoding="utf-8")
    )
    assert layout["scenes"][new_id]["x"] == 320


def test_generate_provider_override(forest_project: Path) -> None:
    """--provider wins over the configured provider."""
    with patch(
        "storyloom.cli.SceneAssistant.from_provider",
        side_effect=ProviderError("openai", "API key required."),
    ) as mock_from_provider:
        result = runner.invoke(
            app,
            ["generate", "start", "1", "--provider", "openai", "--project", str(forest_project)],
        )

    assert result.exit_code == 1
    assert "API key required" in result.stdout
    mock_from_provider.assert_called_once_with("openai")


def test_generate_assistant_failure(forest_project: Path) -> None:
    """An assistant failure leaves the narrative untouched."""
    before = (forest_project / "data" / "forest.game.json").read_text(encoding="utf-8")
    assistant = MagicMock()
    assistant.generate_scene = AsyncMock(side_effect=AssistantError("model offline"))

    with patch("storyloom.cli.SceneAssistant.from_provider", return_value=assistant):
        result = runner.invoke(app, ["generate", "start", "1", "--project", str(forest_project)])

    assert result.exit_code == 1
    assert "model offline" in result.stdout
    assert (forest_project / "data" / "forest.game.json").read_text(encoding="utf-8") == before
