"""Tests for project configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from storyloom.config import (
    CONFIG_FILENAME,
    DEFAULT_ASSISTANT_PROVIDER,
    AssistantConfig,
    ProjectConfig,
    ProjectConfigError,
    create_default_config,
    load_project_config,
    write_project_config,
)
from storyloom.persistence.saver import DEFAULT_SAVE_DELAY

if TYPE_CHECKING:
    from pathlib import Path


class TestAssistantConfig:
    """Tests for AssistantConfig."""

    def test_default_provider(self) -> None:
        assert AssistantConfig().get_provider() == DEFAULT_ASSISTANT_PROVIDER

    def test_environment_overrides_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOOM_PROVIDER", "anthropic/claude-sonnet-4-20250514")
        config = AssistantConfig(provider="openai/gpt-5-mini")
        assert config.get_provider() == "anthropic/claude-sonnet-4-20250514"

    def test_from_dict_empty_provider_uses_default(self) -> None:
        assert AssistantConfig.from_dict({"provider": ""}).provider == DEFAULT_ASSISTANT_PROVIDER


class TestProjectConfig:
    """Tests for ProjectConfig parsing."""

    def test_from_dict_defaults(self) -> None:
        config = ProjectConfig.from_dict({"name": "forest"})

        assert config.name == "forest"
        assert config.version == 1
        assert config.game is None
        assert config.data_dir == "data"
        assert config.save_delay == DEFAULT_SAVE_DELAY
        assert config.assistant.provider == DEFAULT_ASSISTANT_PROVIDER

    def test_from_dict_full(self) -> None:
        config = ProjectConfig.from_dict(
            {
                "name": "forest",
                "version": 2,
                "game": "forest",
                "data_dir": "docs",
                "save_delay": 0.25,
                "assistant": {"provider": "openai/gpt-5-mini"},
            }
        )

        assert config.game == "forest"
        assert config.data_dir == "docs"
        assert config.save_delay == 0.25
        assert config.assistant.provider == "openai/gpt-5-mini"

    def test_negative_save_delay_rejected(self) -> None:
        with pytest.raises(ValueError, match="save_delay"):
            ProjectConfig.from_dict({"name": "x", "save_delay": -1})

    def test_paths(self, tmp_path: Path) -> None:
        config = ProjectConfig(name="forest", data_dir="docs")
        assert config.data_path(tmp_path) == tmp_path / "docs"
        assert config.session_path(tmp_path) == tmp_path / "docs" / "session.json"

    def test_to_dict_round_trip(self) -> None:
        config = create_default_config("forest", game="forest", provider="openai/gpt-5-mini")
        assert ProjectConfig.from_dict(config.to_dict()) == config

    def test_to_dict_omits_missing_game(self) -> None:
        assert "game" not in create_default_config("forest").to_dict()


class TestLoadProjectConfig:
    """Tests for reading project.yaml."""

    def test_write_then_load(self, tmp_path: Path) -> None:
        config = create_default_config("forest", game="forest")
        path = write_project_config(tmp_path, config)

        assert path == tmp_path / CONFIG_FILENAME
        assert "game: forest" in path.read_text(encoding="utf-8")
        assert load_project_config(tmp_path) == config

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ProjectConfigError, match="File not found"):
            load_project_config(tmp_path)

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")
        with pytest.raises(ProjectConfigError, match="Empty file"):
            load_project_config(tmp_path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ProjectConfigError, match="Expected a mapping"):
            load_project_config(tmp_path)

    def test_invalid_value_is_wrapped(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("name: x\nsave_delay: soon\n", encoding="utf-8")
        with pytest.raises(ProjectConfigError) as exc_info:
            load_project_config(tmp_path)
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ProjectConfigError):
            load_project_config(tmp_path)
