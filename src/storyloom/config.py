"""Project configuration loading.

A project is a directory holding ``project.yaml`` and a data directory with
the narrative and layout documents:

    name: forest
    version: 1
    game: forest
    data_dir: data
    save_delay: 1.0
    assistant:
      provider: openai/gpt-5-mini
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

from storyloom.persistence.saver import DEFAULT_SAVE_DELAY

CONFIG_FILENAME = "project.yaml"
DEFAULT_DATA_DIR = "data"
DEFAULT_ASSISTANT_PROVIDER = "ollama/qwen3:4b-instruct-32k"
SESSION_FILENAME = "session.json"


@dataclass
class AssistantConfig:
    """LLM assistant settings.

    Attributes:
        provider: Provider string (e.g., "openai/gpt-5-mini"). The
            LOOM_PROVIDER environment variable takes precedence.
    """

    provider: str = DEFAULT_ASSISTANT_PROVIDER

    def get_provider(self) -> str:
        return os.getenv("LOOM_PROVIDER") or self.provider

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssistantConfig:
        return cls(provider=str(data.get("provider") or DEFAULT_ASSISTANT_PROVIDER))


@dataclass
class ProjectConfig:
    """Configuration for a storyloom project."""

    name: str
    version: int = 1
    game: str | None = None
    data_dir: str = DEFAULT_DATA_DIR
    save_delay: float = DEFAULT_SAVE_DELAY
    assistant: AssistantConfig = field(default_factory=AssistantConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Create config from a parsed ``project.yaml``.

        Raises:
            ValueError: If a value has the wrong type or range.
        """
        save_delay = float(data.get("save_delay", DEFAULT_SAVE_DELAY))
        if save_delay < 0:
            raise ValueError(f"save_delay must not be negative, got {save_delay}")
        game = data.get("game")
        return cls(
            name=str(data.get("name", "unnamed")),
            version=int(data.get("version", 1)),
            game=str(game) if game else None,
            data_dir=str(data.get("data_dir", DEFAULT_DATA_DIR)),
            save_delay=save_delay,
            assistant=AssistantConfig.from_dict(dict(data.get("assistant") or {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form written to ``project.yaml``."""
        data: dict[str, Any] = {"name": self.name, "version": self.version}
        if self.game:
            data["game"] = self.game
        data["data_dir"] = self.data_dir
        data["save_delay"] = self.save_delay
        data["assistant"] = {"provider": self.assistant.provider}
        return data

    def data_path(self, project_path: Path) -> Path:
        """Directory holding the narrative and layout documents."""
        return project_path / self.data_dir

    def session_path(self, project_path: Path) -> Path:
        """File holding the play session."""
        return self.data_path(project_path) / SESSION_FILENAME


class ProjectConfigError(Exception):
    """Raised when project configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load project config at {path}: {reason}")


def load_project_config(project_path: Path) -> ProjectConfig:
    """Load project configuration from project.yaml.

    Args:
        project_path: Path to the project root directory.

    Raises:
        ProjectConfigError: If config cannot be loaded.
    """
    config_path = project_path / CONFIG_FILENAME
    if not config_path.exists():
        raise ProjectConfigError(config_path, "File not found")

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
        if data is None:
            raise ProjectConfigError(config_path, "Empty file")
        if not isinstance(data, dict):
            raise ProjectConfigError(config_path, "Expected a mapping at the top level")
        return ProjectConfig.from_dict(dict(data))
    except ProjectConfigError:
        raise
    except Exception as e:
        raise ProjectConfigError(config_path, str(e)) from e


def create_default_config(
    name: str,
    game: str | None = None,
    provider: str | None = None,
) -> ProjectConfig:
    """Create a default project configuration.

    Args:
        name: Project name.
        game: Optional game selector for document names.
        provider: Optional assistant provider string.
    """
    return ProjectConfig(
        name=name,
        game=game,
        assistant=AssistantConfig(provider=provider or DEFAULT_ASSISTANT_PROVIDER),
    )


def write_project_config(project_path: Path, config: ProjectConfig) -> Path:
    """Write ``project.yaml`` into a project directory."""
    config_path = project_path / CONFIG_FILENAME
    yaml_writer = YAML()
    yaml_writer.default_flow_style = False
    with config_path.open("w", encoding="utf-8") as f:
        yaml_writer.dump(config.to_dict(), f)
    return config_path
