"""Persistence gateway protocol and file-based implementation.

The core only needs two operations: save a named JSON document and load a
named JSON document (absent if missing). Where the bytes end up is the
gateway's business. FileGateway keeps one ``.json`` file per name in a
directory and writes atomically.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any, Protocol, runtime_checkable

from storyloom.observability.logging import get_logger

log = get_logger(__name__)

GAME_DOCUMENT_SUFFIX = "game.json"
LAYOUT_DOCUMENT_SUFFIX = "editor.json"


class PersistenceError(Exception):
    """Raised when a document cannot be read or written."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Failed to persist document '{name}': {reason}")


def document_name(game: str | None, suffix: str) -> str:
    """Build the persisted name of a document.

    Args:
        game: Optional game selector (e.g., "forest").
        suffix: Fixed document suffix (e.g., GAME_DOCUMENT_SUFFIX).

    Returns:
        ``"<game>.<suffix>"``, or just the suffix without a selector.
    """
    return f"{game}.{suffix}" if game else suffix


@runtime_checkable
class PersistenceGateway(Protocol):
    """Storage backend for named JSON documents."""

    async def save_json(self, name: str, data: dict[str, Any]) -> None:
        """Persist a document under ``name``, replacing any previous one."""
        ...

    async def load_json(self, name: str) -> dict[str, Any] | None:
        """Load the document stored under ``name``, or None if missing."""
        ...


class FileGateway:
    """Stores each document as ``<directory>/<name>``."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, name: str) -> Path:
        """Resolve a document name to its file.

        Raises:
            PersistenceError: If the name would escape the directory.
        """
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise PersistenceError(name, "Invalid document name")
        return self.directory / name

    async def save_json(self, name: str, data: dict[str, Any]) -> None:
        path = self.path_for(name)
        await asyncio.to_thread(self._write, path, data)
        log.debug("document_saved", name=name, path=str(path))

    async def load_json(self, name: str) -> dict[str, Any] | None:
        path = self.path_for(name)
        if not path.exists():
            log.debug("document_missing", name=name, path=str(path))
            return None
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceError(name, f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(name, f"Expected a JSON object, got {type(data).__name__}")
        return data

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        # Atomic temp-file + rename so a failed write never truncates the document;
        # the temp name is unique per write
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(path)
        except Exception:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
